"""
Signature matching, credentials, uploads and security audit logging.
"""
