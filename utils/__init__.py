"""
Shared helpers: errors, validation, sanitization, passwords and tokens.
"""
