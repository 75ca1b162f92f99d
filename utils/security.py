"""
Password hashing and password-strength rules.
Hashing is delegated to passlib's bcrypt; plaintext is never compared directly.
"""
import re
import logging
from typing import List, Optional

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
PASSWORD_SYMBOLS = "@$!%*?&"

COMMON_PASSWORDS = frozenset({
    "password", "password1", "password123", "123456", "12345678", "123456789",
    "qwerty", "qwerty123", "abc123", "111111", "letmein", "welcome",
    "admin", "admin123", "iloveyou", "monkey", "dragon", "passw0rd",
    "Password1!", "Password123!", "Qwerty123!", "Welcome1!",
})


class PasswordSecurity:
    """bcrypt hashing with configurable rounds."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds
        self.context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds
        )

    def hash_password(self, password: str) -> str:
        """
        Hash a password.

        Args:
            password: Plain text password

        Returns:
            bcrypt digest
        """
        return self.context.hash(password)

    def verify_password(self, password: str, hashed: Optional[str]) -> bool:
        """
        Verify a password against a digest in constant time.

        Returns False for a missing or unrecognized digest instead of raising.
        """
        if not password or not hashed:
            return False
        try:
            return self.context.verify(password, hashed)
        except ValueError as e:
            logger.error(f"Password verification failed: {e}")
            return False


def password_strength_errors(password: str) -> List[str]:
    """Human-readable reasons a password is rejected; empty when acceptable."""
    if not password:
        return ["Password is required"]

    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f"Password must be at most {PASSWORD_MAX_LENGTH} characters long")
    if not re.search(r"[a-z]", password):
        errors.append("Password needs a lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password needs an uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password needs a digit")
    if not any(ch in PASSWORD_SYMBOLS for ch in password):
        errors.append(f"Password needs a symbol ({PASSWORD_SYMBOLS})")
    if password in COMMON_PASSWORDS or password.lower() in COMMON_PASSWORDS:
        errors.append("Password is too common")
    return errors
