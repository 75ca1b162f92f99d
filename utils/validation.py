"""
Validation utilities for user and task models.
Pure validation functions; each returns the normalized value or raises ValueError.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from email_validator import validate_email, EmailNotValidError
from pydantic import BaseModel

from utils.security import password_strength_errors


class ValidationConfig:
    """Limits and fixed lists for request validation."""

    MAX_EMAIL_LENGTH = 254
    MIN_NAME_LENGTH = 2
    MAX_NAME_LENGTH = 50
    MIN_TITLE_LENGTH = 3
    MAX_TITLE_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 2000
    MAX_REPORT_LENGTH = 10000
    MAX_DEADLINE_YEARS = 5

    DISPOSABLE_EMAIL_DOMAINS = frozenset({"tempmail.org", "10minutemail.com", "guerrillamail.com"})

    NAME_PATTERN = re.compile(r"^[a-zA-Zа-яА-ЯёЁ\s\-']+$")
    FORBIDDEN_NAME_WORDS = re.compile(r"\b(admin|root|test|null|undefined|script|alert)\b", re.IGNORECASE)

    TITLE_DANGEROUS_PATTERN = re.compile(r"<script|javascript:|data:|vbscript:", re.IGNORECASE)

    ROLES = ("USER", "ADMIN", "BOSS")
    PRIORITIES = ("LOW", "MEDIUM", "HIGH")
    STATUSES = ("ASSIGNED", "IN_PROGRESS", "UNDER_REVIEW", "COMPLETED", "REVISION")


class SecurityValidator:
    """Field validators shared by the request models."""

    @staticmethod
    def validate_email_address(email: str) -> str:
        if not email:
            raise ValueError("Email is required")
        if len(email) > ValidationConfig.MAX_EMAIL_LENGTH:
            raise ValueError("Email is too long")
        try:
            valid = validate_email(email, check_deliverability=False)
        except EmailNotValidError:
            raise ValueError("Invalid email address")

        normalized = valid.normalized.lower()
        domain = normalized.rsplit("@", 1)[-1]
        if domain in ValidationConfig.DISPOSABLE_EMAIL_DOMAINS:
            raise ValueError("Disposable email addresses are not allowed")
        return normalized

    @staticmethod
    def validate_password(password: str) -> str:
        errors = password_strength_errors(password)
        if errors:
            raise ValueError("; ".join(errors))
        return password

    @staticmethod
    def validate_person_name(name: str, label: str = "Name") -> str:
        value = (name or "").strip()
        if len(value) < ValidationConfig.MIN_NAME_LENGTH:
            raise ValueError(f"{label} must be at least {ValidationConfig.MIN_NAME_LENGTH} characters")
        if len(value) > ValidationConfig.MAX_NAME_LENGTH:
            raise ValueError(f"{label} must be at most {ValidationConfig.MAX_NAME_LENGTH} characters")
        if not ValidationConfig.NAME_PATTERN.match(value):
            raise ValueError(f"{label} may only contain letters, spaces, hyphens and apostrophes")
        if ValidationConfig.FORBIDDEN_NAME_WORDS.search(value):
            raise ValueError(f"{label} contains a reserved word")
        return value

    @staticmethod
    def validate_task_title(title: str) -> str:
        value = (title or "").strip()
        if len(value) < ValidationConfig.MIN_TITLE_LENGTH:
            raise ValueError(f"Title must be at least {ValidationConfig.MIN_TITLE_LENGTH} characters")
        if len(value) > ValidationConfig.MAX_TITLE_LENGTH:
            raise ValueError(f"Title must be at most {ValidationConfig.MAX_TITLE_LENGTH} characters")
        if ValidationConfig.TITLE_DANGEROUS_PATTERN.search(value):
            raise ValueError("Title contains forbidden content")
        return value

    @staticmethod
    def validate_task_description(description: Optional[str]) -> str:
        value = (description or "").strip()
        if len(value) > ValidationConfig.MAX_DESCRIPTION_LENGTH:
            raise ValueError(f"Description must be at most {ValidationConfig.MAX_DESCRIPTION_LENGTH} characters")
        return value

    @staticmethod
    def validate_choice(value: Optional[str], choices, label: str) -> Optional[str]:
        if value is None:
            return None
        normalized = str(value).strip().upper()
        if normalized not in choices:
            raise ValueError(f"{label} must be one of: {', '.join(choices)}")
        return normalized

    @staticmethod
    def validate_deadline(deadline: Optional[datetime], allow_past: bool = True, now: Optional[datetime] = None) -> Optional[datetime]:
        if deadline is None:
            return None
        now = now or datetime.now(timezone.utc)
        aware = deadline if deadline.tzinfo else deadline.replace(tzinfo=timezone.utc)
        if aware > now + timedelta(days=365 * ValidationConfig.MAX_DEADLINE_YEARS):
            raise ValueError(f"Deadline cannot be more than {ValidationConfig.MAX_DEADLINE_YEARS} years ahead")
        if not allow_past and aware < now:
            raise ValueError("Deadline cannot be in the past")
        return aware


class EnhancedBaseModel(BaseModel):
    """Strict base model for request bodies."""

    model_config = {
        "validate_assignment": True,
        "extra": "forbid",
        "str_strip_whitespace": True,
        "protected_namespaces": (),
    }
