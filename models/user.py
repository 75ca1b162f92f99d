"""
User model schemas for authentication and user management.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from utils.validation import EnhancedBaseModel, SecurityValidator, ValidationConfig


class UserRegister(EnhancedBaseModel):
    """Registration payload. The role is never client-controlled."""
    email: str = Field(..., max_length=ValidationConfig.MAX_EMAIL_LENGTH)
    password: str = Field(..., max_length=128)
    first_name: str
    last_name: str
    patronymic: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return SecurityValidator.validate_email_address(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return SecurityValidator.validate_password(v)

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, v):
        return SecurityValidator.validate_person_name(v, "First name")

    @field_validator("last_name")
    @classmethod
    def validate_last_name(cls, v):
        return SecurityValidator.validate_person_name(v, "Last name")

    @field_validator("patronymic")
    @classmethod
    def validate_patronymic(cls, v):
        if not v:
            return None
        return SecurityValidator.validate_person_name(v, "Patronymic")


class UserLogin(EnhancedBaseModel):
    email: str = Field(..., max_length=ValidationConfig.MAX_EMAIL_LENGTH)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class UserUpdate(EnhancedBaseModel):
    """Partial profile update; ``role`` is honoured for admins only."""
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    patronymic: Optional[str] = None
    role: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return SecurityValidator.validate_email_address(v) if v is not None else v

    @field_validator("first_name", "last_name", "patronymic")
    @classmethod
    def validate_names(cls, v):
        return SecurityValidator.validate_person_name(v) if v is not None else v

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        return SecurityValidator.validate_choice(v, ValidationConfig.ROLES, "Role")


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    patronymic: Optional[str] = None
    role: str
    created_at: datetime


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class UserListResponse(BaseModel):
    users: List[UserResponse]
    pagination: Pagination


class UserStatusResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    patronymic: Optional[str] = None
    role: str
    is_online: bool
