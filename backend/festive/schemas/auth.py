"""Schemas for authentication endpoints."""

import re

from pydantic import BaseModel, EmailStr, Field, field_validator

# bcrypt only looks at the first 72 bytes
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 72

# Markup and quoting characters never belong in a display name
NAME_FORBIDDEN_CHARS = re.compile(r"[<>\"'`;\\]")


def _validate_password_bytes(v: str) -> str:
    if len(v.encode("utf-8")) > PASSWORD_MAX_LENGTH:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_LENGTH} bytes")
    return v


def _validate_name(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if not v:
        return None
    if NAME_FORBIDDEN_CHARS.search(v):
        raise ValueError("Name contains invalid characters")
    return v


class UserRegister(BaseModel):
    """Schema for user registration."""

    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    name: str | None = Field(None, max_length=255)

    @field_validator("password")
    @classmethod
    def validate_password_bytes(cls, v: str) -> str:
        return _validate_password_bytes(v)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        return _validate_name(v)


class UserLogin(BaseModel):
    """Schema for user login."""

    email: EmailStr
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)
    remember: bool = False


class UserInfo(BaseModel):
    """Schema for user info in auth responses."""

    id: str
    email: str
    name: str | None = None
    email_verified: bool = False
    two_factor_enabled: bool = False

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    """Login and 2FA-login result.

    With ``requires2FA`` true no cookies are set and only the email is echoed
    back, so the client can resume with ``/auth/2fa/verify-login``.
    """

    success: bool = True
    requires_2fa: bool = Field(False, serialization_alias="requires2FA")
    message: str
    email: str | None = None
    user: UserInfo | None = None
    used_backup_code: bool | None = Field(None, serialization_alias="usedBackupCode")


class SessionResponse(BaseModel):
    """Schema for token refresh and /me responses."""

    success: bool = True
    message: str | None = None
    user: UserInfo | None = None


class MessageResponse(BaseModel):
    """Schema for simple message response."""

    success: bool = True
    message: str


class ResendVerificationRequest(BaseModel):
    """Schema for resending verification email."""

    email: EmailStr


class ForgotPasswordRequest(BaseModel):
    """Schema for requesting password reset."""

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Schema for resetting password with token."""

    token: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("password")
    @classmethod
    def validate_password_bytes(cls, v: str) -> str:
        return _validate_password_bytes(v)
