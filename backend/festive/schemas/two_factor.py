"""Schemas for two-factor endpoints."""

from pydantic import BaseModel, EmailStr, Field


class TwoFactorSetupResponse(BaseModel):
    """Secret and provisioning data for an authenticator app. Not enabled yet."""

    success: bool = True
    secret: str
    otpauth_uri: str
    qr_code_base64: str
    manual_entry_key: str


class TotpCodeRequest(BaseModel):
    """A TOTP code proving possession of the authenticator."""

    code: str = Field(min_length=1, max_length=16)


class TwoFactorLoginRequest(BaseModel):
    """Second login step. ``code`` is a TOTP code or, with ``use_backup_code``, a backup code."""

    email: EmailStr
    code: str = Field(min_length=1, max_length=16)
    use_backup_code: bool = Field(False, alias="useBackupCode")
    remember: bool = False

    model_config = {"populate_by_name": True}


class BackupCodesResponse(BaseModel):
    """Freshly generated backup codes. Shown exactly once."""

    success: bool = True
    message: str
    backup_codes: list[str] = Field(serialization_alias="backupCodes")


class BackupCodeCountResponse(BaseModel):
    success: bool = True
    enabled: bool
    remaining: int
