"""Two-factor router: TOTP setup, activation, disable, backup codes and 2FA login."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from sqlalchemy.orm import Session

from festive.database import get_db
from festive.dependencies.auth import Identity, get_current_identity
from festive.dependencies.services import get_security_events, rate_limit
from festive.errors import InvalidCredentials, InvalidInput
from festive.models import UserMfa
from festive.routers.auth import set_session_cookies
from festive.schemas.auth import LoginResponse, MessageResponse, UserInfo
from festive.schemas.two_factor import (
    BackupCodeCountResponse,
    BackupCodesResponse,
    TotpCodeRequest,
    TwoFactorLoginRequest,
    TwoFactorSetupResponse,
)
from festive.security.client_info import get_client_info
from festive.security.event_log import SecurityEventCategory, SecurityEventLog
from festive.security.rate_limiter import RateLimiterName
from festive.services.email_service import EmailService
from festive.services.login_service import LoginService
from festive.services.mfa_service import MfaService
from festive.services.repositories import MfaRepository
from festive.services.security_audit_service import SecurityAuditService, SecurityEventType

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth/2fa",
    tags=["two-factor"],
    dependencies=[Depends(rate_limit(RateLimiterName.GENERAL))],
)

BACKUP_CODES_WARNING = (
    "Store these backup codes somewhere safe. Each works once and they will not be shown again."
)


def _require_totp_format(code: str) -> str:
    code = code.strip()
    if not MfaService.is_valid_totp_format(code):
        raise InvalidInput("Invalid code format. Expected 6 digits.")
    return code


def _require_enabled(repo: MfaRepository, user_id: str) -> UserMfa:
    config = repo.find_config(user_id)
    if config is None or not config.totp_enabled or not config.totp_secret_encrypted:
        raise InvalidInput("Two-factor authentication is not enabled", reason="not_enabled")
    return config


def _check_code(
    config: UserMfa,
    code: str,
    request: Request,
    events: SecurityEventLog,
    identity: Identity,
) -> None:
    """Raise InvalidCredentials (and record a security event) unless ``code`` is current."""
    if MfaService.verify_totp(MfaService.decrypt_secret(config.totp_secret_encrypted), code):
        return
    client = get_client_info(request)
    events.log(
        SecurityEventCategory.SUSPICIOUS_ACTIVITY,
        client.ip_address,
        request.url.path,
        f"Invalid 2FA code from user {identity.user_id}",
        client.user_agent,
    )
    raise InvalidCredentials("Invalid code")


def _issue_backup_codes(repo: MfaRepository, user_id: str) -> list[str]:
    """Replace every stored code with a fresh batch. Returns the plaintext codes."""
    batch = MfaService.generate_backup_codes()
    repo.replace_backup_codes(user_id, [backup.code_hash for backup in batch])
    return [backup.code for backup in batch]


@router.post(
    "/setup",
    response_model=TwoFactorSetupResponse,
    dependencies=[Depends(rate_limit(RateLimiterName.AUTH))],
)
def setup(
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> dict:
    """Start TOTP setup. The secret is stored but 2FA stays off until verify-setup."""
    repo = MfaRepository(db)
    config = repo.find_config(identity.user_id)
    if config is not None and config.totp_enabled:
        raise InvalidInput(
            "Two-factor authentication is already enabled. Disable it before setting it up again.",
            reason="already_enabled",
        )

    secret = MfaService.generate_totp_secret()
    uri = MfaService.get_totp_uri(secret, identity.email)
    repo.save_pending_secret(identity.user_id, MfaService.encrypt_secret(secret))
    SecurityAuditService.log_event(
        db,
        SecurityEventType.TWO_FACTOR_SETUP_STARTED,
        user_id=identity.user_id,
        client=get_client_info(request),
        endpoint=request.url.path,
    )
    db.commit()

    return {
        "secret": secret,
        "otpauth_uri": uri,
        "qr_code_base64": MfaService.generate_qr_code_base64(uri),
        "manual_entry_key": secret,
    }


@router.post(
    "/verify-setup",
    response_model=BackupCodesResponse,
    dependencies=[Depends(rate_limit(RateLimiterName.AUTH))],
)
def verify_setup(
    request: Request,
    data: TotpCodeRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    events: SecurityEventLog = Depends(get_security_events),
) -> dict:
    """Activate 2FA with a first valid code. Returns the backup codes exactly once."""
    code = _require_totp_format(data.code)

    repo = MfaRepository(db)
    config = repo.find_config(identity.user_id)
    if config is None or not config.totp_secret_encrypted:
        raise InvalidInput("No pending 2FA setup. Start the setup again.", reason="setup_not_started")
    if config.totp_enabled:
        raise InvalidInput("Two-factor authentication is already enabled", reason="already_enabled")

    _check_code(config, code, request, events, identity)

    repo.enable(config)
    backup_codes = _issue_backup_codes(repo, identity.user_id)
    SecurityAuditService.log_event(
        db,
        SecurityEventType.TWO_FACTOR_ENABLED,
        user_id=identity.user_id,
        client=get_client_info(request),
        endpoint=request.url.path,
    )
    db.commit()
    logger.info(f"2FA enabled for user {identity.user_id}")

    return {
        "message": f"Two-factor authentication enabled. {BACKUP_CODES_WARNING}",
        "backup_codes": backup_codes,
    }


@router.post(
    "/verify-login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(rate_limit(RateLimiterName.AUTH))],
)
def verify_login(
    request: Request,
    response: Response,
    data: TwoFactorLoginRequest,
    db: Session = Depends(get_db),
    events: SecurityEventLog = Depends(get_security_events),
) -> dict:
    """Second login step. Sets both session cookies on a valid TOTP or backup code."""
    outcome = LoginService(db, events, request.url.path).verify_two_factor(
        data.email,
        data.code,
        data.use_backup_code,
        data.remember,
        get_client_info(request),
    )
    set_session_cookies(response, outcome)
    return {
        "requires_2fa": False,
        "message": "Login successful",
        "user": UserInfo.model_validate(outcome.user),
        "used_backup_code": outcome.used_backup_code,
    }


@router.post(
    "/disable",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit(RateLimiterName.STRICT))],
)
def disable(
    request: Request,
    data: TotpCodeRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    events: SecurityEventLog = Depends(get_security_events),
) -> dict:
    """Turn 2FA off. Requires a current TOTP code; deletes the secret and all backup codes."""
    code = _require_totp_format(data.code)
    repo = MfaRepository(db)
    config = _require_enabled(repo, identity.user_id)
    _check_code(config, code, request, events, identity)

    repo.disable(config)
    SecurityAuditService.log_event(
        db,
        SecurityEventType.TWO_FACTOR_DISABLED,
        user_id=identity.user_id,
        client=get_client_info(request),
        endpoint=request.url.path,
    )
    db.commit()
    logger.info(f"2FA disabled for user {identity.user_id}")

    background_tasks.add_task(EmailService.send_two_factor_disabled_notification, identity.email)
    return {"message": "Two-factor authentication disabled"}


@router.post(
    "/backup-codes",
    response_model=BackupCodesResponse,
    dependencies=[Depends(rate_limit(RateLimiterName.STRICT))],
)
def regenerate_backup_codes(
    request: Request,
    data: TotpCodeRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    events: SecurityEventLog = Depends(get_security_events),
) -> dict:
    """Replace all backup codes with a new batch. Requires a current TOTP code."""
    code = _require_totp_format(data.code)
    repo = MfaRepository(db)
    config = _require_enabled(repo, identity.user_id)
    _check_code(config, code, request, events, identity)

    backup_codes = _issue_backup_codes(repo, identity.user_id)
    SecurityAuditService.log_event(
        db,
        SecurityEventType.BACKUP_CODES_REGENERATED,
        user_id=identity.user_id,
        client=get_client_info(request),
        endpoint=request.url.path,
    )
    db.commit()

    return {
        "message": f"New backup codes generated. {BACKUP_CODES_WARNING}",
        "backup_codes": backup_codes,
    }


@router.get("/backup-codes", response_model=BackupCodeCountResponse)
def count_backup_codes(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> dict:
    """Number of unused backup codes left."""
    repo = MfaRepository(db)
    config = repo.find_config(identity.user_id)
    enabled = bool(config and config.totp_enabled)
    return {
        "enabled": enabled,
        "remaining": repo.count_unused(identity.user_id) if enabled else 0,
    }
