"""Authentication router: registration, login, session cookies and password reset."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from festive.config import settings
from festive.database import get_db
from festive.dependencies.auth import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    Identity,
    get_current_identity,
)
from festive.dependencies.services import get_security_events, rate_limit
from festive.errors import InvalidInput, Unauthenticated
from festive.schemas.auth import (
    ForgotPasswordRequest,
    LoginResponse,
    MessageResponse,
    ResendVerificationRequest,
    ResetPasswordRequest,
    SessionResponse,
    UserInfo,
    UserLogin,
    UserRegister,
)
from festive.security.client_info import get_client_info
from festive.security.event_log import SecurityEventLog
from festive.security.rate_limiter import RateLimiterName
from festive.services.account_service import AccountService
from festive.services.auth_service import REFRESH_TOKEN_TYPE, AuthService
from festive.services.email_service import EmailService
from festive.services.login_service import LoginOutcome, LoginService
from festive.services.repositories import UserRepository
from festive.services.security_audit_service import SecurityAuditService, SecurityEventType

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
    dependencies=[Depends(rate_limit(RateLimiterName.GENERAL))],
)

FORGOT_PASSWORD_MESSAGE = "If that email is registered, you will receive reset instructions."
RESEND_VERIFICATION_MESSAGE = "If that email is awaiting verification, we sent a new link."


def set_access_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        access_token,
        max_age=settings.access_token_expire_minutes * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def set_refresh_cookie(response: Response, refresh_token: str, remember: bool) -> None:
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        refresh_token,
        max_age=int(AuthService.refresh_token_lifetime(remember).total_seconds()),
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def set_session_cookies(response: Response, outcome: LoginOutcome) -> None:
    """Set both session cookies. Only called for a fully authenticated outcome."""
    set_access_cookie(response, outcome.access_token)
    set_refresh_cookie(response, outcome.refresh_token, outcome.remember)


def clear_session_cookies(response: Response) -> None:
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            name, path="/", httponly=True, secure=settings.is_production, samesite="lax"
        )


@router.post(
    "/register",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit(RateLimiterName.AUTH))],
)
def register(
    request: Request,
    data: UserRegister,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> dict:
    """Register a new user and send a verification email."""
    user, token = AccountService(db).register(
        data.email, data.password, data.name, get_client_info(request)
    )
    background_tasks.add_task(EmailService.send_verification_email, user.email, token, user.name)
    return {"message": "Registration successful. Please check your email to verify your account."}


@router.get("/verify-email", response_model=SessionResponse)
def verify_email(
    request: Request,
    token: str = Query(..., min_length=1, max_length=128),
    db: Session = Depends(get_db),
) -> dict:
    """Verify email with the token from the email link."""
    user = AccountService(db).verify_email(token, get_client_info(request))
    return {"message": "Email verified successfully. You can now log in.", "user": UserInfo.model_validate(user)}


@router.post(
    "/verify-email",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit(RateLimiterName.AUTH))],
)
def resend_verification(
    data: ResendVerificationRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> dict:
    """Resend the verification email. Same response whether or not anything was sent."""
    issued = AccountService(db).resend_verification(data.email)
    if issued is not None:
        user, token = issued
        background_tasks.add_task(EmailService.send_verification_email, user.email, token, user.name)
    return {"message": RESEND_VERIFICATION_MESSAGE}


@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(rate_limit(RateLimiterName.AUTH))],
)
def login(
    request: Request,
    response: Response,
    data: UserLogin,
    db: Session = Depends(get_db),
    events: SecurityEventLog = Depends(get_security_events),
) -> dict:
    """Check the password. Sets both cookies, or returns a 2FA challenge without any."""
    outcome = LoginService(db, events, request.url.path).login(
        data.email, data.password, data.remember, get_client_info(request)
    )

    if outcome.requires_two_factor:
        return {
            "requires_2fa": True,
            "email": outcome.user.email,
            "message": "Two-factor authentication required",
        }

    set_session_cookies(response, outcome)
    return {
        "requires_2fa": False,
        "message": "Login successful",
        "user": UserInfo.model_validate(outcome.user),
    }


@router.post("/refresh", dependencies=[Depends(rate_limit(RateLimiterName.AUTH))])
def refresh(request: Request, db: Session = Depends(get_db)) -> JSONResponse:
    """Mint a new access token from the refresh cookie.

    The refresh token itself is not rotated; it is re-set with the lifetime its
    ``remember`` claim asks for. An invalid refresh token clears both cookies.
    """
    refresh_token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    payload = AuthService.verify_token(refresh_token, REFRESH_TOKEN_TYPE)
    user = UserRepository(db).find_active_by_id(payload["sub"]) if payload else None

    if user is None:
        error = Unauthenticated("Refresh token is invalid or expired")
        response = JSONResponse(status_code=error.status_code, content=error.to_dict())
        clear_session_cookies(response)
        return response

    remember = payload.get("remember") is True
    body = SessionResponse(message="Token refreshed", user=UserInfo.model_validate(user))
    response = JSONResponse(content=body.model_dump(mode="json"))
    set_access_cookie(response, AuthService.create_access_token(user.id, payload.get("email") or user.email))
    set_refresh_cookie(response, refresh_token, remember)

    SecurityAuditService.log_event(
        db, SecurityEventType.TOKEN_REFRESHED, user_id=user.id, client=get_client_info(request)
    )
    db.commit()
    return response


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, response: Response, db: Session = Depends(get_db)) -> dict:
    """Clear both session cookies. Tokens are stateless, so nothing is revoked server-side."""
    payload = AuthService.verify_token(request.cookies.get(REFRESH_TOKEN_COOKIE), REFRESH_TOKEN_TYPE)
    if payload:
        SecurityAuditService.log_event(
            db, SecurityEventType.LOGOUT, user_id=payload["sub"], client=get_client_info(request)
        )
        db.commit()

    clear_session_cookies(response)
    return {"message": "Successfully logged out"}


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit(RateLimiterName.STRICT))],
)
def forgot_password(
    request: Request,
    data: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> dict:
    """Request a password reset email. The response never reveals whether the email exists."""
    issued = AccountService(db).request_password_reset(data.email, get_client_info(request))
    if issued is not None:
        user, token = issued
        background_tasks.add_task(EmailService.send_password_reset_email, user.email, token, user.name)
    return {"message": FORGOT_PASSWORD_MESSAGE}


@router.get("/validate-reset-token", response_model=MessageResponse)
def validate_reset_token(
    token: str = Query(..., min_length=1, max_length=128),
    db: Session = Depends(get_db),
) -> dict:
    if not AccountService(db).validate_reset_token(token):
        raise InvalidInput("Invalid or expired reset link", reason="invalid_token")
    return {"message": "Token is valid"}


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit(RateLimiterName.STRICT))],
)
def reset_password(
    request: Request,
    data: ResetPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> dict:
    """Reset password with the token from the email link."""
    user = AccountService(db).reset_password(data.token, data.password, get_client_info(request))
    background_tasks.add_task(EmailService.send_password_changed_notification, user.email)
    return {"message": "Password reset successfully. You can now log in with your new password."}


@router.get("/me", response_model=SessionResponse)
def get_me(identity: Identity = Depends(get_current_identity)) -> dict:
    """Get the current authenticated user's information."""
    return {"user": UserInfo.model_validate(identity.user)}
