"""
Identity service — auth router.

Only HTTP concerns live here:
  - Route declarations, HTTP methods, status codes, response_model
  - Dependency injection (session, settings, notifier, current account)
  - The session cookie
  - Forwarding to the controller

Zero business logic. Zero DB queries.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response, status
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from carelink_identity.auth import controller
from carelink_identity.auth.dependencies import (
    get_current_account,
    get_notifier,
    get_pre_2fa_claims,
    get_pwd_context,
    get_settings,
)
from carelink_identity.auth.models import Account
from carelink_identity.auth.schemas import (
    AccountResponse,
    CodeRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    RegisterRequest,
    RegisterResponse,
    ResendOTPRequest,
    TokenResponse,
    TwoFactorSetupResponse,
    VerifyOTPRequest,
)
from carelink_identity.auth.tokens import TokenClaims
from carelink_identity.config import Settings
from carelink_identity.database import get_db
from carelink_identity.notifications import NotificationSink
from carelink_identity.rate_limit import limiter

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_expire_seconds,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        path="/",
    )


def _clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        path="/",
    )


# ── Registration / email verification ─────────────────────────────────────────

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account; a 6-digit code is sent to the email",
)
@limiter.limit("5/hour")
async def register(
    request: Request,
    body: RegisterRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    pwd_context: CryptContext = Depends(get_pwd_context),
    notifier: NotificationSink = Depends(get_notifier),
) -> RegisterResponse:
    return await controller.register(
        session, body, settings, pwd_context, notifier, background_tasks
    )


@router.post(
    "/verify-otp",
    response_model=TokenResponse,
    summary="Verify the registration code and start a session",
)
@limiter.limit("10/minute")
async def verify_otp(
    request: Request,
    response: Response,
    body: VerifyOTPRequest,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> TokenResponse:
    result = await controller.verify_otp(session, body, settings)
    _set_session_cookie(response, result.access_token, settings)
    return result


@router.post(
    "/resend-otp",
    response_model=MessageResponse,
    summary="Send a fresh registration code by email or SMS (invalidates the previous one)",
)
@limiter.limit("5/15minutes")
async def resend_otp(
    request: Request,
    body: ResendOTPRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: NotificationSink = Depends(get_notifier),
) -> MessageResponse:
    return await controller.resend_otp(session, body, settings, notifier, background_tasks)


# ── Login / second factor ─────────────────────────────────────────────────────

@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    summary="Email + password login; returns a pre-2FA token when 2FA is on",
)
@limiter.limit("10/minute")
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    pwd_context: CryptContext = Depends(get_pwd_context),
) -> LoginResponse:
    result = await controller.login(session, body, settings, pwd_context)
    if result.access_token:
        _set_session_cookie(response, result.access_token, settings)
    return result


@router.post(
    "/verify-2fa",
    response_model=TokenResponse,
    summary="Exchange a pre-2FA token and an authenticator code for a session",
)
@limiter.limit("10/minute")
async def verify_2fa(
    request: Request,
    response: Response,
    body: CodeRequest,
    claims: TokenClaims = Depends(get_pre_2fa_claims),
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> TokenResponse:
    result = await controller.verify_2fa(session, claims, body, settings)
    _set_session_cookie(response, result.access_token, settings)
    return result


@router.post(
    "/2fa/enable",
    response_model=TwoFactorSetupResponse,
    summary="Start TOTP setup; 2FA stays off until verify-enable succeeds",
)
async def enable_2fa(
    account: Account = Depends(get_current_account),
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> TwoFactorSetupResponse:
    return await controller.enable_2fa(session, account, settings)


@router.post(
    "/2fa/verify-enable",
    response_model=MessageResponse,
    summary="Confirm TOTP setup with a code from the authenticator app",
)
async def verify_enable_2fa(
    body: CodeRequest,
    account: Account = Depends(get_current_account),
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    return await controller.confirm_2fa(session, account, body, settings)


@router.post(
    "/2fa/disable",
    response_model=MessageResponse,
    summary="Turn 2FA off and discard the secret",
)
async def disable_2fa(
    account: Account = Depends(get_current_account),
    session: AsyncSession = Depends(get_db),
) -> MessageResponse:
    return await controller.disable_2fa(session, account)


# ── Session ───────────────────────────────────────────────────────────────────

@router.get(
    "/me",
    response_model=AccountResponse,
    summary="The authenticated account",
)
async def me(account: Account = Depends(get_current_account)) -> AccountResponse:
    return controller.me(account)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Clear the session cookie",
)
async def logout(
    response: Response,
    account: Account = Depends(get_current_account),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    # Tokens are not stored server-side; clients holding a bearer copy drop it.
    _clear_session_cookie(response, settings)
    return MessageResponse(message="Signed out.")


# ── Password reset ────────────────────────────────────────────────────────────

@router.post(
    "/password-reset/request",
    response_model=MessageResponse,
    summary="Email a password reset code (same answer whether or not the email exists)",
)
@limiter.limit("3/15minutes")
async def password_reset_request(
    request: Request,
    body: PasswordResetRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: NotificationSink = Depends(get_notifier),
) -> MessageResponse:
    return await controller.password_reset_request(
        session, body, settings, notifier, background_tasks
    )


@router.post(
    "/password-reset/confirm",
    response_model=MessageResponse,
    summary="Set a new password using the emailed code",
)
@limiter.limit("10/minute")
async def password_reset_confirm(
    request: Request,
    body: PasswordResetConfirm,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    pwd_context: CryptContext = Depends(get_pwd_context),
) -> MessageResponse:
    return await controller.password_reset_confirm(session, body, settings, pwd_context)
