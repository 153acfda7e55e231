"""
Identity service — auth controller (request orchestration layer).

Responsibilities:
  - Receive validated input from the router.
  - Call the credential store, OTP, TOTP and token modules (which own the rules).
  - Queue notifications and compose the response model.

No HTTP details here (cookies, headers, status codes); those stay in router.py.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import BackgroundTasks
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from carelink_identity.auth import otp, tokens, totp
from carelink_identity.auth.constants import (
    AccountStatus,
    OTPChannel,
    OTPPurpose,
    SecondFactorState,
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
from carelink_identity.auth.service import (
    activate_account,
    authenticate_account,
    clear_failed_logins,
    ensure_password_policy,
    get_account_by_email,
    get_account_by_id,
    record_failed_login,
    register_account,
    require_account,
    set_password,
)
from carelink_identity.config import Settings
from carelink_identity.exceptions import (
    AccountLocked,
    AccountNotActive,
    Conflict,
    InvalidCode,
    InvalidInput,
    OTPCooldown,
    TwoFactorFailed,
    Unauthenticated,
)
from carelink_identity.notifications import NotificationSink, otp_message

logger = logging.getLogger(__name__)

PASSWORD_RESET_SENT = (
    "If an active account exists for that email, a reset code has been sent."
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _full_session(account: Account, settings: Settings) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.issue_full_session(account.id, account.role, settings),
        expires_in=settings.session_expire_seconds,
    )


async def _issue_and_send_otp(
    session: AsyncSession,
    account: Account,
    purpose: OTPPurpose,
    settings: Settings,
    notifier: NotificationSink,
    background_tasks: BackgroundTasks,
    *,
    destination: str | None = None,
) -> None:
    code = await otp.issue_otp(
        session,
        account,
        purpose=purpose,
        secret=settings.jwt_secret,
        ttl_seconds=settings.otp_expire_seconds,
        max_attempts=settings.otp_max_attempts,
    )
    # Queued only after the hash is stored; runs once the response is out.
    background_tasks.add_task(
        notifier.send,
        destination or account.email,
        otp_message(code, purpose, settings.otp_expire_seconds),
    )


# ── Registration / email verification ─────────────────────────────────────────

async def register(
    session: AsyncSession,
    body: RegisterRequest,
    settings: Settings,
    pwd_context: CryptContext,
    notifier: NotificationSink,
    background_tasks: BackgroundTasks,
) -> RegisterResponse:
    account = await register_account(
        session,
        pwd_context,
        email=body.email,
        password=body.password,
        display_name=body.display_name,
        role=body.role,
        phone=body.phone,
        profile=body.profile.model_dump(mode="json") if body.profile else None,
        min_password_length=settings.password_min_length,
    )
    await _issue_and_send_otp(
        session, account, OTPPurpose.EMAIL_VERIFICATION, settings, notifier, background_tasks
    )
    return RegisterResponse(account_id=account.id, status=account.status)


async def verify_otp(
    session: AsyncSession,
    body: VerifyOTPRequest,
    settings: Settings,
) -> TokenResponse:
    """Consume the registration code, activate the account and open a session."""
    account = await require_account(session, body.account_id)
    if account.status == AccountStatus.SUSPENDED:
        raise AccountNotActive("This account has been suspended.")
    # Activation only: a verified account has no registration code to redeem.
    if account.status != AccountStatus.INACTIVE:
        raise InvalidCode()

    if not await otp.verify_otp(
        session,
        account,
        body.code,
        purpose=OTPPurpose.EMAIL_VERIFICATION,
        secret=settings.jwt_secret,
    ):
        raise InvalidCode()

    await activate_account(session, account)
    account.last_login_at = datetime.now(timezone.utc)
    await session.flush()
    return _full_session(account, settings)


async def resend_otp(
    session: AsyncSession,
    body: ResendOTPRequest,
    settings: Settings,
    notifier: NotificationSink,
    background_tasks: BackgroundTasks,
) -> MessageResponse:
    account = await require_account(session, body.account_id)
    if account.status == AccountStatus.SUSPENDED:
        raise AccountNotActive("This account has been suspended.")
    if account.status == AccountStatus.ACTIVE:
        raise Conflict("This account is already verified.")

    destination = account.email
    if body.channel == OTPChannel.SMS:
        if not account.phone:
            raise InvalidInput("channel", "This account has no phone number.")
        destination = account.phone

    otp.ensure_resend_allowed(account, cooldown_seconds=settings.otp_resend_cooldown_seconds)
    await _issue_and_send_otp(
        session,
        account,
        OTPPurpose.EMAIL_VERIFICATION,
        settings,
        notifier,
        background_tasks,
        destination=destination,
    )
    return MessageResponse(message="A new verification code has been sent.")


# ── Login / second factor ─────────────────────────────────────────────────────

async def login(
    session: AsyncSession,
    body: LoginRequest,
    settings: Settings,
    pwd_context: CryptContext,
) -> LoginResponse:
    account = await authenticate_account(
        session,
        pwd_context,
        body.email,
        body.password,
        max_failures=settings.login_max_failures,
        lock_seconds=settings.login_lock_seconds,
    )

    if account.second_factor_state == SecondFactorState.ENABLED:
        return LoginResponse(
            two_fa=True,
            temp_token=tokens.issue_pre_2fa(account.id, settings),
            expires_in=settings.pre_2fa_expire_seconds,
        )

    full = _full_session(account, settings)
    return LoginResponse(access_token=full.access_token, expires_in=full.expires_in)


async def verify_2fa(
    session: AsyncSession,
    claims: tokens.TokenClaims,
    body: CodeRequest,
    settings: Settings,
) -> TokenResponse:
    """
    Exchange a pre-2FA token plus a TOTP code for a full session.

    Wrong codes count towards the same lockout as wrong passwords.
    """
    now = datetime.now(timezone.utc)
    account = await get_account_by_id(session, claims.account_id)
    if account is None or account.status != AccountStatus.ACTIVE:
        raise Unauthenticated()
    if account.locked_until is not None and account.locked_until > now:
        raise AccountLocked()

    if not totp.verify_login(
        account, body.code, valid_window=settings.totp_valid_window, now=now
    ):
        await record_failed_login(
            session,
            account,
            max_failures=settings.login_max_failures,
            lock_seconds=settings.login_lock_seconds,
            now=now,
        )
        raise TwoFactorFailed()

    await clear_failed_logins(session, account)
    account.last_login_at = now
    await session.flush()
    return _full_session(account, settings)


async def enable_2fa(
    session: AsyncSession, account: Account, settings: Settings
) -> TwoFactorSetupResponse:
    setup = await totp.begin_setup(session, account, issuer=settings.totp_issuer)
    return TwoFactorSetupResponse(secret=setup.secret, provisioning_uri=setup.provisioning_uri)


async def confirm_2fa(
    session: AsyncSession, account: Account, body: CodeRequest, settings: Settings
) -> MessageResponse:
    await totp.confirm_setup(
        session, account, body.code, valid_window=settings.totp_valid_window
    )
    return MessageResponse(message="Two-factor authentication is now enabled.")


async def disable_2fa(session: AsyncSession, account: Account) -> MessageResponse:
    await totp.disable(session, account)
    return MessageResponse(message="Two-factor authentication has been disabled.")


def me(account: Account) -> AccountResponse:
    return AccountResponse.model_validate(account)


# ── Password reset ────────────────────────────────────────────────────────────

async def password_reset_request(
    session: AsyncSession,
    body: PasswordResetRequest,
    settings: Settings,
    notifier: NotificationSink,
    background_tasks: BackgroundTasks,
) -> MessageResponse:
    """
    Always answers the same way so the endpoint cannot be used to probe
    which emails are registered.
    """
    account = await get_account_by_email(session, body.email)
    if account is None or account.status != AccountStatus.ACTIVE:
        return MessageResponse(message=PASSWORD_RESET_SENT)
    try:
        otp.ensure_resend_allowed(
            account, cooldown_seconds=settings.otp_resend_cooldown_seconds
        )
    except OTPCooldown:
        logger.info("Password reset for account %s throttled by cooldown", account.id)
        return MessageResponse(message=PASSWORD_RESET_SENT)

    await _issue_and_send_otp(
        session, account, OTPPurpose.PASSWORD_RESET, settings, notifier, background_tasks
    )
    return MessageResponse(message=PASSWORD_RESET_SENT)


async def password_reset_confirm(
    session: AsyncSession,
    body: PasswordResetConfirm,
    settings: Settings,
    pwd_context: CryptContext,
) -> MessageResponse:
    # Checked first so a weak password does not burn the code.
    ensure_password_policy(
        body.new_password, min_length=settings.password_min_length, field="new_password"
    )
    account = await get_account_by_email(session, body.email)
    if account is None or account.status != AccountStatus.ACTIVE:
        raise InvalidCode()
    if not await otp.verify_otp(
        session,
        account,
        body.code,
        purpose=OTPPurpose.PASSWORD_RESET,
        secret=settings.jwt_secret,
    ):
        raise InvalidCode()

    await set_password(
        session,
        pwd_context,
        account,
        body.new_password,
        min_password_length=settings.password_min_length,
    )
    logger.info("Password reset completed for account %s", account.id)
    return MessageResponse(message="Your password has been reset. You can now sign in.")
