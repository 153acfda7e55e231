"""
Identity service — credential store.

Rules:
  - Zero FastAPI imports.
  - Zero direct DB driver calls: only the SQLAlchemy async session.
  - All I/O functions are async def.
  - No side effects beyond the session passed in (no global state mutated).
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from email_validator import EmailNotValidError, validate_email
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carelink_identity.auth.constants import AccountStatus
from carelink_identity.auth.models import Account
from carelink_identity.auth.schemas import PROFILE_KIND_FOR_ROLE
from carelink_identity.auth.utils import dummy_verify, hash_password, verify_password
from carelink_identity.exceptions import (
    AccountLocked,
    AccountNotActive,
    AccountNotFound,
    Conflict,
    InvalidCredentials,
    InvalidInput,
)
from carelink_shared.constants import Role

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ── Account queries ───────────────────────────────────────────────────────────

async def get_account_by_email(session: AsyncSession, email: str) -> Account | None:
    result = await session.execute(
        select(Account).where(Account.email == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def get_account_by_id(
    session: AsyncSession, account_id: uuid.UUID
) -> Account | None:
    result = await session.execute(select(Account).where(Account.id == account_id))
    return result.scalar_one_or_none()


async def require_account(session: AsyncSession, account_id: uuid.UUID) -> Account:
    account = await get_account_by_id(session, account_id)
    if account is None:
        raise AccountNotFound()
    return account


# ── Guard: ensure account is usable ──────────────────────────────────────────

def assert_account_active(account: Account) -> None:
    if account.status == AccountStatus.INACTIVE:
        raise AccountNotActive(
            "This account has not been verified yet. Enter the code sent to your email."
        )
    if account.status == AccountStatus.SUSPENDED:
        raise AccountNotActive("This account has been suspended.")


# ── Registration ──────────────────────────────────────────────────────────────

def _validated_email(email: str) -> str:
    try:
        validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError:
        raise InvalidInput("email", "Please provide a valid email address.")
    return normalize_email(email)


def ensure_password_policy(password: str, *, min_length: int, field: str = "password") -> None:
    if len(password) < min_length:
        raise InvalidInput(field, f"Password must be at least {min_length} characters long.")


def _validated_profile(role: Role, profile: dict[str, Any] | None) -> dict[str, Any] | None:
    if profile is None:
        return None
    expected = PROFILE_KIND_FOR_ROLE.get(role)
    if expected is None or profile.get("kind") != expected:
        raise InvalidInput("profile", f"Profile does not match the '{role.value}' role.")
    return profile


async def register_account(
    session: AsyncSession,
    pwd_context: CryptContext,
    *,
    email: str,
    password: str,
    display_name: str,
    role: Role,
    phone: str | None = None,
    profile: dict[str, Any] | None = None,
    min_password_length: int = 6,
) -> Account:
    """
    Create a new, inactive account.

    Guard clauses run first; the happy path is last.  Uses flush() so the
    caller can use account.id (and issue the OTP) in the same transaction.
    """
    normalized = _validated_email(email)
    ensure_password_policy(password, min_length=min_password_length)
    profile = _validated_profile(role, profile)

    if await get_account_by_email(session, normalized) is not None:
        raise Conflict()

    account = Account(
        email=normalized,
        password_hash=await hash_password(pwd_context, password),
        display_name=display_name.strip(),
        phone=phone,
        role=role,
        profile=profile,
        status=AccountStatus.INACTIVE,
    )
    session.add(account)
    try:
        # Two concurrent registrations can both pass the lookup above;
        # the unique index decides.
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise Conflict()
    logger.info("Account registered id=%s role=%s", account.id, role.value)
    return account


# ── Authentication ────────────────────────────────────────────────────────────

async def authenticate_account(
    session: AsyncSession,
    pwd_context: CryptContext,
    email: str,
    password: str,
    *,
    max_failures: int = 5,
    lock_seconds: int = 1_800,
    now: datetime | None = None,
) -> Account:
    """
    Verify credentials and return the Account.

    Unknown email and wrong password raise the same InvalidCredentials; the
    lock and status checks only run once the password is proven, so they
    never reveal whether an email is registered.
    """
    now = now or datetime.now(timezone.utc)
    account = await get_account_by_email(session, email)
    if account is None:
        await dummy_verify(pwd_context)
        raise InvalidCredentials()

    if not await verify_password(pwd_context, password, account.password_hash):
        await record_failed_login(
            session, account, max_failures=max_failures, lock_seconds=lock_seconds, now=now
        )
        raise InvalidCredentials()

    if account.locked_until is not None and account.locked_until > now:
        raise AccountLocked()
    assert_account_active(account)

    account.failed_login_count = 0
    account.locked_until = None
    account.last_login_at = now
    await session.flush()
    return account


async def record_failed_login(
    session: AsyncSession,
    account: Account,
    *,
    max_failures: int,
    lock_seconds: int,
    now: datetime | None = None,
) -> bool:
    """
    Count a failed password or second-factor attempt.

    Returns True when this failure locked the account.
    """
    now = now or datetime.now(timezone.utc)
    account.failed_login_count += 1
    just_locked = False
    if account.failed_login_count >= max_failures:
        account.locked_until = now + timedelta(seconds=lock_seconds)
        account.failed_login_count = 0
        just_locked = True
        logger.warning("Account %s locked after repeated failed logins", account.id)
    await session.flush()
    return just_locked


async def clear_failed_logins(session: AsyncSession, account: Account) -> None:
    account.failed_login_count = 0
    account.locked_until = None
    await session.flush()


# ── Lifecycle mutators ────────────────────────────────────────────────────────

async def activate_account(session: AsyncSession, account: Account) -> None:
    """inactive → active.  Idempotent for active accounts; suspended stays suspended."""
    if account.status == AccountStatus.SUSPENDED:
        raise AccountNotActive("This account has been suspended.")
    if account.status == AccountStatus.ACTIVE:
        return
    account.status = AccountStatus.ACTIVE
    await session.flush()
    logger.info("Account %s activated", account.id)


async def set_role(session: AsyncSession, account: Account, role: Role) -> Account:
    account.role = role
    if account.profile is not None and PROFILE_KIND_FOR_ROLE.get(role) != account.profile.get("kind"):
        # A profile only makes sense for its own role.
        account.profile = None
    await session.flush()
    logger.info("Account %s role set to %s", account.id, role.value)
    return account


async def set_status(
    session: AsyncSession, account: Account, status: AccountStatus
) -> Account:
    account.status = status
    await session.flush()
    logger.info("Account %s status set to %s", account.id, status.value)
    return account


async def set_password(
    session: AsyncSession,
    pwd_context: CryptContext,
    account: Account,
    new_password: str,
    *,
    min_password_length: int = 6,
) -> None:
    ensure_password_policy(new_password, min_length=min_password_length, field="new_password")
    account.password_hash = await hash_password(pwd_context, new_password)
    account.failed_login_count = 0
    account.locked_until = None
    await session.flush()
