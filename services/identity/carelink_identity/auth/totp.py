"""
Identity service — TOTP second-factor manager (RFC 6238 via pyotp).

Setup is two-phase: ``begin_setup`` stores a pending secret, and only
``confirm_setup`` with a code derived from it promotes the secret and turns
2FA on.  Codes are checked against the current 30-second step and
``valid_window`` steps on either side.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import pyotp
from sqlalchemy.ext.asyncio import AsyncSession

from carelink_identity.auth.constants import SecondFactorState
from carelink_identity.auth.models import Account
from carelink_identity.exceptions import (
    InvalidCode,
    TwoFactorAlreadyEnabled,
    TwoFactorSetupNotStarted,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TOTPSetup:
    secret: str
    provisioning_uri: str


def _matches(secret: str, code: str, *, valid_window: int, now: datetime | None) -> bool:
    totp = pyotp.TOTP(secret)
    return totp.verify(code, for_time=now or datetime.now(timezone.utc), valid_window=valid_window)


async def begin_setup(
    session: AsyncSession, account: Account, *, issuer: str
) -> TOTPSetup:
    """Generate a pending secret; 2FA stays off until confirmed."""
    if account.second_factor_state == SecondFactorState.ENABLED:
        raise TwoFactorAlreadyEnabled()

    secret = pyotp.random_base32()
    account.totp_pending_secret = secret
    await session.flush()
    uri = pyotp.TOTP(secret).provisioning_uri(name=account.email, issuer_name=issuer)
    logger.info("TOTP setup started for account %s", account.id)
    return TOTPSetup(secret=secret, provisioning_uri=uri)


async def confirm_setup(
    session: AsyncSession,
    account: Account,
    code: str,
    *,
    valid_window: int = 1,
    now: datetime | None = None,
) -> None:
    """
    Promote the pending secret once the owner proves possession of it.

    A wrong code leaves the pending secret untouched so the user can retry.
    """
    pending = account.totp_pending_secret
    if not pending:
        raise TwoFactorSetupNotStarted()
    if not _matches(pending, code, valid_window=valid_window, now=now):
        raise InvalidCode()

    account.totp_secret = pending
    account.totp_pending_secret = None
    account.totp_enabled = True
    await session.flush()
    logger.info("TOTP enabled for account %s", account.id)


def verify_login(
    account: Account,
    code: str,
    *,
    valid_window: int = 1,
    now: datetime | None = None,
) -> bool:
    if account.second_factor_state != SecondFactorState.ENABLED:
        return False
    return _matches(account.totp_secret, code, valid_window=valid_window, now=now)


async def disable(session: AsyncSession, account: Account) -> None:
    """Turn 2FA off and forget every secret, confirmed or pending."""
    account.totp_secret = None
    account.totp_pending_secret = None
    account.totp_enabled = False
    await session.flush()
    logger.info("TOTP disabled for account %s", account.id)
