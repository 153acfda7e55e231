"""
Identity service — one-time passcode verifier.

Codes are 6 random decimal digits.  Only an HMAC of the code is stored,
keyed by the server secret and bound to the account id and the flow it was
issued for, so a leaked row cannot be brute-forced offline and a code cannot
be replayed against another account or in another flow.  The plaintext is
returned once, for delivery, and is never persisted or logged.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from carelink_identity.auth.constants import OTP_DIGITS, OTPPurpose
from carelink_identity.auth.models import Account
from carelink_identity.exceptions import OTPCooldown

logger = logging.getLogger(__name__)


def generate_code() -> str:
    """Uniform over 000000–999999, zero padded."""
    return f"{secrets.randbelow(10 ** OTP_DIGITS):0{OTP_DIGITS}d}"


def hash_code(
    code: str, *, account_id: object, purpose: OTPPurpose, secret: str
) -> str:
    message = f"{purpose.value}:{account_id}:{code}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def ensure_resend_allowed(
    account: Account, *, cooldown_seconds: int, now: datetime | None = None
) -> None:
    """Raise OTPCooldown if the previous code was issued too recently."""
    now = now or datetime.now(timezone.utc)
    if (
        account.otp_issued_at is not None
        and now - account.otp_issued_at < timedelta(seconds=cooldown_seconds)
    ):
        raise OTPCooldown()


async def issue_otp(
    session: AsyncSession,
    account: Account,
    *,
    purpose: OTPPurpose,
    secret: str,
    ttl_seconds: int,
    max_attempts: int,
    now: datetime | None = None,
) -> str:
    """
    Create a fresh code for the account and return its plaintext.

    Any earlier unconsumed code is overwritten (the newest issuance wins).
    The caller must deliver the plaintext through the notification sink.
    """
    now = now or datetime.now(timezone.utc)
    code = generate_code()
    account.otp_hash = hash_code(
        code, account_id=account.id, purpose=purpose, secret=secret
    )
    account.otp_issued_at = now
    account.otp_expires_at = now + timedelta(seconds=ttl_seconds)
    account.otp_attempts_remaining = max_attempts
    await session.flush()
    logger.info("OTP issued for account %s", account.id)
    return code


def _clear(account: Account) -> None:
    account.otp_hash = None
    account.otp_expires_at = None
    account.otp_attempts_remaining = 0


async def verify_otp(
    session: AsyncSession,
    account: Account,
    code: str,
    *,
    purpose: OTPPurpose,
    secret: str,
    now: datetime | None = None,
) -> bool:
    """
    Check a submitted code.  Fails closed.

    Returns False when there is no live code, it has expired, or the code
    does not match.  A code issued for another purpose never matches.  A
    mismatch spends one attempt; the code is discarded once the budget is
    exhausted.  On success the code is consumed with a
    conditional UPDATE on the stored hash, so of two concurrent
    verifications at most one can succeed.
    """
    now = now or datetime.now(timezone.utc)
    stored = account.otp_hash
    if stored is None or account.otp_expires_at is None:
        return False
    if now > account.otp_expires_at:
        _clear(account)
        await session.flush()
        return False

    submitted = hash_code(code, account_id=account.id, purpose=purpose, secret=secret)
    if not secrets.compare_digest(stored, submitted):
        account.otp_attempts_remaining -= 1
        if account.otp_attempts_remaining <= 0:
            _clear(account)
            logger.warning("OTP attempts exhausted for account %s", account.id)
        await session.flush()
        return False

    result = await session.execute(
        update(Account)
        .where(Account.id == account.id, Account.otp_hash == stored)
        .values(otp_hash=None, otp_expires_at=None, otp_attempts_remaining=0)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info("OTP for account %s was consumed concurrently", account.id)
        return False
    for key, value in (
        ("otp_hash", None),
        ("otp_expires_at", None),
        ("otp_attempts_remaining", 0),
    ):
        set_committed_value(account, key, value)
    return True
