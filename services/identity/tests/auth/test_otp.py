import re
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import update

from carelink_identity.auth.constants import OTPPurpose
from carelink_identity.auth.models import Account
from carelink_identity.auth.otp import (
    ensure_resend_allowed,
    generate_code,
    hash_code,
    issue_otp,
    verify_otp,
)
from carelink_identity.auth.service import register_account
from carelink_identity.exceptions import OTPCooldown
from carelink_shared.constants import Role

SECRET = "otp-test-secret"
VERIFY = OTPPurpose.EMAIL_VERIFICATION
RESET = OTPPurpose.PASSWORD_RESET


@pytest_asyncio.fixture
async def account(db_session, pwd_context) -> Account:
    return await register_account(
        db_session,
        pwd_context,
        email="otp@example.com",
        password="secret1",
        display_name="OTP",
        role=Role.PATIENT,
    )


async def _issue(db_session, account, now=None, max_attempts=5, purpose=VERIFY) -> str:
    return await issue_otp(
        db_session,
        account,
        purpose=purpose,
        secret=SECRET,
        ttl_seconds=600,
        max_attempts=max_attempts,
        now=now,
    )


def test_generated_codes_are_six_digits() -> None:
    for _ in range(200):
        assert re.fullmatch(r"\d{6}", generate_code())


def test_hash_is_bound_to_account() -> None:
    assert hash_code("123456", account_id="a", purpose=VERIFY, secret=SECRET) != hash_code(
        "123456", account_id="b", purpose=VERIFY, secret=SECRET
    )


def test_hash_is_bound_to_purpose() -> None:
    assert hash_code("123456", account_id="a", purpose=VERIFY, secret=SECRET) != hash_code(
        "123456", account_id="a", purpose=RESET, secret=SECRET
    )


@pytest.mark.asyncio
async def test_plaintext_code_is_not_stored(db_session, account) -> None:
    code = await _issue(db_session, account)
    assert account.otp_hash != code
    assert code not in account.otp_hash


@pytest.mark.asyncio
async def test_code_is_single_use(db_session, account) -> None:
    code = await _issue(db_session, account)
    assert await verify_otp(db_session, account, code, purpose=VERIFY, secret=SECRET) is True
    assert await verify_otp(db_session, account, code, purpose=VERIFY, secret=SECRET) is False
    assert account.otp_hash is None


@pytest.mark.asyncio
async def test_expired_code_is_rejected(db_session, account) -> None:
    issued = datetime.now(timezone.utc)
    code = await _issue(db_session, account, now=issued)
    later = issued + timedelta(seconds=601)
    assert (
        await verify_otp(db_session, account, code, purpose=VERIFY, secret=SECRET, now=later)
        is False
    )
    # Gone for good, even at a valid time.
    assert (
        await verify_otp(db_session, account, code, purpose=VERIFY, secret=SECRET, now=issued)
        is False
    )


@pytest.mark.asyncio
async def test_new_issue_supersedes_old_code(db_session, account) -> None:
    first = await _issue(db_session, account)
    second = await _issue(db_session, account)
    if first != second:
        assert await verify_otp(db_session, account, first, purpose=VERIFY, secret=SECRET) is False
    assert await verify_otp(db_session, account, second, purpose=VERIFY, secret=SECRET) is True


@pytest.mark.asyncio
async def test_wrong_codes_exhaust_the_budget(db_session, account) -> None:
    code = await _issue(db_session, account, max_attempts=2)
    wrong = "000000" if code != "000000" else "111111"
    assert await verify_otp(db_session, account, wrong, purpose=VERIFY, secret=SECRET) is False
    assert account.otp_attempts_remaining == 1
    assert await verify_otp(db_session, account, wrong, purpose=VERIFY, secret=SECRET) is False
    # Budget spent: even the right code no longer works.
    assert await verify_otp(db_session, account, code, purpose=VERIFY, secret=SECRET) is False


@pytest.mark.asyncio
async def test_concurrently_consumed_code_fails(db_session, account) -> None:
    code = await _issue(db_session, account)
    # Another request consumes the code behind this session's back.
    await db_session.execute(
        update(Account)
        .where(Account.id == account.id)
        .values(otp_hash=None)
        .execution_options(synchronize_session=False)
    )
    assert account.otp_hash is not None
    assert await verify_otp(db_session, account, code, purpose=VERIFY, secret=SECRET) is False


@pytest.mark.asyncio
async def test_resend_cooldown(db_session, account) -> None:
    now = datetime.now(timezone.utc)
    await _issue(db_session, account, now=now)
    with pytest.raises(OTPCooldown):
        ensure_resend_allowed(account, cooldown_seconds=60, now=now + timedelta(seconds=10))
    ensure_resend_allowed(account, cooldown_seconds=60, now=now + timedelta(seconds=61))


@pytest.mark.asyncio
async def test_reset_code_does_not_verify_email(db_session, account) -> None:
    code = await _issue(db_session, account, purpose=RESET)
    assert await verify_otp(db_session, account, code, purpose=VERIFY, secret=SECRET) is False
    assert account.otp_attempts_remaining == 4
    assert await verify_otp(db_session, account, code, purpose=RESET, secret=SECRET) is True
