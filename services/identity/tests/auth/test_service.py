from datetime import datetime, timedelta, timezone

import pytest

from carelink_identity.auth.constants import AccountStatus
from carelink_identity.auth.service import (
    activate_account,
    authenticate_account,
    get_account_by_email,
    register_account,
    set_role,
)
from carelink_identity.exceptions import (
    AccountLocked,
    AccountNotActive,
    Conflict,
    InvalidCredentials,
    InvalidInput,
)
from carelink_shared.constants import Role


async def _register(db_session, pwd_context, email="svc@example.com", password="secret1", **kw):
    kw.setdefault("display_name", "Service Test")
    kw.setdefault("role", Role.PATIENT)
    return await register_account(db_session, pwd_context, email=email, password=password, **kw)


@pytest.mark.asyncio
async def test_register_creates_inactive_account(db_session, pwd_context) -> None:
    account = await _register(db_session, pwd_context, email="  Svc@Example.COM ")
    assert account.email == "svc@example.com"
    assert account.status == AccountStatus.INACTIVE
    assert account.role == Role.PATIENT
    assert account.password_hash != "secret1"
    assert pwd_context.verify("secret1", account.password_hash)


@pytest.mark.asyncio
async def test_same_password_hashes_differ(db_session, pwd_context) -> None:
    a = await _register(db_session, pwd_context, email="a@example.com")
    b = await _register(db_session, pwd_context, email="b@example.com")
    assert a.password_hash != b.password_hash


@pytest.mark.asyncio
async def test_register_duplicate_email_is_case_insensitive(db_session, pwd_context) -> None:
    await _register(db_session, pwd_context, email="dup@example.com")
    with pytest.raises(Conflict):
        await _register(db_session, pwd_context, email="DUP@example.com")


@pytest.mark.asyncio
async def test_register_rejects_short_password(db_session, pwd_context) -> None:
    with pytest.raises(InvalidInput) as exc_info:
        await _register(db_session, pwd_context, password="12345")
    assert exc_info.value.fields[0]["field"] == "password"


@pytest.mark.asyncio
async def test_register_rejects_malformed_email(db_session, pwd_context) -> None:
    with pytest.raises(InvalidInput) as exc_info:
        await _register(db_session, pwd_context, email="not-an-email")
    assert exc_info.value.fields[0]["field"] == "email"


@pytest.mark.asyncio
async def test_register_rejects_profile_for_other_role(db_session, pwd_context) -> None:
    with pytest.raises(InvalidInput):
        await _register(
            db_session,
            pwd_context,
            role=Role.PATIENT,
            profile={"kind": "doctor", "specialty": "cardiology"},
        )


@pytest.mark.asyncio
async def test_authenticate_requires_active_account(db_session, pwd_context) -> None:
    account = await _register(db_session, pwd_context)
    with pytest.raises(AccountNotActive):
        await authenticate_account(db_session, pwd_context, "svc@example.com", "secret1")

    await activate_account(db_session, account)
    found = await authenticate_account(db_session, pwd_context, "SVC@example.com", "secret1")
    assert found.id == account.id
    assert found.last_login_at is not None


@pytest.mark.asyncio
async def test_unknown_email_and_wrong_password_look_the_same(db_session, pwd_context) -> None:
    account = await _register(db_session, pwd_context)
    await activate_account(db_session, account)

    with pytest.raises(InvalidCredentials) as unknown:
        await authenticate_account(db_session, pwd_context, "nobody@example.com", "secret1")
    with pytest.raises(InvalidCredentials) as wrong:
        await authenticate_account(db_session, pwd_context, "svc@example.com", "wrong!")
    assert unknown.value.message == wrong.value.message


@pytest.mark.asyncio
async def test_wrong_password_on_inactive_account_is_not_revealing(db_session, pwd_context) -> None:
    await _register(db_session, pwd_context)
    with pytest.raises(InvalidCredentials):
        await authenticate_account(db_session, pwd_context, "svc@example.com", "wrong!")


@pytest.mark.asyncio
async def test_lockout_after_repeated_failures(db_session, pwd_context) -> None:
    account = await _register(db_session, pwd_context)
    await activate_account(db_session, account)
    now = datetime.now(timezone.utc)

    for _ in range(3):
        with pytest.raises(InvalidCredentials):
            await authenticate_account(
                db_session, pwd_context, "svc@example.com", "wrong!",
                max_failures=3, lock_seconds=60, now=now,
            )
    assert account.locked_until is not None

    with pytest.raises(AccountLocked):
        await authenticate_account(
            db_session, pwd_context, "svc@example.com", "secret1",
            max_failures=3, lock_seconds=60, now=now,
        )

    later = now + timedelta(seconds=61)
    found = await authenticate_account(
        db_session, pwd_context, "svc@example.com", "secret1",
        max_failures=3, lock_seconds=60, now=later,
    )
    assert found.locked_until is None
    assert found.failed_login_count == 0


@pytest.mark.asyncio
async def test_activate_is_idempotent_but_refuses_suspended(db_session, pwd_context) -> None:
    account = await _register(db_session, pwd_context)
    await activate_account(db_session, account)
    await activate_account(db_session, account)
    assert account.status == AccountStatus.ACTIVE

    account.status = AccountStatus.SUSPENDED
    with pytest.raises(AccountNotActive):
        await activate_account(db_session, account)


@pytest.mark.asyncio
async def test_set_role_drops_profile_of_previous_role(db_session, pwd_context) -> None:
    account = await _register(
        db_session,
        pwd_context,
        role=Role.DOCTOR,
        profile={"kind": "doctor", "specialty": "cardiology"},
    )
    await set_role(db_session, account, Role.STAFF)
    fetched = await get_account_by_email(db_session, "svc@example.com")
    assert fetched.role == Role.STAFF
    assert fetched.profile is None
