"""
Admin domain — pure business logic (zero FastAPI imports).

Mutations go through the credential store's own mutators.
"""
from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from carelink_identity.auth.constants import AccountStatus
from carelink_identity.auth.models import Account
from carelink_identity.auth.service import require_account, set_role, set_status
from carelink_identity.exceptions import Forbidden, InvalidInput
from carelink_shared.constants import Role


async def list_accounts(
    session: AsyncSession,
    *,
    offset: int,
    limit: int,
    role: Role | None = None,
    status: AccountStatus | None = None,
    search: str | None = None,
) -> tuple[list[Account], int]:
    """
    Paginated account listing with optional filters, newest first.

    Returns (accounts, total_count).
    """
    base = sa.select(Account)
    count_base = sa.select(sa.func.count()).select_from(Account)

    filters = []
    if role is not None:
        filters.append(Account.role == role)
    if status is not None:
        filters.append(Account.status == status)
    if search:
        pattern = f"%{search}%"
        filters.append(
            sa.or_(
                Account.display_name.ilike(pattern),
                Account.email.ilike(pattern),
            )
        )

    for f in filters:
        base = base.where(f)
        count_base = count_base.where(f)

    total = (await session.execute(count_base)).scalar_one()
    query = base.order_by(Account.created_at.desc(), Account.id).offset(offset).limit(limit)
    accounts = list((await session.execute(query)).scalars().all())
    return accounts, total


def _refuse_self(admin: Account, target: Account) -> None:
    if admin.id == target.id:
        raise Forbidden("Administrators cannot change their own role or status.")


async def change_status(
    session: AsyncSession,
    admin: Account,
    account_id: uuid.UUID,
    status: AccountStatus,
) -> Account:
    account = await require_account(session, account_id)
    _refuse_self(admin, account)
    if status == AccountStatus.ACTIVE and account.status == AccountStatus.INACTIVE:
        raise InvalidInput(
            "status", "Unverified accounts are activated by their email code."
        )
    return await set_status(session, account, status)


async def change_role(
    session: AsyncSession,
    admin: Account,
    account_id: uuid.UUID,
    role: Role,
) -> Account:
    account = await require_account(session, account_id)
    _refuse_self(admin, account)
    return await set_role(session, account, role)
