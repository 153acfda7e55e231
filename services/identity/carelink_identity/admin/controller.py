"""
Admin domain — request orchestration layer.
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from carelink_identity.admin import service
from carelink_identity.admin.schemas import (
    AdminAccountListResponse,
    AdminAccountResponse,
    AdminRoleUpdate,
    AdminStatusUpdate,
)
from carelink_identity.auth.constants import AccountStatus
from carelink_identity.auth.models import Account
from carelink_identity.auth.service import require_account
from carelink_shared.constants import Role
from carelink_shared.models import PaginationParams

logger = logging.getLogger(__name__)


async def list_accounts(
    session: AsyncSession,
    pagination: PaginationParams,
    *,
    role: Role | None = None,
    status: AccountStatus | None = None,
    search: str | None = None,
) -> AdminAccountListResponse:
    accounts, total = await service.list_accounts(
        session,
        offset=pagination.offset(),
        limit=pagination.limit(),
        role=role,
        status=status,
        search=search,
    )
    return AdminAccountListResponse(
        items=[AdminAccountResponse.model_validate(a) for a in accounts],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


async def get_account(session: AsyncSession, account_id: uuid.UUID) -> AdminAccountResponse:
    return AdminAccountResponse.model_validate(await require_account(session, account_id))


async def update_status(
    session: AsyncSession, admin: Account, account_id: uuid.UUID, body: AdminStatusUpdate
) -> AdminAccountResponse:
    account = await service.change_status(session, admin, account_id, body.status)
    logger.info("Admin %s set status of %s to %s", admin.id, account.id, body.status.value)
    return AdminAccountResponse.model_validate(account)


async def update_role(
    session: AsyncSession, admin: Account, account_id: uuid.UUID, body: AdminRoleUpdate
) -> AdminAccountResponse:
    account = await service.change_role(session, admin, account_id, body.role)
    logger.info("Admin %s set role of %s to %s", admin.id, account.id, body.role.value)
    return AdminAccountResponse.model_validate(account)
