"""
Admin domain — account management routes.

Routes:
  GET   /api/v1/admin/accounts                          List accounts (ADMIN)
  GET   /api/v1/admin/accounts/{account_id}             Single account (ADMIN)
  PATCH /api/v1/admin/accounts/{account_id}/status      Suspend / reinstate (ADMIN)
  PATCH /api/v1/admin/accounts/{account_id}/role        Change role (ADMIN)

Zero business logic. Zero DB queries.
"""
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from carelink_identity.admin import controller as ctrl
from carelink_identity.admin.schemas import (
    AdminAccountListResponse,
    AdminAccountResponse,
    AdminRoleUpdate,
    AdminStatusUpdate,
)
from carelink_identity.auth.constants import AccountStatus
from carelink_identity.auth.dependencies import require_admin
from carelink_identity.auth.models import Account
from carelink_identity.database import get_db
from carelink_shared.constants import Role
from carelink_shared.models import PaginationParams

router = APIRouter(prefix="/admin/accounts", tags=["admin-accounts"])


@router.get(
    "",
    response_model=AdminAccountListResponse,
    summary="[Admin] List accounts with filters and pagination",
)
async def list_accounts(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    role: Role | None = Query(None, description="Filter by role"),
    status: AccountStatus | None = Query(None, description="Filter by account status"),
    search: str | None = Query(None, max_length=200, description="Search by name or email"),
    admin: Account = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> AdminAccountListResponse:
    return await ctrl.list_accounts(
        session,
        PaginationParams(page=page, page_size=page_size),
        role=role,
        status=status,
        search=search,
    )


@router.get(
    "/{account_id}",
    response_model=AdminAccountResponse,
    summary="[Admin] Get a single account",
)
async def get_account(
    account_id: uuid.UUID,
    admin: Account = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> AdminAccountResponse:
    return await ctrl.get_account(session, account_id)


@router.patch(
    "/{account_id}/status",
    response_model=AdminAccountResponse,
    summary="[Admin] Suspend or reinstate an account",
)
async def update_status(
    account_id: uuid.UUID,
    body: AdminStatusUpdate,
    admin: Account = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> AdminAccountResponse:
    return await ctrl.update_status(session, admin, account_id, body)


@router.patch(
    "/{account_id}/role",
    response_model=AdminAccountResponse,
    summary="[Admin] Change an account's role",
)
async def update_role(
    account_id: uuid.UUID,
    body: AdminRoleUpdate,
    admin: Account = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> AdminAccountResponse:
    return await ctrl.update_role(session, admin, account_id, body)
