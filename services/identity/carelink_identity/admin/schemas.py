"""
Admin domain — Pydantic V2 request/response schemas.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from carelink_identity.auth.constants import AccountStatus
from carelink_identity.auth.schemas import RoleProfile
from carelink_shared.constants import Role
from carelink_shared.models import PaginatedResponse


class _Base(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


# ── Requests ─────────────────────────────────────────────────────────────────

class AdminStatusUpdate(_Base):
    """Body for PATCH /admin/accounts/{account_id}/status."""

    status: AccountStatus

    @field_validator("status")
    @classmethod
    def _settable(cls, v: AccountStatus) -> AccountStatus:
        # Accounts become active only through their email code.
        if v == AccountStatus.INACTIVE:
            raise ValueError("status must be active or suspended")
        return v


class AdminRoleUpdate(_Base):
    """Body for PATCH /admin/accounts/{account_id}/role."""

    role: Role


# ── Responses ────────────────────────────────────────────────────────────────

class AdminAccountResponse(BaseModel):
    """Single account as shown in the admin panel.  No hashes, codes or secrets."""

    model_config = ConfigDict(from_attributes=True, extra="forbid")

    id: uuid.UUID
    email: str
    display_name: str
    phone: str | None
    role: Role
    status: AccountStatus
    two_factor_enabled: bool = Field(validation_alias="totp_enabled")
    profile: RoleProfile | None
    failed_login_count: int
    locked_until: datetime | None
    last_login_at: datetime | None
    created_at: datetime
    updated_at: datetime


AdminAccountListResponse = PaginatedResponse[AdminAccountResponse]
