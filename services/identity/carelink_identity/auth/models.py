"""
Identity service — SQLAlchemy ORM models for the auth domain.

Tables owned by this module:
  - accounts   Identity records.  OTP, TOTP and lockout state are columns of
               the same row so they always change together with the account.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from carelink_identity.auth.constants import AccountStatus, SecondFactorState
from carelink_shared.constants import Role
from carelink_shared.database import Base, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Account(Base):
    __tablename__ = "accounts"

    # ── Primary key ──────────────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Credentials ───────────────────────────────────────────────────────────
    # Stored trimmed and lower-cased; uniqueness is therefore case-insensitive.
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False, index=True
    )
    password_hash: Mapped[str] = mapped_column(sa.String(255), nullable=False)

    # ── Profile ───────────────────────────────────────────────────────────────
    display_name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    phone: Mapped[str | None] = mapped_column(sa.String(20), nullable=True)
    role: Mapped[Role] = mapped_column(
        sa.Enum(
            Role,
            name="accountrole",
            native_enum=False,
            length=20,
            values_callable=lambda e: [x.value for x in e],
        ),
        nullable=False,
        index=True,
    )
    # Tagged role profile ({"kind": "patient", ...}); validated by schemas.RoleProfile
    profile: Mapped[dict | None] = mapped_column(
        sa.JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )

    status: Mapped[AccountStatus] = mapped_column(
        sa.Enum(
            AccountStatus,
            name="accountstatus",
            native_enum=False,
            length=20,
            values_callable=lambda e: [x.value for x in e],
        ),
        nullable=False,
        default=AccountStatus.INACTIVE,
        server_default=sa.text("'inactive'"),
        index=True,
    )

    # ── One-time passcode (at most one live code) ─────────────────────────────
    otp_hash: Mapped[str | None] = mapped_column(sa.String(128), nullable=True)
    otp_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    otp_issued_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    otp_attempts_remaining: Mapped[int] = mapped_column(
        sa.SmallInteger(), nullable=False, default=0, server_default=sa.text("0")
    )

    # ── TOTP second factor ────────────────────────────────────────────────────
    totp_secret: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    totp_pending_secret: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    totp_enabled: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default=sa.false()
    )

    # ── Login lockout ─────────────────────────────────────────────────────────
    failed_login_count: Mapped[int] = mapped_column(
        sa.SmallInteger(), nullable=False, default=0, server_default=sa.text("0")
    )
    locked_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # ── Audit timestamps ──────────────────────────────────────────────────────
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    @property
    def second_factor_state(self) -> SecondFactorState:
        if self.totp_enabled and self.totp_secret:
            return SecondFactorState.ENABLED
        if self.totp_pending_secret:
            return SecondFactorState.PENDING
        return SecondFactorState.ABSENT

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, email='{self.email}', role='{self.role.value}')>"
