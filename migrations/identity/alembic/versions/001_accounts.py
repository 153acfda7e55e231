"""Identity schema: accounts

Revision ID: 001
Revises:
Create Date: 2026-10-19

Tables created:
  - accounts   Identity records with embedded OTP, TOTP and lockout state

Role and status are stored as VARCHAR (native_enum=False on the model) so new
roles need no ALTER TYPE.

Downgrade: drops the table.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        # ── Credentials ──────────────────────────────────────────────────────
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        # ── Profile ──────────────────────────────────────────────────────────
        sa.Column("display_name", sa.String(150), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column(
            "profile",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=True,
        ),
        sa.Column(
            "status", sa.String(20), nullable=False, server_default=sa.text("'inactive'")
        ),
        # ── One-time passcode ────────────────────────────────────────────────
        sa.Column("otp_hash", sa.String(128), nullable=True),
        sa.Column("otp_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("otp_issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "otp_attempts_remaining",
            sa.SmallInteger(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        # ── TOTP second factor ───────────────────────────────────────────────
        sa.Column("totp_secret", sa.String(64), nullable=True),
        sa.Column("totp_pending_secret", sa.String(64), nullable=True),
        sa.Column(
            "totp_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        # ── Login lockout ────────────────────────────────────────────────────
        sa.Column(
            "failed_login_count",
            sa.SmallInteger(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        # ── Audit timestamps ─────────────────────────────────────────────────
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)
    op.create_index("ix_accounts_role", "accounts", ["role"])
    op.create_index("ix_accounts_status", "accounts", ["status"])
    op.create_index("ix_accounts_created_at", "accounts", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_accounts_created_at", table_name="accounts")
    op.drop_index("ix_accounts_status", table_name="accounts")
    op.drop_index("ix_accounts_role", table_name="accounts")
    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_table("accounts")
