#!/usr/bin/env python3
"""
Create (or promote) an active admin account for the CareLink admin panel.

Reads credentials from .env:
    ADMIN_EMAIL      — admin account email (required)
    ADMIN_PASSWORD   — admin account password (required)
    ADMIN_NAME       — display name (optional, defaults to "Administrator")

The database URL and password-hash cost come from the identity Settings
(IDENTITY_DATABASE_URL, PASSWORD_HASH_*).

Usage:
    python -m scripts.create_admin
"""
from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

# Add the source roots to the path so the script runs from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "services" / "identity"))
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "shared"))

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from carelink_identity.auth.constants import AccountStatus
from carelink_identity.auth.service import (
    get_account_by_email,
    register_account,
    set_role,
    set_status,
)
from carelink_identity.auth.utils import get_password_context
from carelink_identity.config import Settings
from carelink_identity.exceptions import IdentityError
from carelink_shared.constants import Role
from carelink_shared.database import get_async_engine, get_async_session_factory


async def main() -> None:
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        print("Error: ADMIN_EMAIL and ADMIN_PASSWORD must be set in .env")
        sys.exit(1)
    display_name = os.getenv("ADMIN_NAME", "Administrator")

    settings = Settings()
    pwd_context = get_password_context(
        settings.password_hash_time_cost, settings.password_hash_memory_kib
    )
    engine = get_async_engine(settings.identity_database_url)
    session_factory = get_async_session_factory(engine)

    try:
        async with session_factory() as session:
            existing = await get_account_by_email(session, email)
            if existing is not None:
                print(f"Account {email} already exists (id={existing.id}).")
                if existing.role == Role.ADMIN and existing.status == AccountStatus.ACTIVE:
                    print("  -> Already an active admin. Nothing to do.")
                    return
                await set_role(session, existing, Role.ADMIN)
                await set_status(session, existing, AccountStatus.ACTIVE)
                await session.commit()
                print("  -> Promoted to active admin.")
                return

            try:
                account = await register_account(
                    session,
                    pwd_context,
                    email=email,
                    password=password,
                    display_name=display_name,
                    role=Role.ADMIN,
                    min_password_length=settings.password_min_length,
                )
            except IdentityError as exc:
                print(f"Error: {exc.message}")
                sys.exit(1)
            # Bootstrap accounts skip the email code.
            await set_status(session, account, AccountStatus.ACTIVE)
            await session.commit()
            print(f"Admin created: {account.email} (id={account.id})")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
