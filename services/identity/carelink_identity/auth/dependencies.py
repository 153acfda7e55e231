"""
Identity service — FastAPI dependencies and the authorization gate.

Everything request-scoped (settings, DB session, password context, the
notifier) is reached through ``request.app.state``, which ``create_app``
populates; nothing is read from module globals.

Token precedence: the session cookie wins over ``Authorization: Bearer``
when a request carries both.
"""
from __future__ import annotations

import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from carelink_identity.auth import tokens
from carelink_identity.auth.constants import AccountStatus, TokenType
from carelink_identity.auth.models import Account
from carelink_identity.auth.service import get_account_by_id
from carelink_identity.auth.utils import get_password_context
from carelink_identity.config import Settings
from carelink_identity.database import get_db
from carelink_identity.exceptions import (
    Forbidden,
    TokenExpired,
    TokenInvalid,
    TokenWrongType,
    Unauthenticated,
)
from carelink_identity.notifications import NotificationSink
from carelink_shared.constants import Role

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


# ── App-scoped collaborators ──────────────────────────────────────────────────

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_notifier(request: Request) -> NotificationSink:
    return request.app.state.notifier


def get_pwd_context(settings: Settings = Depends(get_settings)) -> CryptContext:
    return get_password_context(
        settings.password_hash_time_cost, settings.password_hash_memory_kib
    )


# ── Gate: token → Account ─────────────────────────────────────────────────────

def _extract_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
    settings: Settings,
) -> str | None:
    cookie = request.cookies.get(settings.session_cookie_name)
    if cookie:
        return cookie
    if credentials is not None:
        return credentials.credentials
    return None


async def get_current_account(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Account:
    """
    Resolve the caller from a full session token.

    The account is re-read on every request so a role change or suspension
    takes effect immediately instead of when the token expires.  Every
    failure is reported as Unauthenticated.
    """
    token = _extract_token(request, credentials, settings)
    if not token:
        raise Unauthenticated()
    try:
        claims = tokens.validate(token, TokenType.FULL, settings)
    except (TokenInvalid, TokenExpired, TokenWrongType) as exc:
        logger.debug("Session token rejected: %s", exc.code)
        raise Unauthenticated()

    account = await get_account_by_id(session, claims.account_id)
    if account is None or account.status != AccountStatus.ACTIVE:
        raise Unauthenticated()
    request.state.account = account
    return account


async def get_pre_2fa_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> tokens.TokenClaims:
    """Accepts only a pre2fa bearer token; used by /auth/verify-2fa alone."""
    if credentials is None:
        raise Unauthenticated()
    return tokens.validate(credentials.credentials, TokenType.PRE_2FA, settings)


# ── Role guards ───────────────────────────────────────────────────────────────

def require_role(*allowed: Role):
    """
    Build a dependency that admits only accounts holding one of ``allowed``.

    Roles are ``Role`` members, so a misspelt role fails where the guard is
    declared rather than silently rejecting everyone.
    """
    if not allowed:
        raise ValueError("require_role needs at least one role")
    for role in allowed:
        if not isinstance(role, Role):
            raise TypeError(f"{role!r} is not a Role")
    allowed_set = frozenset(allowed)

    async def _guard(account: Account = Depends(get_current_account)) -> Account:
        if account.role not in allowed_set:
            raise Forbidden()
        return account

    return _guard


require_admin = require_role(Role.ADMIN)
