"""
Identity service — session issuer.

Two token classes share one signing mechanism (HMAC JWT via python-jose):

  full    account id + role, long-lived; accepted by every protected route
  pre2fa  account id only, 5 minutes; accepted by /auth/verify-2fa alone

Nothing is stored server-side: a token is valid while its signature and
expiry check out.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from carelink_identity.auth.constants import TokenType
from carelink_identity.config import Settings
from carelink_identity.exceptions import TokenExpired, TokenInvalid, TokenWrongType
from carelink_shared.constants import Role

logger = logging.getLogger(__name__)

_DECODE_OPTIONS = {
    "require_exp": True,
    "require_iat": True,
    "require_sub": True,
}


@dataclass(frozen=True)
class TokenClaims:
    account_id: uuid.UUID
    type: TokenType
    role: Role | None
    issued_at: datetime
    expires_at: datetime


def _encode(claims: dict, settings: Settings, expire_seconds: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "iat": now,
        "exp": now + timedelta(seconds=expire_seconds),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def issue_full_session(
    account_id: uuid.UUID,
    role: Role,
    settings: Settings,
    *,
    expire_seconds: int | None = None,
) -> str:
    return _encode(
        {"sub": str(account_id), "role": role.value, "type": TokenType.FULL.value},
        settings,
        settings.session_expire_seconds if expire_seconds is None else expire_seconds,
    )


def issue_pre_2fa(
    account_id: uuid.UUID,
    settings: Settings,
    *,
    expire_seconds: int | None = None,
) -> str:
    return _encode(
        {"sub": str(account_id), "type": TokenType.PRE_2FA.value},
        settings,
        settings.pre_2fa_expire_seconds if expire_seconds is None else expire_seconds,
    )


def validate(token: str, expected_type: TokenType, settings: Settings) -> TokenClaims:
    """
    Decode and check a token.

    Raises:
      TokenExpired    — signature fine but ``exp`` has passed
      TokenInvalid    — bad signature, wrong issuer/audience, malformed claims
      TokenWrongType  — a pre2fa token where a full one is required, or vice versa
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            options=_DECODE_OPTIONS,
        )
    except ExpiredSignatureError:
        raise TokenExpired()
    except JWTError:
        raise TokenInvalid()

    try:
        token_type = TokenType(payload.get("type"))
        account_id = uuid.UUID(payload["sub"])
        role = Role(payload["role"]) if token_type == TokenType.FULL else None
        issued_at = datetime.fromtimestamp(payload["iat"], tz=timezone.utc)
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    except (KeyError, TypeError, ValueError):
        raise TokenInvalid()

    if token_type != expected_type:
        logger.info("Rejected %s token where %s was expected", token_type.value, expected_type.value)
        raise TokenWrongType()

    return TokenClaims(
        account_id=account_id,
        type=token_type,
        role=role,
        issued_at=issued_at,
        expires_at=expires_at,
    )
