"""
Identity service — domain exceptions.

Every error carries a stable machine-readable ``code`` and a preset message so
callers never compose them at the raise site.  Nothing here knows about HTTP:
``carelink_identity.error_handlers`` owns the mapping to status codes.
"""
from __future__ import annotations


class IdentityError(Exception):
    code: str = "identity_error"
    message: str = "The request could not be completed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ── Input / registration ──────────────────────────────────────────────────────

class InvalidInput(IdentityError):
    code = "invalid_input"
    message = "The request contains invalid fields."

    def __init__(self, field: str, message: str) -> None:
        self.fields = [{"field": field, "message": message}]
        super().__init__(message)


class Conflict(IdentityError):
    code = "conflict"
    message = "An account with this email already exists."


# ── Authentication ────────────────────────────────────────────────────────────

class InvalidCredentials(IdentityError):
    # Same text for unknown email and wrong password.
    code = "invalid_credentials"
    message = "Invalid email or password."


class AccountNotActive(IdentityError):
    code = "account_not_active"
    message = "This account is not active."


class AccountLocked(IdentityError):
    code = "account_locked"
    message = (
        "This account has been temporarily locked after too many failed "
        "sign-in attempts. Please try again later."
    )


class AccountNotFound(IdentityError):
    code = "account_not_found"
    message = "Account not found."


# ── Session tokens ────────────────────────────────────────────────────────────

class TokenInvalid(IdentityError):
    code = "token_invalid"
    message = "Token is invalid."


class TokenExpired(IdentityError):
    code = "token_expired"
    message = "Token has expired."


class TokenWrongType(IdentityError):
    code = "token_wrong_type"
    message = "Token cannot be used for this operation."


class Unauthenticated(IdentityError):
    code = "unauthenticated"
    message = "Authentication required."


class Forbidden(IdentityError):
    code = "forbidden"
    message = "You do not have permission to perform this action."


# ── One-time codes ────────────────────────────────────────────────────────────

class InvalidCode(IdentityError):
    """Covers both OTP and TOTP mismatches."""

    code = "invalid_code"
    message = "The code is invalid or has expired."


class OTPCooldown(IdentityError):
    code = "otp_cooldown"
    message = "A code was sent recently. Please wait before requesting another."


# ── Second factor ─────────────────────────────────────────────────────────────

class TwoFactorFailed(IdentityError):
    code = "two_factor_failed"
    message = "Two-factor verification failed."


class TwoFactorAlreadyEnabled(IdentityError):
    code = "two_factor_already_enabled"
    message = "Two-factor authentication is already enabled."


class TwoFactorSetupNotStarted(IdentityError):
    code = "two_factor_setup_not_started"
    message = "Start two-factor setup before confirming it."
