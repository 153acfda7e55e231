"""
Identity service — Pydantic V2 request/response schemas for the auth domain.

Separation of concerns:
  - *Request  models:  input from the client (strict extra="forbid")
  - *Response models:  output to the client (no hashes, codes or secrets)
"""
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from carelink_identity.auth.constants import AccountStatus, OTPChannel
from carelink_shared.constants import Role


# ── Shared base ───────────────────────────────────────────────────────────────

class _Base(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
    )


Code = Annotated[str, Field(pattern=r"^\d{6}$", description="6-digit numeric code")]
Phone = Annotated[
    str,
    Field(pattern=r"^\+?[1-9]\d{9,14}$", description="E.164 format, e.g. +447700900123"),
]


# ── Role profiles (tagged by ``kind``) ────────────────────────────────────────

class PatientProfile(_Base):
    kind: Literal["patient"] = "patient"
    date_of_birth: date | None = None
    gender: Literal["male", "female", "other", "unknown"] = "unknown"
    national_health_number: str | None = Field(default=None, max_length=32)


class DoctorProfile(_Base):
    kind: Literal["doctor"] = "doctor"
    specialty: str | None = Field(default=None, max_length=100)
    department: str | None = Field(default=None, max_length=100)
    registration_id: str | None = Field(default=None, max_length=64)


RoleProfile = Annotated[PatientProfile | DoctorProfile, Field(discriminator="kind")]

# Which profile kind (if any) each role may carry.
PROFILE_KIND_FOR_ROLE: dict[Role, str] = {
    Role.PATIENT: "patient",
    Role.DOCTOR: "doctor",
}


# ── Registration / OTP ────────────────────────────────────────────────────────

class RegisterRequest(_Base):
    """Body for POST /auth/register."""

    email: EmailStr
    # The length policy is enforced by the credential store (configurable).
    password: str = Field(min_length=1, max_length=128)
    display_name: str = Field(min_length=1, max_length=150)
    role: Role
    phone: Phone | None = None
    profile: RoleProfile | None = None

    @field_validator("role")
    @classmethod
    def _no_self_service_admin(cls, v: Role) -> Role:
        if v == Role.ADMIN:
            raise ValueError("admin accounts cannot be self-registered")
        return v


class RegisterResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    account_id: uuid.UUID
    status: AccountStatus
    message: str = "Account created. Enter the code we sent to verify your email."


class VerifyOTPRequest(_Base):
    """Body for POST /auth/verify-otp."""

    account_id: uuid.UUID
    code: Code


class ResendOTPRequest(_Base):
    """Body for POST /auth/resend-otp."""

    account_id: uuid.UUID
    # "sms" sends the code to the phone number given at registration.
    channel: OTPChannel = OTPChannel.EMAIL


# ── Login / second factor ─────────────────────────────────────────────────────

class LoginRequest(_Base):
    """Body for POST /auth/login."""

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class CodeRequest(_Base):
    """Body for POST /auth/verify-2fa and /auth/2fa/verify-enable."""

    code: Code


class TokenResponse(BaseModel):
    """
    Full session token.  Also set as an HTTP-only cookie for browsers;
    non-browser clients send it back as ``Authorization: Bearer``.
    """

    model_config = ConfigDict(extra="forbid")

    access_token: str
    token_type: str = "bearer"
    expires_in: int  # token lifetime in seconds


class LoginResponse(BaseModel):
    """
    Either a full session (``access_token``) or, when 2FA is enabled, a
    short-lived ``temp_token`` that only /auth/verify-2fa accepts.
    """

    model_config = ConfigDict(extra="forbid")

    two_fa: bool = False
    access_token: str | None = None
    temp_token: str | None = None
    token_type: str = "bearer"
    expires_in: int


class TwoFactorSetupResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    secret: str
    provisioning_uri: str


# ── Password reset ────────────────────────────────────────────────────────────

class PasswordResetRequest(_Base):
    """Body for POST /auth/password-reset/request."""

    email: EmailStr


class PasswordResetConfirm(_Base):
    """Body for POST /auth/password-reset/confirm."""

    email: EmailStr
    code: Code
    new_password: str = Field(min_length=1, max_length=128)


# ── Account views ─────────────────────────────────────────────────────────────

class AccountResponse(BaseModel):
    """The caller's own account.  Never includes the password hash or secrets."""

    model_config = ConfigDict(from_attributes=True, extra="forbid")

    id: uuid.UUID
    email: str
    display_name: str
    phone: str | None
    role: Role
    status: AccountStatus
    two_factor_enabled: bool = Field(validation_alias="totp_enabled")
    profile: RoleProfile | None
    created_at: datetime
    last_login_at: datetime | None


class MessageResponse(BaseModel):
    """Generic single-message response for informational endpoints."""

    model_config = ConfigDict(extra="forbid")

    message: str
