import enum

# ── OTP shape ─────────────────────────────────────────────────────────────────
OTP_DIGITS: int = 6


# ── Account lifecycle ─────────────────────────────────────────────────────────
class AccountStatus(str, enum.Enum):
    INACTIVE = "inactive"    # Registered, email not yet proven via OTP
    ACTIVE = "active"
    SUSPENDED = "suspended"  # Admin action; login refused


# ── Second factor configuration ───────────────────────────────────────────────
class SecondFactorState(str, enum.Enum):
    ABSENT = "absent"
    PENDING = "pending"    # Temporary secret issued, not yet confirmed
    ENABLED = "enabled"


# ── Session token classes ─────────────────────────────────────────────────────
class TokenType(str, enum.Enum):
    FULL = "full"
    PRE_2FA = "pre2fa"


# ── One-time passcode flows ───────────────────────────────────────────────────
class OTPPurpose(str, enum.Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class OTPChannel(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"
