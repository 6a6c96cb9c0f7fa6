# services/errors.py
"""
Business errors raised by the auth core.

Every error carries a stable machine-readable ``kind``, the HTTP status the
web layer answers with, and a message that is safe to show to the user.
Storage failures are *not* modelled here; they surface as SQLAlchemy
exceptions and are turned into an opaque 500 by the app.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "AuthError",
    "ValidationError",
    "DuplicateEmail",
    "DuplicatePhone",
    "AlreadyVerified",
    "InvalidCredentials",
    "UserNotFound",
    "ChallengeNotFound",
    "Expired",
    "CodeMismatch",
    "TooManyAttempts",
    "InvalidToken",
    "ExpiredToken",
    "InvalidResetToken",
    "ProviderUnavailable",
]


class AuthError(Exception):
    kind = "auth_error"
    status = 400
    message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None, *, errors: Optional[Dict[str, str]] = None):
        self.message = message or self.message
        self.errors = errors or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "kind": self.kind, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(AuthError):
    kind = "validation_error"
    status = 400
    message = "Validation failed"


class DuplicateEmail(AuthError):
    kind = "duplicate_email"
    status = 409
    message = "User with this email already exists"


class DuplicatePhone(AuthError):
    kind = "duplicate_phone"
    status = 409
    message = "User with this phone number already exists"


class AlreadyVerified(AuthError):
    kind = "already_verified"
    status = 409
    message = "This contact is already verified"


class InvalidCredentials(AuthError):
    kind = "invalid_credentials"
    status = 401
    message = "Invalid credentials"


class UserNotFound(AuthError):
    kind = "user_not_found"
    status = 404
    message = "User not found"


# ── OTP ──────────────────────────────────────────────────────────────────
class ChallengeNotFound(AuthError):
    kind = "otp_not_found"
    status = 404
    message = "No pending code. Please request a new one."


class Expired(AuthError):
    kind = "otp_expired"
    status = 410
    message = "Code expired. Please request a new code."


class CodeMismatch(AuthError):
    kind = "otp_mismatch"
    status = 400
    message = "Invalid code. Please check and try again."


class TooManyAttempts(AuthError):
    kind = "otp_too_many_attempts"
    status = 429
    message = "Too many attempts. Please request a new code."


# ── Sessions ─────────────────────────────────────────────────────────────
class InvalidToken(AuthError):
    kind = "invalid_token"
    status = 401
    message = "Invalid token"


class ExpiredToken(AuthError):
    kind = "expired_token"
    status = 401
    message = "Token has expired"


class ProviderUnavailable(AuthError):
    kind = "provider_unavailable"
    status = 503
    message = "Unable to send verification code right now. Please try again."


class InvalidResetToken(AuthError):
    kind = "invalid_reset_token"
    status = 400
    message = "Invalid or expired reset token"
