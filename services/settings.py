# services/settings.py
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class AuthSettings:
    """Configuration handed to the auth core; the core never reads the environment."""

    require_email_verification: bool = True
    require_phone_verification: bool = False
    otp_ttl_seconds: int = 600
    otp_max_attempts: int = 5
    otp_length: int = 6
    otp_pepper: str = "change-me"
    session_ttl_seconds: int = 24 * 3600
    password_min_length: int = 8
    password_reset_ttl_seconds: int = 600
    mock_mode: bool = True
    dispatch_attempts: int = 2
    provider_timeout_sec: float = 10.0
    app_name: str = "Civic Connect"

    # live transports
    smtp_host: str = "smtp-relay.brevo.com"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    mail_from: str = "Civic Connect <no-reply@example.com>"
    email_enabled: bool = False
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_from: Optional[str] = None
    twilio_messaging_sid: Optional[str] = None
    twilio_enabled: bool = False
    sms_country_code: str = "+91"

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "AuthSettings":
        """Build from a Flask config: ``OTP_TTL_SECONDS`` → ``otp_ttl_seconds``."""
        kwargs = {}
        for f in fields(cls):
            key = f.name.upper()
            if key in config and config[key] is not None:
                kwargs[f.name] = config[key]
        return cls(**kwargs)

    def requires(self, channel: str) -> bool:
        if channel == "email":
            return self.require_email_verification
        return self.require_phone_verification
