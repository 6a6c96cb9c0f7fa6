# services/dispatch.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from services.errors import ProviderUnavailable, ValidationError
from services.settings import AuthSettings
from utils.mail import DeliveryError, SmtpEmailTransport, mask
from utils.sms import TwilioSmsTransport

__all__ = ["DispatchResult", "DisabledTransport", "MockTransport", "VerificationDispatcher", "build_transports"]

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    status: str                       # 'sent' | 'mocked'
    provider: str                     # 'smtp' | 'twilio' | 'mock'
    message_id: str
    code: Optional[str] = None        # only for 'mocked'

    @property
    def mocked(self) -> bool:
        return self.status == "mocked"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"status": self.status, "provider": self.provider}
        if self.mocked:
            out["debug"] = {"otp": self.code}
        return out


class MockTransport:
    """Stands in for a provider; nothing leaves the process."""

    provider = "mock"
    is_mock = True

    def __init__(self, channel: str):
        self.channel = channel
        self.outbox: list = []

    def send(self, to: str, *, subject: str = "", text: str, html: str = "") -> str:
        message_id = f"mock_{self.channel}_{int(time.time() * 1000)}_{len(self.outbox)}"
        self.outbox.append({"to": to, "subject": subject, "text": text, "id": message_id})
        _log.info("[mock-%s] to=%s subject=%r", self.channel, mask(to), subject)
        return message_id


class DisabledTransport:
    """Live mode without provider credentials: every send fails."""

    is_mock = False
    provider = "disabled"

    def __init__(self, channel: str):
        self.channel = channel

    def send(self, to: str, *, subject: str = "", text: str, html: str = "") -> str:
        raise DeliveryError(f"no {self.channel} provider configured")


def build_transports(settings: AuthSettings) -> Dict[str, Any]:
    """Pick one transport per channel, once, from configuration."""
    if settings.mock_mode:
        email: Any = MockTransport("email")
        sms: Any = MockTransport("phone")
    else:
        email = DisabledTransport("email")
        sms = DisabledTransport("phone")
        if settings.email_enabled:
            email = SmtpEmailTransport(
                host=settings.smtp_host,
                port=settings.smtp_port,
                login=settings.smtp_user,
                password=settings.smtp_password,
                mail_from=settings.mail_from,
                timeout=settings.provider_timeout_sec,
            )
        if settings.twilio_enabled:
            sms = TwilioSmsTransport(
                account_sid=settings.twilio_account_sid,
                auth_token=settings.twilio_auth_token,
                from_number=settings.twilio_from,
                messaging_sid=settings.twilio_messaging_sid,
                country_code=settings.sms_country_code,
                timeout=settings.provider_timeout_sec,
            )
    _log.info("[dispatch] transports email=%s phone=%s", email.provider, sms.provider)
    return {"email": email, "phone": sms}


class VerificationDispatcher:
    """Formats the code for its channel and hands it to that channel's transport."""

    def __init__(self, settings: AuthSettings, transports: Dict[str, Any]):
        self.settings = settings
        self.transports = transports

    def _email_body(self, code: str) -> Dict[str, str]:
        minutes = max(1, self.settings.otp_ttl_seconds // 60)
        name = self.settings.app_name
        html = f"""
          <div style="font-family:system-ui,Segoe UI,Roboto,Arial">
            <h2>{name}: email verification</h2>
            <p>Please use the following verification code to complete your registration:</p>
            <div style="font-size:24px;font-weight:700;letter-spacing:3px">{code}</div>
            <p>This code expires in {minutes} minutes. Do not share it with anyone.</p>
            <p>If you didn't request this code, please ignore this email.</p>
          </div>
        """
        return {
            "subject": f"Your {name} verification code",
            "text": f"Your verification code is {code}. It expires in {minutes} minutes.",
            "html": html,
        }

    def _sms_body(self, code: str) -> Dict[str, str]:
        minutes = max(1, self.settings.otp_ttl_seconds // 60)
        return {
            "text": (f"Your OTP for {self.settings.app_name} is: {code}. "
                     f"Valid for {minutes} minutes. Do not share this code."),
        }

    def _reset_body(self, token: str) -> Dict[str, str]:
        minutes = max(1, self.settings.password_reset_ttl_seconds // 60)
        name = self.settings.app_name
        return {
            "subject": f"{name} password reset",
            "text": (f"You asked to reset your {name} password.\n"
                     f"Reset token: {token}\n"
                     f"It expires in {minutes} minutes. If this wasn't you, ignore this email."),
        }

    def send(self, channel: str, destination: str, code: str, *, purpose: str = "verification") -> DispatchResult:
        """
        Deliver ``code``. Raises ProviderUnavailable on any provider failure
        or timeout; calling again with the same code is safe.

        ``purpose="password_reset"`` sends a reset token instead of an OTP
        and only goes out by email.
        """
        transport = self.transports.get(channel)
        if transport is None or (purpose == "password_reset" and channel != "email"):
            raise ValidationError(errors={"channel": "channel must be 'email' or 'phone'"})

        if purpose == "password_reset":
            body = self._reset_body(code)
        elif channel == "email":
            body = self._email_body(code)
        else:
            body = self._sms_body(code)
        try:
            message_id = transport.send(destination, **body)
        except DeliveryError as e:
            _log.warning("[dispatch] %s %s via %s failed to=%s: %s", purpose, channel,
                         transport.provider, mask(destination), e)
            raise ProviderUnavailable() from e

        if transport.is_mock:
            return DispatchResult("mocked", transport.provider, message_id, code=code)
        return DispatchResult("sent", transport.provider, message_id)
