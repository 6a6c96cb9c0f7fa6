# utils/sms.py
from __future__ import annotations

import logging
from typing import Optional

import requests

from utils.mail import DeliveryError, mask

__all__ = ["TwilioSmsTransport", "to_e164"]

_log = logging.getLogger(__name__)

TWILIO_API = "https://api.twilio.com/2010-04-01"


def to_e164(phone: str, country_code: str) -> str:
    """'9876543210' + '+91' → '+919876543210'; numbers already in E.164 pass through."""
    phone = (phone or "").strip()
    if phone.startswith("+"):
        return phone
    return f"{country_code}{phone}"


class TwilioSmsTransport:
    """Twilio Messages API over plain HTTPS (basic auth, form-encoded)."""

    provider = "twilio"
    is_mock = False

    def __init__(self, *, account_sid: str, auth_token: str, from_number: Optional[str] = None,
                 messaging_sid: Optional[str] = None, country_code: str = "+91",
                 timeout: float = 10.0, http: Optional[requests.Session] = None):
        if not (from_number or messaging_sid):
            raise ValueError("TWILIO_FROM or TWILIO_MESSAGING_SID must be set")
        self.account_sid = account_sid
        self.from_number = from_number
        self.messaging_sid = messaging_sid
        self.country_code = country_code
        # (connect timeout, read timeout) so a slow provider never stalls the request
        self.timeout = (min(3.0, timeout), timeout)
        self.http = http or requests.Session()
        self.http.auth = (account_sid, auth_token)

    def send(self, to: str, *, subject: str = "", text: str, html: str = "") -> str:
        """Send ``text`` as an SMS; returns the Twilio message SID."""
        payload = {"To": to_e164(to, self.country_code), "Body": text}
        if self.messaging_sid:
            payload["MessagingServiceSid"] = self.messaging_sid
        else:
            payload["From"] = self.from_number

        url = f"{TWILIO_API}/Accounts/{self.account_sid}/Messages.json"
        try:
            r = self.http.post(url, data=payload, timeout=self.timeout)
        except requests.RequestException as e:
            _log.warning("[sms] twilio request failed to=%s: %r", mask(to), e)
            raise DeliveryError(f"Twilio unreachable: {e!r}") from e

        if r.status_code != 201:
            try:
                err = r.json()
            except ValueError:
                err = {}
            _log.warning("[sms] twilio rejected to=%s status=%s code=%s", mask(to),
                         r.status_code, err.get("code"))
            raise DeliveryError(f"Twilio error {r.status_code}: {err.get('message', 'unknown')}")

        sid = r.json().get("sid", "")
        _log.info("[sms] sent via twilio sid=%s to=%s", sid, mask(to))
        return sid
