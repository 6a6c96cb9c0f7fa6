# utils/mail.py
from __future__ import annotations

import logging
import smtplib
import socket
import ssl
from email.message import EmailMessage
from email.utils import make_msgid
from time import monotonic
from typing import Optional

__all__ = ["DeliveryError", "SmtpEmailTransport", "mask"]

_log = logging.getLogger(__name__)

_PORT_PLAN = [("STARTTLS", 587), ("STARTTLS", 2525), ("SSL", 465)]


class DeliveryError(RuntimeError):
    """A provider refused, timed out or could not be reached."""


def mask(s: Optional[str]) -> str:
    if not s:
        return ""
    if "@" in s:
        user, dom = s.split("@", 1)
        dot = dom.rfind(".")
        tld = dom[dot:] if dot > 0 else ""
        return f"{user[:1]}***@{dom[:1]}***{tld}"
    return ("***" + s[-4:]) if len(s) > 4 else "***"


class SmtpEmailTransport:
    """
    Sends mail through an SMTP relay (Brevo by default).

    The configured port is tried first, then the remaining ports of the
    plan. ``timeout`` bounds the whole send, across every port tried.
    """

    provider = "smtp"
    is_mock = False

    def __init__(self, *, host: str, port: int, login: Optional[str], password: Optional[str],
                 mail_from: str, timeout: float = 10.0):
        if not login or not password:
            raise ValueError("SMTP_USER and SMTP_PASSWORD must be set when email is enabled")
        self.host = host
        self.login = login
        self.password = password
        self.mail_from = mail_from
        self.timeout = timeout
        mode = "SSL" if port == 465 else "STARTTLS"
        self.plan = [(mode, port)] + [p for p in _PORT_PLAN if p[1] != port]

    def _message(self, to: str, subject: str, text: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.mail_from
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content(text or "")
        if html:
            msg.add_alternative(html, subtype="html")
        return msg

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - monotonic()
        if remaining <= 0:
            raise socket.timeout("SMTP deadline exceeded")
        return remaining

    def _step(self, s, deadline: float) -> None:
        # Each SMTP round-trip gets only what is left of the send budget
        sock = getattr(s, "sock", None)
        if sock is not None:
            sock.settimeout(self._remaining(deadline))

    def send(self, to: str, *, subject: str, text: str, html: str = "") -> str:
        """Deliver one message within ``timeout`` seconds overall; returns its Message-ID."""
        msg = self._message(to, subject, text, html)
        last_err: Optional[Exception] = None
        deadline = monotonic() + self.timeout

        for mode, port in self.plan:
            if deadline - monotonic() <= 0:
                _log.warning("[mail] send budget of %ss spent before %s:%s", self.timeout, self.host, port)
                break
            try:
                ctx = ssl.create_default_context()
                if mode == "SSL":
                    with smtplib.SMTP_SSL(self.host, port, context=ctx,
                                          timeout=self._remaining(deadline)) as s:
                        self._step(s, deadline)
                        s.login(self.login, self.password)
                        self._step(s, deadline)
                        s.send_message(msg)
                else:
                    with smtplib.SMTP(self.host, port, timeout=self._remaining(deadline)) as s:
                        self._step(s, deadline)
                        s.ehlo()
                        self._step(s, deadline)
                        s.starttls(context=ctx)
                        self._step(s, deadline)
                        s.ehlo()
                        self._step(s, deadline)
                        s.login(self.login, self.password)
                        self._step(s, deadline)
                        s.send_message(msg)

                _log.info("[mail] sent via %s:%s from %s to %s", self.host, port,
                          mask(self.mail_from), mask(to))
                return msg["Message-ID"]
            except (smtplib.SMTPException, OSError, socket.timeout) as e:
                last_err = e
                _log.warning("[mail] attempt %s %s:%s failed: %r", mode, self.host, port, e)

        raise DeliveryError(f"All SMTP attempts failed; last error: {last_err!r}")
