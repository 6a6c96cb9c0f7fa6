import smtplib

import pytest
import requests

from services.dispatch import (
    DisabledTransport,
    MockTransport,
    VerificationDispatcher,
    build_transports,
)
from services.errors import ProviderUnavailable
from services.settings import AuthSettings
from utils.mail import DeliveryError, SmtpEmailTransport, mask
from utils.sms import TwilioSmsTransport, to_e164


class FailingTransport:
    provider = "smtp"
    is_mock = False

    def __init__(self):
        self.calls = 0

    def send(self, to, *, subject="", text, html=""):
        self.calls += 1
        raise DeliveryError("connection refused")


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        return self._body


class FakeHttp:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.auth = None
        self.posts = []

    def post(self, url, data=None, timeout=None):
        self.posts.append({"url": url, "data": data, "timeout": timeout})
        if self.exc:
            raise self.exc
        return self.response


def _twilio(http, **kw):
    opts = dict(account_sid="AC123", auth_token="secret", from_number="+15005550006",
                country_code="+91", timeout=5.0, http=http)
    opts.update(kw)
    return TwilioSmsTransport(**opts)


# ── Dispatcher ────────────────────────────────────────────────────────────
def test_mock_result_carries_code():
    transports = {"email": MockTransport("email"), "phone": MockTransport("phone")}
    dispatcher = VerificationDispatcher(AuthSettings(), transports)

    result = dispatcher.send("email", "a@x.com", "123456")
    assert result.mocked and result.provider == "mock"
    assert result.to_dict()["debug"] == {"otp": "123456"}

    sent = transports["email"].outbox[0]
    assert sent["to"] == "a@x.com" and "123456" in sent["text"]


def test_sms_body_mentions_validity():
    phone = MockTransport("phone")
    dispatcher = VerificationDispatcher(AuthSettings(otp_ttl_seconds=300), {"phone": phone})
    dispatcher.send("phone", "9876543210", "654321")
    assert "654321" in phone.outbox[0]["text"]
    assert "5 minutes" in phone.outbox[0]["text"]


def test_live_result_hides_code():
    class Sent(MockTransport):
        provider = "twilio"
        is_mock = False

    dispatcher = VerificationDispatcher(AuthSettings(mock_mode=False), {"phone": Sent("phone")})
    result = dispatcher.send("phone", "9876543210", "123456")
    assert result.status == "sent" and result.code is None
    assert "debug" not in result.to_dict()


def test_provider_failure_is_unavailable():
    dispatcher = VerificationDispatcher(AuthSettings(), {"email": FailingTransport()})
    with pytest.raises(ProviderUnavailable):
        dispatcher.send("email", "a@x.com", "123456")


def test_registration_outcome_when_provider_down(auth, transports, codes):
    failing = FailingTransport()
    transports["email"] = failing
    codes.codes = ["777777"]

    with pytest.raises(ProviderUnavailable):
        auth.send_otp("email", "a@x.com")

    # same code was retried, and it is still usable
    assert failing.calls == auth.settings.dispatch_attempts
    assert auth.otp.peek("email", "a@x.com") is not None
    assert auth.verify_otp("email", "a@x.com", "777777") is None


# ── Transport selection ───────────────────────────────────────────────────
def test_live_mode_without_credentials_is_disabled():
    transports = build_transports(AuthSettings(mock_mode=False))
    assert isinstance(transports["email"], DisabledTransport)
    assert isinstance(transports["phone"], DisabledTransport)
    with pytest.raises(DeliveryError):
        transports["phone"].send("9876543210", text="hi")


def test_live_mode_with_credentials():
    settings = AuthSettings(
        mock_mode=False,
        email_enabled=True, smtp_user="u", smtp_password="p",
        twilio_enabled=True, twilio_account_sid="AC1", twilio_auth_token="t", twilio_from="+15005550006",
    )
    transports = build_transports(settings)
    assert transports["email"].provider == "smtp"
    assert transports["phone"].provider == "twilio"


def test_mock_mode_ignores_credentials():
    transports = build_transports(AuthSettings(mock_mode=True, twilio_enabled=True,
                                               twilio_account_sid="AC1", twilio_auth_token="t",
                                               twilio_from="+1500"))
    assert transports["phone"].provider == "mock"


# ── Twilio ────────────────────────────────────────────────────────────────
def test_e164():
    assert to_e164("9876543210", "+91") == "+919876543210"
    assert to_e164("+14155550100", "+91") == "+14155550100"


def test_twilio_posts_message():
    http = FakeHttp(FakeResponse(201, {"sid": "SM42"}))
    sid = _twilio(http).send("9876543210", text="Your OTP is 123456")

    assert sid == "SM42"
    post = http.posts[0]
    assert post["url"].endswith("/Accounts/AC123/Messages.json")
    assert post["data"] == {"To": "+919876543210", "Body": "Your OTP is 123456", "From": "+15005550006"}
    assert post["timeout"] == (3.0, 5.0)
    assert http.auth == ("AC123", "secret")


def test_twilio_prefers_messaging_service():
    http = FakeHttp(FakeResponse(201, {"sid": "SM1"}))
    _twilio(http, messaging_sid="MG9").send("9876543210", text="x")
    data = http.posts[0]["data"]
    assert data["MessagingServiceSid"] == "MG9" and "From" not in data


def test_twilio_rejection():
    http = FakeHttp(FakeResponse(400, {"code": 21211, "message": "Invalid 'To' Phone Number"}))
    with pytest.raises(DeliveryError, match="400"):
        _twilio(http).send("9876543210", text="x")


def test_twilio_timeout():
    http = FakeHttp(exc=requests.Timeout("read timed out"))
    with pytest.raises(DeliveryError):
        _twilio(http).send("9876543210", text="x")


def test_twilio_needs_sender():
    with pytest.raises(ValueError):
        _twilio(FakeHttp(), from_number=None)


# ── SMTP ──────────────────────────────────────────────────────────────────
def test_smtp_all_ports_fail(monkeypatch):
    tried = []

    def refuse(host, port, *args, **kwargs):
        tried.append(port)
        raise OSError("connection refused")

    monkeypatch.setattr(smtplib, "SMTP", refuse)
    monkeypatch.setattr(smtplib, "SMTP_SSL", refuse)

    transport = SmtpEmailTransport(host="smtp.test", port=2525, login="u", password="p",
                                   mail_from="no-reply@x.com", timeout=1)
    with pytest.raises(DeliveryError):
        transport.send("a@x.com", subject="s", text="t")
    assert tried == [2525, 587, 465]


def test_smtp_stops_when_send_budget_is_spent(monkeypatch):
    tried = []
    ticks = [0.0, 0.0, 0.0, 11.0]

    def slow_refuse(host, port, *args, **kwargs):
        tried.append((port, kwargs["timeout"]))
        raise OSError("timed out")

    monkeypatch.setattr("utils.mail.monotonic", lambda: ticks.pop(0) if len(ticks) > 1 else ticks[0])
    monkeypatch.setattr(smtplib, "SMTP", slow_refuse)
    monkeypatch.setattr(smtplib, "SMTP_SSL", slow_refuse)

    transport = SmtpEmailTransport(host="smtp.test", port=587, login="u", password="p",
                                   mail_from="no-reply@x.com", timeout=10)
    with pytest.raises(DeliveryError):
        transport.send("a@x.com", subject="s", text="t")
    assert tried == [(587, 10.0)]


def test_smtp_sends(monkeypatch):
    sent = []

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            self.port = port

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def ehlo(self):
            pass

        def starttls(self, context=None):
            pass

        def login(self, user, password):
            pass

        def send_message(self, msg):
            sent.append(msg)

    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    transport = SmtpEmailTransport(host="smtp.test", port=587, login="u", password="p",
                                   mail_from="no-reply@x.com")
    message_id = transport.send("a@x.com", subject="Code", text="123456", html="<b>123456</b>")

    assert message_id and sent[0]["To"] == "a@x.com"
    assert sent[0]["Message-ID"] == message_id


def test_mask():
    assert mask("asha@example.com") == "a***@e***.com"
    assert mask("9876543210") == "***3210"
    assert mask("") == ""
