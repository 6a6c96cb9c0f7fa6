# backend/config.py
import os

# Load .env in local/dev; harmless in production if the file is absent
from dotenv import load_dotenv

load_dotenv()


def _to_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}

def _to_int(val: str | None, default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default

def _to_float(val: str | None, default: float) -> float:
    try:
        return float(val) if val is not None else default
    except ValueError:
        return default


class Config:
    # ── Core ─────────────────────────────────────────────────────────────────
    DEBUG = _to_bool(os.environ.get("DEBUG") or os.environ.get("FLASK_DEBUG"), False)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev_secret")  # ← override in prod!
    APP_NAME = os.environ.get("APP_NAME", "Civic Connect")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///civic_auth.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    # Dev convenience; production schemas go through Flask-Migrate
    AUTO_CREATE_TABLES = _to_bool(os.environ.get("AUTO_CREATE_TABLES"), False)

    # ── Verification policy ─────────────────────────────────────────────────
    REQUIRE_EMAIL_VERIFICATION = _to_bool(os.environ.get("REQUIRE_EMAIL_VERIFICATION"), True)
    REQUIRE_PHONE_VERIFICATION = _to_bool(os.environ.get("REQUIRE_PHONE_VERIFICATION"), False)

    # ── OTP ─────────────────────────────────────────────────────────────────
    OTP_TTL_SECONDS   = _to_int(os.environ.get("OTP_TTL_SECONDS"), 600)
    OTP_MAX_ATTEMPTS  = _to_int(os.environ.get("OTP_MAX_ATTEMPTS"), 5)
    OTP_LENGTH        = _to_int(os.environ.get("OTP_LENGTH"), 6)
    OTP_PEPPER        = os.environ.get("OTP_PEPPER", "change-me")  # set long random in prod

    # ── Sessions / passwords ────────────────────────────────────────────────
    SESSION_TTL_SECONDS = _to_int(os.environ.get("SESSION_TTL_SECONDS"), 24 * 3600)  # 0 = never
    PASSWORD_MIN_LENGTH = _to_int(os.environ.get("PASSWORD_MIN_LENGTH"), 8)
    PASSWORD_RESET_TTL_SECONDS = _to_int(os.environ.get("PASSWORD_RESET_TTL_SECONDS"), 600)

    # ── Delivery ────────────────────────────────────────────────────────────
    # Mock mode never contacts a provider and hands the code back to the client
    MOCK_MODE            = _to_bool(os.environ.get("MOCK_MODE"), True)
    DISPATCH_ATTEMPTS    = _to_int(os.environ.get("DISPATCH_ATTEMPTS"), 2)
    PROVIDER_TIMEOUT_SEC = _to_float(os.environ.get("PROVIDER_TIMEOUT_SEC"), 10.0)

    # ── Email (SMTP) ────────────────────────────────────────────────────────
    SMTP_HOST      = os.environ.get("SMTP_HOST", "smtp-relay.brevo.com")
    SMTP_PORT      = _to_int(os.environ.get("SMTP_PORT"), 587)
    SMTP_USER      = os.environ.get("SMTP_USER")
    SMTP_PASSWORD  = os.environ.get("SMTP_PASSWORD")
    MAIL_FROM      = os.environ.get("MAIL_FROM", "Civic Connect <no-reply@example.com>")
    EMAIL_ENABLED  = _to_bool(os.environ.get("EMAIL_ENABLED"), False)

    # ── Twilio (SMS OTP) ────────────────────────────────────────────────────
    TWILIO_ACCOUNT_SID  = os.environ.get("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN   = os.environ.get("TWILIO_AUTH_TOKEN")
    TWILIO_FROM         = os.environ.get("TWILIO_FROM")            # e.g. +12565550123
    TWILIO_MESSAGING_SID= os.environ.get("TWILIO_MESSAGING_SID")   # e.g. MGxxxxxxxx...
    SMS_COUNTRY_CODE    = os.environ.get("SMS_COUNTRY_CODE", "+91")

    TWILIO_ENABLED = bool(TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and (TWILIO_FROM or TWILIO_MESSAGING_SID))


class ProductionConfig(Config):
    DEBUG = False
    MOCK_MODE = _to_bool(os.environ.get("MOCK_MODE"), False)
    SECRET_KEY = os.environ.get("SECRET_KEY")


class DevelopmentConfig(Config):
    DEBUG = True
    AUTO_CREATE_TABLES = True


class TestingConfig(Config):
    DEBUG = True
    TESTING = True
    MOCK_MODE = True
    AUTO_CREATE_TABLES = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
