# backend/app.py
from __future__ import annotations

import logging
import os

import click
from flask import Flask, jsonify, request
from flask_cors import CORS
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config
from db import db, migrate

# Ensure models are imported so Flask-Migrate sees them
from models.user import ROLES, User
from models.otp_challenge import OtpChallenge
from models.auth_session import AuthSession

# Blueprints
from routes.auth import auth_bp
from routes.verification import verification_bp

from services.auth import AuthOrchestrator
from services.credentials import CredentialStore
from services.dispatch import VerificationDispatcher, build_transports
from services.errors import AuthError, DuplicateEmail, DuplicatePhone, ValidationError
from services.otp import OtpEngine
from services.sessions import SessionManager
from services.settings import AuthSettings
from services.validation import check_email, check_phone, password_problem
from utils.clock import now_utc


def _setup_logging(level: str) -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s: %(message)s")
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))


def _build_auth(app: Flask, *, transports=None, clock=None, code_factory=None) -> AuthOrchestrator:
    settings = AuthSettings.from_mapping(app.config)
    clock = clock or now_utc
    transports = transports or build_transports(settings)
    return AuthOrchestrator(
        settings,
        store=CredentialStore(clock=clock),
        otp=OtpEngine(settings, clock=clock, code_factory=code_factory),
        dispatcher=VerificationDispatcher(settings, transports),
        sessions=SessionManager(settings, clock=clock),
    )


def create_app(config_class=Config, overrides: dict | None = None, *,
               transports=None, clock=None, code_factory=None) -> Flask:
    app = Flask(__name__)

    # Respect reverse proxy headers (scheme / host) for correct URL generation
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[arg-type]

    # CORS (open for the mobile client; tighten origins for a web frontend)
    CORS(app, resources={r"/*": {"origins": "*"}})

    # Load config + init extensions
    app.config.from_object(config_class)
    if overrides:
        app.config.update(overrides)
    _setup_logging(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    migrate.init_app(app, db)

    with app.app_context():
        # Touch models so Alembic/Flask-Migrate registers them
        _ = (User, OtpChallenge, AuthSession)
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()

    app.extensions["civic_auth"] = _build_auth(
        app, transports=transports, clock=clock, code_factory=code_factory
    )
    app.logger.info(
        "[app] auth ready mock=%s require_email=%s require_phone=%s",
        app.config.get("MOCK_MODE"),
        app.config.get("REQUIRE_EMAIL_VERIFICATION"),
        app.config.get("REQUIRE_PHONE_VERIFICATION"),
    )

    # Health check
    @app.route("/health")
    def health_check():
        return jsonify(status="ok"), 200

    # ── Errors: one JSON envelope for everything ───────────────────────────
    @app.errorhandler(AuthError)
    def handle_auth_error(e: AuthError):
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify(success=False, kind="http_error", message=e.description, path=request.path), e.code

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(e: SQLAlchemyError):
        db.session.rollback()
        app.logger.exception("[app] storage failure on %s %s", request.method, request.path)
        return jsonify(success=False, kind="internal_error", message="Internal server error"), 500

    @app.errorhandler(Exception)
    def handle_any_error(e: Exception):
        app.logger.exception("[app] unhandled error on %s %s", request.method, request.path)
        return jsonify(success=False, kind="internal_error", message="Internal server error"), 500

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(verification_bp)

    # CLI: seed staff / admin accounts (pre-verified)
    @app.cli.command("create-user")
    @click.option("--email", required=True)
    @click.option("--name", required=True)
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--phone", default=None)
    @click.option("--role", type=click.Choice(ROLES), default="worker", show_default=True)
    def create_user_cmd(email, name, password, phone, role):
        auth = app.extensions["civic_auth"]
        store = auth.store
        try:
            email = check_email(email)
            phone = check_phone(phone) if phone else None
        except ValidationError as e:
            raise click.ClickException("; ".join(e.errors.values()) or e.message)
        problem = password_problem(password, auth.settings.password_min_length)
        if problem:
            raise click.ClickException(problem)

        try:
            user = store.create_user(
                {"email": email, "name": name, "phone": phone, "role": role,
                 "email_verified": True, "phone_verified": bool(phone)},
                password,
            )
        except (DuplicateEmail, DuplicatePhone) as e:
            raise click.ClickException(e.message)
        except IntegrityError as e:
            raise click.ClickException(f"Could not create user: {e.orig}")
        click.echo(f"Created {user.role} #{user.id} <{user.email}>")

    return app


# Optional local entrypoint (useful for quick dev runs)
if __name__ == "__main__":
    app = create_app()
    app.run(
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "5000")),
        debug=bool(os.environ.get("FLASK_DEBUG", "")),
    )
