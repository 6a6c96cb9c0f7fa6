# services/credentials.py
from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Any, Callable, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from db import db
from models.user import ROLES, User
from services.errors import DuplicateEmail, DuplicatePhone, UserNotFound, ValidationError
from services.validation import normalize_email, normalize_phone
from utils.clock import as_utc, now_utc

__all__ = ["CredentialStore"]

_log = logging.getLogger(__name__)

# Checked when the email is unknown, so a miss costs one hash check too
_DUMMY_HASH = generate_password_hash("placeholder-password")


def _reset_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class CredentialStore:
    """Owns user records. Every write is one statement or one insert."""

    def __init__(self, *, clock: Callable = now_utc):
        self._clock = clock

    @property
    def session(self):
        return db.session

    def create_user(self, profile: Mapping[str, Any], password: str) -> User:
        role = (profile.get("role") or "citizen").lower()
        if role not in ROLES:
            raise ValidationError(errors={"role": f"Role must be one of {', '.join(ROLES)}"})

        user = User(
            email=normalize_email(profile.get("email")),
            name=str(profile.get("name") or "").strip(),
            phone=normalize_phone(profile.get("phone")) or None,
            role=role,
            email_verified=bool(profile.get("email_verified", False)),
            phone_verified=bool(profile.get("phone_verified", False)),
        )
        user.set_password(password)

        # The unique indexes are the check: no read-then-insert window
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            if self.find_by_email(user.email) is not None:
                raise DuplicateEmail()
            if user.phone and self.find_by_phone(user.phone) is not None:
                raise DuplicatePhone()
            raise

        _log.info("[credentials] created user id=%s role=%s", user.id, user.role)
        return user

    def get(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        email = normalize_email(email)
        if not email:
            return None
        return User.query.filter_by(email=email).first()

    def find_by_phone(self, phone: str) -> Optional[User]:
        phone = normalize_phone(phone)
        if not phone:
            return None
        return User.query.filter_by(phone=phone).first()

    def find_by_destination(self, channel: str, destination: str) -> Optional[User]:
        if channel == "email":
            return self.find_by_email(destination)
        return self.find_by_phone(destination)

    def verify_password(self, user: Optional[User], password: str) -> bool:
        # check_password_hash compares in constant time
        if user is None:
            check_password_hash(_DUMMY_HASH, password or "")
            return False
        return user.check_password(password)

    def mark_channel_verified(self, user_id: int, channel: str) -> User:
        column = User.email_verified if channel == "email" else User.phone_verified
        updated = (
            User.query.filter(User.id == user_id)
            .update({column: True}, synchronize_session=False)
        )
        self.session.commit()
        if not updated:
            raise UserNotFound()
        user = self.get(user_id)
        self.session.refresh(user)
        _log.info("[credentials] user id=%s %s verified", user_id, channel)
        return user

    def change_password(self, user: User, new_password: str) -> None:
        user.set_password(new_password)
        self.session.commit()

    def record_login(self, user: User) -> None:
        user.last_login_at = self._clock()
        self.session.commit()

    # ── Password reset ──────────────────────────────────────────────────────
    def issue_reset_token(self, user_id: int, ttl_seconds: int) -> str:
        """Store a fresh reset token for the user (replacing any earlier one) and return it."""
        token = secrets.token_urlsafe(32)
        updated = (
            User.query.filter(User.id == user_id)
            .update({
                User.reset_token_hash: _reset_digest(token),
                User.reset_expires_at: self._clock() + timedelta(seconds=ttl_seconds),
            }, synchronize_session=False)
        )
        self.session.commit()
        if not updated:
            raise UserNotFound()
        _log.info("[credentials] reset token issued uid=%s ttl=%ss", user_id, ttl_seconds)
        return token

    def reset_password(self, token: str, new_password: str) -> Optional[User]:
        """
        Spend a reset token and set the new password in one guarded update.

        Returns None for unknown, expired or already-used tokens.
        """
        if not token:
            return None
        digest = _reset_digest(token)
        user = User.query.filter_by(reset_token_hash=digest).first()
        if user is None or user.reset_expires_at is None:
            return None
        if self._clock() > as_utc(user.reset_expires_at):
            return None

        user_id = user.id
        spent = (
            User.query.filter_by(id=user_id, reset_token_hash=digest)
            .update({
                User.password_hash: generate_password_hash(new_password),
                User.reset_token_hash: None,
                User.reset_expires_at: None,
            }, synchronize_session=False)
        )
        self.session.commit()
        if not spent:
            # used by a concurrent request
            return None
        user = self.get(user_id)
        self.session.refresh(user)
        _log.info("[credentials] password reset uid=%s", user_id)
        return user
