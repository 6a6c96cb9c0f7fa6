# services/sessions.py
from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy import or_

from db import db
from models.auth_session import AuthSession
from services.errors import ExpiredToken, InvalidToken
from services.settings import AuthSettings
from utils.clock import as_utc, now_utc

__all__ = ["SessionManager"]

_log = logging.getLogger(__name__)


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionManager:
    """
    Opaque bearer tokens. Only a digest is stored, so a leaked table cannot
    be replayed. A session is Active until revoked or past its expiry, and
    never comes back from either.
    """

    def __init__(self, settings: AuthSettings, *, clock: Callable = now_utc):
        self.settings = settings
        self._clock = clock

    @property
    def session(self):
        return db.session

    def issue(self, user_id: int) -> str:
        token = secrets.token_urlsafe(32)  # 256 bits
        now = self._clock()
        ttl = self.settings.session_ttl_seconds
        self.session.add(AuthSession(
            token_hash=_digest(token),
            user_id=user_id,
            issued_at=now,
            expires_at=(now + timedelta(seconds=ttl)) if ttl > 0 else None,
        ))
        self.session.commit()
        _log.info("[session] issued uid=%s", user_id)
        return token

    def validate(self, token: Optional[str]) -> int:
        """Return the owning user id or raise InvalidToken / ExpiredToken."""
        if not token:
            raise InvalidToken()
        row = self.session.get(AuthSession, _digest(token))
        if row is None or row.revoked_at is not None:
            raise InvalidToken()
        if row.expires_at is not None and self._clock() >= as_utc(row.expires_at):
            raise ExpiredToken()
        return row.user_id

    @staticmethod
    def _live(now):
        # Expired sessions are terminal and keep their state
        return or_(AuthSession.expires_at.is_(None), AuthSession.expires_at > now)

    def revoke(self, token: Optional[str]) -> None:
        """Idempotent; unknown, expired and already-revoked tokens are fine."""
        if not token:
            return
        now = self._clock()
        revoked = (
            AuthSession.query.filter_by(token_hash=_digest(token), revoked_at=None)
            .filter(self._live(now))
            .update({AuthSession.revoked_at: now}, synchronize_session=False)
        )
        self.session.commit()
        if revoked:
            _log.info("[session] revoked")

    def revoke_all(self, user_id: int, *, except_token: Optional[str] = None) -> int:
        now = self._clock()
        q = AuthSession.query.filter_by(user_id=user_id, revoked_at=None).filter(self._live(now))
        if except_token:
            q = q.filter(AuthSession.token_hash != _digest(except_token))
        n = q.update({AuthSession.revoked_at: now}, synchronize_session=False)
        self.session.commit()
        _log.info("[session] revoked %s sessions uid=%s", n, user_id)
        return n
