# services/otp.py
"""
One-time code challenges keyed by (channel, destination).

There is a single row per key. Issuing overwrites it, which is what keeps
at most one active challenge per key and kills any code sent earlier.
Attempt counting and consumption are guarded ``UPDATE`` statements so
concurrent verifies cannot both win or lose an increment.
"""
from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from db import db
from models.otp_challenge import CHANNELS, OtpChallenge
from services.errors import ChallengeNotFound, CodeMismatch, Expired, TooManyAttempts, ValidationError
from services.settings import AuthSettings
from utils.clock import as_utc, now_utc
from utils.mail import mask

__all__ = ["OtpEngine"]

_log = logging.getLogger(__name__)


def _check_channel(channel: str) -> None:
    if channel not in CHANNELS:
        raise ValidationError(errors={"channel": "channel must be 'email' or 'phone'"})


class OtpEngine:
    def __init__(
        self,
        settings: AuthSettings,
        *,
        clock: Callable = now_utc,
        code_factory: Optional[Callable[[], str]] = None,
    ):
        self.settings = settings
        self._clock = clock
        self._code_factory = code_factory or self._random_code

    @property
    def session(self):
        return db.session

    def _random_code(self) -> str:
        n = self.settings.otp_length
        return f"{secrets.randbelow(10 ** n):0{n}d}"

    def _hash_code(self, code: str) -> str:
        return hashlib.sha256((self.settings.otp_pepper + code).encode("utf-8")).hexdigest()

    def _key(self, channel: str, destination: str):
        return OtpChallenge.query.filter_by(channel=channel, destination=destination)

    # -------------------------------------------------------------------
    # Issue
    # -------------------------------------------------------------------
    def issue(self, channel: str, destination: str) -> str:
        """Create or overwrite the challenge for this key and return the plain code."""
        _check_channel(channel)
        code = self._code_factory()
        now = self._clock()
        values = {
            "code_hash": self._hash_code(code),
            "created_at": now,
            "expires_at": now + timedelta(seconds=self.settings.otp_ttl_seconds),
            "attempts": 0,
            "consumed": False,
        }

        # update-or-insert; a concurrent insert of the same key makes us update instead
        for _ in range(3):
            updated = self._key(channel, destination).update(values, synchronize_session=False)
            if not updated:
                self.session.add(OtpChallenge(channel=channel, destination=destination, **values))
            try:
                self.session.commit()
                break
            except IntegrityError:
                self.session.rollback()
        else:
            raise RuntimeError(f"could not store challenge for {channel}")

        _log.info("[otp] issued channel=%s to=%s ttl=%ss", channel, mask(destination),
                  self.settings.otp_ttl_seconds)
        return code

    # -------------------------------------------------------------------
    # Verify
    # -------------------------------------------------------------------
    def peek(self, channel: str, destination: str) -> Optional[OtpChallenge]:
        """Active (unconsumed, unexpired) challenge for the key, if any."""
        row = self._key(channel, destination).filter_by(consumed=False).first()
        if row is None or self._clock() > as_utc(row.expires_at):
            return None
        return row

    def _discard(self, row_id: int) -> None:
        OtpChallenge.query.filter_by(id=row_id).delete(synchronize_session=False)
        self.session.commit()

    def verify(self, channel: str, destination: str, code: str) -> None:
        """
        Check ``code`` against the active challenge; returns None on success.

        Raises ChallengeNotFound, Expired, TooManyAttempts or CodeMismatch.
        A mismatch keeps the challenge so the user can retry; every other
        failure discards it.
        """
        _check_channel(channel)
        row = self._key(channel, destination).filter_by(consumed=False).first()
        if row is None:
            raise ChallengeNotFound()

        row_id, stored_hash = row.id, row.code_hash
        if self._clock() > as_utc(row.expires_at):
            self._discard(row_id)
            _log.info("[otp] expired channel=%s to=%s", channel, mask(destination))
            raise Expired()

        # Count the attempt before looking at the code
        bumped = (
            OtpChallenge.query.filter_by(id=row_id, consumed=False)
            .update({OtpChallenge.attempts: OtpChallenge.attempts + 1}, synchronize_session=False)
        )
        self.session.commit()
        if not bumped:
            raise ChallengeNotFound()

        attempts = self.session.query(OtpChallenge.attempts).filter_by(id=row_id).scalar()
        if attempts is None:
            raise ChallengeNotFound()
        if attempts > self.settings.otp_max_attempts:
            self._discard(row_id)
            _log.warning("[otp] too many attempts channel=%s to=%s", channel, mask(destination))
            raise TooManyAttempts()

        if not secrets.compare_digest(stored_hash, self._hash_code(str(code or "").strip())):
            _log.info("[otp] mismatch channel=%s to=%s attempt=%s", channel, mask(destination), attempts)
            raise CodeMismatch()

        consumed = (
            OtpChallenge.query.filter_by(id=row_id, consumed=False, code_hash=stored_hash)
            .update({OtpChallenge.consumed: True}, synchronize_session=False)
        )
        self.session.commit()
        if not consumed:
            # another request consumed it first
            raise ChallengeNotFound()
        _log.info("[otp] verified channel=%s to=%s", channel, mask(destination))
