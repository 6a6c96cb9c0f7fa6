# services/auth.py
"""
Registration, login, logout, password reset and channel verification.

The orchestrator keeps no state of its own; it only sequences calls into
the credential store, the OTP engine, the dispatcher and the session
manager. Registration walks

    Started → ProfileValidated → CredentialCreated
            → {EmailChallengeIssued, PhoneChallengeIssued} → SessionIssued

and skips every channel step the deployment does not require. Pending
verification never blocks the session; the user confirms the code later.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from models.otp_challenge import CHANNELS
from models.user import User
from services.credentials import CredentialStore
from services.dispatch import DispatchResult, VerificationDispatcher
from services.errors import (
    AlreadyVerified,
    InvalidCredentials,
    InvalidResetToken,
    InvalidToken,
    ProviderUnavailable,
    UserNotFound,
    ValidationError,
)
from services.otp import OtpEngine
from services.sessions import SessionManager
from services.settings import AuthSettings
from services.validation import check_email, check_phone, password_problem, validate_registration
from utils.mail import mask

__all__ = ["AuthOrchestrator", "Registration"]

_log = logging.getLogger(__name__)


@dataclass
class Registration:
    token: str
    user: User
    # channel → DispatchResult, or the AuthError that kept it pending
    verification: Dict[str, Any] = field(default_factory=dict)

    def verification_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for channel, outcome in self.verification.items():
            if isinstance(outcome, DispatchResult):
                out[channel] = {"pending": True, **outcome.to_dict()}
            else:
                out[channel] = {"pending": True, "status": "failed", "kind": outcome.kind}
        return out


class AuthOrchestrator:
    def __init__(
        self,
        settings: AuthSettings,
        store: CredentialStore,
        otp: OtpEngine,
        dispatcher: VerificationDispatcher,
        sessions: SessionManager,
    ):
        self.settings = settings
        self.store = store
        self.otp = otp
        self.dispatcher = dispatcher
        self.sessions = sessions

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @staticmethod
    def _check_channel(channel: str) -> str:
        channel = (channel or "").strip().lower()
        if channel not in CHANNELS:
            raise ValidationError(errors={"channel": "channel must be 'email' or 'phone'"})
        return channel

    @staticmethod
    def _check_destination(channel: str, destination: Any) -> str:
        return check_email(destination) if channel == "email" else check_phone(destination)

    def _dispatch(self, channel: str, destination: str, code: str, *,
                  purpose: str = "verification") -> DispatchResult:
        """Re-send the same code a bounded number of times; the challenge stays active."""
        attempts = max(1, self.settings.dispatch_attempts)
        for n in range(1, attempts + 1):
            try:
                return self.dispatcher.send(channel, destination, code, purpose=purpose)
            except ProviderUnavailable:
                _log.warning("[auth] dispatch %s attempt %s/%s failed to=%s",
                             channel, n, attempts, mask(destination))
        raise ProviderUnavailable()

    def _challenge(self, channel: str, destination: str) -> DispatchResult:
        code = self.otp.issue(channel, destination)
        return self._dispatch(channel, destination, code)

    # -------------------------------------------------------------------
    # Register / login / logout
    # -------------------------------------------------------------------
    def register(self, profile: Mapping[str, Any], password: Any) -> Registration:
        clean = validate_registration(
            profile,
            password,
            min_password_length=self.settings.password_min_length,
            phone_required=self.settings.require_phone_verification,
        )
        user = self.store.create_user({**clean, "role": "citizen"}, password)

        verification: Dict[str, Any] = {}
        for channel in CHANNELS:
            if not self.settings.requires(channel):
                continue
            destination = user.email if channel == "email" else user.phone
            try:
                verification[channel] = self._challenge(channel, destination)
            except ProviderUnavailable as e:
                # the user can ask for a resend once the provider is back
                verification[channel] = e

        token = self.sessions.issue(user.id)
        _log.info("[auth] registered uid=%s email=%s pending=%s",
                  user.id, mask(user.email), ",".join(verification) or "-")
        return Registration(token=token, user=user, verification=verification)

    def login(self, email: Any, password: Any) -> Tuple[str, User]:
        # one failure for unknown email, wrong password and disabled account
        user = self.store.find_by_email(str(email or ""))
        ok = self.store.verify_password(user, password if isinstance(password, str) else "")
        if not ok or user is None or not user.is_active:
            _log.info("[auth] login failed email=%s", mask(str(email or "")))
            raise InvalidCredentials()

        self.store.record_login(user)
        token = self.sessions.issue(user.id)
        _log.info("[auth] login uid=%s", user.id)
        return token, user

    def logout(self, token: Optional[str]) -> None:
        self.sessions.revoke(token)

    def current_user(self, token: Optional[str]) -> User:
        user_id = self.sessions.validate(token)
        user = self.store.get(user_id)
        if user is None or not user.is_active:
            raise InvalidToken()
        return user

    def change_password(self, user_id: int, current: Any, new: Any, *, keep_token: Optional[str] = None) -> None:
        user = self.store.get(user_id)
        if user is None:
            raise UserNotFound()
        if not isinstance(current, str) or not user.check_password(current):
            raise InvalidCredentials("Current password is incorrect")
        new = new if isinstance(new, str) else ""
        problem = password_problem(new, self.settings.password_min_length)
        if problem:
            raise ValidationError(errors={"newPassword": problem})
        self.store.change_password(user, new)
        self.sessions.revoke_all(user_id, except_token=keep_token)
        _log.info("[auth] password changed uid=%s", user_id)

    # -------------------------------------------------------------------
    # Password reset
    # -------------------------------------------------------------------
    def request_password_reset(self, email: Any) -> None:
        """
        Email a reset token if the address belongs to an active account.

        Returns None in every case, including unknown addresses and provider
        outages, so the caller cannot tell which emails have accounts.
        """
        email = check_email(email)
        user = self.store.find_by_email(email)
        if user is None or not user.is_active:
            _log.info("[auth] reset requested, no active account email=%s", mask(email))
            return

        token = self.store.issue_reset_token(user.id, self.settings.password_reset_ttl_seconds)
        try:
            self._dispatch("email", user.email, token, purpose="password_reset")
        except ProviderUnavailable:
            # token stays stored; the user can ask again
            _log.warning("[auth] reset email not delivered uid=%s", user.id)

    def reset_password(self, token: Any, new_password: Any) -> Tuple[str, User]:
        """Spend a reset token: set the new password, revoke every session, sign in afresh."""
        new_password = new_password if isinstance(new_password, str) else ""
        problem = password_problem(new_password, self.settings.password_min_length)
        if problem:
            raise ValidationError(errors={"newPassword": problem})

        user = self.store.reset_password(str(token or "").strip(), new_password)
        if user is None:
            raise InvalidResetToken()

        self.sessions.revoke_all(user.id)
        session_token = self.sessions.issue(user.id)
        _log.info("[auth] password reset uid=%s", user.id)
        return session_token, user

    # -------------------------------------------------------------------
    # Channel verification, by user id
    # -------------------------------------------------------------------
    def request_channel_verification(self, user_id: int, channel: str) -> DispatchResult:
        channel = self._check_channel(channel)
        user = self.store.get(user_id)
        if user is None:
            raise UserNotFound()
        if user.is_verified(channel):
            raise AlreadyVerified()
        destination = user.email if channel == "email" else user.phone
        if not destination:
            raise ValidationError("No phone number on file", errors={"phone": "Phone number is required"})
        return self._challenge(channel, destination)

    def confirm_channel_verification(self, user_id: int, channel: str, code: Any) -> User:
        channel = self._check_channel(channel)
        user = self.store.get(user_id)
        if user is None:
            raise UserNotFound()
        destination = user.email if channel == "email" else user.phone
        if not destination:
            raise ValidationError("No phone number on file", errors={"phone": "Phone number is required"})
        if not str(code or "").strip():
            raise ValidationError(errors={"otp": "Verification code is required"})
        self.otp.verify(channel, destination, str(code))
        return self.store.mark_channel_verified(user_id, channel)

    # -------------------------------------------------------------------
    # Channel verification, by destination
    # -------------------------------------------------------------------
    def send_otp(self, channel: str, destination: Any) -> DispatchResult:
        """
        Challenge a bare email/phone; works before an account exists.

        Unauthenticated, so it answers the same whether or not an account
        owns the destination or has already verified it.
        """
        channel = self._check_channel(channel)
        destination = self._check_destination(channel, destination)
        return self._challenge(channel, destination)

    def verify_otp(self, channel: str, destination: Any, code: Any) -> Optional[User]:
        """Consume the code; links the channel to its owner when there is one."""
        channel = self._check_channel(channel)
        destination = self._check_destination(channel, destination)
        if not str(code or "").strip():
            raise ValidationError(errors={"otp": "Verification code is required"})
        self.otp.verify(channel, destination, str(code))
        owner = self.store.find_by_destination(channel, destination)
        if owner is None:
            return None
        return self.store.mark_channel_verified(owner.id, channel)
