import pytest

from models.auth_session import AuthSession
from services.errors import ExpiredToken, InvalidToken
from services.sessions import SessionManager
from services.settings import AuthSettings


@pytest.fixture
def user(auth):
    return auth.store.create_user({"name": "Asha Rao", "email": "a@x.com"}, "pw123456")


def test_issue_validate_revoke(auth, user):
    token = auth.sessions.issue(user.id)
    assert auth.sessions.validate(token) == user.id

    auth.sessions.revoke(token)
    with pytest.raises(InvalidToken):
        auth.sessions.validate(token)

    # revoking again, or revoking garbage, is harmless
    auth.sessions.revoke(token)
    auth.sessions.revoke("not-a-token")
    auth.sessions.revoke(None)


def test_tokens_are_opaque_and_stored_as_digest(auth, user):
    token = auth.sessions.issue(user.id)
    other = auth.sessions.issue(user.id)
    assert token != other
    assert len(token) >= 43  # 32 random bytes, urlsafe base64
    stored = [row.token_hash for row in AuthSession.query.all()]
    assert token not in stored and len(stored) == 2


def test_unknown_and_missing_tokens(auth):
    with pytest.raises(InvalidToken):
        auth.sessions.validate("nope")
    with pytest.raises(InvalidToken):
        auth.sessions.validate("")


def test_expiry(auth, user, clock):
    token = auth.sessions.issue(user.id)
    clock.advance(seconds=auth.settings.session_ttl_seconds - 1)
    assert auth.sessions.validate(token) == user.id

    clock.advance(seconds=1)
    with pytest.raises(ExpiredToken):
        auth.sessions.validate(token)


def test_revoked_stays_revoked_after_expiry(auth, user, clock):
    token = auth.sessions.issue(user.id)
    auth.sessions.revoke(token)
    clock.advance(days=30)
    with pytest.raises(InvalidToken):
        auth.sessions.validate(token)


def test_expired_stays_expired_after_revoke(auth, user, clock):
    token = auth.sessions.issue(user.id)
    clock.advance(days=2)
    with pytest.raises(ExpiredToken):
        auth.sessions.validate(token)

    auth.sessions.revoke(token)
    assert auth.sessions.revoke_all(user.id) == 0
    with pytest.raises(ExpiredToken):
        auth.sessions.validate(token)


def test_zero_ttl_never_expires(auth, user, clock):
    sessions = SessionManager(AuthSettings(session_ttl_seconds=0), clock=clock)
    token = sessions.issue(user.id)
    clock.advance(days=365)
    assert sessions.validate(token) == user.id


def test_revoke_all_keeps_current(auth, user):
    keep = auth.sessions.issue(user.id)
    drop = [auth.sessions.issue(user.id) for _ in range(2)]

    assert auth.sessions.revoke_all(user.id, except_token=keep) == 2
    assert auth.sessions.validate(keep) == user.id
    for token in drop:
        with pytest.raises(InvalidToken):
            auth.sessions.validate(token)
