import re

import pytest

from models.otp_challenge import OtpChallenge
from services.errors import ChallengeNotFound, CodeMismatch, Expired, TooManyAttempts, ValidationError
from services.otp import OtpEngine


def test_default_codes_are_six_random_digits(auth):
    engine = OtpEngine(auth.settings)
    codes = {engine.issue("email", f"u{i}@x.com") for i in range(20)}
    assert all(re.fullmatch(r"\d{6}", c) for c in codes)
    assert len(codes) > 1


def test_code_is_stored_hashed(auth, codes):
    codes.codes = ["424242"]
    auth.otp.issue("email", "a@x.com")
    row = OtpChallenge.query.filter_by(channel="email", destination="a@x.com").one()
    assert row.code_hash != "424242"
    assert len(row.code_hash) == 64


def test_verify_consumes_once(auth, codes):
    codes.codes = ["111111"]
    auth.otp.issue("email", "a@x.com")

    auth.otp.verify("email", "a@x.com", "111111")
    with pytest.raises(ChallengeNotFound):
        auth.otp.verify("email", "a@x.com", "111111")


def test_reissue_invalidates_previous_code(auth, codes):
    codes.codes = ["111111", "222222"]
    auth.otp.issue("phone", "9876543210")
    auth.otp.issue("phone", "9876543210")

    with pytest.raises(CodeMismatch):
        auth.otp.verify("phone", "9876543210", "111111")
    auth.otp.verify("phone", "9876543210", "222222")
    assert OtpChallenge.query.filter_by(channel="phone").count() == 1


def test_reissue_resets_attempts(auth, codes):
    codes.codes = ["111111", "222222"]
    auth.otp.issue("email", "a@x.com")
    for _ in range(3):
        with pytest.raises(CodeMismatch):
            auth.otp.verify("email", "a@x.com", "000000")
    auth.otp.issue("email", "a@x.com")
    assert auth.otp.peek("email", "a@x.com").attempts == 0


def test_keys_are_independent(auth, codes):
    codes.codes = ["111111", "222222"]
    auth.otp.issue("email", "a@x.com")
    auth.otp.issue("email", "b@x.com")
    auth.otp.verify("email", "a@x.com", "111111")
    auth.otp.verify("email", "b@x.com", "222222")


def test_attempt_bound(auth, codes):
    codes.codes = ["123456"]
    auth.otp.issue("email", "a@x.com")
    limit = auth.settings.otp_max_attempts

    for _ in range(limit):
        with pytest.raises(CodeMismatch):
            auth.otp.verify("email", "a@x.com", "999999")

    # the right code is still refused once the bound is passed
    with pytest.raises(TooManyAttempts):
        auth.otp.verify("email", "a@x.com", "123456")
    with pytest.raises(ChallengeNotFound):
        auth.otp.verify("email", "a@x.com", "123456")


def test_correct_code_on_last_allowed_attempt(auth, codes):
    codes.codes = ["123456"]
    auth.otp.issue("email", "a@x.com")
    for _ in range(auth.settings.otp_max_attempts - 1):
        with pytest.raises(CodeMismatch):
            auth.otp.verify("email", "a@x.com", "999999")
    auth.otp.verify("email", "a@x.com", "123456")


def test_expired_code_is_refused_and_discarded(auth, codes, clock):
    codes.codes = ["123456"]
    auth.otp.issue("email", "a@x.com")
    clock.advance(seconds=auth.settings.otp_ttl_seconds + 1)

    with pytest.raises(Expired):
        auth.otp.verify("email", "a@x.com", "123456")
    with pytest.raises(ChallengeNotFound):
        auth.otp.verify("email", "a@x.com", "123456")


def test_code_valid_right_up_to_expiry(auth, codes, clock):
    codes.codes = ["123456"]
    auth.otp.issue("email", "a@x.com")
    clock.advance(seconds=auth.settings.otp_ttl_seconds)
    auth.otp.verify("email", "a@x.com", "123456")


def test_peek_ignores_expired(auth, clock):
    auth.otp.issue("email", "a@x.com")
    assert auth.otp.peek("email", "a@x.com") is not None
    clock.advance(minutes=30)
    assert auth.otp.peek("email", "a@x.com") is None


def test_unknown_key(auth):
    with pytest.raises(ChallengeNotFound):
        auth.otp.verify("email", "nobody@x.com", "123456")


def test_unknown_channel(auth):
    with pytest.raises(ValidationError):
        auth.otp.issue("fax", "123")
