from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from config import TestingConfig
from db import db
from services.dispatch import MockTransport


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FixedCodes:
    """Hands out queued codes, then falls back to the last one."""

    def __init__(self, *codes):
        self.codes = list(codes) or ["123456"]
        self.last = self.codes[0]

    def __call__(self):
        if self.codes:
            self.last = self.codes.pop(0)
        return self.last


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codes():
    return FixedCodes("123456")


@pytest.fixture
def transports():
    return {"email": MockTransport("email"), "phone": MockTransport("phone")}


@pytest.fixture
def make_app(tmp_path, clock, codes, transports):
    def _make(**overrides):
        config = {"SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}"}
        config.update(overrides)
        app = create_app(TestingConfig, config, transports=transports, clock=clock, code_factory=codes)
        return app

    created = []

    def _tracked(**overrides):
        app = _make(**overrides)
        created.append(app)
        return app

    yield _tracked

    for app in created:
        with app.app_context():
            db.session.remove()
            db.drop_all()
            db.engine.dispose()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def auth(ctx):
    return ctx.extensions["civic_auth"]


@pytest.fixture
def register(client):
    def _register(email="a@x.com", password="pw123456", name="Asha Rao", **extra):
        body = {"name": name, "email": email, "password": password, **extra}
        return client.post("/auth/register", json=body)
    return _register


@pytest.fixture
def bearer():
    return lambda token: {"Authorization": f"Bearer {token}"}
