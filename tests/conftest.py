import re
from datetime import datetime, timedelta

import pytest

from app import create_app
from config import TestingConfig
from models import db
from models.account import Account
from models.audit_log import AuditLog
from security.password import hash_password
from utils import clock

STRONG_PASSWORD = "Correct$Horse9Battery"
OTHER_PASSWORD = "Another!Pass42word"
THIRD_PASSWORD = "Third&Secret77Pw"

_CODE_RE = re.compile(r"verification code is: (\d{6})")
_TOKEN_RE = re.compile(r"[?&]token=([A-Za-z0-9_\-]+)")


class FrozenClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class Outbox:
    """Captures outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.messages = []
        self.fail = False

    def send(self, to_email, subject, body):
        if self.fail:
            return False, "SMTP unreachable"
        self.messages.append({"to": to_email, "subject": subject, "body": body})
        return True, None

    def __len__(self):
        return len(self.messages)

    def last_code(self) -> str:
        match = _CODE_RE.search(self.messages[-1]["body"])
        assert match, "last message carries no verification code"
        return match.group(1)

    def last_reset_token(self) -> str:
        match = _TOKEN_RE.search(self.messages[-1]["body"])
        assert match, "last message carries no reset link"
        return match.group(1)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def frozen_clock(monkeypatch):
    frozen = FrozenClock(datetime(2026, 10, 1, 12, 0, 0))
    monkeypatch.setattr(clock, "utcnow", frozen)
    return frozen


@pytest.fixture
def outbox(monkeypatch):
    box = Outbox()
    monkeypatch.setattr("utils.emailer.send_email", box.send)
    return box


@pytest.fixture
def make_account(app):
    def _make(email="member@example.com", password=STRONG_PASSWORD, **fields):
        now = clock.utcnow()
        values = {
            "last_password_change": now - timedelta(days=1),
            "created_at": now - timedelta(days=1),
        }
        values.update(fields)
        with app.app_context():
            account = Account(email=email, password_hash=hash_password(password), **values)
            db.session.add(account)
            db.session.commit()
            return account.id

    return _make


@pytest.fixture
def audit_actions(app):
    def _actions(account_id=None):
        with app.app_context():
            query = AuditLog.query
            if account_id is not None:
                query = query.filter_by(account_id=account_id)
            return [row.action for row in query.order_by(AuditLog.id).all()]

    return _actions


@pytest.fixture
def login(outbox):
    """Runs both login steps through the HTTP API and returns the final response."""

    def _login(client, email="member@example.com", password=STRONG_PASSWORD):
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return client.post("/auth/verify-2fa", json={"code": outbox.last_code()})

    return _login


def csrf_headers(client) -> dict:
    cookie = client.get_cookie("csrf_token")
    return {"X-CSRF-Token": cookie.value if cookie else ""}


@pytest.fixture
def csrf():
    return csrf_headers
