"""
Pytest configuration and shared fixtures.

Every test gets its own SQLite file under tmp_path, so tests never share
state and threads in concurrency tests see the same database.
"""

import pytest
from fastapi.testclient import TestClient

from messagely.accounts import AccountDirectory
from messagely.config import Settings
from messagely.credentials import CredentialStore
from messagely.ledger import MessageLedger
from messagely.main import create_app
from messagely.notifier import Notifier
from messagely.storage import Database


class RecordingNotifier(Notifier):
    """Collects every receipt it is handed."""

    def __init__(self):
        self.received = []

    def notify(self, message):
        self.received.append(message)


class FailingNotifier(Notifier):
    def __init__(self):
        self.calls = 0

    def notify(self, message):
        self.calls += 1
        raise RuntimeError("sms gateway down")


def run_now(func, *args):
    """Dispatcher that runs the notification inline."""
    func(*args)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'messagely-test.db'}",
        LOG_LEVEL="DEBUG",
        SECRET_KEY="test-secret",
        BCRYPT_ROUNDS=4,
        TWILIO_ACCOUNT_SID=None,
        TWILIO_AUTH_TOKEN=None,
        TWILIO_FROM_NUMBER=None,
    )


@pytest.fixture
def database(settings):
    """Fresh schema for each test."""
    db = Database(settings.DATABASE_URL)
    db.init_db()
    yield db
    db.drop_all()
    db.dispose()


@pytest.fixture
def session(database):
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def credentials() -> CredentialStore:
    # Minimum bcrypt cost keeps the suite fast
    return CredentialStore(rounds=4)


@pytest.fixture
def directory(session, credentials) -> AccountDirectory:
    return AccountDirectory(session, credentials)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ledger(session, notifier) -> MessageLedger:
    return MessageLedger(session, notifier=notifier, dispatch=run_now)


def make_user(username: str, password: str = "secret", **overrides) -> dict:
    user = {
        "username": username,
        "password": password,
        "first_name": username.capitalize(),
        "last_name": "Tester",
        "phone": "+15550000000",
    }
    user.update(overrides)
    return user


@pytest.fixture
def alice_and_bob(directory):
    """Registered users alice/pw1 and bob/pw2."""
    directory.register(make_user("alice", "pw1", phone="+15550000001"))
    directory.register(make_user("bob", "pw2", phone="+15550000002"))
    return "alice", "bob"


@pytest.fixture
def app(settings, notifier):
    return create_app(settings, notifier=notifier)


@pytest.fixture
def client(app, database):
    """Test client; the database fixture creates and later drops the tables."""
    with TestClient(app) as test_client:
        yield test_client
