"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timedelta, timezone

# Settings are read at import time, so they must be in place before the app loads
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("AWS_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_ireporter.db")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from database import get_session, init_db  # noqa: E402
from errors import DeliveryError  # noqa: E402
from main import app, get_auth_service  # noqa: E402
from services.auth_service import AuthService  # noqa: E402
from services.otp_ledger import SQLOTPLedger  # noqa: E402
from services.otp_service import OTPIssuer  # noqa: E402
from services.password_service import hash_password  # noqa: E402
from services.pending_signup_store import SQLPendingSignupStore  # noqa: E402
from services.user_store import UserStore  # noqa: E402


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class Outbox:
    """Stands in for the email sender and remembers every code it was given."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def __call__(self, email, code, purpose):
        if self.fail:
            raise DeliveryError()
        self.sent.append((email, code, purpose))

    def last_code(self, email):
        for sent_email, code, _ in reversed(self.sent):
            if sent_email == email:
                return code
        return None


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    init_db()
    yield


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with get_session() as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            session.exec(table.delete())
        session.commit()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def user_store():
    return UserStore()


@pytest.fixture
def ledger(clock):
    return SQLOTPLedger(clock=clock)


@pytest.fixture
def pending_store(clock):
    return SQLPendingSignupStore(clock=clock)


@pytest.fixture
def auth_service(user_store, ledger, pending_store, outbox):
    return AuthService(
        users=user_store,
        ledger=ledger,
        issuer=OTPIssuer(ledger, send=outbox),
        pending=pending_store,
    )


@pytest.fixture
def client(auth_service):
    """Create a test client whose auth flows use the fake clock and outbox."""
    app.dependency_overrides[get_auth_service] = lambda: auth_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def registered_user(user_store):
    """A user that already exists, with a known password."""
    return user_store.create(
        email="reporter@example.com",
        password_hash=hash_password("secret123"),
        name="Rita Reporter",
    )


@pytest.fixture
def admin_user(user_store):
    return user_store.create(
        email="admin@example.com",
        password_hash=hash_password("adminpass"),
        name="Ada Admin",
        role="admin",
    )


@pytest.fixture
def broken_session():
    """Session factory for a database that cannot be reached."""

    def factory():
        raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

    return factory
