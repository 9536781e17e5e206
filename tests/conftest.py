"""
Maijjd - Test Configuration

Pytest fixtures for authentication testing.
Provides test database, key-value store, controllable clock, recording
notifier, client and account fixtures.
"""

import os

# Must be set before maijjd.config is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-do-not-use-in-production")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ADMIN_CREATION_KEY", "test-admin-creation-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("APP_ENV", "test")

from datetime import datetime, timedelta, timezone
from typing import Generator, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from maijjd.app import app, wire_services
from maijjd.auth.database import get_engine, get_session_factory, init_db
from maijjd.auth.kv import MemoryKeyValueStore
from maijjd.auth.lockout import AttemptLimiter
from maijjd.auth.models import Account, AccountStatus, Role
from maijjd.auth.notifications import EmailSender, Notifier, SmsSender
from maijjd.auth.password import hash_password
from maijjd.auth.reset_tokens import ResetTokenIssuer
from maijjd.auth.scopes import admin_scope, general_scope
from maijjd.auth.service import AuthService
from maijjd.auth.store import AccountStore


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite:///:memory:"

JANE_PASSWORD = "Abc12345!"
ADMIN_PASSWORD = "Admin@Pass1"
ADMIN_KEY = os.environ["ADMIN_CREATION_KEY"]


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier(Notifier):
    """Notifier that records messages instead of delivering them."""

    def __init__(self):
        super().__init__(EmailSender(), SmsSender())
        self.sent: List[Tuple[str, str, str]] = []

    async def send_verification_email(self, to, name, code, expires_at) -> bool:
        self.sent.append(("verification_email", to, code))
        return True

    async def send_verification_sms(self, to, code) -> bool:
        self.sent.append(("verification_sms", to, code))
        return True

    async def send_password_reset(self, reset_url, *, email=None, phone=None) -> bool:
        self.sent.append(("password_reset", email or phone, reset_url))
        return True

    def last(self, kind: str) -> Optional[Tuple[str, str, str]]:
        for message in reversed(self.sent):
            if message[0] == kind:
                return message
        return None

    def last_code(self, kind: str) -> str:
        return self.last(kind)[2]

    def last_reset_token(self) -> str:
        url = self.last("password_reset")[2]
        return parse_qs(urlparse(url).query)["token"][0]


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(scope="function")
def kv(clock) -> MemoryKeyValueStore:
    return MemoryKeyValueStore(clock=clock)


@pytest.fixture(scope="function")
def test_engine():
    """Create a fresh test database engine for each test."""
    engine = get_engine(TEST_DATABASE_URL)
    init_db(engine)

    yield engine

    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a database session for testing."""
    with Session(test_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture(scope="function")
def client(test_engine, kv, notifier, clock) -> Generator[TestClient, None, None]:
    """
    Create a test client with fresh database and in-memory collaborators.

    The lifespan is not entered, so app.state keeps the test wiring.
    """
    app.state.db_engine = test_engine
    app.state.db_session_factory = get_session_factory(test_engine)
    wire_services(app.state, kv, notifier, clock)

    yield TestClient(app)


def _service(db_session, kv, notifier, clock, scope) -> AuthService:
    return AuthService(
        store=AccountStore(db_session),
        reset_tokens=ResetTokenIssuer(kv, clock=clock),
        notifier=notifier,
        login_limiter=AttemptLimiter(kv, max_attempts=5, lockout_seconds=900),
        verify_limiter=AttemptLimiter(kv, max_attempts=5, lockout_seconds=900),
        scope=scope,
        clock=clock,
        ip_limiter=AttemptLimiter(kv, max_attempts=20, lockout_seconds=900),
    )


@pytest.fixture(scope="function")
def general_service(db_session, kv, notifier, clock) -> AuthService:
    return _service(db_session, kv, notifier, clock, general_scope())


@pytest.fixture(scope="function")
def admin_service(db_session, kv, notifier, clock) -> AuthService:
    return _service(db_session, kv, notifier, clock, admin_scope())


def make_account(
    db_session: Session,
    clock: FakeClock,
    *,
    name: str,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    password: str = JANE_PASSWORD,
    role: Role = Role.USER,
    status: AccountStatus = AccountStatus.ACTIVE,
) -> Account:
    account = Account(
        name=name,
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role=role,
        status=status,
        created_at=clock(),
        updated_at=clock(),
    )
    db_session.add(account)
    db_session.commit()
    db_session.refresh(account)
    return account


@pytest.fixture(scope="function")
def jane(db_session, clock) -> Account:
    """A general account with email and phone."""
    return make_account(
        db_session, clock, name="Jane", email="jane@x.com", phone="+15551234567"
    )


@pytest.fixture(scope="function")
def admin_account(db_session, clock) -> Account:
    return make_account(
        db_session, clock, name="Root Admin", email="admin@maijjd.com",
        password=ADMIN_PASSWORD, role=Role.ADMIN,
    )


@pytest.fixture(scope="function")
def suspended_account(db_session, clock) -> Account:
    return make_account(
        db_session, clock, name="Sam", email="sam@x.com", status=AccountStatus.SUSPENDED,
    )


def login(client: TestClient, email: str, password: str, prefix: str = "/auth"):
    """Helper to log in and return the response."""
    return client.post(f"{prefix}/login", json={"email": email, "password": password})


def tokens_of(response) -> dict:
    return response.json()["data"]["authentication"]


def auth_headers(access_token: str) -> dict:
    """Create authorization headers for authenticated requests."""
    return {"Authorization": f"Bearer {access_token}"}
