import os
import tempfile
from datetime import timedelta

os.environ["ENVIRONMENT"] = "test"
os.environ["DB_INIT_MODE"] = "off"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SMTP_HOST"] = "smtp.example.com"
os.environ["SMTP_USER"] = "user@example.com"
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "helpdesk-tests.log"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from helpdesk.core import security
from helpdesk.core.database import Base, get_db
from helpdesk.core.expiring_store import InMemoryExpiringStore
from helpdesk.services.email_service import EmailService
from helpdesk.services.otp_service import OTPService
from helpdesk.services.rate_limiter import rate_limiter
from helpdesk.services.user_service import user_service

STRONG_PASSWORD = "Str0ng!Pass"


class FrozenClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def clock(monkeypatch):
    frozen = FrozenClock(security.utcnow())
    monkeypatch.setattr(security, "utcnow", frozen)
    return frozen


@pytest.fixture
def make_user(db):
    def _make(email="agent@example.com", password=STRONG_PASSWORD, role="client", **fields):
        user = user_service.create_user(
            db,
            email=email,
            name=fields.pop("name", "Test User"),
            password_hash=security.get_password_hash(password),
            role=role,
            is_verified=fields.pop("is_verified", False),
        )
        for key, value in fields.items():
            setattr(user, key, value)
        if fields:
            db.commit()
        return user

    return _make


@pytest.fixture
def client_otp_service():
    return OTPService(InMemoryExpiringStore(), InMemoryExpiringStore(), EmailService())


@pytest.fixture
def client(session_factory, client_otp_service):
    from fastapi.testclient import TestClient

    from helpdesk.api.deps import get_otp_service
    from helpdesk.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_otp_service] = lambda: client_otp_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
