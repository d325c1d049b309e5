"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, schema created fresh for every test
- Organization / staff user / client / task factories
- Fake email and SMS senders
- HTTPX AsyncClients for public and staff (context-header) calls
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

import taxdesk.db.models  # noqa: F401
from taxdesk.core.config import settings
from taxdesk.core.context import RequestContext
from taxdesk.core.deps import get_db
from taxdesk.core.errors import TransportError
from taxdesk.db.base import Base
from taxdesk.db.models import Client, Organization, Task, User
from taxdesk.db.session import SessionLocal, engine
from taxdesk.main import app
from taxdesk.services.email_sender import EmailMessage, get_email_sender
from taxdesk.services.sms_sender import get_sms_sender
from taxdesk.utils.datetime_utils import utcnow


# =============================================================================
# Fake senders
# =============================================================================

@dataclass
class FakeEmailSender:
    key: str = "fake"
    sent: list[tuple[EmailMessage, str | None]] = field(default_factory=list)
    fail_for: set[str] = field(default_factory=set)
    fail_all: bool = False

    async def send(self, message: EmailMessage, *, idempotency_key: str | None = None) -> str | None:
        if self.fail_all or message.to in self.fail_for:
            raise TransportError("Email provider unavailable")
        self.sent.append((message, idempotency_key))
        return f"msg-{len(self.sent)}"

    @property
    def recipients(self) -> list[str]:
        return [message.to for message, _ in self.sent]


@dataclass
class FakeSmsSender:
    key: str = "fake"
    sent: list[tuple[str, str]] = field(default_factory=list)

    async def send(self, to: str, body: str) -> str | None:
        self.sent.append((to, body))
        return f"SM{len(self.sent)}"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def local_storage(tmp_path, monkeypatch):
    """Point the local storage backend at a per-test directory."""
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "local")
    monkeypatch.setattr(settings, "LOCAL_STORAGE_PATH", str(tmp_path / "storage"))
    monkeypatch.setattr(settings, "FRONTEND_URL", "https://app.example.com")
    return tmp_path / "storage"


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; app code is free to commit."""
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def now() -> datetime:
    return utcnow()


@pytest.fixture
def org(db: Session) -> Organization:
    org = Organization(name="Harvey & Co", slug=f"harvey-{uuid.uuid4().hex[:8]}")
    db.add(org)
    db.commit()
    return org


@pytest.fixture
def staff_user(db: Session, org: Organization) -> User:
    user = User(
        organization_id=org.id,
        email=f"preparer-{uuid.uuid4().hex[:8]}@example.com",
        display_name="Tax Preparer",
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def ctx(org: Organization, staff_user: User) -> RequestContext:
    return RequestContext(org_id=org.id, user_id=staff_user.id)


@pytest.fixture
def make_client(db: Session, org: Organization):
    def _make(
        first_name: str = "Ann",
        last_name: str = "Lee",
        email: str | None = "ann@example.com",
        phone: str | None = "(555) 123-4567",
    ) -> Client:
        client = Client(
            organization_id=org.id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
        )
        db.add(client)
        db.commit()
        return client

    return _make


@pytest.fixture
def tax_client(make_client) -> Client:
    return make_client()


@pytest.fixture
def task(db: Session, org: Organization, tax_client: Client) -> Task:
    task = Task(organization_id=org.id, client_id=tax_client.id, title="Collect documents")
    db.add(task)
    db.commit()
    return task


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def sms_sender() -> FakeSmsSender:
    return FakeSmsSender()


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(
    db: Session, email_sender: FakeEmailSender, sms_sender: FakeSmsSender
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient for public and internal endpoints."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[get_sms_sender] = lambda: sms_sender

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def staff_client(
    client: AsyncClient, org: Organization, staff_user: User
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient carrying the caller-context headers of a staff member."""
    client.headers.update(
        {"X-Organization-ID": str(org.id), "X-User-ID": str(staff_user.id)}
    )
    yield client
