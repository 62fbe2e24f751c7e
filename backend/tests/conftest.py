"""Shared pytest fixtures for the Outreach Sequencer test suite.

Provides:
- In-memory async SQLite database per test (no PostgreSQL needed)
- AsyncSession
- FastAPI test client (httpx.AsyncClient over ASGITransport)
- Provider stub behind httpx.MockTransport (no network)
- Seeded organization, contact, template, list, credentials and workflow
"""

import os
from datetime import datetime, timedelta
from typing import AsyncGenerator
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")

from db.base import Base  # noqa: E402

# Fixed "now" for engine passes (naive UTC)
NOW = datetime(2026, 3, 2, 10, 0, 0)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database for each test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a DB session; fixtures commit so the app sees their rows."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Provider stub
# ---------------------------------------------------------------------------

class ProviderStub:
    """Answers WhatsApp, Gmail and Google token requests.

    Queue an ``httpx.Response`` (or an exception to raise) per host to
    override the default successful answer for the next request.
    """

    WHATSAPP = "graph.facebook.com"
    GMAIL = "gmail.googleapis.com"
    TOKEN = "oauth2.googleapis.com"

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.queues: dict[str, list] = {self.WHATSAPP: [], self.GMAIL: [], self.TOKEN: []}

    def queue(self, host: str, *responses) -> None:
        self.queues[host].extend(responses)

    def fail_whatsapp(self, times: int = 1, message: str = "Rate limit hit") -> None:
        for _ in range(times):
            self.queue(self.WHATSAPP, httpx.Response(429, json={"error": {"message": message}}))

    def sent(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    def _default(self, host: str) -> httpx.Response:
        n = len(self.requests)
        if host == self.WHATSAPP:
            return httpx.Response(200, json={"messages": [{"id": f"wamid.TEST{n}"}]})
        if host == self.TOKEN:
            return httpx.Response(200, json={"access_token": "refreshed-token", "expires_in": 3599})
        return httpx.Response(200, json={"id": f"gmail-{n}", "threadId": "thread-1"})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        queue = self.queues.get(host, [])
        if queue:
            item = queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return self._default(host)


@pytest.fixture
def provider() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def test_settings():
    """Settings with a Google OAuth client so token refresh is possible."""
    from app.config import Settings

    return Settings(
        GOOGLE_CLIENT_ID="test-client-id",
        GOOGLE_CLIENT_SECRET="test-client-secret",
        CHANNEL_SEND_TIMEOUT=5.0,
    )


@pytest.fixture
def whatsapp_channel(test_settings, provider):
    from messaging.channels import WhatsAppChannel

    return WhatsAppChannel(settings=test_settings, transport=httpx.MockTransport(provider))


@pytest.fixture
def email_channel(test_settings, provider):
    from messaging.channels import EmailChannel

    return EmailChannel(settings=test_settings, transport=httpx.MockTransport(provider))


@pytest.fixture
def registry(whatsapp_channel, email_channel):
    from messaging.registry import ChannelRegistry

    return ChannelRegistry([whatsapp_channel, email_channel])


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(db_engine, session_factory, registry):
    """Create a FastAPI app instance wired to the test database and provider stub."""
    import db.database as db_mod
    from app.dependencies import get_channel_registry_dep

    original_engine = db_mod.engine
    original_session = db_mod.AsyncSessionLocal
    db_mod.engine = db_engine
    db_mod.AsyncSessionLocal = session_factory

    from app.main import create_app
    test_app = create_app()
    test_app.dependency_overrides[get_channel_registry_dep] = lambda: registry

    yield test_app

    db_mod.engine = original_engine
    db_mod.AsyncSessionLocal = original_session


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def test_org(db_session):
    """Create a test organization."""
    from db.models.organization import Organization

    suffix = uuid4().hex[:8]
    org = Organization(
        id=str(uuid4()),
        name=f"Test Organization {suffix}",
        slug=f"test-org-{suffix}",
        settings={"timezone": "UTC"},
    )
    db_session.add(org)
    await db_session.commit()
    return org


@pytest_asyncio.fixture
async def make_contact(db_session, test_org):
    """Factory creating contacts of the test organization."""
    from db.models.contact import Contact

    async def _make(**overrides):
        values = {
            "organization_id": test_org.id,
            "name": "Alice Martin",
            "email": "alice@example.com",
            "phone": "351912345678",
            "company": "Acme",
            "custom_properties": {"city": "Lisbon", "plan": "pro"},
        }
        values.update(overrides)
        contact = Contact(id=str(uuid4()), **values)
        db_session.add(contact)
        await db_session.commit()
        return contact

    return _make


@pytest_asyncio.fixture
async def test_contact(make_contact):
    return await make_contact()


@pytest_asyncio.fixture
async def make_template(db_session, test_org):
    """Factory creating WhatsApp templates."""
    from db.models.message_template import MessageTemplate

    async def _make(**overrides):
        values = {
            "organization_id": test_org.id,
            "name": "welcome_offer",
            "body": "Hi {{name}}, welcome to {{company}}!",
            "language": "en_US",
            "status": "approved",
        }
        values.update(overrides)
        template = MessageTemplate(id=str(uuid4()), **values)
        db_session.add(template)
        await db_session.commit()
        return template

    return _make


@pytest_asyncio.fixture
async def test_template(make_template):
    return await make_template()


@pytest_asyncio.fixture
async def test_list(db_session, test_org):
    """A list with no filters: every contact of the organization."""
    from db.models.contact import ContactList

    contact_list = ContactList(
        id=str(uuid4()),
        organization_id=test_org.id,
        name="Leads",
        filters=[],
        manual_contact_ids=[],
        inactive_contact_ids=[],
    )
    db_session.add(contact_list)
    await db_session.commit()
    return contact_list


@pytest_asyncio.fixture
async def credentials(db_session, test_org):
    """WhatsApp and Gmail credentials for the test organization."""
    from db.models.integration_setting import IntegrationSetting

    rows = {
        "whatsapp": IntegrationSetting(
            organization_id=test_org.id,
            service_name="whatsapp",
            credentials={"phone_id": "1098765", "access_token": "wa-token"},
        ),
        "gmail": IntegrationSetting(
            organization_id=test_org.id,
            service_name="gmail",
            credentials={
                "access_token": "gmail-token",
                "refresh_token": "gmail-refresh",
                "gmail_address": "sales@acme.test",
            },
        ),
    }
    db_session.add_all(rows.values())
    await db_session.commit()
    return rows


@pytest_asyncio.fixture
async def make_workflow(db_session, test_org, test_list):
    """Factory creating a workflow with the given step dicts."""
    from db.models.workflow import Workflow
    from db.models.workflow_step import WorkflowStep

    async def _make(steps, is_active=True, name="Onboarding"):
        workflow = Workflow(
            id=str(uuid4()),
            organization_id=test_org.id,
            list_id=test_list.id,
            name=name,
            is_active=is_active,
        )
        db_session.add(workflow)
        await db_session.flush()
        for order, step in enumerate(steps, start=1):
            db_session.add(WorkflowStep(workflow_id=workflow.id, step_order=order, **step))
        await db_session.commit()
        return workflow

    return _make


@pytest_asyncio.fixture
async def test_workflow(make_workflow, test_template):
    """Two steps: WhatsApp now, then email one day later at 09:00 UTC."""
    return await make_workflow([
        {
            "channel": "whatsapp",
            "delay_days": 0,
            "template_id": test_template.id,
            "template_name": test_template.name,
        },
        {
            "channel": "email",
            "delay_days": 1,
            "send_time": "09:00",
            "email_subject": "Your {{plan}} plan, {{name}}",
            "email_body": "<p>Hello {{name}} from {{city}}</p>",
        },
    ])


@pytest_asyncio.fixture
async def enroll(db_session):
    """Factory creating an enrollment, due one minute before NOW by default."""
    from db.models.enrollment import WorkflowEnrollment

    async def _enroll(workflow, contact, **overrides):
        values = {
            "workflow_id": workflow.id,
            "contact_id": contact.id,
            "organization_id": workflow.organization_id,
            "current_step": 1,
            "status": "active",
            "enrolled_at": NOW - timedelta(days=1),
            "next_send_at": NOW - timedelta(minutes=1),
            "retry_count": 0,
        }
        values.update(overrides)
        enrollment = WorkflowEnrollment(id=str(uuid4()), **values)
        db_session.add(enrollment)
        await db_session.commit()
        return enrollment

    return _enroll
