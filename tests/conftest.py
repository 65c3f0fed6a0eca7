import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from admission_portal.config.document_requirements import (
    DocumentRequirementCatalog,
    default_catalog,
)
from admission_portal.db.models import ActorRole, Base
from admission_portal.db.repositories.application_repository import (
    ApplicationRepository,
)
from admission_portal.schemas.application_schemas import Actor
from admission_portal.services.application_workflow_service import (
    ApplicationWorkflowService,
)
from admission_portal.services.notifications import NotificationDispatcher
from tests.factories import RecordingNotificationSender, complete_draft_update


# Test database setup
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )


@pytest.fixture
def repository(session_factory) -> ApplicationRepository:
    return ApplicationRepository(session_factory)


@pytest.fixture
def catalog() -> DocumentRequirementCatalog:
    return default_catalog


@pytest.fixture
def notification_sender() -> RecordingNotificationSender:
    return RecordingNotificationSender()


@pytest.fixture
def dispatcher(notification_sender) -> NotificationDispatcher:
    return NotificationDispatcher(notification_sender)


@pytest.fixture
def workflow_service(repository, catalog, dispatcher) -> ApplicationWorkflowService:
    return ApplicationWorkflowService(repository, catalog, dispatcher)


@pytest.fixture
def student() -> Actor:
    return Actor(actor_id="student-1", actor_role=ActorRole.STUDENT)


@pytest.fixture
def agent() -> Actor:
    return Actor(actor_id="agent-1", actor_role=ActorRole.AGENT)


@pytest.fixture
def staff() -> Actor:
    return Actor(actor_id="staff-1", actor_role=ActorRole.STAFF)


@pytest_asyncio.fixture
async def draft_application(workflow_service, student):
    """A stored DRAFT application with every section and required document filled in."""
    return await workflow_service.create_application(
        student, update=complete_draft_update()
    )


@pytest_asyncio.fixture
async def submitted_application(workflow_service, student, draft_application):
    """A stored application in UNDER_REVIEW."""
    application, _ = await workflow_service.submit(
        draft_application.application_id, student
    )
    return application
