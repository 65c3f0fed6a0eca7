import secrets
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from pydantic import Field

from admission_portal.config.document_requirements import (
    DocumentRequirementCatalog,
    get_document_requirement_catalog,
)
from admission_portal.config.settings import settings
from admission_portal.db.models import (
    ActorRole,
    ApplicationStage,
    ApplicationStatus,
    DocumentStatus,
)
from admission_portal.db.repositories.application_repository import (
    ApplicationRepository,
    get_application_repository,
)
from admission_portal.schemas.application_schemas import (
    Actor,
    Application,
    DocumentDecision,
    ReviewInfo,
    UploadedDocument,
)
from admission_portal.schemas.camel_base_model import CamelCaseBaseModel
from admission_portal.services.document_validation_service import (
    DocumentValidationResult,
)
from admission_portal.services.notifications import (
    NotificationDispatcher,
    get_notification_dispatcher,
)
from admission_portal.services.review_aggregator import (
    DocumentReviewAggregate,
    aggregate_document_review,
)
from admission_portal.services.workflow import operations
from admission_portal.services.workflow.operations import (
    ApplicationDraftUpdate,
    DocumentDecisionOutcome,
)
from admission_portal.services.workflow.transitions import get_allowed_events
from admission_portal.utils.datetime_utils import utc_now
from admission_portal.utils.errors import BusinessLogicError, ValidationError
from admission_portal.utils.logging import get_logger

logger = get_logger()

APPLICATION_ID_PREFIX = "APP"
MAX_ID_ATTEMPTS = 10


class ApplicationReviewSummary(CamelCaseBaseModel):
    """Everything a reviewer needs on one screen."""

    application_id: str
    status: ApplicationStatus
    current_stage: ApplicationStage
    aggregate: DocumentReviewAggregate
    documents: List[UploadedDocument] = Field(default_factory=list)
    review_info: ReviewInfo
    allowed_actions: List[str] = Field(default_factory=list)


def generate_application_id(now: Optional[datetime] = None) -> str:
    """`APP` + two-digit year + six random digits, e.g. APP24123456."""
    now = now or utc_now()
    return f"{APPLICATION_ID_PREFIX}{now:%y}{secrets.randbelow(1_000_000):06d}"


class ApplicationWorkflowService:
    """
    Runs workflow operations as atomic read-modify-write cycles and notifies
    stakeholders once a transition has been stored.
    """

    def __init__(
        self,
        repository: ApplicationRepository,
        catalog: DocumentRequirementCatalog,
        dispatcher: NotificationDispatcher,
        max_retries: int = settings.WORKFLOW_MAX_RETRIES,
    ):
        self.repository = repository
        self.catalog = catalog
        self.dispatcher = dispatcher
        self.max_retries = max_retries

    async def create_application(
        self,
        actor: Actor,
        update: Optional[ApplicationDraftUpdate] = None,
        user_id: Optional[str] = None,
    ) -> Application:
        """
        Start a new DRAFT application.

        Students apply for themselves; agents and staff must name the student.
        """
        if actor.actor_role == ActorRole.STUDENT:
            user_id = actor.actor_id
        elif not user_id:
            raise ValidationError(
                "Student is required",
                errors=["user id of the student is required when applying on their behalf"],
            )
        if actor.actor_role == ActorRole.AGENT:
            update = update or ApplicationDraftUpdate()
            if update.assigned_agent_id is None:
                update = update.model_copy(update={"assigned_agent_id": actor.actor_id})

        application_id = await self._new_application_id()
        application = operations.new_application(
            application_id, actor, user_id=user_id, update=update
        )
        created = await self.repository.create(application)
        logger.info(
            f"Application {application_id} created by {actor.actor_role.value} {actor.actor_id}"
        )
        return created

    async def get_application(self, application_id: str) -> Application:
        return await self.repository.load_application(application_id)

    async def get_review_summary(self, application_id: str) -> ApplicationReviewSummary:
        application = await self.repository.load_application(application_id)
        active = application.active_documents()
        return ApplicationReviewSummary(
            application_id=application.application_id,
            status=application.status,
            current_stage=application.current_stage,
            aggregate=aggregate_document_review(active),
            documents=active,
            review_info=application.review_info,
            allowed_actions=[
                event.value for event in get_allowed_events(application.status)
            ],
        )

    async def save_draft(
        self, application_id: str, actor: Actor, update: ApplicationDraftUpdate
    ) -> Tuple[Application, List[str]]:
        application, warnings = await self.repository.update(
            application_id,
            lambda app: operations.save_draft(app, actor, update),
            max_retries=self.max_retries,
        )
        return application, warnings

    async def submit(
        self, application_id: str, actor: Actor, terms_accepted: bool = False
    ) -> Tuple[Application, DocumentValidationResult]:
        application, result = await self.repository.update(
            application_id,
            lambda app: operations.submit(app, actor, self.catalog, terms_accepted),
            max_retries=self.max_retries,
        )
        logger.info(f"Application {application_id} submitted by {actor.actor_id}")
        self.dispatcher.dispatch("application_submitted", application, actor)
        return application, result

    async def decide_documents(
        self,
        application_id: str,
        actor: Actor,
        decisions: Sequence[DocumentDecision],
    ) -> Tuple[Application, DocumentDecisionOutcome]:
        application, outcome = await self.repository.update(
            application_id,
            lambda app: operations.decide_documents(app, actor, decisions),
            max_retries=self.max_retries,
        )
        counts = outcome.aggregate.document_counts
        logger.info(
            f"Documents of {application_id} reviewed by {actor.actor_id}: "
            f"{counts.approved} approved, {counts.rejected} rejected, "
            f"{counts.pending} pending"
        )

        if counts.rejected > 0:
            reasons = [
                decision.remarks.strip()
                for decision in decisions
                if decision.status == DocumentStatus.REJECTED and decision.remarks
            ]
            extra = {"remarks": "; ".join(reasons)} if reasons else None
            self.dispatcher.dispatch(
                "application_documents_rejected", application, actor, extra
            )
        else:
            self.dispatcher.dispatch("application_documents_reviewed", application, actor)
        return application, outcome

    async def approve(
        self, application_id: str, actor: Actor, remarks: Optional[str] = None
    ) -> Application:
        application, _ = await self.repository.update(
            application_id,
            lambda app: operations.approve(app, actor, remarks),
            max_retries=self.max_retries,
        )
        logger.info(f"Application {application_id} approved by {actor.actor_id}")
        self.dispatcher.dispatch("application_approved", application, actor)
        return application

    async def reject(
        self,
        application_id: str,
        actor: Actor,
        rejection_reason: Optional[str],
        remarks: Optional[str] = None,
        rejection_message: Optional[str] = None,
    ) -> Application:
        application, _ = await self.repository.update(
            application_id,
            lambda app: operations.reject(
                app, actor, rejection_reason, remarks, rejection_message
            ),
            max_retries=self.max_retries,
        )
        logger.info(f"Application {application_id} rejected by {actor.actor_id}")
        self.dispatcher.dispatch(
            "application_rejected",
            application,
            actor,
            {"remarks": application.review_info.rejection_reason or ""},
        )
        return application

    async def withdraw(
        self, application_id: str, actor: Actor, reason: Optional[str] = None
    ) -> Application:
        application, _ = await self.repository.update(
            application_id,
            lambda app: operations.withdraw(app, actor, reason),
            max_retries=self.max_retries,
        )
        logger.info(f"Application {application_id} withdrawn by {actor.actor_id}")
        self.dispatcher.dispatch("application_withdrawn", application, actor)
        return application

    async def request_resubmission(
        self, application_id: str, actor: Actor, remarks: Optional[str]
    ) -> Application:
        application, _ = await self.repository.update(
            application_id,
            lambda app: operations.request_resubmission(app, actor, remarks),
            max_retries=self.max_retries,
        )
        logger.info(
            f"Resubmission of {application_id} requested by {actor.actor_id}"
        )
        self.dispatcher.dispatch(
            "application_resubmission_requested", application, actor
        )
        return application

    async def resubmit(
        self, application_id: str, actor: Actor, reason: Optional[str] = None
    ) -> Tuple[Application, DocumentValidationResult]:
        application, result = await self.repository.update(
            application_id,
            lambda app: operations.resubmit(app, actor, self.catalog, reason),
            max_retries=self.max_retries,
        )
        logger.info(
            f"Application {application_id} resubmitted "
            f"(#{application.resubmission_info.resubmission_count})"
        )
        self.dispatcher.dispatch("application_resubmitted", application, actor)
        return application, result

    async def _new_application_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            application_id = generate_application_id()
            if not await self.repository.exists(application_id):
                return application_id
        raise BusinessLogicError(
            "Could not allocate an application id", error_code="APPLICATION_ID_EXHAUSTED"
        )


def get_application_workflow_service() -> ApplicationWorkflowService:
    """Dependency to get the application workflow service"""
    return ApplicationWorkflowService(
        repository=get_application_repository(),
        catalog=get_document_requirement_catalog(),
        dispatcher=get_notification_dispatcher(),
    )
