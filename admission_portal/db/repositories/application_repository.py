from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from admission_portal.db.models import (
    ApplicationDocumentRecord,
    ApplicationRecord,
    ArtifactKind,
    WorkflowHistoryRecord,
)
from admission_portal.db.session import AsyncSessionLocal
from admission_portal.schemas.application_schemas import (
    Application,
    UploadedDocument,
    WorkflowHistoryEntry,
)
from admission_portal.utils.datetime_utils import to_utc, utc_now
from admission_portal.utils.errors import ConcurrentUpdateError, NotFoundError
from admission_portal.utils.logging import get_logger

logger = get_logger()

T = TypeVar("T")

# Application fields kept in the JSON `details` column
DETAIL_FIELDS = {
    "personal_details",
    "contact_details",
    "course_details",
    "guardian_details",
    "financial_details",
    "review_status",
    "review_info",
    "terms_accepted",
    "terms_accepted_at",
    "submitted_at",
    "withdrawn_date",
    "application_pdf_locator",
    "resubmission_info",
    "last_modified",
}

_DOCUMENT_COLUMNS = (
    "document_type",
    "custom_label",
    "file_name",
    "storage_locator",
    "mime_type",
    "size_bytes",
    "uploaded_at",
    "document_date",
    "image_width",
    "image_height",
    "status",
    "remarks",
    "reviewed_by",
    "reviewed_at",
    "is_active",
    "superseded_at",
)

_LOCATOR_COLUMNS = {
    ArtifactKind.COMBINED_PDF: "combined_artifact_locator",
    ArtifactKind.DOCUMENTS_ZIP: "documents_zip_locator",
}


def _aware(value):
    return to_utc(value) if value is not None else None


def _stored(value):
    return to_utc(value) if isinstance(value, datetime) else value


class ApplicationRepository:
    """
    Persistence for applications.

    Every write is a conditional update on the `version` column: it only lands
    if nobody else wrote the application since it was read. History rows are
    inserted, never updated, so concurrent writers cannot lose entries.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def exists(self, application_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ApplicationRecord.id).where(
                    ApplicationRecord.application_id == application_id
                )
            )
            return result.scalar_one_or_none() is not None

    async def create(self, application: Application) -> Application:
        """Insert a brand new application with its documents and history."""
        async with self.session_factory() as session:
            async with session.begin():
                record = ApplicationRecord(
                    application_id=application.application_id,
                    version=1,
                    **self._record_values(application),
                )
                session.add(record)
                await session.flush()
                self._add_documents(session, record.id, application.documents, {})
                self._add_history(session, record.id, application.workflow_history, 0)

        logger.info(f"Created application {application.application_id}")
        return await self.load_application(application.application_id)

    async def load_application(self, application_id: str) -> Application:
        """
        Raises:
            NotFoundError: If no application has this id
        """
        async with self.session_factory() as session:
            record = await self._get_record(session, application_id)
            documents = await session.execute(
                select(ApplicationDocumentRecord)
                .where(ApplicationDocumentRecord.application_pk == record.id)
                .order_by(ApplicationDocumentRecord.position)
            )
            history = await session.execute(
                select(WorkflowHistoryRecord)
                .where(WorkflowHistoryRecord.application_pk == record.id)
                .order_by(WorkflowHistoryRecord.sequence)
            )
            return self._to_domain(
                record, documents.scalars().all(), history.scalars().all()
            )

    async def save_application(
        self,
        application: Application,
        expected_version: int,
        persisted_history_count: int,
    ) -> Application:
        """
        Write the application if its stored version still equals `expected_version`.

        Only history entries past `persisted_history_count` are inserted.

        Raises:
            ConcurrentUpdateError: If the stored version moved on
        """
        async with self.session_factory() as session:
            async with session.begin():
                record_pk = (
                    await session.execute(
                        select(ApplicationRecord.id).where(
                            ApplicationRecord.application_id
                            == application.application_id
                        )
                    )
                ).scalar_one_or_none()
                if record_pk is None:
                    raise NotFoundError(
                        f"Application {application.application_id} not found",
                        error_code="APPLICATION_NOT_FOUND",
                    )

                result = await session.execute(
                    update(ApplicationRecord)
                    .where(
                        ApplicationRecord.id == record_pk,
                        ApplicationRecord.version == expected_version,
                    )
                    .values(
                        version=expected_version + 1,
                        updated_at=utc_now(),
                        **self._record_values(application),
                    )
                )
                if result.rowcount != 1:
                    raise ConcurrentUpdateError(
                        f"Application {application.application_id} was modified "
                        f"concurrently (expected version {expected_version})"
                    )

                existing = await session.execute(
                    select(ApplicationDocumentRecord).where(
                        ApplicationDocumentRecord.application_pk == record_pk
                    )
                )
                existing_by_id = {row.id: row for row in existing.scalars().all()}
                self._add_documents(
                    session, record_pk, application.documents, existing_by_id
                )
                self._add_history(
                    session,
                    record_pk,
                    application.workflow_history[persisted_history_count:],
                    persisted_history_count,
                )
                try:
                    await session.flush()
                except IntegrityError as e:
                    # another writer already took these history sequence numbers
                    raise ConcurrentUpdateError(
                        f"History of {application.application_id} was appended "
                        f"concurrently"
                    ) from e

        return await self.load_application(application.application_id)

    async def update(
        self,
        application_id: str,
        mutate: Callable[[Application], T],
        max_retries: int = 3,
    ) -> Tuple[Application, T]:
        """
        Atomic read-modify-write.

        `mutate` runs against a fresh copy on each attempt; if it raises, nothing
        is written. When another writer gets in first the whole cycle is retried
        on the new state.
        """
        for attempt in range(1, max_retries + 1):
            current = await self.load_application(application_id)
            baseline_history = len(current.workflow_history)
            working = current.model_copy(deep=True)
            outcome = mutate(working)

            if working.workflow_history[:baseline_history] != current.workflow_history:
                raise RuntimeError("workflow history is append-only")

            try:
                saved = await self.save_application(
                    working, current.version, baseline_history
                )
                return saved, outcome
            except ConcurrentUpdateError:
                logger.warning(
                    f"Concurrent update on {application_id}, "
                    f"attempt {attempt}/{max_retries}"
                )

        raise ConcurrentUpdateError(
            f"Application {application_id} is being modified by someone else, "
            f"please retry"
        )

    async def set_artifact_locator(
        self, application_id: str, kind: ArtifactKind, locator: str
    ) -> None:
        """Record where the latest artifact lives. Does not touch status or history."""
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(ApplicationRecord)
                    .where(ApplicationRecord.application_id == application_id)
                    .values(**{_LOCATOR_COLUMNS[kind]: locator})
                )
                if result.rowcount != 1:
                    raise NotFoundError(
                        f"Application {application_id} not found",
                        error_code="APPLICATION_NOT_FOUND",
                    )

    async def _get_record(
        self, session: AsyncSession, application_id: str
    ) -> ApplicationRecord:
        result = await session.execute(
            select(ApplicationRecord).where(
                ApplicationRecord.application_id == application_id
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError(
                f"Application {application_id} not found",
                error_code="APPLICATION_NOT_FOUND",
            )
        return record

    @staticmethod
    def _record_values(application: Application) -> Dict:
        return {
            "user_id": application.user_id,
            "submitted_by": application.submitted_by,
            "submitter_role": application.submitter_role,
            "assigned_agent_id": application.assigned_agent_id,
            "status": application.status,
            "current_stage": application.current_stage,
            "details": application.model_dump(mode="json", include=DETAIL_FIELDS),
        }

    @staticmethod
    def _add_documents(
        session: AsyncSession,
        record_pk: str,
        documents: List[UploadedDocument],
        existing_by_id: Dict[str, ApplicationDocumentRecord],
    ) -> None:
        for position, document in enumerate(documents):
            values = {
                column: _stored(getattr(document, column)) for column in _DOCUMENT_COLUMNS
            }
            row = existing_by_id.get(document.id)
            if row is None:
                session.add(
                    ApplicationDocumentRecord(
                        id=document.id,
                        application_pk=record_pk,
                        position=position,
                        **values,
                    )
                )
                continue
            for column, value in values.items():
                if getattr(row, column) != value:
                    setattr(row, column, value)

    @staticmethod
    def _add_history(
        session: AsyncSession,
        record_pk: str,
        entries: List[WorkflowHistoryEntry],
        start_sequence: int,
    ) -> None:
        for offset, entry in enumerate(entries):
            session.add(
                WorkflowHistoryRecord(
                    application_pk=record_pk,
                    sequence=start_sequence + offset,
                    stage=entry.stage,
                    status=entry.status,
                    actor_id=entry.actor_id,
                    actor_role=entry.actor_role,
                    action=entry.action,
                    remarks=entry.remarks,
                    timestamp=to_utc(entry.timestamp),
                )
            )

    @staticmethod
    def _to_domain(
        record: ApplicationRecord,
        documents: List[ApplicationDocumentRecord],
        history: List[WorkflowHistoryRecord],
    ) -> Application:
        data = dict(record.details or {})
        data.update(
            application_id=record.application_id,
            user_id=record.user_id,
            submitted_by=record.submitted_by,
            submitter_role=record.submitter_role,
            assigned_agent_id=record.assigned_agent_id,
            status=record.status,
            current_stage=record.current_stage,
            combined_artifact_locator=record.combined_artifact_locator,
            documents_zip_locator=record.documents_zip_locator,
            version=record.version,
        )
        data["documents"] = [
            UploadedDocument(
                id=row.id,
                document_type=row.document_type,
                custom_label=row.custom_label,
                file_name=row.file_name,
                storage_locator=row.storage_locator,
                mime_type=row.mime_type,
                size_bytes=row.size_bytes,
                uploaded_at=_aware(row.uploaded_at),
                document_date=_aware(row.document_date),
                image_width=row.image_width,
                image_height=row.image_height,
                status=row.status,
                remarks=row.remarks,
                reviewed_by=row.reviewed_by,
                reviewed_at=_aware(row.reviewed_at),
                is_active=row.is_active,
                superseded_at=_aware(row.superseded_at),
            )
            for row in documents
        ]
        data["workflow_history"] = [
            WorkflowHistoryEntry(
                stage=row.stage,
                status=row.status,
                actor_id=row.actor_id,
                actor_role=row.actor_role,
                action=row.action,
                remarks=row.remarks,
                timestamp=_aware(row.timestamp),
            )
            for row in history
        ]
        return Application.model_validate(data)


def get_application_repository(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> ApplicationRepository:
    """Dependency to get the application repository"""
    return ApplicationRepository(session_factory or AsyncSessionLocal)
