from typing import Any, Dict, List, Optional
from datetime import datetime
import uuid
from sqlalchemy import (
    JSON,
    String,
    Boolean,
    Integer,
    Text,
    ForeignKey,
    Enum,
    Index,
    DateTime,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import enum

from admission_portal.utils.datetime_utils import utc_now


class Base(DeclarativeBase):
    pass


# Enums
class ApplicationStatus(enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RESUBMISSION_REQUIRED = "RESUBMISSION_REQUIRED"
    WITHDRAWN = "WITHDRAWN"


class ApplicationStage(enum.Enum):
    REGISTRATION = "REGISTRATION"
    DOCUMENTS = "DOCUMENTS"
    APPLICATION_PDF = "APPLICATION_PDF"
    TERMS_CONDITIONS = "TERMS_CONDITIONS"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class DocumentStatus(enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class OverallDocumentReviewStatus(enum.Enum):
    NOT_VERIFIED = "NOT_VERIFIED"
    PARTIALLY_APPROVED = "PARTIALLY_APPROVED"
    ALL_APPROVED = "ALL_APPROVED"
    ALL_REJECTED = "ALL_REJECTED"


class WorkflowAction(enum.Enum):
    SAVE_DRAFT = "SAVE_DRAFT"
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REQUEST_MODIFICATION = "REQUEST_MODIFICATION"
    REQUEST_RESUBMISSION = "REQUEST_RESUBMISSION"
    RESUBMIT = "RESUBMIT"
    WITHDRAW = "WITHDRAW"


class ActorRole(enum.Enum):
    STUDENT = "student"
    AGENT = "agent"
    STAFF = "staff"
    SUPER_ADMIN = "super_admin"


class ArtifactKind(enum.Enum):
    COMBINED_PDF = "combined_pdf"
    DOCUMENTS_ZIP = "documents_zip"


class NotificationDeliveryStatus(enum.Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


def _new_id() -> str:
    return str(uuid.uuid4())


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


# Models
class ApplicationRecord(Base, AuditMixin):
    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    application_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    submitted_by: Mapped[str] = mapped_column(String(64), nullable=False)
    submitter_role: Mapped[ActorRole] = mapped_column(Enum(ActorRole), nullable=False)
    assigned_agent_id: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus), nullable=False, default=ApplicationStatus.DRAFT
    )
    current_stage: Mapped[ApplicationStage] = mapped_column(
        Enum(ApplicationStage), nullable=False, default=ApplicationStage.REGISTRATION
    )
    # bumped by every conditional write
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    combined_artifact_locator: Mapped[Optional[str]] = mapped_column(String(1024))
    documents_zip_locator: Mapped[Optional[str]] = mapped_column(String(1024))

    documents: Mapped[List["ApplicationDocumentRecord"]] = relationship(
        back_populates="application", order_by="ApplicationDocumentRecord.position"
    )
    history: Mapped[List["WorkflowHistoryRecord"]] = relationship(
        back_populates="application", order_by="WorkflowHistoryRecord.sequence"
    )

    __table_args__ = (
        Index("IX_applications_user_id", "user_id"),
        Index("IX_applications_status", "status"),
    )


class ApplicationDocumentRecord(Base, AuditMixin):
    __tablename__ = "application_documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    application_pk: Mapped[str] = mapped_column(
        String(36), ForeignKey("applications.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    document_type: Mapped[str] = mapped_column(String(100), nullable=False)
    custom_label: Mapped[Optional[str]] = mapped_column(String(100))
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_locator: Mapped[Optional[str]] = mapped_column(String(1024))
    mime_type: Mapped[Optional[str]] = mapped_column(String(100))
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    document_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    image_width: Mapped[Optional[int]] = mapped_column(Integer)
    image_height: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus), nullable=False, default=DocumentStatus.PENDING
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(64))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    superseded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    application: Mapped["ApplicationRecord"] = relationship(back_populates="documents")

    __table_args__ = (
        Index("IX_application_documents_application_pk", "application_pk"),
    )


class WorkflowHistoryRecord(Base):
    """Append-only; rows are inserted and never updated."""

    __tablename__ = "workflow_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_pk: Mapped[str] = mapped_column(
        String(36), ForeignKey("applications.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    stage: Mapped[ApplicationStage] = mapped_column(Enum(ApplicationStage), nullable=False)
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus), nullable=False
    )
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_role: Mapped[ActorRole] = mapped_column(Enum(ActorRole), nullable=False)
    action: Mapped[WorkflowAction] = mapped_column(Enum(WorkflowAction), nullable=False)
    remarks: Mapped[Optional[str]] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    application: Mapped["ApplicationRecord"] = relationship(back_populates="history")

    __table_args__ = (
        Index(
            "UQ_workflow_history_application_sequence",
            "application_pk",
            "sequence",
            unique=True,
        ),
    )


class NotificationRecord(Base, AuditMixin):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    notification_code: Mapped[str] = mapped_column(String(100), nullable=False)
    application_id: Mapped[str] = mapped_column(String(20), nullable=False)
    recipient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient_role: Mapped[ActorRole] = mapped_column(Enum(ActorRole), nullable=False)
    actor_id: Mapped[Optional[str]] = mapped_column(String(64))
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    notification_metadata: Mapped[Dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    status: Mapped[NotificationDeliveryStatus] = mapped_column(
        Enum(NotificationDeliveryStatus),
        nullable=False,
        default=NotificationDeliveryStatus.PENDING,
    )

    __table_args__ = (Index("IX_notifications_recipient_id", "recipient_id"),)
