"""Application status state machine.

State flow:
    DRAFT -> UNDER_REVIEW -> APPROVED
                          -> REJECTED -> SUBMITTED (resubmit) -> UNDER_REVIEW ...
                          -> RESUBMISSION_REQUIRED -> UNDER_REVIEW
    DRAFT | SUBMITTED -> WITHDRAWN

Terminal states: APPROVED, WITHDRAWN. REJECTED only leaves through a
resubmission or a fresh staff document decision.

Every (status, event) pair maps to exactly one outcome: the new status, the
stage it implies and the action written to the workflow history. Pairs that are
absent from the table are not allowed.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

from admission_portal.db.models import (
    ApplicationStage,
    ApplicationStatus,
    WorkflowAction,
)
from admission_portal.schemas.application_schemas import (
    Actor,
    Application,
    WorkflowHistoryEntry,
)
from admission_portal.utils.datetime_utils import utc_now
from admission_portal.utils.errors import PreconditionError


class WorkflowEvent(str, Enum):
    SAVE_DRAFT = "SAVE_DRAFT"
    SUBMIT = "SUBMIT"
    DOCUMENTS_REJECTED = "DOCUMENTS_REJECTED"
    DOCUMENTS_ALL_APPROVED = "DOCUMENTS_ALL_APPROVED"
    DOCUMENTS_PARTIALLY_REVIEWED = "DOCUMENTS_PARTIALLY_REVIEWED"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REQUEST_RESUBMISSION = "REQUEST_RESUBMISSION"
    RESUBMIT = "RESUBMIT"
    WITHDRAW = "WITHDRAW"


class Transition(NamedTuple):
    status: ApplicationStatus
    # None keeps the current stage (or the stage the caller asked for)
    stage: Optional[ApplicationStage]
    action: WorkflowAction


S = ApplicationStatus
E = WorkflowEvent

_DOCUMENTS_REJECTED = Transition(
    S.REJECTED, ApplicationStage.REJECTED, WorkflowAction.REQUEST_MODIFICATION
)
_DOCUMENTS_ALL_APPROVED = Transition(
    S.UNDER_REVIEW, ApplicationStage.UNDER_REVIEW, WorkflowAction.APPROVE
)
_DOCUMENTS_PARTIALLY_REVIEWED = Transition(
    S.UNDER_REVIEW, ApplicationStage.DOCUMENTS, WorkflowAction.APPROVE
)
_SUBMIT = Transition(S.UNDER_REVIEW, ApplicationStage.UNDER_REVIEW, WorkflowAction.SUBMIT)
_APPROVE = Transition(S.APPROVED, ApplicationStage.APPROVED, WorkflowAction.APPROVE)
_REJECT = Transition(S.REJECTED, ApplicationStage.REJECTED, WorkflowAction.REJECT)
_WITHDRAW = Transition(S.WITHDRAWN, ApplicationStage.WITHDRAWN, WorkflowAction.WITHDRAW)

TRANSITIONS: Dict[Tuple[ApplicationStatus, WorkflowEvent], Transition] = {
    # Draft edits keep the status
    (S.DRAFT, E.SAVE_DRAFT): Transition(S.DRAFT, None, WorkflowAction.SAVE_DRAFT),
    (S.SUBMITTED, E.SAVE_DRAFT): Transition(S.SUBMITTED, None, WorkflowAction.SAVE_DRAFT),
    (S.REJECTED, E.SAVE_DRAFT): Transition(S.REJECTED, None, WorkflowAction.SAVE_DRAFT),
    (S.RESUBMISSION_REQUIRED, E.SAVE_DRAFT): Transition(
        S.RESUBMISSION_REQUIRED, None, WorkflowAction.SAVE_DRAFT
    ),
    # Submission
    (S.DRAFT, E.SUBMIT): _SUBMIT,
    (S.SUBMITTED, E.SUBMIT): _SUBMIT,
    (S.RESUBMISSION_REQUIRED, E.SUBMIT): _SUBMIT,
    # Staff document decisions
    (S.SUBMITTED, E.DOCUMENTS_REJECTED): _DOCUMENTS_REJECTED,
    (S.UNDER_REVIEW, E.DOCUMENTS_REJECTED): _DOCUMENTS_REJECTED,
    (S.RESUBMISSION_REQUIRED, E.DOCUMENTS_REJECTED): _DOCUMENTS_REJECTED,
    (S.REJECTED, E.DOCUMENTS_REJECTED): _DOCUMENTS_REJECTED,
    (S.SUBMITTED, E.DOCUMENTS_ALL_APPROVED): _DOCUMENTS_ALL_APPROVED,
    (S.UNDER_REVIEW, E.DOCUMENTS_ALL_APPROVED): _DOCUMENTS_ALL_APPROVED,
    (S.RESUBMISSION_REQUIRED, E.DOCUMENTS_ALL_APPROVED): _DOCUMENTS_ALL_APPROVED,
    (S.REJECTED, E.DOCUMENTS_ALL_APPROVED): _DOCUMENTS_ALL_APPROVED,
    (S.SUBMITTED, E.DOCUMENTS_PARTIALLY_REVIEWED): _DOCUMENTS_PARTIALLY_REVIEWED,
    (S.UNDER_REVIEW, E.DOCUMENTS_PARTIALLY_REVIEWED): _DOCUMENTS_PARTIALLY_REVIEWED,
    (S.RESUBMISSION_REQUIRED, E.DOCUMENTS_PARTIALLY_REVIEWED): _DOCUMENTS_PARTIALLY_REVIEWED,
    (S.REJECTED, E.DOCUMENTS_PARTIALLY_REVIEWED): _DOCUMENTS_PARTIALLY_REVIEWED,
    # Final decisions
    (S.SUBMITTED, E.APPROVE): _APPROVE,
    (S.UNDER_REVIEW, E.APPROVE): _APPROVE,
    (S.RESUBMISSION_REQUIRED, E.APPROVE): _APPROVE,
    (S.DRAFT, E.REJECT): _REJECT,
    (S.SUBMITTED, E.REJECT): _REJECT,
    (S.UNDER_REVIEW, E.REJECT): _REJECT,
    (S.RESUBMISSION_REQUIRED, E.REJECT): _REJECT,
    (S.UNDER_REVIEW, E.REQUEST_RESUBMISSION): Transition(
        S.RESUBMISSION_REQUIRED,
        ApplicationStage.DOCUMENTS,
        WorkflowAction.REQUEST_RESUBMISSION,
    ),
    (S.REJECTED, E.RESUBMIT): Transition(
        S.SUBMITTED, ApplicationStage.SUBMITTED, WorkflowAction.RESUBMIT
    ),
    # Withdrawal
    (S.DRAFT, E.WITHDRAW): _WITHDRAW,
    (S.SUBMITTED, E.WITHDRAW): _WITHDRAW,
}


def get_transition(status: ApplicationStatus, event: WorkflowEvent) -> Transition:
    """Look up the outcome of an event.

    Raises:
        PreconditionError: If the event is not allowed in the current status
    """
    transition = TRANSITIONS.get((status, event))
    if transition is None:
        raise PreconditionError(
            f"Cannot {event.value.lower().replace('_', ' ')} an application "
            f"in status {status.value}",
            guard="invalid_status",
        )
    return transition


def can_transition(status: ApplicationStatus, event: WorkflowEvent) -> bool:
    return (status, event) in TRANSITIONS


def get_allowed_events(status: ApplicationStatus) -> List[WorkflowEvent]:
    return [event for (source, event) in TRANSITIONS if source == status]


def apply_transition(
    application: Application,
    event: WorkflowEvent,
    actor: Actor,
    remarks: Optional[str] = None,
    stage: Optional[ApplicationStage] = None,
    now: Optional[datetime] = None,
) -> WorkflowHistoryEntry:
    """
    Move the application along `event` and append exactly one history entry.

    `stage` only applies to transitions that do not fix a stage themselves.
    """
    transition = get_transition(application.status, event)
    now = now or utc_now()

    application.status = transition.status
    application.current_stage = transition.stage or stage or application.current_stage
    application.last_modified = now

    entry = WorkflowHistoryEntry(
        stage=application.current_stage,
        status=application.status,
        actor_id=actor.actor_id,
        actor_role=actor.actor_role,
        action=transition.action,
        remarks=remarks,
        timestamp=now,
    )
    application.workflow_history.append(entry)
    return entry
