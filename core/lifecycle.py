"""
Request lifecycle guards.

Each transition function inspects a locked CaseNote, raises if the move is not
allowed, and otherwise returns a Transition describing the column updates and
the timeline event to append. Nothing here touches the database; services apply
the Transition inside their transaction.

Capability checks (approve_requests, verify_returns, ...) are done by the
services through the Authorizer. The guards only enforce identity rules such as
"actor must be the current custodian".
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from core.errors import AuthorizationError, StateConflictError, ValidationError
from core.models.batch import BatchRequest
from core.models.case_note import CaseNote, CaseNoteStatus, HandoverStatus
from core.models.timeline import (
    TimelineEventType,
    EventMetadata,
    ApprovedMetadata,
    RejectedMetadata,
    ReceivedMetadata,
    RejectedNotReceivedMetadata,
    ReturnedMetadata,
    ReturnVerifiedMetadata,
    ReturnRejectedMetadata,
    CompletedMetadata,
    DeletedMetadata,
    VerifiedReceivedMetadata,
)


@dataclass(frozen=True)
class Transition:
    """Column updates plus the timeline event that records them."""

    updates: dict[str, Any]
    event_type: TimelineEventType
    metadata: EventMetadata
    reason: str | None = None


def require_status(note: CaseNote, *allowed: CaseNoteStatus) -> None:
    if note.status not in allowed:
        required = "|".join(s.value for s in allowed)
        raise StateConflictError(
            f"Case note {note.request_number} is {note.status.value}, expected {required}",
            current_status=note.status.value,
            required_status=required,
        )


def require_no_handover(note: CaseNote) -> None:
    if note.has_handover_in_flight:
        raise StateConflictError(
            f"Case note {note.request_number} has a handover in progress",
            current_status=note.handover_status.value,
            required_status="no open handover",
        )


def require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def ensure_not_blocked(patient_id: UUID, blocking: CaseNote | None) -> None:
    """
    Refuse a new or newly approved request while the patient has another blocking record.

    Args:
        patient_id: Patient being requested
        blocking: Another blocking case note for the patient, if one exists
    """
    if blocking is not None:
        raise StateConflictError(
            f"Patient {patient_id} already has an active case note request "
            f"({blocking.request_number}, {blocking.status.value})",
            current_status=blocking.status.value,
            required_status="no blocking record",
        )


def approve(
    note: CaseNote,
    actor_id: UUID,
    now: datetime,
    remarks: str | None = None,
    batch_id: UUID | None = None,
) -> Transition:
    require_status(note, CaseNoteStatus.PENDING)
    return Transition(
        updates={
            "status": CaseNoteStatus.APPROVED.value,
            "approved_at": now,
            "approved_by_id": actor_id,
            "approval_remarks": remarks,
        },
        event_type=TimelineEventType.APPROVED,
        metadata=ApprovedMetadata(
            old_status=note.status.value,
            new_status=CaseNoteStatus.APPROVED.value,
            approval_remarks=remarks,
            batch_id=batch_id,
        ),
        reason=remarks,
    )


def reject(
    note: CaseNote,
    actor_id: UUID,
    now: datetime,
    reason: str | None,
    batch_id: UUID | None = None,
) -> Transition:
    """Primary rejection by MR Staff of a pending request."""
    reason = require_text(reason, "Rejection reason")
    require_status(note, CaseNoteStatus.PENDING)
    return Transition(
        updates={
            "status": CaseNoteStatus.REJECTED.value,
            "rejection_reason": reason,
            "rejected_at": now,
            "rejected_by_id": actor_id,
        },
        event_type=TimelineEventType.REJECTED,
        metadata=RejectedMetadata(
            old_status=note.status.value,
            new_status=CaseNoteStatus.REJECTED.value,
            rejection_reason=reason,
            batch_id=batch_id,
        ),
        reason=reason,
    )


def mark_received(
    note: CaseNote,
    actor_id: UUID,
    now: datetime,
    notes: str | None = None,
    on_behalf_of_id: UUID | None = None,
) -> Transition:
    """
    Acknowledge physical receipt of an approved case note.

    The custodian acknowledges for themselves. Another CA may acknowledge on
    the custodian's behalf by naming them in on_behalf_of_id.
    """
    require_status(note, CaseNoteStatus.APPROVED)
    holder_id = on_behalf_of_id or actor_id
    if note.current_custodian_id != holder_id:
        raise AuthorizationError(
            f"Only the current custodian of {note.request_number} can acknowledge receipt"
        )
    if note.is_received:
        raise StateConflictError(
            f"Case note {note.request_number} is already received",
            current_status="received",
            required_status="not received",
        )
    behalf = on_behalf_of_id if on_behalf_of_id and on_behalf_of_id != actor_id else None
    return Transition(
        updates={
            "is_received": True,
            "received_at": now,
            "received_by_id": actor_id,
            "reception_notes": notes,
            "received_on_behalf_of_id": behalf,
        },
        event_type=TimelineEventType.RECEIVED,
        metadata=ReceivedMetadata(
            received_by_id=actor_id,
            received_at=now,
            reception_notes=notes,
            on_behalf_of_id=behalf,
            batch_id=note.batch_id,
        ),
        reason=notes,
    )


def reject_not_received(note: CaseNote, actor_id: UUID, now: datetime, reason: str | None) -> Transition:
    """
    Requester reports that an approved case note never arrived.

    Sends the request back to pending with approval and receipt cleared and
    the requester restored as custodian.
    """
    reason = require_text(reason, "Rejection reason")
    require_status(note, CaseNoteStatus.APPROVED)
    if note.requested_by_id != actor_id:
        raise AuthorizationError(
            f"Only the requester of {note.request_number} can report it as not received"
        )
    if note.is_returned:
        raise StateConflictError(
            f"Case note {note.request_number} has already been returned",
            current_status="returned",
            required_status="not returned",
        )
    require_no_handover(note)
    return Transition(
        updates={
            "status": CaseNoteStatus.PENDING.value,
            "current_custodian_id": note.requested_by_id,
            "approved_at": None,
            "approved_by_id": None,
            "approval_remarks": None,
            "is_received": False,
            "received_at": None,
            "received_by_id": None,
            "reception_notes": None,
            "received_on_behalf_of_id": None,
            "rejection_reason": reason,
            "rejected_at": now,
            "rejected_by_id": actor_id,
        },
        event_type=TimelineEventType.REJECTED_NOT_RECEIVED,
        metadata=RejectedNotReceivedMetadata(
            rejection_reason=reason,
            previous_approved_by_id=note.approved_by_id,
            was_received=note.is_received,
        ),
        reason=reason,
    )


def return_note(note: CaseNote, actor_id: UUID, now: datetime, notes: str | None = None) -> Transition:
    """Custodian sends a received case note back to the records office."""
    require_status(note, CaseNoteStatus.APPROVED)
    if note.current_custodian_id != actor_id:
        raise AuthorizationError(
            f"Only the current custodian of {note.request_number} can return it"
        )
    if not note.is_received:
        raise StateConflictError(
            f"Case note {note.request_number} has not been received",
            current_status="not received",
            required_status="received",
        )
    if note.is_returned and not note.is_rejected_return:
        raise StateConflictError(
            f"Case note {note.request_number} is already returned",
            current_status="returned",
            required_status="not returned or return rejected",
        )
    require_no_handover(note)
    return Transition(
        updates={
            "status": CaseNoteStatus.PENDING_RETURN_VERIFICATION.value,
            "is_returned": True,
            "returned_at": now,
            "returned_by_id": actor_id,
            "return_notes": notes,
            "is_rejected_return": False,
        },
        event_type=TimelineEventType.RETURNED,
        metadata=ReturnedMetadata(
            return_notes=notes,
            was_rejected_return=note.is_rejected_return,
        ),
        reason=notes,
    )


def verify_return(note: CaseNote, actor_id: UUID, now: datetime, notes: str | None = None) -> Transition:
    """MR Staff accepts a return. Custodian is kept as the last holder."""
    require_status(note, CaseNoteStatus.PENDING_RETURN_VERIFICATION)
    return Transition(
        updates={
            "status": CaseNoteStatus.COMPLETED.value,
            "completed_at": now,
            "completed_by_id": actor_id,
            "is_received": False,
            "received_at": None,
            "received_by_id": None,
            "reception_notes": None,
            "received_on_behalf_of_id": None,
            "is_returned": False,
            "returned_at": None,
            "returned_by_id": None,
            "return_notes": None,
            "is_rejected_return": False,
        },
        event_type=TimelineEventType.RETURNED_VERIFIED,
        metadata=ReturnVerifiedMetadata(
            returned_by_id=note.returned_by_id,
            verification_notes=notes,
        ),
        reason=notes,
    )


def reject_return(note: CaseNote, actor_id: UUID, now: datetime, reason: str | None) -> Transition:
    """MR Staff refuses a return; the returning CA holds the folder again."""
    reason = require_text(reason, "Rejection reason")
    require_status(note, CaseNoteStatus.PENDING_RETURN_VERIFICATION)
    custodian = note.returned_by_id or note.current_custodian_id
    return Transition(
        updates={
            "status": CaseNoteStatus.APPROVED.value,
            "is_rejected_return": True,
            "rejection_reason": reason,
            "rejected_at": now,
            "rejected_by_id": actor_id,
            "current_custodian_id": custodian,
        },
        event_type=TimelineEventType.RETURNED_REJECTED,
        metadata=ReturnRejectedMetadata(
            returned_by_id=note.returned_by_id,
            rejection_reason=reason,
        ),
        reason=reason,
    )


def complete(note: CaseNote, actor_id: UUID, now: datetime) -> Transition:
    """Administrative completion. Custodian is kept."""
    require_status(note, CaseNoteStatus.APPROVED, CaseNoteStatus.IN_PROGRESS)
    require_no_handover(note)
    return Transition(
        updates={
            "status": CaseNoteStatus.COMPLETED.value,
            "completed_at": now,
            "completed_by_id": actor_id,
        },
        event_type=TimelineEventType.COMPLETED,
        metadata=CompletedMetadata(
            old_status=note.status.value,
            new_status=CaseNoteStatus.COMPLETED.value,
            completion_source="administrative",
        ),
    )


def delete(note: CaseNote, actor_id: UUID, now: datetime, can_approve: bool) -> Transition:
    """Soft delete a request that nobody has acted on yet."""
    require_status(note, CaseNoteStatus.PENDING)
    if note.requested_by_id != actor_id and not can_approve:
        raise AuthorizationError(
            f"Only the requester or records staff can delete {note.request_number}"
        )
    if note.current_handover_id is not None or note.handover_status != HandoverStatus.NONE:
        raise StateConflictError(
            f"Case note {note.request_number} is attached to a handover",
            current_status=note.handover_status.value,
            required_status=HandoverStatus.NONE.value,
        )
    return Transition(
        updates={"deleted_at": now},
        event_type=TimelineEventType.DELETED,
        metadata=DeletedMetadata(request_number=note.request_number),
    )


def complete_via_batch_receipt(
    note: CaseNote,
    batch: BatchRequest,
    actor_id: UUID,
    now: datetime,
    received_count: int,
    notes: str | None = None,
) -> Transition:
    """
    Close out one child of a fully received batch.

    The custodian is cleared so the patient can be requested again by any CA.
    No other path nulls the custodian.
    """
    require_status(note, CaseNoteStatus.APPROVED)
    if note.batch_id != batch.id:
        raise ValidationError(f"Case note {note.request_number} is not part of batch {batch.batch_number}")
    require_no_handover(note)
    return Transition(
        updates={
            "status": CaseNoteStatus.COMPLETED.value,
            "is_received": True,
            "received_at": note.received_at or now,
            "received_by_id": note.received_by_id or actor_id,
            "completed_at": now,
            "completed_by_id": actor_id,
            "current_custodian_id": None,
        },
        event_type=TimelineEventType.VERIFIED_RECEIVED,
        metadata=VerifiedReceivedMetadata(
            batch_id=batch.id,
            batch_number=batch.batch_number,
            approved_count=batch.approved_count,
            received_count=received_count,
            counts_match=received_count == batch.approved_count,
            verification_notes=notes,
        ),
        reason=notes,
    )
