"""
Handover guards.

Custody moves between CAs in three steps: the holder (or original requester)
asks to hand the folder to another CA, the current holder approves, and the
receiving CA confirms they actually have it. Approval moves custody at once;
a rejected confirmation moves it back.

Like core.lifecycle, these functions only decide. They return a
HandoverTransition and the HandoverService applies it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from core.errors import AuthorizationError, StateConflictError, ValidationError
from core.lifecycle import require_status, require_text
from core.models.case_note import CaseNote, CaseNoteStatus, HandoverStatus
from core.models.handover import (
    HandoverCreate,
    HandoverRequest,
    HandoverRequestStatus,
    HandoverDecision,
    VerificationDecision,
)
from core.models.timeline import (
    TimelineEventType,
    EventMetadata,
    HandoverRequestedMetadata,
    HandoverAcknowledgedMetadata,
    HandoverApprovedMetadata,
    HandoverRejectedMetadata,
    HandoverVerifiedMetadata,
    HandoverOverdueMetadata,
    HandoverEscalatedMetadata,
)


@dataclass(frozen=True)
class HandoverTransition:
    """Updates for both rows plus the case note timeline event."""

    handover_updates: dict[str, Any]
    event_type: TimelineEventType
    metadata: EventMetadata
    note_updates: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None


def _require_handover_status(handover: HandoverRequest, *allowed: HandoverRequestStatus) -> None:
    if handover.status not in allowed:
        required = "|".join(s.value for s in allowed)
        raise StateConflictError(
            f"Handover {handover.id} is {handover.status.value}, expected {required}",
            current_status=handover.status.value,
            required_status=required,
        )


def request_handover(
    note: CaseNote,
    open_handover: HandoverRequest | None,
    from_actor_id: UUID,
    data: HandoverCreate,
    handover_id: UUID,
    now: datetime,
) -> HandoverTransition:
    """
    Open a handover for a held, received case note.

    Args:
        note: Locked case note
        open_handover: Any non-terminal handover already on the case note
        from_actor_id: Current custodian or the original requester
        data: Target actor, reason and receiving context
        handover_id: Id for the new handover row
        now: Transition time

    Returns:
        HandoverTransition whose handover_updates are the full insert values.
    """
    require_status(note, CaseNoteStatus.APPROVED)
    if not note.is_received:
        raise StateConflictError(
            f"Case note {note.request_number} must be received before it can be handed over",
            current_status="not received",
            required_status="received",
        )
    if open_handover is not None or note.has_handover_in_flight:
        raise StateConflictError(
            f"Case note {note.request_number} already has an open handover",
            current_status=note.handover_status.value,
            required_status="no open handover",
        )
    if from_actor_id not in (note.current_custodian_id, note.requested_by_id):
        raise AuthorizationError(
            f"Only the custodian or requester of {note.request_number} can hand it over"
        )
    if data.to_actor_id == note.current_custodian_id:
        raise ValidationError(f"Actor {data.to_actor_id} already holds {note.request_number}")
    reason = require_text(data.reason, "Handover reason")

    return HandoverTransition(
        handover_updates={
            "id": handover_id,
            "case_note_id": note.id,
            "initiated_by_id": from_actor_id,
            "requested_by_id": data.to_actor_id,
            "current_holder_id": note.current_custodian_id,
            "reason": reason,
            "priority": data.priority.value,
            "department_id": data.department_id,
            "doctor_id": data.doctor_id,
            "location_id": data.location_id,
            "previous_department_id": note.department_id,
            "previous_doctor_id": note.doctor_id,
            "previous_location_id": note.location_id,
            "status": HandoverRequestStatus.PENDING.value,
            "requested_at": now,
        },
        note_updates={
            "handover_status": HandoverStatus.PENDING_ACKNOWLEDGEMENT.value,
            "current_handover_id": handover_id,
        },
        event_type=TimelineEventType.HANDOVER_REQUESTED,
        metadata=HandoverRequestedMetadata(
            handover_id=handover_id,
            initiated_by_id=from_actor_id,
            from_custodian_id=note.current_custodian_id,
            to_actor_id=data.to_actor_id,
            reason=reason,
            priority=data.priority.value,
            department_id=data.department_id,
            doctor_id=data.doctor_id,
            location_id=data.location_id,
        ),
        reason=reason,
    )


def acknowledge(
    handover: HandoverRequest,
    actor_id: UUID,
    now: datetime,
    notes: str | None = None,
) -> HandoverTransition:
    """Receiving CA confirms they have seen the request."""
    _require_handover_status(handover, HandoverRequestStatus.PENDING)
    if actor_id != handover.requested_by_id:
        raise AuthorizationError(f"Only the receiving CA can acknowledge handover {handover.id}")
    return HandoverTransition(
        handover_updates={
            "status": HandoverRequestStatus.ACKNOWLEDGED.value,
            "acknowledged_at": now,
        },
        note_updates={"handover_status": HandoverStatus.ACKNOWLEDGED.value},
        event_type=TimelineEventType.HANDOVER_ACKNOWLEDGED,
        metadata=HandoverAcknowledgedMetadata(handover_id=handover.id, notes=notes),
        reason=notes,
    )


def respond(
    handover: HandoverRequest,
    note: CaseNote,
    actor_id: UUID,
    decision: HandoverDecision,
    now: datetime,
    notes: str | None = None,
) -> HandoverTransition:
    """
    Current holder approves or rejects the handover.

    Approval hands custody to the receiving CA immediately and moves the case
    note into the handover's department/doctor/location.
    """
    _require_handover_status(handover, HandoverRequestStatus.PENDING, HandoverRequestStatus.ACKNOWLEDGED)
    if actor_id != handover.current_holder_id:
        raise AuthorizationError(f"Only the current holder can respond to handover {handover.id}")
    if note.current_custodian_id != handover.current_holder_id:
        raise StateConflictError(
            f"Custody of {note.request_number} changed since handover {handover.id} was requested",
            current_status="custodian changed",
            required_status="custodian unchanged",
        )

    if decision == HandoverDecision.REJECT:
        return HandoverTransition(
            handover_updates={
                "status": HandoverRequestStatus.REJECTED.value,
                "responded_at": now,
                "response_notes": notes,
            },
            note_updates={
                "handover_status": HandoverStatus.REJECTED.value,
                "current_handover_id": None,
            },
            event_type=TimelineEventType.HANDOVER_REJECTED,
            metadata=HandoverRejectedMetadata(
                handover_id=handover.id,
                stage="response",
                notes=notes,
            ),
            reason=notes,
        )

    return HandoverTransition(
        handover_updates={
            "status": HandoverRequestStatus.APPROVED_PENDING_VERIFICATION.value,
            "responded_at": now,
            "response_notes": notes,
        },
        note_updates={
            "current_custodian_id": handover.requested_by_id,
            "department_id": handover.department_id,
            "doctor_id": handover.doctor_id,
            "location_id": handover.location_id,
            "handover_status": HandoverStatus.APPROVED_PENDING_VERIFICATION.value,
        },
        event_type=TimelineEventType.HANDOVER_APPROVED,
        metadata=HandoverApprovedMetadata(
            handover_id=handover.id,
            previous_custodian_id=handover.current_holder_id,
            new_custodian_id=handover.requested_by_id,
            department_id=handover.department_id,
            doctor_id=handover.doctor_id,
            location_id=handover.location_id,
            notes=notes,
        ),
        reason=notes,
    )


def verify_receipt(
    handover: HandoverRequest,
    actor_id: UUID,
    decision: VerificationDecision,
    now: datetime,
    notes: str | None = None,
) -> HandoverTransition:
    """
    Receiving CA confirms or denies physically getting the folder.

    Denial restores the previous holder and the previous context.
    """
    _require_handover_status(handover, HandoverRequestStatus.APPROVED_PENDING_VERIFICATION)
    if actor_id != handover.requested_by_id:
        raise AuthorizationError(f"Only the receiving CA can verify handover {handover.id}")

    if decision == VerificationDecision.ACCEPT:
        return HandoverTransition(
            handover_updates={
                "status": HandoverRequestStatus.VERIFIED.value,
                "verified_at": now,
                "verification_notes": notes,
            },
            note_updates={
                "handover_status": HandoverStatus.VERIFIED.value,
                "current_handover_id": None,
            },
            event_type=TimelineEventType.HANDOVER_VERIFIED,
            metadata=HandoverVerifiedMetadata(handover_id=handover.id, verification_notes=notes),
            reason=notes,
        )

    return HandoverTransition(
        handover_updates={
            "status": HandoverRequestStatus.REJECTED.value,
            "verified_at": now,
            "verification_notes": notes,
        },
        note_updates={
            "current_custodian_id": handover.current_holder_id,
            "department_id": handover.previous_department_id,
            "doctor_id": handover.previous_doctor_id,
            "location_id": handover.previous_location_id,
            "handover_status": HandoverStatus.REJECTED.value,
            "current_handover_id": None,
        },
        event_type=TimelineEventType.HANDOVER_REJECTED,
        metadata=HandoverRejectedMetadata(
            handover_id=handover.id,
            stage="verification",
            notes=notes,
            custody_restored_to_id=handover.current_holder_id,
        ),
        reason=notes,
    )


def _pending_longer_than(handover: HandoverRequest, now: datetime, hours: int) -> bool:
    return (
        handover.status == HandoverRequestStatus.PENDING
        and now - handover.requested_at >= timedelta(hours=hours)
    )


def mark_overdue(handover: HandoverRequest, now: datetime, threshold_hours: int) -> HandoverTransition | None:
    """Overdue marking for a still-pending handover, or None if it does not apply."""
    if handover.overdue_at is not None or not _pending_longer_than(handover, now, threshold_hours):
        return None
    return HandoverTransition(
        handover_updates={"overdue_at": now},
        event_type=TimelineEventType.HANDOVER_OVERDUE,
        metadata=HandoverOverdueMetadata(
            handover_id=handover.id,
            pending_since=handover.requested_at,
            threshold_hours=threshold_hours,
        ),
    )


def mark_escalated(handover: HandoverRequest, now: datetime, threshold_hours: int) -> HandoverTransition | None:
    """Escalation for a handover pending past the longer window, or None."""
    if handover.escalated_at is not None or not _pending_longer_than(handover, now, threshold_hours):
        return None
    return HandoverTransition(
        handover_updates={"escalated_at": now},
        event_type=TimelineEventType.HANDOVER_ESCALATED,
        metadata=HandoverEscalatedMetadata(
            handover_id=handover.id,
            pending_since=handover.requested_at,
            threshold_hours=threshold_hours,
        ),
    )
