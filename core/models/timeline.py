"""
Timeline event models.

Each event type owns a metadata model. Writers build the model, the log stores
model_dump(mode="json") as JSONB, and readers validate the stored payload back
through EVENT_METADATA[type]. Unknown keys are rejected on both sides so the
writer and reader cannot drift apart.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, SerializeAsAny, model_validator


class TimelineEventType(str, Enum):
    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    RECEIVED = "received"
    VERIFIED_RECEIVED = "verified_received"
    REJECTED_NOT_RECEIVED = "rejected_not_received"
    RETURNED = "returned"
    RETURNED_VERIFIED = "returned_verified"
    RETURNED_REJECTED = "returned_rejected"
    COMPLETED = "completed"
    DELETED = "deleted"
    HANDOVER_REQUESTED = "handover_requested"
    HANDOVER_ACKNOWLEDGED = "handover_acknowledged"
    HANDOVER_APPROVED = "handover_approved"
    HANDOVER_REJECTED = "handover_rejected"
    HANDOVER_VERIFIED = "handover_verified"
    HANDOVER_OVERDUE = "handover_overdue"
    HANDOVER_ESCALATED = "handover_escalated"
    TIMELINE_CORRECTED = "timeline_corrected"


class EventMetadata(BaseModel):
    """Base for per-type payloads."""

    model_config = ConfigDict(extra="forbid", frozen=True)


# =============================================================================
# REQUEST LIFECYCLE
# =============================================================================


class CreatedMetadata(EventMetadata):
    request_number: str
    priority: str
    purpose: str
    department_id: UUID
    doctor_id: UUID
    location_id: UUID
    batch_id: UUID | None = None
    batch_number: str | None = None
    created_in_batch: bool = False


class ApprovedMetadata(EventMetadata):
    old_status: str
    new_status: str
    approval_remarks: str | None = None
    batch_id: UUID | None = None


class RejectedMetadata(EventMetadata):
    old_status: str
    new_status: str
    rejection_reason: str
    batch_id: UUID | None = None


class ReceivedMetadata(EventMetadata):
    received_by_id: UUID
    received_at: datetime
    reception_notes: str | None = None
    on_behalf_of_id: UUID | None = None
    batch_id: UUID | None = None


class VerifiedReceivedMetadata(EventMetadata):
    batch_id: UUID
    batch_number: str
    approved_count: int
    received_count: int
    counts_match: bool
    verification_notes: str | None = None


class RejectedNotReceivedMetadata(EventMetadata):
    rejection_reason: str
    previous_approved_by_id: UUID | None = None
    was_received: bool


class ReturnedMetadata(EventMetadata):
    return_notes: str | None = None
    was_rejected_return: bool = False


class ReturnVerifiedMetadata(EventMetadata):
    returned_by_id: UUID | None = None
    verification_notes: str | None = None


class ReturnRejectedMetadata(EventMetadata):
    returned_by_id: UUID | None = None
    rejection_reason: str


class CompletedMetadata(EventMetadata):
    old_status: str
    new_status: str
    completion_source: Literal["administrative"]


class DeletedMetadata(EventMetadata):
    request_number: str


# =============================================================================
# HANDOVER
# =============================================================================


class HandoverRequestedMetadata(EventMetadata):
    handover_id: UUID
    initiated_by_id: UUID
    from_custodian_id: UUID
    to_actor_id: UUID
    reason: str
    priority: str
    department_id: UUID
    doctor_id: UUID
    location_id: UUID


class HandoverAcknowledgedMetadata(EventMetadata):
    handover_id: UUID
    notes: str | None = None


class HandoverApprovedMetadata(EventMetadata):
    handover_id: UUID
    previous_custodian_id: UUID
    new_custodian_id: UUID
    department_id: UUID
    doctor_id: UUID
    location_id: UUID
    notes: str | None = None


class HandoverRejectedMetadata(EventMetadata):
    handover_id: UUID
    stage: Literal["response", "verification"]
    notes: str | None = None
    custody_restored_to_id: UUID | None = None


class HandoverVerifiedMetadata(EventMetadata):
    handover_id: UUID
    verification_notes: str | None = None


class HandoverOverdueMetadata(EventMetadata):
    handover_id: UUID
    pending_since: datetime
    threshold_hours: int


class HandoverEscalatedMetadata(EventMetadata):
    handover_id: UUID
    pending_since: datetime
    threshold_hours: int


# =============================================================================
# ADMINISTRATIVE
# =============================================================================


class TimelineCorrectedMetadata(EventMetadata):
    corrected_event_id: UUID
    corrected_event_type: str
    previous_metadata: dict[str, Any]
    corrected_fields: list[str]


EVENT_METADATA: dict[TimelineEventType, type[EventMetadata]] = {
    TimelineEventType.CREATED: CreatedMetadata,
    TimelineEventType.APPROVED: ApprovedMetadata,
    TimelineEventType.REJECTED: RejectedMetadata,
    TimelineEventType.RECEIVED: ReceivedMetadata,
    TimelineEventType.VERIFIED_RECEIVED: VerifiedReceivedMetadata,
    TimelineEventType.REJECTED_NOT_RECEIVED: RejectedNotReceivedMetadata,
    TimelineEventType.RETURNED: ReturnedMetadata,
    TimelineEventType.RETURNED_VERIFIED: ReturnVerifiedMetadata,
    TimelineEventType.RETURNED_REJECTED: ReturnRejectedMetadata,
    TimelineEventType.COMPLETED: CompletedMetadata,
    TimelineEventType.DELETED: DeletedMetadata,
    TimelineEventType.HANDOVER_REQUESTED: HandoverRequestedMetadata,
    TimelineEventType.HANDOVER_ACKNOWLEDGED: HandoverAcknowledgedMetadata,
    TimelineEventType.HANDOVER_APPROVED: HandoverApprovedMetadata,
    TimelineEventType.HANDOVER_REJECTED: HandoverRejectedMetadata,
    TimelineEventType.HANDOVER_VERIFIED: HandoverVerifiedMetadata,
    TimelineEventType.HANDOVER_OVERDUE: HandoverOverdueMetadata,
    TimelineEventType.HANDOVER_ESCALATED: HandoverEscalatedMetadata,
    TimelineEventType.TIMELINE_CORRECTED: TimelineCorrectedMetadata,
}


def metadata_model_for(event_type: TimelineEventType | str) -> type[EventMetadata]:
    """Metadata model registered for an event type."""
    return EVENT_METADATA[TimelineEventType(event_type)]


class TimelineEvent(BaseModel):
    """Stored timeline event with its metadata parsed into the typed model."""

    id: UUID
    case_note_id: UUID
    type: TimelineEventType
    actor_id: UUID | None
    reason: str | None
    metadata: SerializeAsAny[EventMetadata]
    occurred_at: datetime
    sequence: int

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def _parse_metadata(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("metadata"), dict):
            data = dict(data)
            data["metadata"] = metadata_model_for(data["type"]).model_validate(data["metadata"])
        return data
