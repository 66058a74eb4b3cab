"""Case note (request) domain models."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class CaseNoteStatus(str, Enum):
    """Request lifecycle status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    PENDING_RETURN_VERIFICATION = "pending_return_verification"
    COMPLETED = "completed"


class Priority(str, Enum):
    """How urgently the requester needs the folder."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class HandoverStatus(str, Enum):
    """Handover state as mirrored onto the case note."""

    NONE = "none"
    PENDING_ACKNOWLEDGEMENT = "pending_acknowledgement"
    ACKNOWLEDGED = "acknowledged"
    APPROVED_PENDING_VERIFICATION = "approved_pending_verification"
    VERIFIED = "verified"
    REJECTED = "rejected"
    COMPLETED = "completed"


# Statuses that, on their own, stop a patient from getting another request.
BLOCKING_STATUSES = frozenset({
    CaseNoteStatus.PENDING,
    CaseNoteStatus.APPROVED,
    CaseNoteStatus.IN_PROGRESS,
    CaseNoteStatus.PENDING_RETURN_VERIFICATION,
})

# Handover states that mean custody is mid-transfer.
HANDOVER_IN_FLIGHT = frozenset({
    HandoverStatus.PENDING_ACKNOWLEDGEMENT,
    HandoverStatus.ACKNOWLEDGED,
    HandoverStatus.APPROVED_PENDING_VERIFICATION,
})


class CaseNoteCreate(BaseModel):
    """Data required to request one case note."""

    patient_id: UUID
    department_id: UUID
    doctor_id: UUID
    location_id: UUID
    priority: Priority = Priority.NORMAL
    purpose: str = Field(..., min_length=1, max_length=500)
    remarks: str | None = Field(None, max_length=1000)
    needed_date: date | None = None


class CaseNote(BaseModel):
    """Full case note request as stored."""

    id: UUID
    request_number: str
    patient_id: UUID
    requested_by_id: UUID
    department_id: UUID
    doctor_id: UUID
    location_id: UUID
    priority: Priority
    purpose: str
    remarks: str | None
    needed_date: date | None
    status: CaseNoteStatus
    current_custodian_id: UUID | None

    approved_at: datetime | None
    approved_by_id: UUID | None
    approval_remarks: str | None

    is_received: bool
    received_at: datetime | None
    received_by_id: UUID | None
    reception_notes: str | None
    received_on_behalf_of_id: UUID | None

    is_returned: bool
    returned_at: datetime | None
    returned_by_id: UUID | None
    return_notes: str | None

    is_rejected_return: bool
    rejection_reason: str | None
    rejected_at: datetime | None
    rejected_by_id: UUID | None

    completed_at: datetime | None
    completed_by_id: UUID | None

    handover_status: HandoverStatus
    current_handover_id: UUID | None
    batch_id: UUID | None

    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def is_blocking(self) -> bool:
        """Whether this record prevents a new request for the same patient."""
        if self.status in BLOCKING_STATUSES:
            return True
        return self.is_returned and not self.is_rejected_return

    @property
    def has_handover_in_flight(self) -> bool:
        return self.handover_status in HANDOVER_IN_FLIGHT

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
