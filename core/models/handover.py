"""Handover (custody transfer between CAs) domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.case_note import Priority


class HandoverRequestStatus(str, Enum):
    """Handover lifecycle status."""

    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    APPROVED_PENDING_VERIFICATION = "approved_pending_verification"
    VERIFIED = "verified"
    REJECTED = "rejected"


OPEN_HANDOVER_STATUSES = frozenset({
    HandoverRequestStatus.PENDING,
    HandoverRequestStatus.ACKNOWLEDGED,
    HandoverRequestStatus.APPROVED_PENDING_VERIFICATION,
})


class HandoverDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class VerificationDecision(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class HandoverCreate(BaseModel):
    """
    Data for a handover request.

    to_actor_id is the CA who will hold the folder afterwards. The target
    department/doctor/location describe where it will be used there.
    """

    to_actor_id: UUID
    reason: str = Field(..., min_length=1, max_length=1000)
    priority: Priority = Priority.NORMAL
    department_id: UUID
    doctor_id: UUID
    location_id: UUID


class HandoverRequest(BaseModel):
    """Full handover request as stored."""

    id: UUID
    case_note_id: UUID
    initiated_by_id: UUID
    requested_by_id: UUID
    current_holder_id: UUID
    reason: str
    priority: Priority
    department_id: UUID
    doctor_id: UUID
    location_id: UUID
    previous_department_id: UUID
    previous_doctor_id: UUID
    previous_location_id: UUID
    status: HandoverRequestStatus
    requested_at: datetime
    acknowledged_at: datetime | None
    responded_at: datetime | None
    response_notes: str | None
    verified_at: datetime | None
    verification_notes: str | None
    overdue_at: datetime | None
    escalated_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_HANDOVER_STATUSES
