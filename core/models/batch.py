"""Batch request domain models."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.case_note import Priority


class BatchStatus(str, Enum):
    """Batch lifecycle status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PARTIALLY_APPROVED = "partially_approved"


class BatchDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class BatchItem(BaseModel):
    """One patient within a batch request."""

    patient_id: UUID
    remarks: str | None = Field(None, max_length=1000)


class BatchCreate(BaseModel):
    """
    Data for a batch request.

    Every item shares the department/doctor/location/priority/needed date and
    purpose; each carries its own patient and remarks. The upper bound on items
    is enforced against WorkflowConfig.max_batch_size by the service.
    """

    items: list[BatchItem] = Field(..., min_length=1)
    department_id: UUID
    doctor_id: UUID
    location_id: UUID
    priority: Priority = Priority.NORMAL
    purpose: str = Field(..., min_length=1, max_length=500)
    needed_date: date | None = None
    batch_notes: str | None = Field(None, max_length=1000)


class BatchRequest(BaseModel):
    """Full batch request as stored."""

    id: UUID
    batch_number: str
    requested_by_id: UUID
    status: BatchStatus
    batch_notes: str | None
    submitted_at: datetime
    processed_at: datetime | None
    processed_by_id: UUID | None
    processing_notes: str | None
    approved_count: int
    received_count: int
    rejected_count: int
    reported_received_count: int | None
    is_verified: bool
    verified_at: datetime | None
    verified_by_id: UUID | None
    verification_notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def can_be_verified(self) -> bool:
        """Approved (fully or partly), not yet verified, and has something to receive."""
        return (
            self.status in (BatchStatus.APPROVED, BatchStatus.PARTIALLY_APPROVED)
            and not self.is_verified
            and self.approved_count > 0
        )
