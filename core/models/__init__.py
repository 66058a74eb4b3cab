"""Core domain models."""

from core.models.case_note import (
    CaseNote, CaseNoteCreate, CaseNoteStatus, Priority, HandoverStatus,
    BLOCKING_STATUSES, HANDOVER_IN_FLIGHT,
)
from core.models.handover import (
    HandoverRequest, HandoverCreate, HandoverRequestStatus,
    HandoverDecision, VerificationDecision, OPEN_HANDOVER_STATUSES,
)
from core.models.batch import BatchRequest, BatchCreate, BatchItem, BatchStatus, BatchDecision
from core.models.timeline import TimelineEvent, TimelineEventType, EventMetadata, EVENT_METADATA
from core.models.notification import (
    Notification, NotificationCreate, NotificationType, NotificationPriority,
)

__all__ = [
    # CaseNote
    "CaseNote", "CaseNoteCreate", "CaseNoteStatus", "Priority", "HandoverStatus",
    "BLOCKING_STATUSES", "HANDOVER_IN_FLIGHT",
    # Handover
    "HandoverRequest", "HandoverCreate", "HandoverRequestStatus",
    "HandoverDecision", "VerificationDecision", "OPEN_HANDOVER_STATUSES",
    # Batch
    "BatchRequest", "BatchCreate", "BatchItem", "BatchStatus", "BatchDecision",
    # Timeline
    "TimelineEvent", "TimelineEventType", "EventMetadata", "EVENT_METADATA",
    # Notification
    "Notification", "NotificationCreate", "NotificationType", "NotificationPriority",
]
