"""
Handlers that turn workflow events into in-app notifications.

Each factory captures the NotificationService at wiring time and returns the
handler callable. register_notification_handlers subscribes all of them.
"""

import logging
from typing import Callable

from core.event_bus import EventBus
from core.events import (
    CaseNoteApproved,
    CaseNoteRejected,
    ReturnRejected,
    HandoverRequested,
    HandoverResponded,
    HandoverOverdue,
    BatchProcessed,
)
from core.models import (
    BatchStatus,
    HandoverRequestStatus,
    NotificationCreate,
    NotificationPriority,
    NotificationType,
)

logger = logging.getLogger(__name__)


def handle_case_note_approved(notifications) -> Callable:
    """Tell the requester their case note was approved."""

    def handler(event: CaseNoteApproved):
        note = event.case_note
        notifications.create(NotificationCreate(
            user_id=note.requested_by_id,
            type=NotificationType.REQUEST_APPROVED,
            title="Request approved",
            message=f"Your request {note.request_number} has been approved.",
            data={"request_number": note.request_number},
            related_case_note_id=note.id,
        ))

    return handler


def handle_case_note_rejected(notifications) -> Callable:
    """Tell the requester their case note was rejected and why."""

    def handler(event: CaseNoteRejected):
        note = event.case_note
        notifications.create(NotificationCreate(
            user_id=note.requested_by_id,
            type=NotificationType.REQUEST_REJECTED,
            title="Request rejected",
            message=f"Your request {note.request_number} was rejected: {note.rejection_reason}",
            data={"request_number": note.request_number, "reason": note.rejection_reason},
            priority=NotificationPriority.HIGH,
            related_case_note_id=note.id,
        ))

    return handler


def handle_return_rejected(notifications) -> Callable:
    """Tell the returning CA the folder is theirs again."""

    def handler(event: ReturnRejected):
        note = event.case_note
        notifications.create(NotificationCreate(
            user_id=note.current_custodian_id,
            type=NotificationType.RETURN_REJECTED,
            title="Return rejected",
            message=f"The return of {note.request_number} was rejected: {note.rejection_reason}",
            data={"request_number": note.request_number, "reason": note.rejection_reason},
            priority=NotificationPriority.HIGH,
            related_case_note_id=note.id,
        ))

    return handler


def handle_handover_requested(notifications) -> Callable:
    """Ask the current holder to respond."""

    def handler(event: HandoverRequested):
        handover, note = event.handover, event.case_note
        notifications.create(NotificationCreate(
            user_id=handover.current_holder_id,
            type=NotificationType.HANDOVER_REQUEST,
            title="Handover requested",
            message=f"A handover of {note.request_number} is waiting for your response.",
            data={"handover_id": str(handover.id), "reason": handover.reason},
            priority=NotificationPriority(handover.priority.value),
            related_case_note_id=note.id,
        ))

    return handler


def handle_handover_responded(notifications) -> Callable:
    """Tell the receiving CA whether the holder agreed."""

    def handler(event: HandoverResponded):
        handover, note = event.handover, event.case_note
        approved = handover.status == HandoverRequestStatus.APPROVED_PENDING_VERIFICATION
        notifications.create(NotificationCreate(
            user_id=handover.requested_by_id,
            type=NotificationType.HANDOVER_RESPONSE,
            title="Handover approved" if approved else "Handover rejected",
            message=(
                f"{note.request_number} is now yours. Please verify receipt."
                if approved
                else f"The handover of {note.request_number} was declined."
            ),
            data={"handover_id": str(handover.id), "status": handover.status.value},
            related_case_note_id=note.id,
        ))

    return handler


def handle_handover_overdue(notifications) -> Callable:
    """Nudge both parties when a handover sits pending too long."""

    def handler(event: HandoverOverdue):
        handover, note = event.handover, event.case_note
        label = "escalated" if event.escalated else "overdue"
        for user_id in (handover.current_holder_id, handover.requested_by_id):
            notifications.create(NotificationCreate(
                user_id=user_id,
                type=NotificationType.HANDOVER_OVERDUE,
                title=f"Handover {label}",
                message=f"The handover of {note.request_number} is still pending ({label}).",
                data={"handover_id": str(handover.id), "escalated": event.escalated},
                priority=NotificationPriority.URGENT if event.escalated else NotificationPriority.HIGH,
                related_case_note_id=note.id,
            ))

    return handler


def handle_batch_processed(notifications) -> Callable:
    """Tell the batch requester the outcome."""

    def handler(event: BatchProcessed):
        batch = event.batch
        notifications.create(NotificationCreate(
            user_id=batch.requested_by_id,
            type=NotificationType.BATCH_PROCESSED,
            title=f"Batch {batch.status.value.replace('_', ' ')}",
            message=(
                f"Batch {batch.batch_number}: {batch.approved_count} approved, "
                f"{batch.rejected_count} rejected."
            ),
            data={"batch_id": str(batch.id), "status": batch.status.value},
            priority=NotificationPriority.HIGH if batch.status == BatchStatus.REJECTED else NotificationPriority.NORMAL,
        ))

    return handler


def register_notification_handlers(event_bus: EventBus, notifications) -> None:
    """Subscribe every notification handler to the bus."""
    event_bus.subscribe("CaseNoteApproved", handle_case_note_approved(notifications))
    event_bus.subscribe("CaseNoteRejected", handle_case_note_rejected(notifications))
    event_bus.subscribe("ReturnRejected", handle_return_rejected(notifications))
    event_bus.subscribe("HandoverRequested", handle_handover_requested(notifications))
    event_bus.subscribe("HandoverResponded", handle_handover_responded(notifications))
    event_bus.subscribe("HandoverOverdue", handle_handover_overdue(notifications))
    event_bus.subscribe("BatchProcessed", handle_batch_processed(notifications))
    logger.debug("Notification handlers registered")
