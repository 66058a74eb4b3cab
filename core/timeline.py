"""
Append-only timeline of everything that happened to a case note.

Every guarded transition appends exactly one event inside the same transaction
as the row change it records, so the timeline and the case note cannot drift
apart. Events are never updated or deleted in the normal flow. The single
exception is the administrative correction command, which rewrites selected
metadata keys of one event and appends a timeline_corrected event carrying the
previous payload.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json
from pydantic import ValidationError as PydanticValidationError

from clients.postgres_client import PostgresClient, Transaction
from core.errors import NotFoundError, ValidationError
from core.models.timeline import (
    TimelineEvent,
    TimelineEventType,
    EventMetadata,
    TimelineCorrectedMetadata,
    metadata_model_for,
)
from core.unit_of_work import atomic
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class TimelineLog:
    """
    Per-case-note event store.

    Usage:
        timeline = TimelineLog(postgres)

        with atomic(postgres, "approve") as tx:
            ... update the case note ...
            timeline.append(
                tx,
                case_note_id=note.id,
                event_type=TimelineEventType.APPROVED,
                actor_id=actor_id,
                metadata=ApprovedMetadata(old_status="pending", new_status="approved"),
            )

        events = timeline.list_for_case_note(note.id)
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def append(
        self,
        tx: Transaction,
        case_note_id: UUID,
        event_type: TimelineEventType,
        actor_id: UUID | None,
        metadata: EventMetadata,
        reason: str | None = None,
        occurred_at: datetime | None = None,
    ) -> TimelineEvent:
        """
        Append one event inside the caller's transaction.

        Args:
            tx: Open transaction that also carries the state change
            case_note_id: Case note the event belongs to
            event_type: Event type; selects the metadata model
            actor_id: Who caused it (None for system jobs such as the overdue sweep)
            metadata: Typed payload, must be the model registered for event_type
            reason: Free-text reason shown alongside the event
            occurred_at: Defaults to now

        Returns:
            The stored event.

        Raises:
            ValidationError: Metadata model does not match event_type
        """
        expected = metadata_model_for(event_type)
        if type(metadata) is not expected:
            raise ValidationError(
                f"{event_type.value} events take {expected.__name__}, got {type(metadata).__name__}"
            )

        row = tx.execute_single(
            """
            INSERT INTO timeline_events (id, case_note_id, type, actor_id, reason, metadata, occurred_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                uuid4(),
                case_note_id,
                event_type.value,
                actor_id,
                reason,
                Json(metadata.model_dump(mode="json")),
                occurred_at or now_utc(),
            )
        )
        return TimelineEvent.model_validate(row)

    def list_for_case_note(self, case_note_id: UUID) -> list[TimelineEvent]:
        """
        All events for a case note, oldest first.

        Events written in the same transaction share occurred_at only when the
        caller passes it explicitly; insertion sequence breaks ties.
        """
        rows = self.postgres.execute(
            """
            SELECT * FROM timeline_events
            WHERE case_note_id = %s
            ORDER BY occurred_at ASC, sequence ASC
            """,
            (case_note_id,)
        )
        return [TimelineEvent.model_validate(row) for row in rows]

    def get(self, event_id: UUID) -> TimelineEvent | None:
        row = self.postgres.execute_single(
            "SELECT * FROM timeline_events WHERE id = %s",
            (event_id,)
        )
        if row is None:
            return None
        return TimelineEvent.model_validate(row)

    def count_for_case_note(self, case_note_id: UUID, event_type: TimelineEventType | None = None) -> int:
        if event_type is None:
            return self.postgres.execute_scalar(
                "SELECT count(*) FROM timeline_events WHERE case_note_id = %s",
                (case_note_id,)
            )
        return self.postgres.execute_scalar(
            "SELECT count(*) FROM timeline_events WHERE case_note_id = %s AND type = %s",
            (case_note_id, event_type.value)
        )

    def correct(
        self,
        event_id: UUID,
        actor_id: UUID,
        reason: str,
        fields: dict[str, Any],
    ) -> TimelineEvent:
        """
        Rewrite selected metadata keys of one event.

        The merged payload must still validate against the event type's model.
        Capability checks are the caller's job.

        Args:
            event_id: Event to correct
            actor_id: Administrator making the correction
            reason: Why the correction is needed
            fields: Metadata keys and their corrected values

        Returns:
            The appended timeline_corrected event.

        Raises:
            NotFoundError: Event does not exist
            ValidationError: Empty change set, correcting a correction,
                or merged metadata invalid
        """
        if not fields:
            raise ValidationError("No metadata fields to correct")
        if not reason or not reason.strip():
            raise ValidationError("Correction reason is required")

        with atomic(self.postgres, "timeline correction") as tx:
            row = tx.execute_single(
                "SELECT * FROM timeline_events WHERE id = %s FOR UPDATE",
                (event_id,)
            )
            if row is None:
                raise NotFoundError("Timeline event", event_id)

            event_type = TimelineEventType(row["type"])
            if event_type == TimelineEventType.TIMELINE_CORRECTED:
                raise ValidationError("Correction events cannot themselves be corrected")

            previous = dict(row["metadata"])
            model = metadata_model_for(event_type)
            try:
                corrected = model.model_validate({**previous, **fields})
            except PydanticValidationError as e:
                raise ValidationError(f"Corrected metadata is invalid for {event_type.value}: {e}") from e

            tx.execute(
                "UPDATE timeline_events SET metadata = %s WHERE id = %s",
                (Json(corrected.model_dump(mode="json")), event_id)
            )

            correction = self.append(
                tx,
                case_note_id=row["case_note_id"],
                event_type=TimelineEventType.TIMELINE_CORRECTED,
                actor_id=actor_id,
                reason=reason.strip(),
                metadata=TimelineCorrectedMetadata(
                    corrected_event_id=event_id,
                    corrected_event_type=event_type.value,
                    previous_metadata=previous,
                    corrected_fields=sorted(fields),
                ),
            )

        logger.info(
            "Timeline event %s corrected by %s (fields: %s)",
            event_id, actor_id, ", ".join(sorted(fields)),
        )
        return correction
