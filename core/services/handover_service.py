"""
Handover service for custody transfer between CAs.

Locks the case note before the handover row on every path so concurrent
respond/verify/request calls on one case note serialize cleanly. The overdue
sweep only touches handover rows and skips any a user transition holds.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core import case_note_store as store
from core import custody
from core.authorization import Authorizer, Capability
from core.config import WorkflowConfig
from core.custody import HandoverTransition
from core.errors import NotFoundError, ValidationError
from core.event_bus import EventBus
from core.events import HandoverRequested, HandoverResponded, HandoverOverdue
from core.models import (
    CaseNote,
    HandoverCreate,
    HandoverRequest,
    HandoverRequestStatus,
    HandoverDecision,
    VerificationDecision,
)
from core.reference import ReferenceLookup
from core.timeline import TimelineLog
from core.unit_of_work import atomic
from utils.timezone import hours_ago, now_utc, to_utc

logger = logging.getLogger(__name__)

_HANDOVER_COLUMNS = frozenset({
    "status", "acknowledged_at", "responded_at", "response_notes",
    "verified_at", "verification_notes", "overdue_at", "escalated_at",
})


@dataclass
class SweepResult:
    """Counts from one overdue sweep run."""

    overdue: int = 0
    escalated: int = 0


class HandoverService:
    """Service for handover requests."""

    def __init__(
        self,
        postgres: PostgresClient,
        timeline: TimelineLog,
        authorizer: Authorizer,
        reference: ReferenceLookup,
        event_bus: EventBus,
        config: WorkflowConfig | None = None,
    ):
        self.postgres = postgres
        self.timeline = timeline
        self.authorizer = authorizer
        self.reference = reference
        self.event_bus = event_bus
        self.config = config or WorkflowConfig()

    # -------------------------------------------------------------------------
    # Row helpers
    # -------------------------------------------------------------------------

    def _read_handover(self, tx: Transaction, handover_id: UUID) -> HandoverRequest:
        row = tx.execute_single("SELECT * FROM handover_requests WHERE id = %s", (handover_id,))
        if row is None:
            raise NotFoundError("Handover", handover_id)
        return HandoverRequest.model_validate(row)

    def _lock_handover(self, tx: Transaction, handover_id: UUID) -> HandoverRequest:
        row = tx.execute_single("SELECT * FROM handover_requests WHERE id = %s FOR UPDATE", (handover_id,))
        if row is None:
            raise NotFoundError("Handover", handover_id)
        return HandoverRequest.model_validate(row)

    def _open_handover_for(self, tx: Transaction, case_note_id: UUID) -> HandoverRequest | None:
        row = tx.execute_single(
            """
            SELECT * FROM handover_requests
            WHERE case_note_id = %s
              AND status IN ('pending', 'acknowledged', 'approved_pending_verification')
            FOR UPDATE
            """,
            (case_note_id,)
        )
        return HandoverRequest.model_validate(row) if row else None

    def _update_handover(self, tx: Transaction, handover_id: UUID, updates: dict[str, Any], now: datetime) -> HandoverRequest:
        unknown = set(updates) - _HANDOVER_COLUMNS
        if unknown:
            raise KeyError(f"Not transition-writable: {', '.join(sorted(unknown))}")

        set_parts = [f"{column} = %s" for column in updates]
        params = list(updates.values())
        set_parts.append("updated_at = %s")
        params.extend([now, handover_id])

        row = tx.execute_single(
            f"""
            UPDATE handover_requests
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )
        return HandoverRequest.model_validate(row)

    def _apply(
        self,
        tx: Transaction,
        note: CaseNote,
        handover_id: UUID,
        transition: HandoverTransition,
        actor_id: UUID | None,
        now: datetime,
    ) -> tuple[HandoverRequest, CaseNote]:
        handover = self._update_handover(tx, handover_id, transition.handover_updates, now)
        if transition.note_updates:
            note = store.update_case_note(tx, note.id, transition.note_updates, now)
        self.timeline.append(
            tx,
            case_note_id=note.id,
            event_type=transition.event_type,
            actor_id=actor_id,
            metadata=transition.metadata,
            reason=transition.reason,
            occurred_at=now,
        )
        return handover, note

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def request(self, case_note_id: UUID, actor_id: UUID, data: HandoverCreate) -> HandoverRequest:
        """
        Ask to hand a held case note to another CA.

        Args:
            case_note_id: Approved, received case note
            actor_id: Current custodian or original requester
            data: Receiving CA, reason and target context

        Returns:
            New handover in PENDING status. Custody has not moved.

        Raises:
            ValidationError: Receiving actor cannot hold case notes, or already holds it
            NotFoundError: Case note or target context unknown
            AuthorizationError: Actor is neither custodian nor requester
            StateConflictError: Case note not approved and received, or a handover is already open
        """
        if not self.authorizer.authorize(data.to_actor_id, Capability.HOLD_CASE_NOTES):
            raise ValidationError(f"Actor {data.to_actor_id} cannot hold case notes")
        self.reference.resolve_context(data.department_id, data.doctor_id, data.location_id)

        now = now_utc()
        with atomic(self.postgres, "request handover") as tx:
            note = store.lock_case_note(tx, case_note_id)
            transition = custody.request_handover(
                note, self._open_handover_for(tx, note.id), actor_id, data, uuid4(), now
            )
            values = transition.handover_updates
            columns = list(values) + ["created_at", "updated_at"]
            row = tx.execute_single(
                f"""
                INSERT INTO handover_requests ({', '.join(columns)})
                VALUES ({', '.join(['%s'] * len(columns))})
                RETURNING *
                """,
                tuple(values.values()) + (now, now)
            )
            handover = HandoverRequest.model_validate(row)
            note = store.update_case_note(tx, note.id, transition.note_updates, now)
            self.timeline.append(
                tx,
                case_note_id=note.id,
                event_type=transition.event_type,
                actor_id=actor_id,
                metadata=transition.metadata,
                reason=transition.reason,
                occurred_at=now,
            )

        logger.info(
            "Handover %s requested on %s: %s -> %s",
            handover.id, note.request_number, handover.current_holder_id, handover.requested_by_id,
        )
        self.event_bus.publish(HandoverRequested.create(handover=handover, case_note=note))
        return handover

    def _decide(self, operation: str, handover_id: UUID, actor_id: UUID, decide) -> tuple[HandoverRequest, CaseNote]:
        now = now_utc()
        with atomic(self.postgres, operation) as tx:
            case_note_id = self._read_handover(tx, handover_id).case_note_id
            note = store.lock_case_note(tx, case_note_id)
            handover = self._lock_handover(tx, handover_id)
            transition = decide(handover, note, now)
            handover, note = self._apply(tx, note, handover.id, transition, actor_id, now)

        logger.info(
            "Handover %s on %s: %s by %s -> %s",
            handover.id, note.request_number, operation, actor_id, handover.status.value,
        )
        return handover, note

    def acknowledge(self, handover_id: UUID, actor_id: UUID, notes: str | None = None) -> HandoverRequest:
        """Receiving CA acknowledges a pending request."""
        handover, _ = self._decide(
            "acknowledge", handover_id, actor_id,
            lambda h, n, now: custody.acknowledge(h, actor_id, now, notes),
        )
        return handover

    def respond(
        self,
        handover_id: UUID,
        actor_id: UUID,
        decision: HandoverDecision,
        notes: str | None = None,
    ) -> HandoverRequest:
        """
        Current holder approves or rejects.

        Approval moves custody and context to the receiving CA immediately.
        """
        handover, note = self._decide(
            f"respond ({decision.value})", handover_id, actor_id,
            lambda h, n, now: custody.respond(h, n, actor_id, decision, now, notes),
        )
        self.event_bus.publish(HandoverResponded.create(handover=handover, case_note=note))
        return handover

    def verify(
        self,
        handover_id: UUID,
        actor_id: UUID,
        decision: VerificationDecision,
        notes: str | None = None,
    ) -> HandoverRequest:
        """Receiving CA confirms receipt, or denies it and custody rolls back."""
        handover, _ = self._decide(
            f"verify ({decision.value})", handover_id, actor_id,
            lambda h, n, now: custody.verify_receipt(h, actor_id, decision, now, notes),
        )
        return handover

    # -------------------------------------------------------------------------
    # Overdue sweep
    # -------------------------------------------------------------------------

    def sweep_overdue(self, now: datetime | None = None) -> SweepResult:
        """
        Mark handovers left pending too long.

        Safe to run repeatedly and alongside user traffic: each handover is
        marked at most once per threshold, rows locked by a user transition are
        skipped, and the pending status is re-checked under lock.

        Args:
            now: Reference time, defaults to the current time

        Returns:
            How many handovers were newly marked overdue and escalated
        """
        now = to_utc(now) if now is not None else now_utc()
        overdue_hours = self.config.handover_overdue_hours
        escalation_hours = self.config.handover_escalation_hours
        result = SweepResult()

        candidates = self.postgres.execute(
            """
            SELECT id FROM handover_requests
            WHERE status = 'pending'
              AND ((overdue_at IS NULL AND requested_at <= %s)
                   OR (escalated_at IS NULL AND requested_at <= %s))
            ORDER BY requested_at ASC
            """,
            (hours_ago(overdue_hours, now), hours_ago(escalation_hours, now))
        )

        for candidate in candidates:
            published = []
            with atomic(self.postgres, "overdue sweep") as tx:
                row = tx.execute_single(
                    "SELECT * FROM handover_requests WHERE id = %s AND status = %s FOR UPDATE SKIP LOCKED",
                    (candidate["id"], HandoverRequestStatus.PENDING.value)
                )
                if row is None:
                    continue
                handover = HandoverRequest.model_validate(row)
                note = store.read_case_note(tx, handover.case_note_id)

                for escalated, transition in (
                    (False, custody.mark_overdue(handover, now, overdue_hours)),
                    (True, custody.mark_escalated(handover, now, escalation_hours)),
                ):
                    if transition is None:
                        continue
                    handover = self._update_handover(tx, handover.id, transition.handover_updates, now)
                    self.timeline.append(
                        tx,
                        case_note_id=handover.case_note_id,
                        event_type=transition.event_type,
                        actor_id=None,
                        metadata=transition.metadata,
                        occurred_at=now,
                    )
                    if escalated:
                        result.escalated += 1
                    else:
                        result.overdue += 1
                    published.append(escalated)

            for escalated in published:
                self.event_bus.publish(HandoverOverdue.create(handover=handover, case_note=note, escalated=escalated))

        if result.overdue or result.escalated:
            logger.info("Overdue sweep: %d overdue, %d escalated", result.overdue, result.escalated)
        return result

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_by_id(self, handover_id: UUID) -> HandoverRequest | None:
        row = self.postgres.execute_single(
            "SELECT * FROM handover_requests WHERE id = %s",
            (handover_id,)
        )
        if row is None:
            return None
        return HandoverRequest.model_validate(row)

    def list_incoming(self, actor_id: UUID, open_only: bool = True) -> list[HandoverRequest]:
        """Handovers waiting on the actor as current holder."""
        rows = self.postgres.execute(
            """
            SELECT * FROM handover_requests
            WHERE current_holder_id = %s
              AND (NOT %s OR status IN ('pending', 'acknowledged'))
            ORDER BY requested_at DESC
            """,
            (actor_id, open_only)
        )
        return [HandoverRequest.model_validate(row) for row in rows]

    def list_outgoing(self, actor_id: UUID, open_only: bool = True) -> list[HandoverRequest]:
        """Handovers that would give the actor custody."""
        rows = self.postgres.execute(
            """
            SELECT * FROM handover_requests
            WHERE requested_by_id = %s
              AND (NOT %s OR status IN ('pending', 'acknowledged', 'approved_pending_verification'))
            ORDER BY requested_at DESC
            """,
            (actor_id, open_only)
        )
        return [HandoverRequest.model_validate(row) for row in rows]

    def list_for_case_note(self, case_note_id: UUID) -> list[HandoverRequest]:
        rows = self.postgres.execute(
            """
            SELECT * FROM handover_requests
            WHERE case_note_id = %s
            ORDER BY requested_at ASC
            """,
            (case_note_id,)
        )
        return [HandoverRequest.model_validate(row) for row in rows]
