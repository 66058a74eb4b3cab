"""
Request service for the single case note lifecycle.

Create, approve, reject, receive, return, verify returns, complete and delete.
Every mutation locks the case note row, runs the guard from core.lifecycle,
writes the row and appends the timeline event in one transaction, then
publishes domain events once the transaction has committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core import case_note_store as store
from core import lifecycle
from core.authorization import Authorizer, Capability, require
from core.config import WorkflowConfig
from core.errors import ValidationError
from core.event_bus import EventBus
from core.events import CaseNoteApproved, CaseNoteRejected, ReturnRejected
from core.lifecycle import Transition
from core.models import CaseNote, CaseNoteCreate, CaseNoteStatus, HandoverStatus, TimelineEventType
from core.models.timeline import CreatedMetadata
from core.numbering import next_request_number
from core.reference import ReferenceLookup
from core.timeline import TimelineLog
from core.unit_of_work import atomic
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)


@dataclass
class ReceiptResult:
    """Outcome of a bulk receipt acknowledgement."""

    received: list[CaseNote] = field(default_factory=list)
    already_received: list[UUID] = field(default_factory=list)

    @property
    def received_count(self) -> int:
        return len(self.received)

    @property
    def already_received_count(self) -> int:
        return len(self.already_received)


class ReturnAction:
    VERIFY = "verify"
    REJECT = "reject"


class RequestService:
    """Service for individual case note requests."""

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
    # Shared plumbing
    # -------------------------------------------------------------------------

    def apply(self, tx: Transaction, note: CaseNote, transition: Transition, actor_id: UUID | None, now: datetime) -> CaseNote:
        """Write a decided transition and its timeline event inside tx."""
        updated = store.update_case_note(tx, note.id, transition.updates, now)
        self.timeline.append(
            tx,
            case_note_id=note.id,
            event_type=transition.event_type,
            actor_id=actor_id,
            metadata=transition.metadata,
            reason=transition.reason,
            occurred_at=now,
        )
        return updated

    def _transition(
        self,
        operation: str,
        case_note_id: UUID,
        actor_id: UUID,
        decide: Callable[[Transaction, CaseNote, datetime], Transition],
        patient_lock: bool = False,
    ) -> CaseNote:
        now = now_utc()
        with atomic(self.postgres, operation) as tx:
            if patient_lock:
                store.lock_patient(tx, store.read_case_note(tx, case_note_id).patient_id)
            note = store.lock_case_note(tx, case_note_id)
            transition = decide(tx, note, now)
            updated = self.apply(tx, note, transition, actor_id, now)

        logger.info(
            "Case note %s: %s by %s (%s -> %s)",
            updated.request_number, operation, actor_id, note.status.value, updated.status.value,
        )
        return updated

    # -------------------------------------------------------------------------
    # Create and read
    # -------------------------------------------------------------------------

    def create(self, actor_id: UUID, data: CaseNoteCreate) -> CaseNote:
        """
        Request a case note for a patient.

        Args:
            actor_id: Requesting CA, becomes the first custodian
            data: Patient, context and request details

        Returns:
            Created case note in PENDING status

        Raises:
            AuthorizationError: Actor cannot create requests
            NotFoundError: Patient or context reference unknown
            StateConflictError: Patient already has a blocking case note
        """
        require(self.authorizer, actor_id, Capability.CREATE_REQUESTS)
        self.reference.resolve_patient(data.patient_id)
        self.reference.resolve_context(data.department_id, data.doctor_id, data.location_id)

        now = now_utc()
        with atomic(self.postgres, "create request") as tx:
            store.lock_patient(tx, data.patient_id)
            lifecycle.ensure_not_blocked(data.patient_id, store.find_blocking(tx, data.patient_id))
            note = self.insert_pending(tx, actor_id, data, now)

        logger.info("Case note %s created for patient %s by %s", note.request_number, data.patient_id, actor_id)
        return note

    def insert_pending(
        self,
        tx: Transaction,
        actor_id: UUID,
        data: CaseNoteCreate,
        now: datetime,
        batch_id: UUID | None = None,
        batch_number: str | None = None,
    ) -> CaseNote:
        """Insert one pending case note and its created event. Caller holds the patient lock."""
        request_number = next_request_number(tx, self.config.request_number_prefix, today_utc())
        note = store.insert_case_note(tx, {
            "id": uuid4(),
            "request_number": request_number,
            "patient_id": data.patient_id,
            "requested_by_id": actor_id,
            "department_id": data.department_id,
            "doctor_id": data.doctor_id,
            "location_id": data.location_id,
            "priority": data.priority.value,
            "purpose": data.purpose,
            "remarks": data.remarks,
            "needed_date": data.needed_date,
            "status": CaseNoteStatus.PENDING.value,
            "current_custodian_id": actor_id,
            "handover_status": HandoverStatus.NONE.value,
            "batch_id": batch_id,
            "created_at": now,
            "updated_at": now,
        })
        self.timeline.append(
            tx,
            case_note_id=note.id,
            event_type=TimelineEventType.CREATED,
            actor_id=actor_id,
            reason=data.remarks,
            occurred_at=now,
            metadata=CreatedMetadata(
                request_number=request_number,
                priority=data.priority.value,
                purpose=data.purpose,
                department_id=data.department_id,
                doctor_id=data.doctor_id,
                location_id=data.location_id,
                batch_id=batch_id,
                batch_number=batch_number,
                created_in_batch=batch_id is not None,
            ),
        )
        return note

    def get_by_id(self, case_note_id: UUID) -> CaseNote | None:
        """
        Get case note by ID.

        Returns:
            CaseNote if found and not deleted, None otherwise.
        """
        row = self.postgres.execute_single(
            "SELECT * FROM case_notes WHERE id = %s AND deleted_at IS NULL",
            (case_note_id,)
        )
        if row is None:
            return None
        return CaseNote.model_validate(row)

    def list_held_by(self, actor_id: UUID, limit: int = 100) -> list[CaseNote]:
        """Open case notes the actor is currently custodian of."""
        rows = self.postgres.execute(
            """
            SELECT * FROM case_notes
            WHERE current_custodian_id = %s
              AND deleted_at IS NULL
              AND status NOT IN ('completed', 'rejected')
            ORDER BY updated_at DESC
            LIMIT %s
            """,
            (actor_id, limit)
        )
        return [CaseNote.model_validate(row) for row in rows]

    def list_returnable(self, actor_id: UUID) -> list[CaseNote]:
        """Received case notes the actor may return now, including rejected returns."""
        rows = self.postgres.execute(
            """
            SELECT * FROM case_notes
            WHERE current_custodian_id = %s
              AND status = 'approved'
              AND is_received
              AND (NOT is_returned OR is_rejected_return)
              AND handover_status NOT IN ('pending_acknowledgement', 'acknowledged', 'approved_pending_verification')
              AND deleted_at IS NULL
            ORDER BY received_at ASC
            """,
            (actor_id,)
        )
        return [CaseNote.model_validate(row) for row in rows]

    def list_by_status(self, status: CaseNoteStatus, limit: int = 100) -> list[CaseNote]:
        rows = self.postgres.execute(
            """
            SELECT * FROM case_notes
            WHERE status = %s AND deleted_at IS NULL
            ORDER BY created_at ASC
            LIMIT %s
            """,
            (status.value, limit)
        )
        return [CaseNote.model_validate(row) for row in rows]

    # -------------------------------------------------------------------------
    # MR Staff decisions
    # -------------------------------------------------------------------------

    def approve(self, case_note_id: UUID, actor_id: UUID, remarks: str | None = None) -> CaseNote:
        """
        Approve a pending request.

        Raises:
            AuthorizationError: Actor cannot approve
            StateConflictError: Not pending, or the patient has another blocking record
        """
        require(self.authorizer, actor_id, Capability.APPROVE_REQUESTS)

        def decide(tx: Transaction, note: CaseNote, now: datetime) -> Transition:
            transition = lifecycle.approve(note, actor_id, now, remarks, batch_id=note.batch_id)
            lifecycle.ensure_not_blocked(note.patient_id, store.find_blocking(tx, note.patient_id, exclude_id=note.id))
            return transition

        updated = self._transition("approve", case_note_id, actor_id, decide, patient_lock=True)
        self.event_bus.publish(CaseNoteApproved.create(case_note=updated))
        return updated

    def reject(self, case_note_id: UUID, actor_id: UUID, reason: str | None) -> CaseNote:
        """
        Reject a pending request.

        Raises:
            AuthorizationError: Actor cannot approve/reject
            ValidationError: Reason missing
            StateConflictError: Not pending
        """
        require(self.authorizer, actor_id, Capability.APPROVE_REQUESTS)
        updated = self._transition(
            "reject", case_note_id, actor_id,
            lambda tx, note, now: lifecycle.reject(note, actor_id, now, reason, batch_id=note.batch_id),
        )
        self.event_bus.publish(CaseNoteRejected.create(case_note=updated))
        return updated

    def complete(self, case_note_id: UUID, actor_id: UUID) -> CaseNote:
        """Administratively complete an approved or in-progress request."""
        require(self.authorizer, actor_id, Capability.COMPLETE_REQUESTS)
        return self._transition(
            "complete", case_note_id, actor_id,
            lambda tx, note, now: lifecycle.complete(note, actor_id, now),
        )

    # -------------------------------------------------------------------------
    # CA actions
    # -------------------------------------------------------------------------

    def mark_received(self, case_note_id: UUID, actor_id: UUID, notes: str | None = None) -> CaseNote:
        """Custodian acknowledges physical receipt."""
        return self._transition(
            "mark received", case_note_id, actor_id,
            lambda tx, note, now: lifecycle.mark_received(note, actor_id, now, notes),
        )

    def reject_not_received(self, case_note_id: UUID, actor_id: UUID, reason: str | None) -> CaseNote:
        """Requester reports an approved case note never arrived; request returns to pending."""
        return self._transition(
            "reject not received", case_note_id, actor_id,
            lambda tx, note, now: lifecycle.reject_not_received(note, actor_id, now, reason),
        )

    def return_case_note(self, case_note_id: UUID, actor_id: UUID, notes: str | None = None) -> CaseNote:
        """Custodian returns a received case note for verification."""
        return self._transition(
            "return", case_note_id, actor_id,
            lambda tx, note, now: lifecycle.return_note(note, actor_id, now, notes),
        )

    def delete(self, case_note_id: UUID, actor_id: UUID) -> CaseNote:
        """Soft delete a pending request. Requester or records staff only."""
        can_approve = self.authorizer.authorize(actor_id, Capability.APPROVE_REQUESTS)
        return self._transition(
            "delete", case_note_id, actor_id,
            lambda tx, note, now: lifecycle.delete(note, actor_id, now, can_approve),
        )

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    def verify_received(
        self,
        case_note_ids: list[UUID],
        actor_id: UUID,
        notes: str | None = None,
        on_behalf_of_id: UUID | None = None,
    ) -> ReceiptResult:
        """
        Acknowledge receipt of several approved case notes at once.

        Items already received are counted and skipped. Any other guard failure
        rejects the whole call before anything is written.

        Args:
            case_note_ids: Case notes to acknowledge
            actor_id: Acting CA
            notes: Reception notes stored on each record
            on_behalf_of_id: Custodian the actor is acknowledging for

        Raises:
            ValidationError: No ids given
            AuthorizationError: Actor is not a CA, or not the custodian
            StateConflictError: Any item is not approved
        """
        if not case_note_ids:
            raise ValidationError("At least one case note is required")
        require(self.authorizer, actor_id, Capability.HOLD_CASE_NOTES)

        now = now_utc()
        result = ReceiptResult()
        with atomic(self.postgres, "verify received") as tx:
            notes_by_id = store.lock_case_notes(tx, case_note_ids)
            planned = []
            for note in notes_by_id:
                if note.status == CaseNoteStatus.APPROVED and note.is_received:
                    result.already_received.append(note.id)
                    continue
                planned.append((note, lifecycle.mark_received(note, actor_id, now, notes, on_behalf_of_id)))

            for note, transition in planned:
                result.received.append(self.apply(tx, note, transition, actor_id, now))

        logger.info(
            "Receipt acknowledged by %s: %d received, %d already received",
            actor_id, result.received_count, result.already_received_count,
        )
        return result

    def verify_returns(
        self,
        action: str,
        case_note_ids: list[UUID],
        actor_id: UUID,
        notes: str | None = None,
    ) -> list[CaseNote]:
        """
        Accept or reject several returned case notes.

        Args:
            action: "verify" to accept, "reject" to send back to the CA
            case_note_ids: Returned case notes
            actor_id: MR Staff member
            notes: Verification notes, or the rejection reason (required to reject)

        Returns:
            Updated case notes in id order

        Raises:
            ValidationError: Unknown action, no ids, or missing rejection reason
            AuthorizationError: Actor cannot verify returns
            StateConflictError: Any item is not awaiting return verification
        """
        if action not in (ReturnAction.VERIFY, ReturnAction.REJECT):
            raise ValidationError(f"Unknown action '{action}'. Use 'verify' or 'reject'")
        if not case_note_ids:
            raise ValidationError("At least one case note is required")
        if action == ReturnAction.REJECT:
            lifecycle.require_text(notes, "Rejection reason")
        require(self.authorizer, actor_id, Capability.VERIFY_RETURNS)

        now = now_utc()
        with atomic(self.postgres, f"{action} returns") as tx:
            locked = store.lock_case_notes(tx, case_note_ids)
            if action == ReturnAction.VERIFY:
                planned = [(n, lifecycle.verify_return(n, actor_id, now, notes)) for n in locked]
            else:
                planned = [(n, lifecycle.reject_return(n, actor_id, now, notes)) for n in locked]
            updated = [self.apply(tx, note, transition, actor_id, now) for note, transition in planned]

        logger.info("%d returns %s by %s", len(updated), "verified" if action == ReturnAction.VERIFY else "rejected", actor_id)

        if action == ReturnAction.REJECT:
            self.event_bus.publish_all(ReturnRejected.create(case_note=n) for n in updated)
        return updated

    def verify_return(self, case_note_id: UUID, actor_id: UUID, notes: str | None = None) -> CaseNote:
        return self.verify_returns(ReturnAction.VERIFY, [case_note_id], actor_id, notes)[0]

    def reject_return(self, case_note_id: UUID, actor_id: UUID, reason: str | None) -> CaseNote:
        return self.verify_returns(ReturnAction.REJECT, [case_note_id], actor_id, reason)[0]
