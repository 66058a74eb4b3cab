"""
Batch service: up to twenty case note requests handled as one unit.

A batch is created, processed and receipt-verified atomically. Children are
ordinary case notes and go through the same lifecycle guards as individual
requests; the batch row only carries the shared notes and aggregate counts.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core import case_note_store as store
from core import lifecycle
from core.authorization import Authorizer, Capability, require
from core.config import WorkflowConfig
from core.errors import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from core.event_bus import EventBus
from core.events import BatchProcessed
from core.models import (
    BatchCreate,
    BatchDecision,
    BatchRequest,
    BatchStatus,
    CaseNote,
    CaseNoteCreate,
    CaseNoteStatus,
)
from core.numbering import next_batch_number
from core.reference import ReferenceLookup
from core.services.request_service import RequestService
from core.unit_of_work import atomic
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)

_BATCH_COLUMNS = frozenset({
    "status", "processed_at", "processed_by_id", "processing_notes",
    "approved_count", "received_count", "rejected_count", "reported_received_count",
    "is_verified", "verified_at", "verified_by_id", "verification_notes",
})

# Children in any of these have been approved at some point.
_APPROVED_LINEAGE = (
    CaseNoteStatus.APPROVED.value,
    CaseNoteStatus.IN_PROGRESS.value,
    CaseNoteStatus.PENDING_RETURN_VERIFICATION.value,
    CaseNoteStatus.COMPLETED.value,
)


class BatchService:
    """Service for batch requests."""

    def __init__(
        self,
        postgres: PostgresClient,
        authorizer: Authorizer,
        reference: ReferenceLookup,
        requests: RequestService,
        event_bus: EventBus,
        config: WorkflowConfig | None = None,
    ):
        self.postgres = postgres
        self.authorizer = authorizer
        self.reference = reference
        self.requests = requests
        self.event_bus = event_bus
        self.config = config or WorkflowConfig()

    # -------------------------------------------------------------------------
    # Row helpers
    # -------------------------------------------------------------------------

    def _lock_batch(self, tx: Transaction, batch_id: UUID) -> BatchRequest:
        row = tx.execute_single("SELECT * FROM batch_requests WHERE id = %s FOR UPDATE", (batch_id,))
        if row is None:
            raise NotFoundError("Batch", batch_id)
        return BatchRequest.model_validate(row)

    def _update_batch(self, tx: Transaction, batch_id: UUID, updates: dict[str, Any], now: datetime) -> BatchRequest:
        unknown = set(updates) - _BATCH_COLUMNS
        if unknown:
            raise KeyError(f"Not batch-writable: {', '.join(sorted(unknown))}")

        set_parts = [f"{column} = %s" for column in updates]
        params = list(updates.values())
        set_parts.append("updated_at = %s")
        params.extend([now, batch_id])

        row = tx.execute_single(
            f"""
            UPDATE batch_requests
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )
        return BatchRequest.model_validate(row)

    def _child_counts(self, tx: Transaction, batch_id: UUID) -> dict[str, int]:
        return tx.execute_single(
            """
            SELECT
                count(*) FILTER (WHERE status = ANY(%s)) AS approved_count,
                count(*) FILTER (WHERE status = 'rejected') AS rejected_count,
                count(*) FILTER (
                    WHERE is_received OR status IN ('pending_return_verification', 'completed')
                ) AS received_count
            FROM case_notes
            WHERE batch_id = %s AND deleted_at IS NULL
            """,
            (list(_APPROVED_LINEAGE), batch_id)
        )

    def _refresh_counts(self, tx: Transaction, batch: BatchRequest, now: datetime) -> BatchRequest:
        """
        Re-derive approved/received counts from the children. Caller holds the batch lock.

        Children can leave the approved lineage after processing (a requester
        reporting one as never received sends it back to pending), so the
        counts stored by process_batch may be stale.
        """
        counts = self._child_counts(tx, batch.id)
        approved = counts["approved_count"]
        received = min(counts["received_count"], approved)
        if (approved, received) == (batch.approved_count, batch.received_count):
            return batch

        logger.info(
            "Batch %s counts refreshed: approved %d -> %d, received %d -> %d",
            batch.batch_number, batch.approved_count, approved, batch.received_count, received,
        )
        return self._update_batch(tx, batch.id, {"approved_count": approved, "received_count": received}, now)

    def _child_patient_ids(self, tx: Transaction, batch_id: UUID) -> list[UUID]:
        rows = tx.execute(
            "SELECT patient_id FROM case_notes WHERE batch_id = %s AND deleted_at IS NULL",
            (batch_id,)
        )
        return [row["patient_id"] for row in rows]

    @staticmethod
    def _require_requester(batch: BatchRequest, actor_id: UUID) -> None:
        if batch.requested_by_id != actor_id:
            raise AuthorizationError(f"Only the requester of batch {batch.batch_number} can verify its receipt")

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create_batch(self, actor_id: UUID, data: BatchCreate) -> tuple[BatchRequest, list[CaseNote]]:
        """
        Create a batch and all of its case note requests.

        Args:
            actor_id: Requesting CA
            data: Items plus the context they share

        Returns:
            The pending batch and its children in submission order

        Raises:
            AuthorizationError: Actor cannot create requests
            ValidationError: Too many items or duplicate patients
            NotFoundError: A patient or the shared context is unknown
            StateConflictError: Any patient already has a blocking record
        """
        require(self.authorizer, actor_id, Capability.CREATE_REQUESTS)
        if len(data.items) > self.config.max_batch_size:
            raise ValidationError(f"A batch holds at most {self.config.max_batch_size} case notes")
        patient_ids = [item.patient_id for item in data.items]
        if len(set(patient_ids)) != len(patient_ids):
            raise ValidationError("Each patient may appear only once in a batch")

        self.reference.resolve_context(data.department_id, data.doctor_id, data.location_id)
        for patient_id in patient_ids:
            self.reference.resolve_patient(patient_id)

        now = now_utc()
        with atomic(self.postgres, "create batch") as tx:
            store.lock_patients(tx, patient_ids)
            for patient_id in patient_ids:
                lifecycle.ensure_not_blocked(patient_id, store.find_blocking(tx, patient_id))

            batch_number = next_batch_number(tx, self.config.batch_number_prefix, today_utc())
            row = tx.execute_single(
                """
                INSERT INTO batch_requests (
                    id, batch_number, requested_by_id, status, batch_notes,
                    submitted_at, approved_count, received_count, rejected_count,
                    is_verified, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    %s, 0, 0, 0,
                    false, %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), batch_number, actor_id, BatchStatus.PENDING.value, data.batch_notes,
                    now, now, now
                )
            )
            batch = BatchRequest.model_validate(row)

            children = [
                self.requests.insert_pending(
                    tx,
                    actor_id,
                    CaseNoteCreate(
                        patient_id=item.patient_id,
                        department_id=data.department_id,
                        doctor_id=data.doctor_id,
                        location_id=data.location_id,
                        priority=data.priority,
                        purpose=data.purpose,
                        remarks=item.remarks,
                        needed_date=data.needed_date,
                    ),
                    now,
                    batch_id=batch.id,
                    batch_number=batch.batch_number,
                )
                for item in data.items
            ]

        logger.info("Batch %s created by %s with %d case notes", batch.batch_number, actor_id, len(children))
        return batch, children

    # -------------------------------------------------------------------------
    # Process
    # -------------------------------------------------------------------------

    def process_batch(
        self,
        batch_id: UUID,
        actor_id: UUID,
        decision: BatchDecision,
        notes: str | None = None,
    ) -> BatchRequest:
        """
        Approve or reject every still-pending child in one pass.

        Children decided individually beforehand keep their outcome and are
        reflected in the counts. When both approvals and rejections end up in
        the batch it becomes partially_approved.

        Raises:
            AuthorizationError: Actor cannot process batches
            ValidationError: Rejecting without a reason
            StateConflictError: Batch not pending, or a child's patient gained a competing record
        """
        require(self.authorizer, actor_id, Capability.PROCESS_BATCHES)
        if decision == BatchDecision.REJECT:
            notes = lifecycle.require_text(notes, "Rejection reason")

        now = now_utc()
        with atomic(self.postgres, f"process batch ({decision.value})") as tx:
            if decision == BatchDecision.APPROVE:
                store.lock_patients(tx, self._child_patient_ids(tx, batch_id))
            batch = self._lock_batch(tx, batch_id)
            if batch.status != BatchStatus.PENDING:
                raise StateConflictError(
                    f"Batch {batch.batch_number} is already {batch.status.value}",
                    current_status=batch.status.value,
                    required_status=BatchStatus.PENDING.value,
                )

            pending = store.lock_batch_children(tx, batch.id, [CaseNoteStatus.PENDING.value])
            if decision == BatchDecision.APPROVE:
                planned = []
                for child in pending:
                    transition = lifecycle.approve(child, actor_id, now, notes, batch_id=batch.id)
                    lifecycle.ensure_not_blocked(
                        child.patient_id,
                        store.find_blocking(tx, child.patient_id, exclude_id=child.id),
                    )
                    planned.append((child, transition))
            else:
                planned = [
                    (child, lifecycle.reject(child, actor_id, now, notes, batch_id=batch.id))
                    for child in pending
                ]

            for child, transition in planned:
                self.requests.apply(tx, child, transition, actor_id, now)

            counts = self._child_counts(tx, batch.id)
            if counts["approved_count"] and counts["rejected_count"]:
                status = BatchStatus.PARTIALLY_APPROVED
            elif counts["approved_count"]:
                status = BatchStatus.APPROVED
            else:
                status = BatchStatus.REJECTED

            batch = self._update_batch(tx, batch.id, {
                "status": status.value,
                "processed_at": now,
                "processed_by_id": actor_id,
                "processing_notes": notes,
                "approved_count": counts["approved_count"],
                "rejected_count": counts["rejected_count"],
            }, now)

        logger.info(
            "Batch %s processed by %s: %s (%d approved, %d rejected)",
            batch.batch_number, actor_id, batch.status.value, batch.approved_count, batch.rejected_count,
        )
        self.event_bus.publish(BatchProcessed.create(batch=batch))
        return batch

    # -------------------------------------------------------------------------
    # Receipt verification
    # -------------------------------------------------------------------------

    def verify_batch_receipt(
        self,
        batch_id: UUID,
        actor_id: UUID,
        received_count: int,
        notes: str | None = None,
    ) -> BatchRequest:
        """
        Requester confirms how many case notes of the batch physically arrived.

        A matching count completes every approved child, clears its custodian
        and verifies the batch. A short count is only recorded; the requester
        resolves it item by item with verify_individual_receipt.

        Args:
            batch_id: Approved batch
            actor_id: Batch requester
            received_count: Number of folders that arrived
            notes: Verification notes

        Raises:
            AuthorizationError: Actor is not the requester
            StateConflictError: Batch not approved, already verified, or nothing approved
            ValidationError: received_count outside 0..approved_count
        """
        now = now_utc()
        with atomic(self.postgres, "verify batch receipt") as tx:
            batch = self._lock_batch(tx, batch_id)
            self._require_requester(batch, actor_id)
            batch = self._refresh_counts(tx, batch, now)
            if not batch.can_be_verified:
                raise StateConflictError(
                    f"Batch {batch.batch_number} cannot be verified "
                    f"(status {batch.status.value}, verified {batch.is_verified}, approved {batch.approved_count})",
                    current_status=batch.status.value,
                    required_status="approved, unverified, approved_count > 0",
                )
            if not 0 <= received_count <= batch.approved_count:
                raise ValidationError(
                    f"received_count must be between 0 and {batch.approved_count}, got {received_count}"
                )

            if received_count != batch.approved_count:
                batch = self._update_batch(tx, batch.id, {
                    "reported_received_count": received_count,
                    "verified_by_id": actor_id,
                    "verification_notes": notes,
                }, now)
                logger.info(
                    "Batch %s receipt short: %d of %d reported by %s",
                    batch.batch_number, received_count, batch.approved_count, actor_id,
                )
                return batch

            children = store.lock_batch_children(tx, batch.id, [CaseNoteStatus.APPROVED.value])
            planned = [
                (child, lifecycle.complete_via_batch_receipt(child, batch, actor_id, now, received_count, notes))
                for child in children
            ]
            for child, transition in planned:
                self.requests.apply(tx, child, transition, actor_id, now)

            batch = self._update_batch(tx, batch.id, {
                "received_count": received_count,
                "reported_received_count": received_count,
                "is_verified": True,
                "verified_at": now,
                "verified_by_id": actor_id,
                "verification_notes": notes,
            }, now)

        logger.info(
            "Batch %s fully received and verified by %s (%d case notes completed)",
            batch.batch_number, actor_id, len(planned),
        )
        return batch

    def verify_individual_receipt(
        self,
        batch_id: UUID,
        actor_id: UUID,
        case_note_ids: list[UUID],
        notes: str | None = None,
    ) -> BatchRequest:
        """
        Requester confirms receipt of specific children.

        Children already received are left alone. The batch received_count is
        recomputed from its children and the batch is verified once every
        approved child has been received.

        Raises:
            ValidationError: No ids, or an id that is not a child of this batch
            AuthorizationError: Actor is not the requester or not the custodian of a child
            StateConflictError: Batch not approved or already verified, or a child not approved
        """
        if not case_note_ids:
            raise ValidationError("At least one case note is required")

        now = now_utc()
        with atomic(self.postgres, "verify individual receipt") as tx:
            batch = self._lock_batch(tx, batch_id)
            self._require_requester(batch, actor_id)
            batch = self._refresh_counts(tx, batch, now)
            if not batch.can_be_verified:
                raise StateConflictError(
                    f"Batch {batch.batch_number} cannot be verified",
                    current_status=batch.status.value,
                    required_status="approved, unverified, approved_count > 0",
                )

            children = store.lock_case_notes(tx, case_note_ids)
            planned = []
            for child in children:
                if child.batch_id != batch.id:
                    raise ValidationError(
                        f"Case note {child.request_number} is not part of batch {batch.batch_number}"
                    )
                lifecycle.require_status(child, CaseNoteStatus.APPROVED)
                if child.is_received:
                    continue
                planned.append((child, lifecycle.mark_received(child, actor_id, now, notes)))

            for child, transition in planned:
                self.requests.apply(tx, child, transition, actor_id, now)

            received = min(self._child_counts(tx, batch.id)["received_count"], batch.approved_count)
            updates: dict[str, Any] = {
                "received_count": received,
                "is_verified": received == batch.approved_count,
            }
            if received == batch.approved_count:
                updates.update(verified_at=now, verified_by_id=actor_id, verification_notes=notes)
            batch = self._update_batch(tx, batch.id, updates, now)

        logger.info(
            "Batch %s: %d newly received by %s, %d of %d received",
            batch.batch_number, len(planned), actor_id, batch.received_count, batch.approved_count,
        )
        return batch

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_by_id(self, batch_id: UUID) -> BatchRequest | None:
        row = self.postgres.execute_single(
            "SELECT * FROM batch_requests WHERE id = %s",
            (batch_id,)
        )
        if row is None:
            return None
        return BatchRequest.model_validate(row)

    def list_children(self, batch_id: UUID) -> list[CaseNote]:
        rows = self.postgres.execute(
            """
            SELECT * FROM case_notes
            WHERE batch_id = %s AND deleted_at IS NULL
            ORDER BY created_at ASC, request_number ASC
            """,
            (batch_id,)
        )
        return [CaseNote.model_validate(row) for row in rows]

    def list_for_requester(self, actor_id: UUID, limit: int = 50) -> list[BatchRequest]:
        rows = self.postgres.execute(
            """
            SELECT * FROM batch_requests
            WHERE requested_by_id = %s
            ORDER BY submitted_at DESC
            LIMIT %s
            """,
            (actor_id, limit)
        )
        return [BatchRequest.model_validate(row) for row in rows]

    def list_pending(self, limit: int = 50) -> list[BatchRequest]:
        rows = self.postgres.execute(
            """
            SELECT * FROM batch_requests
            WHERE status = 'pending'
            ORDER BY submitted_at ASC
            LIMIT %s
            """,
            (limit,)
        )
        return [BatchRequest.model_validate(row) for row in rows]
