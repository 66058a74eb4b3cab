"""
Row-level access to case_notes inside a transaction.

Shared by the request, handover and batch services so that locking order and
the blocking-record query are defined once. Lock order is always: patient
advisory locks, then the batch row, then case note rows in id order, then
handover rows.
"""

from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

from clients.postgres_client import Transaction
from core.errors import NotFoundError
from core.models.case_note import CaseNote, BLOCKING_STATUSES

# Columns a transition may write. Anything else is a programming error.
MUTABLE_COLUMNS = frozenset({
    "status", "current_custodian_id",
    "department_id", "doctor_id", "location_id",
    "approved_at", "approved_by_id", "approval_remarks",
    "is_received", "received_at", "received_by_id", "reception_notes", "received_on_behalf_of_id",
    "is_returned", "returned_at", "returned_by_id", "return_notes",
    "is_rejected_return", "rejection_reason", "rejected_at", "rejected_by_id",
    "completed_at", "completed_by_id",
    "handover_status", "current_handover_id",
    "deleted_at",
})

_BLOCKING_VALUES = [s.value for s in BLOCKING_STATUSES]


def lock_patient(tx: Transaction, patient_id: UUID) -> None:
    """Serialize blocking-record checks for one patient until commit."""
    tx.lock_key(f"patient:{patient_id}")


def lock_patients(tx: Transaction, patient_ids: Iterable[UUID]) -> None:
    for patient_id in sorted({str(p) for p in patient_ids}):
        tx.lock_key(f"patient:{patient_id}")


def find_blocking(tx: Transaction, patient_id: UUID, exclude_id: UUID | None = None) -> CaseNote | None:
    """Another live case note that blocks new requests for the patient, if any."""
    row = tx.execute_single(
        """
        SELECT * FROM case_notes
        WHERE patient_id = %s
          AND deleted_at IS NULL
          AND (%s::uuid IS NULL OR id <> %s::uuid)
          AND (status = ANY(%s) OR (is_returned AND NOT is_rejected_return))
        ORDER BY created_at ASC
        LIMIT 1
        """,
        (patient_id, exclude_id, exclude_id, _BLOCKING_VALUES)
    )
    if row is None:
        return None
    return CaseNote.model_validate(row)


def read_case_note(tx: Transaction, case_note_id: UUID) -> CaseNote:
    """Unlocked read, used to learn the patient before taking locks."""
    row = tx.execute_single(
        "SELECT * FROM case_notes WHERE id = %s AND deleted_at IS NULL",
        (case_note_id,)
    )
    if row is None:
        raise NotFoundError("Case note", case_note_id)
    return CaseNote.model_validate(row)


def lock_case_note(tx: Transaction, case_note_id: UUID) -> CaseNote:
    row = tx.execute_single(
        "SELECT * FROM case_notes WHERE id = %s AND deleted_at IS NULL FOR UPDATE",
        (case_note_id,)
    )
    if row is None:
        raise NotFoundError("Case note", case_note_id)
    return CaseNote.model_validate(row)


def lock_case_notes(tx: Transaction, case_note_ids: Iterable[UUID]) -> list[CaseNote]:
    """
    Lock several case notes in id order.

    Raises:
        NotFoundError: Any id is unknown or deleted
    """
    wanted = sorted({str(i) for i in case_note_ids})
    rows = tx.execute(
        """
        SELECT * FROM case_notes
        WHERE id = ANY(%s::uuid[]) AND deleted_at IS NULL
        ORDER BY id
        FOR UPDATE
        """,
        (wanted,)
    )
    found = {str(row["id"]) for row in rows}
    for case_note_id in wanted:
        if case_note_id not in found:
            raise NotFoundError("Case note", case_note_id)
    return [CaseNote.model_validate(row) for row in rows]


def lock_batch_children(tx: Transaction, batch_id: UUID, statuses: list[str] | None = None) -> list[CaseNote]:
    """Lock a batch's live children in id order, optionally filtered by status."""
    rows = tx.execute(
        """
        SELECT * FROM case_notes
        WHERE batch_id = %s AND deleted_at IS NULL
          AND (%s::text[] IS NULL OR status = ANY(%s::text[]))
        ORDER BY id
        FOR UPDATE
        """,
        (batch_id, statuses, statuses)
    )
    return [CaseNote.model_validate(row) for row in rows]


def update_case_note(tx: Transaction, case_note_id: UUID, updates: dict[str, Any], now: datetime) -> CaseNote:
    unknown = set(updates) - MUTABLE_COLUMNS
    if unknown:
        raise KeyError(f"Not transition-writable: {', '.join(sorted(unknown))}")

    set_parts = []
    params = []
    for column, value in updates.items():
        set_parts.append(f"{column} = %s")
        params.append(value)

    set_parts.append("updated_at = %s")
    params.append(now)
    params.append(case_note_id)

    row = tx.execute_single(
        f"""
        UPDATE case_notes
        SET {', '.join(set_parts)}
        WHERE id = %s
        RETURNING *
        """,
        tuple(params)
    )
    return CaseNote.model_validate(row)


def insert_case_note(tx: Transaction, values: dict[str, Any]) -> CaseNote:
    columns = list(values)
    row = tx.execute_single(
        f"""
        INSERT INTO case_notes ({', '.join(columns)})
        VALUES ({', '.join(['%s'] * len(columns))})
        RETURNING *
        """,
        tuple(values[c] for c in columns)
    )
    return CaseNote.model_validate(row)
