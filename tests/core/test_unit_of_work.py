"""Tests for the atomic() transaction boundary against a real database."""

import pytest

from core.errors import IntegrityFailure, StateConflictError
from core.unit_of_work import atomic


def _sequence_rows(db, date_key):
    return db.execute_scalar("SELECT count(*) FROM request_sequences WHERE date_key = %s", (date_key,))


class TestAtomic:

    def test_commits_on_success(self, clean_db):
        with atomic(clean_db, "seed sequence") as tx:
            tx.execute("INSERT INTO request_sequences (date_key, current_sequence) VALUES (%s, 1)", ("REQ20261019",))

        assert _sequence_rows(clean_db, "REQ20261019") == 1

    def test_storage_error_rolls_back_earlier_writes(self, clean_db):
        with pytest.raises(IntegrityFailure, match="seed sequences failed"):
            with atomic(clean_db, "seed sequences") as tx:
                tx.execute("INSERT INTO request_sequences (date_key, current_sequence) VALUES (%s, 1)", ("REQ20261019",))
                tx.execute("INSERT INTO request_sequences (date_key, current_sequence) VALUES (%s, 1)", ("REQ20261019",))

        assert _sequence_rows(clean_db, "REQ20261019") == 0

    def test_any_database_error_becomes_integrity_failure(self, clean_db):
        with pytest.raises(IntegrityFailure) as exc:
            with atomic(clean_db, "bad batch") as tx:
                tx.execute("INSERT INTO request_sequences (date_key, current_sequence) VALUES (%s, 1)", ("BATCH20261019",))
                tx.execute("SELECT 1 / 0")

        assert exc.value.__cause__ is not None
        assert _sequence_rows(clean_db, "BATCH20261019") == 0

    def test_workflow_error_passes_through_and_rolls_back(self, clean_db):
        conflict = StateConflictError("already approved", current_status="approved", required_status="pending")

        with pytest.raises(StateConflictError) as exc:
            with atomic(clean_db, "approve") as tx:
                tx.execute("INSERT INTO request_sequences (date_key, current_sequence) VALUES (%s, 1)", ("REQ20261019",))
                raise conflict

        assert exc.value is conflict
        assert _sequence_rows(clean_db, "REQ20261019") == 0
