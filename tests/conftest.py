"""Shared test fixtures for the case note workflow test suite."""

import os
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from core.models import (
    BatchRequest, BatchStatus,
    CaseNote, CaseNoteStatus, HandoverStatus, Priority,
    HandoverRequest, HandoverRequestStatus,
)
from utils.timezone import now_utc

from tests.staff import CA_ID, CA_B_ID, CA_C_ID, MR_STAFF_ID, ADMIN_ID

SCHEMA_PATH = Path(__file__).parent.parent / "schema.sql"


# =============================================================================
# STAFF CONSTANTS
# =============================================================================

# Ids live in tests/staff.py so test modules can import them directly.


@pytest.fixture
def ca_id() -> UUID:
    return CA_ID


@pytest.fixture
def ca_b_id() -> UUID:
    return CA_B_ID


@pytest.fixture
def mr_staff_id() -> UUID:
    return MR_STAFF_ID


# =============================================================================
# IN-MEMORY MODEL FACTORIES (no DB needed)
# =============================================================================


@pytest.fixture
def make_case_note():
    """Build a CaseNote with sensible defaults; override any field by keyword."""

    def _make(**overrides) -> CaseNote:
        now = now_utc()
        values = dict(
            id=uuid4(), request_number="REQ202601010001",
            patient_id=uuid4(), requested_by_id=CA_ID,
            department_id=uuid4(), doctor_id=uuid4(), location_id=uuid4(),
            priority=Priority.NORMAL, purpose="Clinic follow-up", remarks=None, needed_date=None,
            status=CaseNoteStatus.PENDING, current_custodian_id=CA_ID,
            approved_at=None, approved_by_id=None, approval_remarks=None,
            is_received=False, received_at=None, received_by_id=None,
            reception_notes=None, received_on_behalf_of_id=None,
            is_returned=False, returned_at=None, returned_by_id=None, return_notes=None,
            is_rejected_return=False, rejection_reason=None, rejected_at=None, rejected_by_id=None,
            completed_at=None, completed_by_id=None,
            handover_status=HandoverStatus.NONE, current_handover_id=None, batch_id=None,
            created_at=now, updated_at=now, deleted_at=None,
        )
        values.update(overrides)
        return CaseNote(**values)

    return _make


@pytest.fixture
def make_handover():
    """Build a HandoverRequest from CA to CA B by default."""

    def _make(**overrides) -> HandoverRequest:
        now = now_utc()
        values = dict(
            id=uuid4(), case_note_id=uuid4(),
            initiated_by_id=CA_B_ID, requested_by_id=CA_B_ID, current_holder_id=CA_ID,
            reason="Patient moved to ward 5", priority=Priority.NORMAL,
            department_id=uuid4(), doctor_id=uuid4(), location_id=uuid4(),
            previous_department_id=uuid4(), previous_doctor_id=uuid4(), previous_location_id=uuid4(),
            status=HandoverRequestStatus.PENDING,
            requested_at=now, acknowledged_at=None, responded_at=None, response_notes=None,
            verified_at=None, verification_notes=None, overdue_at=None, escalated_at=None,
            created_at=now, updated_at=now,
        )
        values.update(overrides)
        return HandoverRequest(**values)

    return _make


@pytest.fixture
def make_batch():
    def _make(**overrides) -> BatchRequest:
        now = now_utc()
        values = dict(
            id=uuid4(), batch_number="BATCH20260101-001", requested_by_id=CA_ID,
            status=BatchStatus.PENDING, batch_notes=None, submitted_at=now,
            processed_at=None, processed_by_id=None, processing_notes=None,
            approved_count=0, received_count=0, rejected_count=0, reported_received_count=None,
            is_verified=False, verified_at=None, verified_by_id=None, verification_notes=None,
            created_at=now, updated_at=now,
        )
        values.update(overrides)
        return BatchRequest(**values)

    return _make


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db():
    """
    Session-scoped PostgresClient against a disposable test database.

    Tests that need it are skipped unless CASENOTE_TEST_DATABASE_URL is set.
    """
    url = os.getenv("CASENOTE_TEST_DATABASE_URL")
    if not url:
        pytest.skip("CASENOTE_TEST_DATABASE_URL not set")

    from clients.postgres_client import PostgresClient

    client = PostgresClient(url, min_connections=1, max_connections=5)
    client.execute(SCHEMA_PATH.read_text())
    yield client
    client.close()


@pytest.fixture
def clean_db(db):
    """Empty every workflow table and seed staff roles before the test."""
    db.execute("""
        TRUNCATE
            notifications, timeline_events, handover_requests, case_notes,
            batch_requests, request_sequences, staff_roles,
            patients, doctors, departments, locations
        CASCADE
    """)
    db.execute(
        """
        INSERT INTO staff_roles (actor_id, role) VALUES
            (%s, 'CA'), (%s, 'CA'), (%s, 'CA'), (%s, 'MR_STAFF'), (%s, 'ADMIN')
        """,
        (CA_ID, CA_B_ID, CA_C_ID, MR_STAFF_ID, ADMIN_ID)
    )
    yield db


@pytest.fixture
def reference_data(clean_db):
    """Two sets of department/doctor/location plus a handful of patients."""
    ids = {
        "departments": [uuid4(), uuid4()],
        "doctors": [uuid4(), uuid4()],
        "locations": [uuid4(), uuid4()],
        "patients": [uuid4() for _ in range(5)],
    }
    for table in ("departments", "doctors", "locations"):
        for n, entity_id in enumerate(ids[table]):
            clean_db.execute(f"INSERT INTO {table} (id, name) VALUES (%s, %s)", (entity_id, f"{table} {n}"))
    for n, patient_id in enumerate(ids["patients"]):
        clean_db.execute(
            "INSERT INTO patients (id, mrn, name) VALUES (%s, %s, %s)",
            (patient_id, f"MRN{n:05d}", f"Patient {n}")
        )
    return ids
