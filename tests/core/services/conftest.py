"""Service fixtures over a real test database."""

import pytest

from core.config import WorkflowConfig
from core.models import CaseNoteCreate
from core.wiring import build_services

from tests.staff import CA_ID, MR_STAFF_ID


@pytest.fixture
def services(clean_db):
    return build_services(clean_db, WorkflowConfig())


@pytest.fixture
def request_service(services):
    return services["request"]


@pytest.fixture
def handover_service(services):
    return services["handover"]


@pytest.fixture
def batch_service(services):
    return services["batch"]


@pytest.fixture
def timeline(services):
    return services["timeline"]


@pytest.fixture
def notification_service(services):
    return services["notification"]


@pytest.fixture
def request_data(reference_data):
    """Factory for CaseNoteCreate against seeded reference rows."""

    def _make(patient_index: int = 0, context: int = 0, **overrides) -> CaseNoteCreate:
        values = dict(
            patient_id=reference_data["patients"][patient_index],
            department_id=reference_data["departments"][context],
            doctor_id=reference_data["doctors"][context],
            location_id=reference_data["locations"][context],
            purpose="Clinic appointment",
        )
        values.update(overrides)
        return CaseNoteCreate(**values)

    return _make


@pytest.fixture
def held_note(request_service, request_data):
    """Approved case note received by CA, ready for return or handover."""
    note = request_service.create(CA_ID, request_data())
    request_service.approve(note.id, MR_STAFF_ID)
    return request_service.mark_received(note.id, CA_ID)
