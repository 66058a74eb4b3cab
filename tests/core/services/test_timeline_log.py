"""Tests for TimelineLog persistence and corrections."""

from uuid import uuid4

import pytest

from core.errors import NotFoundError, ValidationError
from core.models import TimelineEventType
from core.models.timeline import ApprovedMetadata, CreatedMetadata, TimelineCorrectedMetadata

from tests.staff import ADMIN_ID, CA_ID, MR_STAFF_ID


@pytest.fixture
def approved_note(request_service, request_data):
    note = request_service.create(CA_ID, request_data())
    return request_service.approve(note.id, MR_STAFF_ID, "Pulled from archive B")


class TestPersistence:

    def test_metadata_comes_back_typed(self, timeline, approved_note):
        created, approved = timeline.list_for_case_note(approved_note.id)

        assert isinstance(created.metadata, CreatedMetadata)
        assert created.metadata.request_number == approved_note.request_number
        assert isinstance(approved.metadata, ApprovedMetadata)
        assert approved.metadata.approval_remarks == "Pulled from archive B"
        assert approved.actor_id == MR_STAFF_ID

    def test_events_ordered_by_sequence(self, timeline, approved_note):
        events = timeline.list_for_case_note(approved_note.id)

        assert [e.sequence for e in events] == sorted(e.sequence for e in events)

    def test_count_by_type(self, timeline, approved_note):
        assert timeline.count_for_case_note(approved_note.id) == 2
        assert timeline.count_for_case_note(approved_note.id, TimelineEventType.REJECTED) == 0


class TestCorrection:

    def test_correction_rewrites_and_records_previous(self, timeline, approved_note):
        approved = timeline.list_for_case_note(approved_note.id)[1]

        correction = timeline.correct(approved.id, ADMIN_ID, "Typo in remarks", {"approval_remarks": "Archive C"})

        assert correction.type == TimelineEventType.TIMELINE_CORRECTED
        assert isinstance(correction.metadata, TimelineCorrectedMetadata)
        assert correction.metadata.previous_metadata["approval_remarks"] == "Pulled from archive B"
        assert correction.metadata.corrected_fields == ["approval_remarks"]
        assert timeline.get(approved.id).metadata.approval_remarks == "Archive C"

    def test_invalid_field_is_refused(self, timeline, approved_note):
        approved = timeline.list_for_case_note(approved_note.id)[1]

        with pytest.raises(ValidationError):
            timeline.correct(approved.id, ADMIN_ID, "Bad edit", {"colour": "red"})

        assert timeline.get(approved.id).metadata.approval_remarks == "Pulled from archive B"

    def test_corrections_cannot_be_corrected(self, timeline, approved_note):
        approved = timeline.list_for_case_note(approved_note.id)[1]
        correction = timeline.correct(approved.id, ADMIN_ID, "Typo", {"approval_remarks": "x"})

        with pytest.raises(ValidationError):
            timeline.correct(correction.id, ADMIN_ID, "Again", {"corrected_fields": []})

    def test_unknown_event(self, timeline, clean_db):
        with pytest.raises(NotFoundError):
            timeline.correct(uuid4(), ADMIN_ID, "Typo", {"approval_remarks": "x"})
