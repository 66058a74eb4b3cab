"""Tests for HandoverService against a real database."""

from datetime import timedelta

import pytest

from core.errors import AuthorizationError, StateConflictError, ValidationError
from core.models import (
    HandoverCreate, HandoverDecision, HandoverRequestStatus, HandoverStatus,
    NotificationType, TimelineEventType, VerificationDecision,
)
from utils.timezone import now_utc

from tests.staff import CA_ID, CA_B_ID, MR_STAFF_ID


@pytest.fixture
def handover_data(reference_data):
    """Move the folder into the second department/doctor/location."""
    return HandoverCreate(
        to_actor_id=CA_B_ID,
        reason="Patient transferred to cardiology",
        department_id=reference_data["departments"][1],
        doctor_id=reference_data["doctors"][1],
        location_id=reference_data["locations"][1],
    )


@pytest.fixture
def pending_handover(handover_service, held_note, handover_data):
    return handover_service.request(held_note.id, CA_ID, handover_data)


def _backdate(db, handover_id, hours):
    db.execute(
        "UPDATE handover_requests SET requested_at = %s WHERE id = %s",
        (now_utc() - timedelta(hours=hours), handover_id)
    )


# =============================================================================
# REQUEST
# =============================================================================


class TestRequest:

    def test_request_leaves_custody_with_holder(self, pending_handover, request_service, held_note):
        note = request_service.get_by_id(held_note.id)

        assert pending_handover.status == HandoverRequestStatus.PENDING
        assert pending_handover.current_holder_id == CA_ID
        assert note.current_custodian_id == CA_ID
        assert note.handover_status == HandoverStatus.PENDING_ACKNOWLEDGEMENT
        assert note.current_handover_id == pending_handover.id

    def test_unreceived_note_is_refused(self, handover_service, request_service, request_data, handover_data):
        note = request_service.create(CA_ID, request_data())
        request_service.approve(note.id, MR_STAFF_ID)

        with pytest.raises(StateConflictError):
            handover_service.request(note.id, CA_ID, handover_data)

        assert handover_service.list_for_case_note(note.id) == []

    def test_second_open_handover_conflicts(self, handover_service, pending_handover, held_note, handover_data):
        with pytest.raises(StateConflictError):
            handover_service.request(held_note.id, CA_ID, handover_data)

    def test_receiver_must_be_able_to_hold(self, handover_service, held_note, handover_data):
        data = handover_data.model_copy(update={"to_actor_id": MR_STAFF_ID})

        with pytest.raises(ValidationError):
            handover_service.request(held_note.id, CA_ID, data)

    def test_holder_is_notified(self, pending_handover, notification_service):
        [notification] = [
            n for n in notification_service.list_for_user(CA_ID)
            if n.type == NotificationType.HANDOVER_REQUEST
        ]
        assert notification.data["handover_id"] == str(pending_handover.id)

    def test_incoming_and_outgoing_lists(self, handover_service, pending_handover):
        assert [h.id for h in handover_service.list_incoming(CA_ID)] == [pending_handover.id]
        assert [h.id for h in handover_service.list_outgoing(CA_B_ID)] == [pending_handover.id]
        assert handover_service.list_incoming(CA_B_ID) == []


# =============================================================================
# RESPOND AND VERIFY
# =============================================================================


class TestRespondAndVerify:

    def test_full_handover(self, handover_service, request_service, pending_handover, held_note, handover_data, timeline):
        approved = handover_service.respond(pending_handover.id, CA_ID, HandoverDecision.APPROVE)

        assert approved.status == HandoverRequestStatus.APPROVED_PENDING_VERIFICATION
        note = request_service.get_by_id(held_note.id)
        assert note.current_custodian_id == CA_B_ID
        assert note.department_id == handover_data.department_id
        assert note.doctor_id == handover_data.doctor_id
        assert note.location_id == handover_data.location_id

        verified = handover_service.verify(pending_handover.id, CA_B_ID, VerificationDecision.ACCEPT)

        assert verified.status == HandoverRequestStatus.VERIFIED
        note = request_service.get_by_id(held_note.id)
        assert note.current_custodian_id == CA_B_ID
        assert note.current_handover_id is None
        types = [e.type for e in timeline.list_for_case_note(held_note.id)]
        assert types[-3:] == [
            TimelineEventType.HANDOVER_REQUESTED,
            TimelineEventType.HANDOVER_APPROVED,
            TimelineEventType.HANDOVER_VERIFIED,
        ]

    def test_acknowledge_then_approve(self, handover_service, pending_handover):
        acknowledged = handover_service.acknowledge(pending_handover.id, CA_B_ID, "On my way")
        assert acknowledged.status == HandoverRequestStatus.ACKNOWLEDGED

        approved = handover_service.respond(pending_handover.id, CA_ID, HandoverDecision.APPROVE)
        assert approved.status == HandoverRequestStatus.APPROVED_PENDING_VERIFICATION

    def test_only_holder_responds(self, handover_service, pending_handover):
        with pytest.raises(AuthorizationError):
            handover_service.respond(pending_handover.id, CA_B_ID, HandoverDecision.APPROVE)

    def test_rejection_keeps_custody_and_frees_note(self, handover_service, request_service, pending_handover, held_note, handover_data):
        rejected = handover_service.respond(pending_handover.id, CA_ID, HandoverDecision.REJECT, "Still in clinic")

        assert rejected.status == HandoverRequestStatus.REJECTED
        note = request_service.get_by_id(held_note.id)
        assert note.current_custodian_id == CA_ID
        assert note.department_id == held_note.department_id
        assert handover_service.request(held_note.id, CA_ID, handover_data).status == HandoverRequestStatus.PENDING

    def test_denied_receipt_restores_holder_and_context(self, handover_service, request_service, pending_handover, held_note):
        handover_service.respond(pending_handover.id, CA_ID, HandoverDecision.APPROVE)

        handover_service.verify(pending_handover.id, CA_B_ID, VerificationDecision.REJECT, "Folder never arrived")

        note = request_service.get_by_id(held_note.id)
        assert note.current_custodian_id == CA_ID
        assert note.department_id == held_note.department_id
        assert note.location_id == held_note.location_id

    def test_return_blocked_while_handover_open(self, request_service, pending_handover, held_note):
        with pytest.raises(StateConflictError):
            request_service.return_case_note(held_note.id, CA_ID)

    def test_approval_after_custody_moved_conflicts(self, handover_service, request_service, pending_handover, held_note, clean_db):
        clean_db.execute(
            "UPDATE case_notes SET current_custodian_id = %s WHERE id = %s",
            (MR_STAFF_ID, held_note.id)
        )

        with pytest.raises(StateConflictError, match="changed"):
            handover_service.respond(pending_handover.id, CA_ID, HandoverDecision.APPROVE)

        assert handover_service.get_by_id(pending_handover.id).status == HandoverRequestStatus.PENDING


# =============================================================================
# OVERDUE SWEEP
# =============================================================================


class TestOverdueSweep:

    def test_fresh_handover_untouched(self, handover_service, pending_handover):
        result = handover_service.sweep_overdue()

        assert (result.overdue, result.escalated) == (0, 0)

    def test_overdue_marked_once(self, handover_service, pending_handover, clean_db, timeline, held_note):
        _backdate(clean_db, pending_handover.id, 7)

        first = handover_service.sweep_overdue()
        second = handover_service.sweep_overdue()

        assert (first.overdue, first.escalated) == (1, 0)
        assert (second.overdue, second.escalated) == (0, 0)
        assert handover_service.get_by_id(pending_handover.id).overdue_at is not None
        assert timeline.count_for_case_note(held_note.id, TimelineEventType.HANDOVER_OVERDUE) == 1

    def test_long_pending_is_escalated(self, handover_service, pending_handover, clean_db, notification_service):
        _backdate(clean_db, pending_handover.id, 30)

        result = handover_service.sweep_overdue()

        assert (result.overdue, result.escalated) == (1, 1)
        handover = handover_service.get_by_id(pending_handover.id)
        assert handover.escalated_at is not None
        assert handover.status == HandoverRequestStatus.PENDING
        overdue = [
            n for n in notification_service.list_for_user(CA_B_ID)
            if n.type == NotificationType.HANDOVER_OVERDUE
        ]
        assert len(overdue) == 2

    def test_acknowledged_handover_is_skipped(self, handover_service, pending_handover, clean_db):
        handover_service.acknowledge(pending_handover.id, CA_B_ID)
        _backdate(clean_db, pending_handover.id, 30)

        result = handover_service.sweep_overdue()

        assert (result.overdue, result.escalated) == (0, 0)


class TestHistory:

    def test_history_keeps_closed_handovers_in_order(self, handover_service, pending_handover, held_note, handover_data):
        handover_service.respond(pending_handover.id, CA_ID, HandoverDecision.REJECT, "Still in clinic")
        second = handover_service.request(held_note.id, CA_ID, handover_data)

        history = handover_service.list_for_case_note(held_note.id)

        assert [h.id for h in history] == [pending_handover.id, second.id]
        assert [h.status for h in history] == [HandoverRequestStatus.REJECTED, HandoverRequestStatus.PENDING]
