"""Tests for individual request endpoints and error mapping."""

from uuid import uuid4

import pytest

from core.errors import (
    AuthorizationError,
    IntegrityFailure,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from core.models import CaseNoteStatus
from core.services.request_service import ReceiptResult

from tests.staff import CA_ID


@pytest.fixture
def create_body():
    return {
        "patient_id": str(uuid4()),
        "department_id": str(uuid4()),
        "doctor_id": str(uuid4()),
        "location_id": str(uuid4()),
        "purpose": "Outpatient review",
        "priority": "high",
    }


# =============================================================================
# CREATE / READ / DELETE
# =============================================================================


class TestCreateRequest:

    def test_created_request_returned_with_201(self, client, services, make_case_note, create_body):
        note = make_case_note()
        services["request"].create.return_value = note

        response = client.post("/requests", json=create_body)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["id"] == str(note.id)
        actor_id, data = services["request"].create.call_args[0]
        assert actor_id == CA_ID
        assert data.purpose == "Outpatient review"

    def test_blocking_record_is_409(self, client, services, create_body):
        services["request"].create.side_effect = StateConflictError(
            "Patient already has an active case note request",
            current_status="approved", required_status="no blocking record",
        )

        response = client.post("/requests", json=create_body)

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "STATE_CONFLICT"
        assert error["details"]["current_status"] == "approved"

    def test_missing_purpose_is_422(self, client, services, create_body):
        del create_body["purpose"]

        response = client.post("/requests", json=create_body)

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        services["request"].create.assert_not_called()

    def test_no_actor_is_401(self, anonymous_client, create_body):
        assert anonymous_client.post("/requests", json=create_body).status_code == 401


class TestGetAndDelete:

    def test_get_existing(self, client, services, make_case_note):
        note = make_case_note()
        services["request"].get_by_id.return_value = note

        response = client.get(f"/requests/{note.id}")

        assert response.status_code == 200
        assert response.json()["data"]["request_number"] == note.request_number

    def test_get_missing_is_404(self, client, services):
        services["request"].get_by_id.return_value = None

        response = client.get(f"/requests/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_delete_passes_actor(self, client, services, make_case_note):
        note = make_case_note()
        services["request"].delete.return_value = note

        client.delete(f"/requests/{note.id}")

        services["request"].delete.assert_called_once_with(note.id, CA_ID)

    def test_delete_by_other_ca_is_403(self, client, services):
        services["request"].delete.side_effect = AuthorizationError("Only the requester can delete")

        assert client.delete(f"/requests/{uuid4()}").status_code == 403


# =============================================================================
# TRANSITIONS
# =============================================================================


class TestTransitions:

    def test_approve_without_body(self, client, services, make_case_note):
        note = make_case_note(status=CaseNoteStatus.APPROVED)
        services["request"].approve.return_value = note

        response = client.post(f"/requests/{note.id}/approve")

        assert response.status_code == 200
        services["request"].approve.assert_called_once_with(note.id, CA_ID, None)

    def test_double_approve_is_409(self, client, services):
        services["request"].approve.side_effect = StateConflictError(
            "already approved", current_status="approved", required_status="pending"
        )

        response = client.post(f"/requests/{uuid4()}/approve", json={"remarks": "ok"})

        assert response.status_code == 409
        assert response.json()["error"]["details"]["required_status"] == "pending"

    def test_reject_forwards_reason(self, client, services, make_case_note):
        note = make_case_note(status=CaseNoteStatus.REJECTED)
        services["request"].reject.return_value = note

        client.post(f"/requests/{note.id}/reject", json={"reason": "Wrong patient"})

        services["request"].reject.assert_called_once_with(note.id, CA_ID, "Wrong patient")

    def test_reject_without_reason_is_422(self, client, services):
        services["request"].reject.side_effect = ValidationError("Rejection reason is required")

        response = client.post(f"/requests/{uuid4()}/reject", json={})

        assert response.status_code == 422

    def test_receive(self, client, services, make_case_note):
        note = make_case_note(status=CaseNoteStatus.APPROVED, is_received=True)
        services["request"].mark_received.return_value = note

        response = client.post(f"/requests/{note.id}/receive", json={"notes": "Arrived at clinic"})

        assert response.json()["data"]["is_received"] is True

    def test_return(self, client, services, make_case_note):
        note = make_case_note(status=CaseNoteStatus.PENDING_RETURN_VERIFICATION, is_returned=True)
        services["request"].return_case_note.return_value = note

        response = client.post(f"/requests/{note.id}/return", json={"notes": "Done"})

        assert response.json()["data"]["status"] == "pending_return_verification"

    def test_reject_not_received(self, client, services, make_case_note):
        note = make_case_note()
        services["request"].reject_not_received.return_value = note

        client.post(f"/requests/{note.id}/reject-not-received", json={"reason": "Never arrived"})

        services["request"].reject_not_received.assert_called_once_with(note.id, CA_ID, "Never arrived")

    def test_complete_unknown_is_404(self, client, services):
        missing = uuid4()
        services["request"].complete.side_effect = NotFoundError("Case note", missing)

        response = client.post(f"/requests/{missing}/complete")

        assert response.status_code == 404
        assert response.json()["error"]["details"]["entity"] == "Case note"

    def test_storage_failure_is_500(self, client, services):
        services["request"].complete.side_effect = IntegrityFailure("approve failed")

        response = client.post(f"/requests/{uuid4()}/complete")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTEGRITY_FAILURE"

    def test_unexpected_error_is_500(self, client, services):
        services["request"].complete.side_effect = RuntimeError("boom")

        response = client.post(f"/requests/{uuid4()}/complete")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_ERROR"


# =============================================================================
# BULK
# =============================================================================


class TestBulk:

    def test_verify_received_reports_counts(self, client, services, make_case_note):
        received = make_case_note(status=CaseNoteStatus.APPROVED, is_received=True)
        skipped = uuid4()
        services["request"].verify_received.return_value = ReceiptResult(
            received=[received], already_received=[skipped]
        )

        response = client.post("/case-notes/verify-received", json={
            "case_note_ids": [str(received.id), str(skipped)],
        })

        data = response.json()["data"]
        assert data["received_count"] == 1
        assert data["already_received"] == [str(skipped)]

    def test_verify_received_needs_ids(self, client):
        response = client.post("/case-notes/verify-received", json={"case_note_ids": []})

        assert response.status_code == 422

    def test_verify_returns(self, client, services, make_case_note):
        note = make_case_note(status=CaseNoteStatus.COMPLETED)
        services["request"].verify_returns.return_value = [note]

        response = client.post("/returned-case-notes/verify", json={
            "action": "verify", "case_note_ids": [str(note.id)],
        })

        assert response.status_code == 200
        services["request"].verify_returns.assert_called_once_with("verify", [note.id], CA_ID, None)


# =============================================================================
# WORK QUEUES
# =============================================================================


class TestWorkQueues:

    def test_requests_default_to_pending_queue(self, client, services, make_case_note):
        services["request"].list_by_status.return_value = [make_case_note()]

        response = client.get("/requests")

        assert response.status_code == 200
        assert len(response.json()["data"]) == 1
        services["request"].list_by_status.assert_called_once_with(CaseNoteStatus.PENDING, 100)

    def test_requests_filtered_by_status(self, client, services):
        services["request"].list_by_status.return_value = []

        client.get("/requests", params={"status": "pending_return_verification", "limit": 10})

        services["request"].list_by_status.assert_called_once_with(
            CaseNoteStatus.PENDING_RETURN_VERIFICATION, 10
        )

    def test_unknown_status_is_422(self, client, services):
        response = client.get("/requests", params={"status": "lost"})

        assert response.status_code == 422
        services["request"].list_by_status.assert_not_called()

    def test_held_lists_callers_case_notes(self, client, services, make_case_note):
        services["request"].list_held_by.return_value = [make_case_note(status=CaseNoteStatus.APPROVED)]

        response = client.get("/case-notes/held")

        assert response.json()["data"][0]["status"] == "approved"
        services["request"].list_held_by.assert_called_once_with(CA_ID, 100)

    def test_returnable_uses_caller(self, client, services):
        services["request"].list_returnable.return_value = []

        response = client.get("/case-notes/returnable")

        assert response.json()["data"] == []
        services["request"].list_returnable.assert_called_once_with(CA_ID)
