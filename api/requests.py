"""Individual case note request endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from api.base import success_response
from api.middleware import current_actor, request_id_of
from core.errors import NotFoundError
from core.models import CaseNoteCreate, CaseNoteStatus


class RemarksBody(BaseModel):
    remarks: str | None = Field(None, max_length=1000)


class ReasonBody(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class NotesBody(BaseModel):
    notes: str | None = Field(None, max_length=1000)


class VerifyReceivedBody(BaseModel):
    case_note_ids: list[UUID] = Field(..., min_length=1)
    notes: str | None = Field(None, max_length=1000)
    on_behalf_of_id: UUID | None = None


class VerifyReturnsBody(BaseModel):
    action: str
    case_note_ids: list[UUID] = Field(..., min_length=1)
    notes: str | None = Field(None, max_length=1000)


def create_requests_router(services: dict) -> APIRouter:
    router = APIRouter()

    request_svc = services["request"]

    def _ok(note, request: Request):
        return success_response(note.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Work queues
    # -------------------------------------------------------------------------

    def _ok_list(notes, request: Request):
        return success_response(
            [n.model_dump(mode="json") for n in notes], request_id_of(request)
        ).model_dump(mode="json")

    @router.get("/requests")
    async def list_requests(
        request: Request,
        status: CaseNoteStatus = Query(CaseNoteStatus.PENDING),
        limit: int = Query(100, ge=1, le=500),
    ):
        return _ok_list(request_svc.list_by_status(status, limit), request)

    @router.get("/case-notes/held")
    async def list_held(request: Request, limit: int = Query(100, ge=1, le=500)):
        return _ok_list(request_svc.list_held_by(current_actor(request), limit), request)

    @router.get("/case-notes/returnable")
    async def list_returnable(request: Request):
        return _ok_list(request_svc.list_returnable(current_actor(request)), request)

    # -------------------------------------------------------------------------
    # Single record
    # -------------------------------------------------------------------------

    @router.post("/requests", status_code=201)
    async def create_request(request: Request, body: CaseNoteCreate):
        note = request_svc.create(current_actor(request), body)
        return _ok(note, request)

    @router.get("/requests/{case_note_id}")
    async def get_request(request: Request, case_note_id: UUID):
        note = request_svc.get_by_id(case_note_id)
        if note is None:
            raise NotFoundError("Case note", case_note_id)
        return _ok(note, request)

    @router.delete("/requests/{case_note_id}")
    async def delete_request(request: Request, case_note_id: UUID):
        note = request_svc.delete(case_note_id, current_actor(request))
        return _ok(note, request)

    # -------------------------------------------------------------------------
    # MR Staff decisions
    # -------------------------------------------------------------------------

    @router.post("/requests/{case_note_id}/approve")
    async def approve_request(request: Request, case_note_id: UUID, body: RemarksBody | None = None):
        remarks = body.remarks if body else None
        return _ok(request_svc.approve(case_note_id, current_actor(request), remarks), request)

    @router.post("/requests/{case_note_id}/reject")
    async def reject_request(request: Request, case_note_id: UUID, body: ReasonBody):
        return _ok(request_svc.reject(case_note_id, current_actor(request), body.reason), request)

    @router.post("/requests/{case_note_id}/complete")
    async def complete_request(request: Request, case_note_id: UUID):
        return _ok(request_svc.complete(case_note_id, current_actor(request)), request)

    # -------------------------------------------------------------------------
    # CA actions
    # -------------------------------------------------------------------------

    @router.post("/requests/{case_note_id}/receive")
    async def receive_request(request: Request, case_note_id: UUID, body: NotesBody | None = None):
        notes = body.notes if body else None
        return _ok(request_svc.mark_received(case_note_id, current_actor(request), notes), request)

    @router.post("/requests/{case_note_id}/reject-not-received")
    async def reject_not_received(request: Request, case_note_id: UUID, body: ReasonBody):
        return _ok(request_svc.reject_not_received(case_note_id, current_actor(request), body.reason), request)

    @router.post("/requests/{case_note_id}/return")
    async def return_request(request: Request, case_note_id: UUID, body: NotesBody):
        return _ok(request_svc.return_case_note(case_note_id, current_actor(request), body.notes), request)

    # -------------------------------------------------------------------------
    # Bulk
    # -------------------------------------------------------------------------

    @router.post("/case-notes/verify-received")
    async def verify_received(request: Request, body: VerifyReceivedBody):
        result = request_svc.verify_received(
            body.case_note_ids, current_actor(request), body.notes, body.on_behalf_of_id
        )
        return success_response({
            "received": [n.model_dump(mode="json") for n in result.received],
            "already_received": [str(i) for i in result.already_received],
            "received_count": result.received_count,
            "already_received_count": result.already_received_count,
        }, request_id_of(request)).model_dump(mode="json")

    @router.post("/returned-case-notes/verify")
    async def verify_returns(request: Request, body: VerifyReturnsBody):
        notes = request_svc.verify_returns(body.action, body.case_note_ids, current_actor(request), body.notes)
        return success_response(
            [n.model_dump(mode="json") for n in notes], request_id_of(request)
        ).model_dump(mode="json")

    return router
