"""Custody handover endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from api.base import success_response
from api.middleware import current_actor, request_id_of
from core.models import HandoverCreate, HandoverDecision, VerificationDecision


class NotesBody(BaseModel):
    notes: str | None = Field(None, max_length=1000)


class RespondBody(BaseModel):
    decision: HandoverDecision
    notes: str | None = Field(None, max_length=1000)


class VerifyBody(BaseModel):
    decision: VerificationDecision
    notes: str | None = Field(None, max_length=1000)


def create_handovers_router(services: dict) -> APIRouter:
    router = APIRouter()

    handover_svc = services["handover"]

    def _ok(handover, request: Request):
        return success_response(handover.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    def _many(handovers, request: Request):
        return success_response(
            [h.model_dump(mode="json") for h in handovers], request_id_of(request)
        ).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Listing routes (registered before /handovers/{handover_id}/...)
    # -------------------------------------------------------------------------

    @router.get("/handovers/incoming")
    async def incoming(request: Request, open_only: bool = Query(True)):
        return _many(handover_svc.list_incoming(current_actor(request), open_only), request)

    @router.get("/handovers/outgoing")
    async def outgoing(request: Request, open_only: bool = Query(True)):
        return _many(handover_svc.list_outgoing(current_actor(request), open_only), request)

    @router.get("/case-notes/{case_note_id}/handovers")
    async def case_note_handovers(request: Request, case_note_id: UUID):
        return _many(handover_svc.list_for_case_note(case_note_id), request)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    @router.post("/case-notes/{case_note_id}/handover", status_code=201)
    async def request_handover(request: Request, case_note_id: UUID, body: HandoverCreate):
        return _ok(handover_svc.request(case_note_id, current_actor(request), body), request)

    @router.post("/handovers/{handover_id}/acknowledge")
    async def acknowledge(request: Request, handover_id: UUID, body: NotesBody | None = None):
        notes = body.notes if body else None
        return _ok(handover_svc.acknowledge(handover_id, current_actor(request), notes), request)

    @router.post("/handovers/{handover_id}/respond")
    async def respond(request: Request, handover_id: UUID, body: RespondBody):
        return _ok(handover_svc.respond(handover_id, current_actor(request), body.decision, body.notes), request)

    @router.post("/handovers/{handover_id}/verify")
    async def verify(request: Request, handover_id: UUID, body: VerifyBody):
        return _ok(handover_svc.verify(handover_id, current_actor(request), body.decision, body.notes), request)

    return router
