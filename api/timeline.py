"""Case note timeline endpoints."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from api.base import success_response
from api.middleware import current_actor, request_id_of
from core.authorization import Capability, require
from core.errors import NotFoundError


class CorrectionBody(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)
    fields: dict[str, Any] = Field(..., min_length=1)


def create_timeline_router(services: dict) -> APIRouter:
    router = APIRouter()

    timeline = services["timeline"]
    request_svc = services["request"]
    authorizer = services["authorizer"]

    @router.get("/case-notes/{case_note_id}/timeline")
    async def get_timeline(request: Request, case_note_id: UUID):
        if request_svc.get_by_id(case_note_id) is None:
            raise NotFoundError("Case note", case_note_id)
        events = timeline.list_for_case_note(case_note_id)
        return success_response(
            [e.model_dump(mode="json") for e in events], request_id_of(request)
        ).model_dump(mode="json")

    @router.post("/timeline-events/{event_id}/correct")
    async def correct_event(request: Request, event_id: UUID, body: CorrectionBody):
        actor_id = current_actor(request)
        require(authorizer, actor_id, Capability.CORRECT_TIMELINE)
        event = timeline.correct(event_id, actor_id, body.reason, body.fields)
        return success_response(event.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    return router
