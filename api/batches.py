"""Batch request endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from api.base import success_response
from api.middleware import current_actor, request_id_of
from core.errors import NotFoundError
from core.models import BatchCreate, BatchDecision


class ProcessBatchBody(BaseModel):
    decision: BatchDecision
    notes: str | None = Field(None, max_length=1000)


class VerifyReceiptBody(BaseModel):
    received_count: int = Field(..., ge=0)
    notes: str | None = Field(None, max_length=1000)


class VerifyIndividualBody(BaseModel):
    case_note_ids: list[UUID] = Field(..., min_length=1)
    notes: str | None = Field(None, max_length=1000)


def create_batches_router(services: dict) -> APIRouter:
    router = APIRouter()

    batch_svc = services["batch"]

    def _batch_with_children(batch, children, request: Request):
        data = batch.model_dump(mode="json")
        data["case_notes"] = [c.model_dump(mode="json") for c in children]
        return success_response(data, request_id_of(request)).model_dump(mode="json")

    def _ok(batch, request: Request):
        return success_response(batch.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    @router.post("/batches", status_code=201)
    async def create_batch(request: Request, body: BatchCreate):
        batch, children = batch_svc.create_batch(current_actor(request), body)
        return _batch_with_children(batch, children, request)

    @router.get("/batches")
    async def list_batches(
        request: Request,
        pending_only: bool = Query(False),
        limit: int = Query(50, ge=1, le=200),
    ):
        if pending_only:
            batches = batch_svc.list_pending(limit)
        else:
            batches = batch_svc.list_for_requester(current_actor(request), limit)
        return success_response(
            [b.model_dump(mode="json") for b in batches], request_id_of(request)
        ).model_dump(mode="json")

    @router.get("/batches/{batch_id}")
    async def get_batch(request: Request, batch_id: UUID):
        batch = batch_svc.get_by_id(batch_id)
        if batch is None:
            raise NotFoundError("Batch", batch_id)
        return _batch_with_children(batch, batch_svc.list_children(batch_id), request)

    @router.post("/batches/{batch_id}/process")
    async def process_batch(request: Request, batch_id: UUID, body: ProcessBatchBody):
        batch = batch_svc.process_batch(batch_id, current_actor(request), body.decision, body.notes)
        return _ok(batch, request)

    @router.post("/batches/{batch_id}/verify-receipt")
    async def verify_receipt(request: Request, batch_id: UUID, body: VerifyReceiptBody):
        batch = batch_svc.verify_batch_receipt(batch_id, current_actor(request), body.received_count, body.notes)
        return _ok(batch, request)

    @router.post("/batches/{batch_id}/verify-individual")
    async def verify_individual(request: Request, batch_id: UUID, body: VerifyIndividualBody):
        batch = batch_svc.verify_individual_receipt(batch_id, current_actor(request), body.case_note_ids, body.notes)
        return _ok(batch, request)

    return router
