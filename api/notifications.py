"""Notification inbox endpoints for the acting user."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from api.middleware import current_actor, request_id_of


def create_notifications_router(services: dict) -> APIRouter:
    router = APIRouter()

    notification_svc = services["notification"]

    @router.get("/notifications")
    async def list_notifications(
        request: Request,
        unread_only: bool = Query(False),
        limit: int = Query(50, ge=1, le=200),
    ):
        actor_id = current_actor(request)
        notifications = notification_svc.list_for_user(actor_id, unread_only, limit)
        return success_response({
            "notifications": [n.model_dump(mode="json") for n in notifications],
            "unread_count": notification_svc.unread_count(actor_id),
        }, request_id_of(request)).model_dump(mode="json")

    @router.post("/notifications/{notification_id}/read")
    async def mark_read(request: Request, notification_id: UUID):
        notification = notification_svc.mark_read(notification_id, current_actor(request))
        return success_response(notification.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    return router
