"""FastAPI application factory."""

from fastapi import FastAPI, Request

from api.base import success_response
from api.batches import create_batches_router
from api.errors import register_error_handlers
from api.handovers import create_handovers_router
from api.middleware import ActorMiddleware, RequestIDMiddleware, actor_from_header, request_id_of
from api.notifications import create_notifications_router
from api.requests import create_requests_router
from api.timeline import create_timeline_router


def create_app(services: dict, resolve_actor=actor_from_header) -> FastAPI:
    """
    Assemble middleware, error handlers and routers over the given services.

    Args:
        services: Dict from core.wiring.build_services (or test doubles)
        resolve_actor: Maps a request to the acting staff id
    """
    app = FastAPI(title="Case Note Workflow")
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(ActorMiddleware, resolve_actor=resolve_actor)
    register_error_handlers(app)

    @app.get("/health")
    async def health(request: Request):
        return success_response({"status": "ok"}, request_id_of(request)).model_dump(mode="json")

    app.include_router(create_requests_router(services))
    app.include_router(create_batches_router(services))
    app.include_router(create_handovers_router(services))
    app.include_router(create_timeline_router(services))
    app.include_router(create_notifications_router(services))

    return app
