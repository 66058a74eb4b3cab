"""Request-scoped middleware for API requests."""

import logging
from typing import Callable
from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes

logger = logging.getLogger(__name__)

ACTOR_HEADER = "X-Actor-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def actor_from_header(request: Request) -> str | None:
    """Default resolver: the identity gateway forwards the staff id in a header."""
    return request.headers.get(ACTOR_HEADER)


class ActorMiddleware(BaseHTTPMiddleware):
    """Resolves the acting staff member and stores it on request.state.actor_id.

    Identity itself is established upstream; this only turns what the gateway
    forwarded into a UUID that routers pass explicitly into service calls.
    Public paths bypass resolution entirely.
    """

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, resolve_actor: Callable[[Request], str | None] = actor_from_header):
        super().__init__(app)
        self._resolve_actor = resolve_actor

    def _is_public_path(self, path: str) -> bool:
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        if self._is_public_path(request.url.path):
            return await call_next(request)

        raw = self._resolve_actor(request)
        if not raw:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Actor identity required",
                ).model_dump(mode="json"),
            )

        try:
            actor_id = UUID(str(raw))
        except ValueError:
            logger.warning("Rejected malformed actor id on %s", request.url.path)
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.INVALID_ACTOR,
                    "Actor identity is not a valid id",
                ).model_dump(mode="json"),
            )

        request.state.actor_id = actor_id
        return await call_next(request)


def current_actor(request: Request) -> UUID:
    """Actor id resolved by ActorMiddleware for this request."""
    return request.state.actor_id


def request_id_of(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)
