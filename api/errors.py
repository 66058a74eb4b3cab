"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from api.middleware import request_id_of
from core.errors import (
    AuthorizationError,
    IntegrityFailure,
    NotFoundError,
    StateConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error(request: Request, status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, details, request_id_of(request)).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return _error(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc))

    @app.exception_handler(AuthorizationError)
    async def authorization_handler(request: Request, exc: AuthorizationError):
        details = {"capability": exc.capability} if exc.capability else None
        return _error(request, 403, ErrorCodes.FORBIDDEN, str(exc), details)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(request, 404, ErrorCodes.NOT_FOUND, str(exc), {"entity": exc.entity})

    @app.exception_handler(StateConflictError)
    async def state_conflict_handler(request: Request, exc: StateConflictError):
        details = {
            "current_status": exc.current_status,
            "required_status": exc.required_status,
        }
        return _error(request, 409, ErrorCodes.STATE_CONFLICT, str(exc), details)

    @app.exception_handler(IntegrityFailure)
    async def integrity_handler(request: Request, exc: IntegrityFailure):
        # Already logged with traceback where the transaction was rolled back
        return _error(request, 500, ErrorCodes.INTEGRITY_FAILURE, "The change could not be saved")

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(
            request, 422, ErrorCodes.VALIDATION_ERROR,
            "Request body or parameters are invalid",
            {"errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
