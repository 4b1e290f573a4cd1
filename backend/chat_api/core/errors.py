"""
Domain errors raised by the services layer.

Every error carries a human readable message and the HTTP status it maps
to. Routes never translate them by hand; ``register_exception_handlers``
installs a single handler on the app.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ChatError(Exception):
    """Base class for errors that map to a stable HTTP status."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    kind: str = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(ChatError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "invalid_argument"


class InvalidCursorFormat(InvalidArgument):
    pass


class InvalidCursorTimestamp(InvalidArgument):
    pass


class PermissionDenied(ChatError):
    status_code = status.HTTP_403_FORBIDDEN
    kind = "permission_denied"


class NotFound(ChatError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class Conflict(ChatError):
    status_code = status.HTTP_409_CONFLICT
    kind = "conflict"


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    logger.debug("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error": exc.kind,
            "status_code": exc.status_code,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatError, chat_error_handler)
