"""Error taxonomy and the FastAPI handlers that render it as JSON envelopes."""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config

logger = logging.getLogger(__name__)


class ResearchHubError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, errors: list[str] | None = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(ResearchHubError):
    status_code = 400
    default_message = "Validation failed"


class AuthenticationError(ResearchHubError):
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(ResearchHubError):
    status_code = 403
    default_message = "Access denied"


class NotFoundError(ResearchHubError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ResearchHubError):
    status_code = 400
    default_message = "Resource already exists"


class StorageError(ResearchHubError):
    status_code = 500
    default_message = "Storage operation failed"


class DuplicateMember(ConflictError):
    default_message = "User is already a member of this project"


class AlreadyMember(ConflictError):
    default_message = "You are already a member of this project"


class UnverifiedUser(ValidationError):
    default_message = "Cannot add user to project. User email is not verified."


class NotPublic(AuthorizationError):
    default_message = "This project is not open for joining"


def envelope(message: str, errors: list[str] | None = None, **extra) -> dict:
    body: dict = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    body.update(extra)
    return body


def _format_validation_errors(exc: RequestValidationError) -> list[str]:
    messages = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        field = ".".join(loc)
        msg = err.get("msg", "Invalid value")
        messages.append(f"{field}: {msg}" if field else msg)
    return messages


async def _research_hub_error_handler(request: Request, exc: ResearchHubError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=envelope(exc.message, exc.errors))


async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(message),
        headers=getattr(exc, "headers", None),
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=envelope("Validation failed", _format_validation_errors(exc)),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    extra = {}
    if config.is_development():
        extra["details"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=envelope("Internal server error", **extra))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ResearchHubError, _research_hub_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
