"""
Errores de dominio y manejadores que los traducen al sobre JSON
{"status": "fail"|"error", "message": ...}.

Todos heredan de HTTPException para que los routers puedan lanzarlos
directamente, igual que un HTTPException normal.
"""
from typing import Any, Iterable, Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException
import logging

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    status_code = 400
    default_message = "Bad request"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None, **extra: Any):
        super().__init__(status_code=status_code or self.status_code, detail=message or self.default_message)
        self.extra = extra


class ValidationFailed(AppError):
    status_code = 400
    default_message = "Validation failed"

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ValidationFailed":
        return cls("Validation failed", errors=_field_errors(exc.errors()))


class IndexOutOfRange(ValidationFailed):
    default_message = "Invalid photo index"


class Unauthenticated(AppError):
    status_code = 401
    default_message = "You are not logged in! Please log in to get access."


class Forbidden(AppError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Conflict"


class EmailAlreadyRegistered(Conflict):
    status_code = 400
    default_message = "User with this email already exists"


class SlotUnavailable(Conflict):
    default_message = "The requested time slot is not available"


class InvalidTransition(AppError):
    status_code = 400

    def __init__(self, current: str, requested: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot change status from {current} to {requested}",
            current_status=current,
            requested_status=requested,
        )
        self.current = current
        self.requested = requested


class UnsupportedPetType(AppError):
    status_code = 400

    def __init__(self, species: str):
        super().__init__(f"This service does not support {species}s", species=species)


class UploadError(AppError):
    status_code = 400
    default_message = "Invalid file upload"


def _field_errors(errors: Iterable[dict]) -> list[dict]:
    out = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        out.append({"field": ".".join(loc), "message": err.get("msg", "")})
    return out


def _envelope(status_code: int, message: str, **extra: Any) -> dict:
    return {
        "status": "fail" if status_code < 500 else "error",
        "message": message,
        **extra,
    }


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    extra = getattr(exc, "extra", None) or {}
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(exc.status_code, str(exc.detail), **extra),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=_envelope(400, "Validation failed", errors=_field_errors(exc.errors())),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Error no controlado en %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=_envelope(500, "Something went wrong"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
