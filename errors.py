import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from utils import field_code

logger = logging.getLogger(__name__)

DEFAULT_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}

# pydantic error types reported as a missing value rather than a bad one
MISSING_TYPES = {"missing", "empty"}
# error types with a fixed code regardless of the field
FIXED_CODES = {"uuid_format": "INVALID_UUID"}


class ApiError(HTTPException):
    """HTTPException that also carries a machine readable code."""

    def __init__(self, status_code: int, detail: str, code: str | None = None):
        super().__init__(status_code=status_code, detail=detail)
        self.code = code or DEFAULT_CODES.get(status_code, "ERROR")


def validation_code(error: dict) -> str:
    if error.get("type") in FIXED_CODES:
        return FIXED_CODES[error["type"]]
    names = [part for part in error.get("loc", ()) if isinstance(part, str)]
    # loc starts with "body" / "query" / "path"
    name = names[-1] if len(names) > 1 else (names[0] if names else "request")
    prefix = "MISSING" if error.get("type") in MISSING_TYPES else "INVALID"
    return f"{prefix}_{field_code(name)}"


def validation_message(error: dict) -> str:
    names = [str(part) for part in error.get("loc", ())[1:]]
    msg = error.get("msg", "Invalid request")
    return f"{'.'.join(names)}: {msg}" if names else msg


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = getattr(exc, "code", None) or DEFAULT_CODES.get(exc.status_code, "ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "code": code},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    return JSONResponse(
        status_code=400,
        content={"error": validation_message(first), "code": validation_code(first)},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
