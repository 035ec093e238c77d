"""Error types and the global handlers that render every failure as
``{"success": false, "error": ...}``.
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logger import logger
from .schemas import ErrorDetail, ErrorEnvelope


class DuplicateEmailError(ValueError):
    """Raised by user repositories when an email is already registered."""

    def __init__(self, email: str = None):
        self.email = email
        super().__init__("User with this email already exists")


class StorageUnavailableError(RuntimeError):
    """Raised when a requested storage backend cannot be reached."""


def error_response(status_code: int, error: str, headers=None, **extra) -> JSONResponse:
    content = ErrorEnvelope(error=error).model_dump(exclude_none=True)
    content.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content), headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
            # No route matched
            return error_response(
                exc.status_code,
                "Endpoint not found",
                message=f"The route {request.url.path} does not exist",
            )
        if exc.status_code >= 500:
            logger.error(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
        return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
        details = [
            ErrorDetail(
                field=".".join(str(loc) for loc in e["loc"] if loc != "body") or "body",
                message=e["msg"],
                type=e["type"],
            )
            for e in exc.errors()
        ]
        content = ErrorEnvelope(error=_summarize(details), details=details)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder(content),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred")


def _summarize(details) -> str:
    if not details:
        return "Invalid request data"
    first = details[0]
    message = first.message
    # pydantic prefixes messages raised from validators
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{first.field}: {message}"
