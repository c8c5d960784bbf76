import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

class ShortenerError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)

class InvalidInput(ShortenerError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid input"

class InvalidCode(InvalidInput):
    message = "Code must be 6-8 alphanumeric characters"

class CodeConflict(ShortenerError):
    status_code = status.HTTP_409_CONFLICT
    message = "Code already exists"

class DuplicateCode(CodeConflict):
    """Raised by the store when the unique constraint on `code` rejects an insert."""

class CodeTaken(CodeConflict):
    """Raised by the allocator for a caller-supplied code that is already in use."""

class AllocationExhausted(ShortenerError):
    message = "Failed to generate unique code"

class LinkNotFound(ShortenerError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Link not found"

class StoreUnavailable(ShortenerError):
    message = "Link store unavailable"

# Messages for request fields, keyed by their JSON name
FIELD_MESSAGES = {
    "targetUrl": "Invalid URL format",
    "code": InvalidCode.message,
}

def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return InvalidInput.message
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    field = loc[-1] if loc else None
    if field == "targetUrl" and first.get("type") == "missing":
        return "URL is required"
    if field in FIELD_MESSAGES:
        return FIELD_MESSAGES[field]
    if field:
        return f"{field}: {first.get('msg')}"
    return first.get("msg") or InvalidInput.message

def register_exception_handlers(app: FastAPI):
    @app.exception_handler(ShortenerError)
    async def shortener_error_handler(request: Request, exc: ShortenerError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": _validation_message(exc)},
        )

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=StoreUnavailable.status_code,
            content={"detail": StoreUnavailable.message},
        )
