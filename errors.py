"""
API error types and the handlers that turn them into the response envelope

Every failure leaves the service as ``{"success": false, "message": ...}``,
plus ``errors`` (a list of ``{field, message}``) for validation failures.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(StarletteHTTPException):
    status_code = 500
    message = "Server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None, headers=None):
        super().__init__(status_code=self.status_code, detail=message or self.message, headers=headers)
        self.errors = errors


class ValidationFailed(ApiError):
    status_code = 400
    message = "Validation failed"


class DuplicateResource(ApiError):
    status_code = 400
    message = "Resource already exists"


class AuthenticationRequired(ApiError):
    status_code = 401
    message = "Not authenticated"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class AuthorizationDenied(ApiError):
    status_code = 403
    message = "Admin access required"


class NotFound(ApiError):
    status_code = 404
    message = "Not found"


class InvalidFileType(ApiError):
    status_code = 400
    message = "Invalid file type"


class FileTooLarge(ApiError):
    status_code = 400
    message = "File too large"


class UploadFailed(ApiError):
    status_code = 500
    message = "Failed to upload file"


class UpstreamStoreError(ApiError):
    status_code = 500
    message = "Database error"


def field_errors(exc) -> List[Dict[str, str]]:
    """Flatten a pydantic error list into ``[{field, message}]``."""
    items = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header")]
        items.append({"field": ".".join(loc) or "body", "message": err.get("msg", "Invalid value")})
    return items


def envelope(message: str, errors: Optional[list] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        errors = getattr(exc, "errors", None)
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(str(exc.detail), errors),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=envelope("Validation failed", field_errors(exc)))

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key(request: Request, exc: DuplicateKeyError):
        logger.info("Duplicate key on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=400, content=envelope("Resource already exists"))

    @app.exception_handler(PyMongoError)
    async def store_error(request: Request, exc: PyMongoError):
        logger.exception("Database error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=envelope("Database error"))

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=envelope("Server error"))
