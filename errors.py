"""
Error taxonomy and response envelopes.

Every handler raises one of the ApiError subclasses below; the handlers
registered by `setup_exception_handlers` turn them (and anything unexpected)
into the same JSON shape:

    {"statusCode": 404, "message": "User not found", "success": false, "errors": []}

Successful responses go through `api_response`:

    {"statusCode": 200, "data": {...}, "message": "...", "success": true}
"""
import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None,
                 status_code: Optional[int] = None):
        self.message = message or self.default_message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class BadRequest(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class Unauthenticated(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized request"


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not authorized to access this resource"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Already exists"


class Internal(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"


class ServiceUnavailable(ApiError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service temporarily unavailable"


def error_body(status_code: int, message: str, errors: Optional[List[Any]] = None) -> dict:
    return {
        "statusCode": status_code,
        "message": message,
        "success": False,
        "errors": errors or [],
    }


def api_response(status_code: int, message: str, data: Any = None) -> JSONResponse:
    body = {
        "statusCode": status_code,
        "data": data,
        "message": message,
        "success": status_code < 400,
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_body(exc.status_code, exc.message, exc.errors)),
        headers={"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None,
    )


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = "API route not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, message),
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(status.HTTP_400_BAD_REQUEST, "Invalid request", errors),
    )


async def _duplicate_key_handler(request: Request, exc: DuplicateKeyError) -> JSONResponse:
    logger.info("Duplicate key on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_body(status.HTTP_409_CONFLICT, "Resource already exists"),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, Internal.default_message),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(DuplicateKeyError, _duplicate_key_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
