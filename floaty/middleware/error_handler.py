"""Global exception handler that maps exceptions to structured JSON responses."""

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from floaty.utils.errors import APIError

logger = logging.getLogger(__name__)

TYPE_MAP = {
    400: "bad_request",
    401: "authentication_error",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    408: "timeout",
    409: "conflict",
    422: "validation_error",
    429: "rate_limit",
    502: "upstream_error",
}


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def error_body(status: int, error_type: str, message: str, request_id: str, details: Any = None) -> dict:
    error = {"type": error_type, "message": message, "request_id": request_id}
    if details is not None:
        error["details"] = details
    return {"status": "error", "error": error}


def _error_response(status: int, error_type: str, message: str, request_id: str, details: Any = None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=error_body(status, error_type, message, request_id, details),
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        messages = "; ".join(
            f"{'.'.join(str(part) for part in e['loc'])}: {e['msg']}" for e in exc.errors()
        )
        return _error_response(422, "validation_error", messages, _request_id(request))

    @app.exception_handler(APIError)
    async def api_error(request: Request, exc: APIError):
        error_type = exc.error_type or TYPE_MAP.get(exc.status_code, "http_error")
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
        return _error_response(exc.status_code, error_type, exc.message, _request_id(request), exc.details)

    # Starlette's base class also covers routing 404/405 raised before any endpoint runs
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: HTTPException):
        error_type = TYPE_MAP.get(exc.status_code, "http_error")
        return _error_response(
            exc.status_code, error_type, str(exc.detail), _request_id(request),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error_response(500, "internal_error", "An unexpected error occurred", _request_id(request))
