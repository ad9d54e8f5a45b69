"""
Error envelope for the HTTP surface.

Every error leaves the service as ``{"error": {"code": ..., "message": ...}}``.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base error carrying an envelope code and HTTP status."""

    code = "server_error"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code


class InvalidRequestError(ApiError):
    code = "invalid_request"
    status_code = 400


class NotFoundError(ApiError):
    code = "not_found"
    status_code = 404


class UnauthorizedError(ApiError):
    code = "unauthorized"
    status_code = 401


class ForbiddenError(ApiError):
    code = "forbidden"
    status_code = 403


class UpstreamError(ApiError):
    code = "upstream"
    status_code = 502


def error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


def error_response(code: str, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(code, message))


def install_exception_handlers(app: FastAPI) -> None:
    """Register handlers that map every failure onto the error envelope."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return error_response(exc.code, exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("query", "body", "path"))
            message = f"{field}: {first.get('msg', 'invalid')}" if field else first.get("msg", "invalid")
        else:
            message = "invalid request"
        return error_response("invalid_request", message, 400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response("not_found", f"No such route: {request.url.path}", 404)
        if exc.status_code == 405:
            return error_response("invalid_request", "Method not allowed", 405)
        return error_response("server_error", str(exc.detail), exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return error_response("server_error", "An unexpected error occurred", 500)


async def catch_unhandled_errors(request: Request, call_next):
    """
    HTTP middleware turning unhandled faults into the 500 envelope.

    Registered inside CORSMiddleware so the 500 still carries the CORS
    headers; the app-level ``Exception`` handler runs outside it.
    """
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return error_response("server_error", "An unexpected error occurred", 500)
