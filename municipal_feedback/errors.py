"""Error taxonomy and the JSON error envelope.

Every error leaves the API as ``{"error": <message or validation issues>}``;
the HTTP status carries the category.
"""
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException


log = structlog.get_logger(__name__)


class BadRequest(HTTPException):
    def __init__(self, detail: Any = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class Unauthenticated(HTTPException):
    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class TokenExpired(Unauthenticated):
    def __init__(self, detail: str = "Token expired"):
        super().__init__(detail)


class TokenInvalid(Unauthenticated):
    def __init__(self, detail: str = "Invalid token"):
        super().__init__(detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Insufficient permissions"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class Conflict(HTTPException):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


def error_response(status_code: int, error: Any, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": jsonable_encoder(error)}, headers=headers)


async def _http_error(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, exc.detail, headers=getattr(exc, "headers", None))


async def _validation_error(request: Request, exc: RequestValidationError):
    issues = [
        {"path": [p for p in e.get("loc", ()) if p != "body"], "message": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return error_response(status.HTTP_400_BAD_REQUEST, issues)


async def _integrity_error(request: Request, exc: IntegrityError):
    log.warning("integrity_error", path=request.url.path, error=str(exc.orig))
    return error_response(status.HTTP_409_CONFLICT, "Resource conflicts with existing data")


def _rate_limited(request: Request, exc: RateLimitExceeded):
    # Sync so SlowAPIMiddleware can call it directly
    return error_response(status.HTTP_429_TOO_MANY_REQUESTS, "Too many requests, please try again later.")


async def _unhandled(request: Request, exc: Exception):
    log.exception("unhandled_error", path=request.url.path, method=request.method)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(IntegrityError, _integrity_error)
    app.add_exception_handler(RateLimitExceeded, _rate_limited)
    app.add_exception_handler(Exception, _unhandled)
