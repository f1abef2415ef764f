"""
Error responses.

Every component error becomes ``{"error": {"kind", "code", "message"}}``
with an HTTP status chosen by its kind.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.recovery.errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INSUFFICIENT_SIGNATURES: 202,
    ErrorKind.CHAIN: 502,
    ErrorKind.UNSUPPORTED: 501,
    ErrorKind.INTERNAL: 500,
}

_KIND_BY_STATUS = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.UNAUTHORIZED,
    404: ErrorKind.NOT_FOUND,
    405: ErrorKind.VALIDATION,
    409: ErrorKind.CONFLICT,
}


def error_body(kind: ErrorKind, code: str, message: str) -> Dict[str, Any]:
    return {"error": {"kind": kind.value, "code": code, "message": message}}


def error_response(error: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(error.kind, 500),
        content={"error": error.to_dict()},
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.kind in (ErrorKind.CHAIN, ErrorKind.INTERNAL):
        logger.warning(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return error_response(exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        problems.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    message = "; ".join(problems) or "Invalid request"
    return JSONResponse(
        status_code=400,
        content=error_body(ErrorKind.VALIDATION, "INVALID_INPUT", message),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = _KIND_BY_STATUS.get(exc.status_code, ErrorKind.INTERNAL)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(kind, kind.name, str(exc.detail)),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=error_body(ErrorKind.INTERNAL, "INTERNAL", "Internal server error"),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
