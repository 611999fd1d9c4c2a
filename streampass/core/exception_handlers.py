from __future__ import annotations

"""
Problem+JSON exception handlers (RFC 7807 flavoured).

`streampass.main` installs these. Engine errors (`AppException`) keep their
stable `code`; everything else is rendered with a neutral body.
"""

import logging

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from streampass.core.exceptions import AppException
from streampass.middleware.request_id import get_request_id

logger = logging.getLogger(__name__)


def _problem(title: str, detail: str, status_code: int, request: Request, **extra) -> JSONResponse:
    content = {
        "type": "about:blank",
        "title": title,
        "detail": detail,
        "status": status_code,
        "instance": str(request.url),
    }
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, media_type="application/problem+json")


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    body = exc.to_problem(request_id=get_request_id(request) or None)
    return _problem(
        exc.__class__.__name__,
        exc.message,
        exc.status_code,
        request,
        code=body["code"],
        details=body.get("details"),
        request_id=body["request_id"],
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    title = exc.__class__.__name__.replace("Exception", "").strip() or "Error"
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _problem(title, detail, exc.status_code, request)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _problem(
        "Validation error",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        request,
        errors=jsonable_encoder(exc.errors()),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return _problem(
        "Internal Server Error",
        "An unexpected error occurred.",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        request,
    )


__all__ = [
    "app_exception_handler",
    "http_exception_handler",
    "validation_exception_handler",
    "global_exception_handler",
]
