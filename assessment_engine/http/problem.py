"""Problem+JSON utilities and global exception handlers.

Defines the RFC7807 media type, a small factory for problem documents and
handler callables that produce application/problem+json responses.
"""

from __future__ import annotations

from typing import Any, Optional
import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from assessment_engine.errors import AssessmentEngineError, PermanentRemoteError, TransientRemoteError

PROBLEM_MEDIA_TYPE = "application/problem+json"

logger = logging.getLogger(__name__)


def problem_response(
    status: int,
    title: str,
    detail: str = "",
    code: Optional[str] = None,
    headers: Optional[dict] = None,
    **extra: Any,
) -> JSONResponse:
    body: dict[str, Any] = {"title": title, "status": status, "detail": detail}
    if code:
        body["code"] = code
    body.update(extra)
    return JSONResponse(body, status_code=status, media_type=PROBLEM_MEDIA_TYPE, headers=headers)


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:  # noqa: D401
    status = int(getattr(exc, "status_code", 500) or 500)
    if isinstance(exc.detail, dict):
        detail = {"status": status, **exc.detail}
    else:
        detail = {"title": "Error", "status": status, "detail": str(exc.detail or "")}
    headers = {str(k): str(v) for k, v in (exc.headers or {}).items()}
    return JSONResponse(detail, status_code=status, media_type=PROBLEM_MEDIA_TYPE, headers=headers or None)


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:  # noqa: D401
    logger.info("request_validation_failed path=%s errors=%s", request.url.path, len(exc.errors()))
    return problem_response(
        422,
        "Invalid Request",
        "Request validation failed",
        code="request_validation_failed",
        errors=[{"loc": list(e.get("loc", ())), "msg": str(e.get("msg", "")), "type": str(e.get("type", ""))} for e in exc.errors()],
    )


async def handle_engine_error(request: Request, exc: AssessmentEngineError) -> JSONResponse:  # noqa: D401
    """Map engine failures escaping a route onto problem documents.

    Transient remote failures (including simulated ones) become 503 so clients
    retry; permanent ones keep their status; anything else is a 400.
    """
    if isinstance(exc, TransientRemoteError):
        logger.warning("engine_error_transient path=%s kind=%s error=%s", request.url.path, exc.kind, exc)
        return problem_response(503, "Service Unavailable", str(exc), code=exc.kind)
    if isinstance(exc, PermanentRemoteError):
        status = exc.status or 400
        return problem_response(status, "Request Rejected", str(exc), code="rejected")
    logger.info("engine_error path=%s type=%s error=%s", request.url.path, type(exc).__name__, exc)
    return problem_response(400, "Bad Request", str(exc), code=type(exc).__name__)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    logger.error("unexpected_error path=%s", request.url.path, exc_info=exc)
    return problem_response(500, "Internal Server Error", code="internal_error")


__all__ = [
    "PROBLEM_MEDIA_TYPE",
    "problem_response",
    "handle_http_exception",
    "handle_request_validation_error",
    "handle_engine_error",
    "handle_unexpected_error",
]
