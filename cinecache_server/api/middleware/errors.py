# exception handlers (error_id / errores de dominio)
from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from cinecache_server.api.logging_config import configure_logging
from cinecache_server.api.services import metrics
from cinecache_server.api.settings import Settings

Handler = Callable[[Request, Exception], Awaitable[JSONResponse]]


def _with_request_id(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    req_id = getattr(request.state, "request_id", None)
    if isinstance(req_id, str) and req_id:
        payload["request_id"] = req_id
    return payload


def build_exception_handler(settings: Settings) -> Handler:
    """Fallback 500: log con traceback + error_id para correlar con el cliente."""
    logger = configure_logging(settings)

    async def handler(request: Request, exc: Exception) -> JSONResponse:
        error_id = uuid.uuid4().hex
        logger.exception(
            "unhandled_exception",
            extra={
                "error_id": error_id,
                "request_id": getattr(request.state, "request_id", None),
                "path": request.url.path,
            },
        )
        metrics.inc("http_errors_5xx_total", 1)

        payload = _with_request_id({"detail": "Internal Server Error", "error_id": error_id}, request)
        return JSONResponse(status_code=500, content=payload)

    return handler


def build_status_handler(settings: Settings, status_code: int, *, metric: str | None = None) -> Handler:
    """
    Errores de dominio con status fijo (StoreUnavailableError -> 503,
    AdminRequiredError -> 403, InvalidExternalIdError -> 400).
    """
    logger = configure_logging(settings)

    async def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.warning(
            "domain_error",
            extra={
                "error": type(exc).__name__,
                "status": status_code,
                "request_id": getattr(request.state, "request_id", None),
                "path": request.url.path,
            },
        )
        if metric:
            metrics.inc(metric, 1)
        if status_code >= 500:
            metrics.inc("http_errors_5xx_total", 1)

        payload = _with_request_id({"detail": str(exc) or type(exc).__name__}, request)
        return JSONResponse(status_code=status_code, content=payload)

    return handler
