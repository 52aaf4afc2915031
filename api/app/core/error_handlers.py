"""
Error envelopes for the Market Translation API.

Every failure leaves the API as ``{"error": {code, message, status_code}}``.
Failures that carry structured diagnostics add a ``details`` list:
per-index problems for rejected batches, per-provider reasons when the
whole fallback chain was exhausted.
"""

import logging
from typing import Any, Dict, List, Optional

from app.core.exceptions import (
    AllProvidersFailedError,
    BaseAppException,
    BatchValidationError,
)
from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def _error_details(exc: BaseAppException) -> Optional[List[Dict[str, Any]]]:
    if isinstance(exc, BatchValidationError):
        return exc.errors
    if isinstance(exc, AllProvidersFailedError):
        return [
            {"provider": provider, "reason": reason}
            for provider, reason in exc.failures
        ]
    return None


async def base_exception_handler(
    request: Request, exc: BaseAppException
) -> JSONResponse:
    """Render an application exception as a JSON error envelope.

    Client errors (4xx) are logged as warnings; provider outages and
    other server-side failures as errors.
    """
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{request.method} {request.url.path} failed with {exc.error_code}: {exc.detail}",
        extra={
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    error: Dict[str, Any] = {
        "code": exc.error_code,
        "message": exc.detail,
        "status_code": exc.status_code,
    }
    details = _error_details(exc)
    if details is not None:
        error["details"] = details

    return JSONResponse(
        status_code=exc.status_code, content={"error": error}, headers=exc.headers
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Internal details stay in the log
    logger.exception(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
        },
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred",
                "status_code": 500,
            }
        },
    )
