"""Mapping of domain errors to HTTP responses."""

from fastapi.responses import JSONResponse

from ..errors import (
    InvalidTransitionError,
    NoProviderError,
    NotFoundError,
    NotInitializedError,
    ProviderCallError,
    RefundWindowClosedError,
)
from ..logging_config import get_logger

logger = get_logger(__name__)


STATUS_CODES: list[tuple[type[Exception], int]] = [
    (NotInitializedError, 400),
    (ValueError, 400),
    (NotFoundError, 404),
    (NoProviderError, 404),
    (InvalidTransitionError, 409),
    (RefundWindowClosedError, 409),
    (ProviderCallError, 502),
]


def status_for(error: Exception) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_response(error: Exception) -> JSONResponse:
    """Build a `{"success": false, "error": ...}` body; never a traceback."""
    status_code = status_for(error)
    if status_code >= 500:
        logger.error("Request failed: %s", error, exc_info=True)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": getattr(error, "message", str(error))},
    )
