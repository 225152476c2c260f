"""
giftstrack/core/errors.py

Purpose: Map exceptions to what the UI shows

- Converts any exception into a user-facing message
- Builds the ErrorResponse structure consumed by screens
- Keeps internal details out of production messages
"""

import asyncio
import httpx
from typing import Optional

from giftstrack.core.config import settings, Settings
from giftstrack.core.exceptions import GiftsTrackError, NetworkError, RequestTimeoutError
from giftstrack.core.logging import get_logger
from giftstrack.schemas.response import ErrorResponse

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


def normalize_exception(exc: BaseException) -> GiftsTrackError:
    """
    Wraps third-party exceptions into the client's exception hierarchy.

    Args:
        exc: Any exception raised by a remote call or collaborator

    Returns:
        A GiftsTrackError (the same object when it already is one)
    """
    if isinstance(exc, GiftsTrackError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return RequestTimeoutError(details=str(exc) or None)
    if isinstance(exc, httpx.TransportError):
        return NetworkError(details=str(exc) or None)
    return GiftsTrackError(str(exc) or GENERIC_ERROR_MESSAGE)


def describe_error(exc: BaseException, config: Optional[Settings] = None) -> str:
    """
    Returns the message a screen should display for an exception.
    """
    config = config or settings
    error = normalize_exception(exc)
    if error.code == "INTERNAL_ERROR" and config.is_production:
        return GENERIC_ERROR_MESSAGE
    return error.message


def to_error_response(exc: BaseException, config: Optional[Settings] = None) -> ErrorResponse:
    """
    Builds the standard error structure for an exception.
    """
    config = config or settings
    error = normalize_exception(exc)
    if error.code == "INTERNAL_ERROR":
        logger.error(f"Unhandled client error: {exc}", exc_info=exc)
    details = None if config.is_production and error.code == "INTERNAL_ERROR" else error.details
    return ErrorResponse(
        error=describe_error(error, config),
        code=error.code,
        details=details,
    )
