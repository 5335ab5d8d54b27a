"""
Shared utility functions.
"""

import logging
import re
from datetime import datetime, timezone
from fastapi import HTTPException
from affilai.errors import (
    AffilAIError, ConcurrentGenerationInProgress, CredentialMissing,
    InvalidAdType, LinkNotFound, NoPlatformIdentifier, PersistenceFailure,
    ProductNotFound,
)

logger = logging.getLogger(__name__)


def safe_error_detail(exc: Exception, fallback: str = "An internal error occurred. Please try again later.") -> str:
    """
    Return a sanitized error message safe for client consumption.
    Logs the real exception detail server-side.
    """
    logger.error(f"Operation failed: {exc}", exc_info=True)
    return fallback


def utcnow() -> datetime:
    """
    Return the current UTC time as a naive datetime (no tzinfo).
    Naive datetimes are used because our DB columns are TIMESTAMP WITHOUT TIME ZONE.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def slugify(value: str, sep: str = "-") -> str:
    """Lowercase, collapse anything non-alphanumeric into `sep`."""
    slug = re.sub(r"[^a-z0-9]+", sep, (value or "").lower()).strip(sep)
    return slug or "product"


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def http_error_for(exc: Exception) -> HTTPException:
    """
    Map a service error to an HTTPException. The detail names the product,
    platform and policy involved so the UI can show it as-is.
    """
    if isinstance(exc, (ProductNotFound, LinkNotFound)):
        return HTTPException(status_code=404, detail=exc.to_dict())
    if isinstance(exc, (CredentialMissing, NoPlatformIdentifier, InvalidAdType)):
        return HTTPException(status_code=422, detail=exc.to_dict())
    if isinstance(exc, ConcurrentGenerationInProgress):
        return HTTPException(status_code=409, detail=exc.to_dict())
    if isinstance(exc, PersistenceFailure):
        detail = exc.to_dict()
        detail["message"] = safe_error_detail(exc, "Could not save changes. Please try again later.")
        return HTTPException(status_code=500, detail=detail)
    if isinstance(exc, AffilAIError):
        return HTTPException(status_code=400, detail=exc.to_dict())
    return HTTPException(status_code=500, detail=safe_error_detail(exc))
