"""
Exception Hierarchy for the Market Surveillance Engine.

The detection core never raises for data-quality problems: bad numbers,
empty histories and malformed amounts resolve to None/0/empty results.
Exceptions are reserved for the boundaries around it, where a caller hands
over something that cannot be interpreted at all:

- configuration overrides that fail schema validation
- feed payloads rejected by strict ingestion

Usage:
    from core.exceptions import ConfigValidationError, FeedValidationError

    try:
        config = merge_config(overrides)
    except ConfigValidationError as e:
        log_error(e.to_dict())
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class SurveillanceError(Exception):
    """
    Base exception for all surveillance engine errors.

    Attributes:
        error_code: Unique identifier for this error type
        is_recoverable: Whether the caller can retry with corrected input
        context: Additional context about the error
        timestamp: When the error occurred
    """
    error_code: str = "SURVEILLANCE_ERROR"
    is_recoverable: bool = True

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)

    def __str__(self) -> str:
        base = f"[{self.error_code}] {self.message}"
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({ctx_str})"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "is_recoverable": self.is_recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(SurveillanceError):
    """
    Base class for configuration-related errors.
    """
    error_code = "CONFIG_ERROR"


class ConfigValidationError(ConfigurationError):
    """
    Raised when a detection config override fails schema validation.

    Uses Pydantic validation under the hood; the original
    ValidationError is kept as ``cause``.
    """
    error_code = "CONFIG_INVALID"


class MissingConfigError(ConfigurationError):
    """
    Raised when an explicitly requested config file does not exist.
    """
    error_code = "CONFIG_MISSING"


# =============================================================================
# DATA ERRORS
# =============================================================================

class DataError(SurveillanceError):
    """
    Base class for feed/data errors raised at the ingestion boundary.
    """
    error_code = "DATA_ERROR"


class FeedValidationError(DataError):
    """
    Raised by strict ingestion when a feed record cannot be typed.

    This can occur when:
    - A trade or snapshot has no market id
    - The outcome is neither YES nor NO
    - A timestamp is missing or not numeric
    """
    error_code = "FEED_VALIDATION_FAIL"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_error_code(error: Exception) -> str:
    """
    Get the error code for an exception.

    Returns:
        Error code string, or "UNKNOWN" for foreign exceptions
    """
    if isinstance(error, SurveillanceError):
        return error.error_code
    return "UNKNOWN"
