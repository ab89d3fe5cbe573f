"""
Core Infrastructure
====================

Foundational components shared by the surveillance engine and its tooling.

Components:
- exceptions: Boundary error hierarchy
- structured_log: JSON event logging
"""

from .exceptions import (
    SurveillanceError,
    ConfigurationError,
    ConfigValidationError,
    MissingConfigError,
    DataError,
    FeedValidationError,
    get_error_code,
)
from .structured_log import jlog, read_recent_logs

__all__ = [
    # Exceptions
    'SurveillanceError',
    'ConfigurationError',
    'ConfigValidationError',
    'MissingConfigError',
    'DataError',
    'FeedValidationError',
    'get_error_code',
    # Structured Logging
    'jlog',
    'read_recent_logs',
]
