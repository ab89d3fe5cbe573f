"""
Tests for the exception hierarchy.

This module tests core/exceptions.py, which defines the errors raised at
the configuration and feed-ingestion boundaries of the surveillance engine.
"""

import pytest
from datetime import datetime

from core.exceptions import (
    # Base exception
    SurveillanceError,
    # Configuration exceptions
    ConfigurationError,
    ConfigValidationError,
    MissingConfigError,
    # Data exceptions
    DataError,
    FeedValidationError,
    # Helper functions
    get_error_code,
)


class TestSurveillanceError:
    """Tests for the base exception class."""

    def test_basic_creation(self):
        """Test basic exception creation."""
        error = SurveillanceError("Test error")
        assert str(error) == "[SURVEILLANCE_ERROR] Test error"
        assert error.message == "Test error"
        assert error.error_code == "SURVEILLANCE_ERROR"
        assert error.is_recoverable is True
        assert error.context == {}
        assert error.cause is None
        assert isinstance(error.timestamp, datetime)

    def test_with_context(self):
        """Test exception with context dictionary."""
        error = SurveillanceError(
            "Test error",
            context={"market": "m1", "records": 3}
        )
        assert "market=m1" in str(error)
        assert "records=3" in str(error)
        assert error.context["market"] == "m1"

    def test_with_cause(self):
        """Test exception chaining with cause."""
        cause = ValueError("Original error")
        error = SurveillanceError("Wrapped error", cause=cause)
        assert error.cause is cause

    def test_to_dict(self):
        """Test serialization to dictionary."""
        error = SurveillanceError(
            "Test error",
            context={"key": "value"},
            cause=ValueError("cause"),
        )
        d = error.to_dict()
        assert d["error_code"] == "SURVEILLANCE_ERROR"
        assert d["message"] == "Test error"
        assert d["is_recoverable"] is True
        assert d["context"] == {"key": "value"}
        assert d["cause"] == "cause"
        assert "timestamp" in d

    def test_can_be_raised_and_caught(self):
        """Test that exception can be raised and caught."""
        with pytest.raises(SurveillanceError) as exc_info:
            raise SurveillanceError("Test")
        assert exc_info.value.message == "Test"


class TestConfigurationErrors:
    """Tests for configuration-related exceptions."""

    def test_config_validation_error(self):
        error = ConfigValidationError("bad override", context={"errors": 2})
        assert isinstance(error, ConfigurationError)
        assert isinstance(error, SurveillanceError)
        assert error.error_code == "CONFIG_INVALID"
        assert "errors=2" in str(error)

    def test_missing_config_error(self):
        error = MissingConfigError("Settings file not found", context={"path": "x.yaml"})
        assert isinstance(error, ConfigurationError)
        assert error.error_code == "CONFIG_MISSING"

    def test_catch_by_base(self):
        """Configuration errors can be caught as ConfigurationError."""
        with pytest.raises(ConfigurationError):
            raise ConfigValidationError("invalid")


class TestDataErrors:
    """Tests for feed/data exceptions."""

    def test_feed_validation_error(self):
        error = FeedValidationError("trade is missing price")
        assert isinstance(error, DataError)
        assert error.error_code == "FEED_VALIDATION_FAIL"
        assert error.is_recoverable is True

    def test_data_error_is_not_config_error(self):
        assert not isinstance(FeedValidationError("x"), ConfigurationError)


class TestHelperFunctions:

    def test_get_error_code(self):
        assert get_error_code(ConfigValidationError("x")) == "CONFIG_INVALID"
        assert get_error_code(FeedValidationError("x")) == "FEED_VALIDATION_FAIL"

    def test_get_error_code_foreign_exception(self):
        assert get_error_code(ValueError("x")) == "UNKNOWN"
