"""
Tests for the unified exception hierarchy.

This module tests core/exceptions.py which provides the standard
exception hierarchy for the workflow optimizer.
"""

import pytest
from datetime import datetime

from core.exceptions import (
    # Base exception
    OptimizerSystemError,
    # Configuration exceptions (fatal)
    ConfigurationError,
    SettingsValidationError,
    # Runtime exceptions (recovered locally)
    DataUnavailableError,
    CatalogError,
    WorkflowExecutionError,
    EvaluationError,
    GenerationError,
    RoundError,
    InstrumentError,
    # Helpers
    is_recoverable,
    get_error_code,
)


RUNTIME_ERRORS = [
    DataUnavailableError,
    CatalogError,
    WorkflowExecutionError,
    EvaluationError,
    GenerationError,
    RoundError,
    InstrumentError,
]


class TestOptimizerSystemError:
    """Tests for the base exception class."""

    def test_basic_creation(self):
        err = OptimizerSystemError("Test error")
        assert err.message == "Test error"
        assert err.context == {}
        assert err.cause is None
        assert isinstance(err.timestamp, datetime)

    def test_with_context(self):
        err = OptimizerSystemError("Test error", context={"symbol": "AAPL", "round": 3})
        assert err.context == {"symbol": "AAPL", "round": 3}
        assert "symbol=AAPL" in str(err)
        assert "round=3" in str(err)

    def test_with_cause(self):
        cause = ValueError("bad bars")
        err = OptimizerSystemError("Wrapped", cause=cause)
        assert err.cause is cause

    def test_str_carries_error_code(self):
        assert str(OptimizerSystemError("boom")) == "[SYSTEM_ERROR] boom"

    def test_to_dict(self):
        err = RoundError("Round 2 failed", context={"round": 2}, cause=RuntimeError("x"))
        d = err.to_dict()
        assert d["error_code"] == "ROUND_FAILURE"
        assert d["message"] == "Round 2 failed"
        assert d["is_recoverable"] is True
        assert d["context"] == {"round": 2}
        assert d["cause"] == "x"
        assert "timestamp" in d


class TestConfigurationErrors:
    """Configuration errors are the only fatal class."""

    def test_not_recoverable(self):
        assert ConfigurationError("x").is_recoverable is False
        assert is_recoverable(ConfigurationError("x")) is False

    def test_settings_validation_is_configuration(self):
        err = SettingsValidationError("bad yaml")
        assert isinstance(err, ConfigurationError)
        assert err.error_code == "SETTINGS_INVALID"

    def test_can_catch_as_base(self):
        with pytest.raises(OptimizerSystemError):
            raise ConfigurationError("empty catalog")


class TestRuntimeErrors:
    @pytest.mark.parametrize("cls", RUNTIME_ERRORS)
    def test_recoverable(self, cls):
        err = cls("failure")
        assert isinstance(err, OptimizerSystemError)
        assert not isinstance(err, ConfigurationError)
        assert is_recoverable(err)

    def test_error_codes_unique(self):
        codes = [cls.error_code for cls in RUNTIME_ERRORS + [ConfigurationError, SettingsValidationError]]
        assert len(codes) == len(set(codes))


class TestHelpers:
    def test_foreign_exceptions(self):
        assert is_recoverable(KeyError("x")) is True
        assert get_error_code(KeyError("x")) == "UNKNOWN"

    def test_error_code_lookup(self):
        assert get_error_code(GenerationError("x")) == "GENERATION_FAILURE"
        assert get_error_code(InstrumentError("x")) == "INSTRUMENT_FAILURE"
