"""
Unified Exception Hierarchy for the workflow optimizer.

All exceptions inherit from OptimizerSystemError, enabling consistent error
handling. Runtime failures are recoverable and handled where they occur
(synthetic data, neutral scores, catalog fallbacks, isolated rounds and
instruments). Only pre-flight configuration errors reach the caller.

Usage:
    from core.exceptions import OptimizerSystemError, ConfigurationError, RoundError

    try:
        run_round()
    except RoundError as e:
        # Record the failed round and keep going
        history.append(error_record(e))
    except OptimizerSystemError as e:
        log_error(e)
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class OptimizerSystemError(Exception):
    """
    Base exception for all optimizer errors.

    Attributes:
        error_code: Unique identifier for this error type
        is_recoverable: Whether the system can attempt recovery
        context: Additional context about the error
        timestamp: When the error occurred
    """
    error_code: str = "SYSTEM_ERROR"
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
        self.timestamp = datetime.utcnow()
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
# CONFIGURATION ERRORS (Fatal, raised before any round starts)
# =============================================================================

class ConfigurationError(OptimizerSystemError):
    """
    Raised for invalid pre-flight configuration.

    Examples:
    - Empty variant catalog
    - Zero rounds or zero simulations
    - Zero concurrency
    """
    error_code = "CONFIG_ERROR"
    is_recoverable = False


class SettingsValidationError(ConfigurationError):
    """Raised when base.yaml fails schema validation."""
    error_code = "SETTINGS_INVALID"


# =============================================================================
# DATA ERRORS
# =============================================================================

class DataUnavailableError(OptimizerSystemError):
    """Price or news source unreachable or returned nothing usable."""
    error_code = "DATA_UNAVAILABLE"


# =============================================================================
# WORKFLOW ERRORS
# =============================================================================

class CatalogError(OptimizerSystemError):
    """Unknown variant, step or handler name."""
    error_code = "CATALOG_ERROR"


class WorkflowExecutionError(OptimizerSystemError):
    """A workflow step could not run, e.g. a missing upstream artifact."""
    error_code = "WORKFLOW_EXECUTION"


# =============================================================================
# OPTIMIZATION ERRORS (Recovered locally)
# =============================================================================

class EvaluationError(OptimizerSystemError):
    """Backtest evaluation failed internally."""
    error_code = "EVALUATION_FAILURE"


class GenerationError(OptimizerSystemError):
    """Text generation produced no usable candidate."""
    error_code = "GENERATION_FAILURE"


class RoundError(OptimizerSystemError):
    """An optimizer round failed and was recorded as an error marker."""
    error_code = "ROUND_FAILURE"


class InstrumentError(OptimizerSystemError):
    """An instrument's whole optimization run failed."""
    error_code = "INSTRUMENT_FAILURE"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def is_recoverable(error: Exception) -> bool:
    """
    Check whether an error can be handled locally.

    Unknown exceptions are treated as recoverable; the component that
    catches them decides the fallback.
    """
    if isinstance(error, OptimizerSystemError):
        return error.is_recoverable
    return True


def get_error_code(error: Exception) -> str:
    """
    Get the error code for an exception.

    Returns:
        Error code string, or "UNKNOWN" for foreign exceptions
    """
    if isinstance(error, OptimizerSystemError):
        return error.error_code
    return "UNKNOWN"
