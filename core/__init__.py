"""
Core Infrastructure
====================

Foundational components for the workflow optimizer.

Components:
- exceptions: Unified error hierarchy
- structured_log: JSON event logging
- cache: Shared TTL cache
"""

from .cache import TTLCache, get_shared_cache
from .exceptions import (
    ConfigurationError,
    OptimizerSystemError,
    get_error_code,
    is_recoverable,
)
from .structured_log import jlog, read_recent_logs

__all__ = [
    # Exceptions
    'OptimizerSystemError',
    'ConfigurationError',
    'get_error_code',
    'is_recoverable',
    # Structured Logging
    'jlog',
    'read_recent_logs',
    # Cache
    'TTLCache',
    'get_shared_cache',
]
