# Area: Shared
"""
epyc_engine._shared — Shared utilities
======================================

Logging setup, duration codec, retry policy and clock helpers used by
the engine and the store.
"""

from .duration import format_duration, parse_duration, is_valid_duration
from .resilience import CircuitBreaker, RetryPolicy, is_transient
from .clock import ManualClock, new_id, utc_now
from .logging_config import (
    setup_logging,
    log_engine_error,
    enable_quiet_mode,
    disable_quiet_mode,
    is_quiet_mode_enabled,
)

__all__ = [
    "format_duration",
    "parse_duration",
    "is_valid_duration",
    "CircuitBreaker",
    "RetryPolicy",
    "is_transient",
    "ManualClock",
    "new_id",
    "utc_now",
    "setup_logging",
    "log_engine_error",
    "enable_quiet_mode",
    "disable_quiet_mode",
    "is_quiet_mode_enabled",
]
