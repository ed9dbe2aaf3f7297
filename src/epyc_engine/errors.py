"""
epyc_engine.errors — Custom exception classes
=============================================

Defines the exception hierarchy for the engine.

Ordinary outcomes (a lost claim race, a full season, a bad config value
typed by a user) are reported through ``Result`` objects, not raised.
The exceptions below are reserved for input validation at the edges,
infrastructure calls, and invariant violations that must abort the
enclosing operation. Each exception stores its context for structured
logging.
"""

from __future__ import annotations
from typing import Any, Dict, Optional
import json


class EpycEngineError(Exception):
    """Base exception for all epyc_engine errors."""

    error_type = "ENGINE_ERROR"

    def context(self) -> Dict[str, Any]:
        return {}

    def format_error_log(self) -> str:
        return _format_error_block(self.error_type, str(self), self.context())


class DurationFormatError(EpycEngineError, ValueError):
    """Raised when a duration string or interval cannot be converted."""

    error_type = "DURATION_FORMAT"

    def __init__(self, value: Any, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid duration {value!r}: {reason}")

    def context(self) -> Dict[str, Any]:
        return {"value": repr(self.value), "reason": self.reason}


class ConfigValidationError(EpycEngineError, ValueError):
    """Raised when a season or game config fails validation."""

    error_type = "CONFIG_VALIDATION"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")

    def context(self) -> Dict[str, Any]:
        return {"field": self.field, "reason": self.reason}


class InvariantViolationError(EpycEngineError):
    """Raised when stored state contradicts an engine invariant."""

    error_type = "INVARIANT_VIOLATION"

    def __init__(self, entity: str, detail: str):
        self.entity = entity
        self.detail = detail
        super().__init__(f"Invariant violated on {entity}: {detail}")

    def context(self) -> Dict[str, Any]:
        return {"entity": self.entity, "detail": self.detail}


class InfrastructureError(EpycEngineError):
    """
    Raised by gateway adapters when scheduling, notification or storage fails.

    ``transient`` tells the retry policy whether another attempt may succeed.
    Permission and configuration problems are not transient.
    """

    error_type = "INFRASTRUCTURE"

    def __init__(
        self,
        operation: str,
        cause: str,
        transient: bool = True,
        code: Optional[str] = None,
    ):
        self.operation = operation
        self.cause = cause
        self.transient = transient
        self.code = code
        super().__init__(f"{operation} failed: {cause}")

    def context(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "cause": self.cause,
            "transient": self.transient,
            "code": self.code,
        }


class RetryExhaustedError(EpycEngineError):
    """Raised when a transient failure persists past the retry budget."""

    error_type = "RETRY_EXHAUSTED"

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}"
        )

    def context(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "attempts": self.attempts,
            "last_error": f"{type(self.last_error).__name__}: {self.last_error}",
        }


def _format_error_block(
    error_type: str, message: str, context: Dict[str, Any]
) -> str:
    """Format a structured error block for the log file and stderr."""
    from datetime import datetime, timezone

    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    lines = [
        "",
        "=" * 64,
        " ENGINE ERROR",
        "=" * 64,
        f" Timestamp:    {timestamp}",
        f" Error Type:   {error_type}",
        f" Message:      {message}",
    ]

    if context:
        lines.append("")
        lines.append(" ── CONTEXT " + "─" * 52)
        lines.append(_indent_json(context))

    lines.append("")
    lines.append("=" * 64)
    lines.append("")

    return "\n".join(lines)


def _indent_json(data: Dict[str, Any], indent: int = 2) -> str:
    """Format JSON with indentation for error logs."""
    formatted = json.dumps(data, indent=indent, default=str)
    return "\n".join(" " + line for line in formatted.split("\n"))
