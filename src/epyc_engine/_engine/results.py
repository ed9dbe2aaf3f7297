# Area: Engine
"""
epyc_engine._engine.results — Success/Failure Results
=====================================================

Every core operation returns a ``Result``: either a value or a typed
``Failure``. Expected outcomes such as losing a claim race or joining a
full season are failures, not exceptions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

from .enums import ErrorCategory, FailureKind

T = TypeVar("T")


@dataclass(frozen=True)
class Failure:
    """
    A typed, user-reportable failure.

    Attributes:
        kind: Specific failure reason
        reason: Human-readable explanation suitable for UI feedback
        data: Extra context (ids, counts) for templates and logs
    """

    kind: FailureKind
    reason: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def category(self) -> ErrorCategory:
        return self.kind.category


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: FailureKind, reason: str, **data: Any) -> "Result[T]":
        return cls(failure=Failure(kind, reason, data))

    @classmethod
    def from_failure(cls, failure: Failure) -> "Result[T]":
        return cls(failure=failure)

    def unwrap(self) -> T:
        """Return the value, or raise ValueError carrying the failure."""
        if self.failure is not None:
            raise ValueError(f"{self.failure.kind.value}: {self.failure.reason}")
        return self.value
