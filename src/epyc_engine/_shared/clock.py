# Area: Shared
"""
epyc_engine._shared.clock — Time and identifier helpers
=======================================================

All engine timestamps are timezone-aware UTC datetimes, stored as
ISO-8601 strings. The clock is injected everywhere so tests can move
time forward without sleeping.
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Random 32-character hex id."""
    return uuid.uuid4().hex


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ManualClock:
    """A settable clock for simulations and tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or utc_now()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> datetime:
        self.now = self.now + delta
        return self.now
