# Area: Engine
"""
epyc_engine._engine.config — Season and Game Configuration
==========================================================

Pydantic models for the rules a season or standalone game runs under.
Instances are frozen; overrides produce a new, re-validated instance.
Durations are kept as the strings users typed and parsed on access.
"""

from datetime import timedelta
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..errors import ConfigValidationError
from .._shared.duration import parse_duration
from .enums import FailureKind, TurnType
from .results import Result

C = TypeVar("C", bound="RulesConfig")

VALID_PATTERN_TOKENS = ("writing", "drawing")


def normalize_turn_pattern(value: str) -> str:
    """
    Validate and normalize a comma-separated turn pattern.

    Entries are trimmed and lowercased; "Writing, DRAWING" becomes
    "writing,drawing".

    Raises:
        ValueError: On empty entries or unknown contribution types
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Turn pattern cannot be empty")
    tokens = [token.strip().lower() for token in value.split(",")]
    if any(not token for token in tokens):
        raise ValueError("Turn pattern cannot contain empty entries")
    invalid = [token for token in tokens if token not in VALID_PATTERN_TOKENS]
    if invalid:
        raise ValueError(
            f'Invalid turn types {invalid}; use "writing" and "drawing"'
        )
    return ",".join(tokens)


class RulesConfig(BaseModel):
    """Fields shared by season and standalone game configs."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    turn_pattern: str = "writing,drawing"
    writing_timeout: str = "1d"
    writing_warning: str = "1m"
    drawing_timeout: str = "1d"
    drawing_warning: str = "10m"

    @field_validator("turn_pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        return normalize_turn_pattern(value)

    @field_validator(
        "writing_timeout", "writing_warning", "drawing_timeout", "drawing_warning"
    )
    @classmethod
    def _check_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @model_validator(mode="after")
    def _check_warnings(self):
        if parse_duration(self.writing_warning) >= parse_duration(self.writing_timeout):
            raise ValueError("writing_warning must be shorter than writing_timeout")
        if parse_duration(self.drawing_warning) >= parse_duration(self.drawing_timeout):
            raise ValueError("drawing_warning must be shorter than drawing_timeout")
        return self

    @property
    def pattern(self) -> Tuple[TurnType, ...]:
        return tuple(TurnType.from_pattern_token(t) for t in self.turn_pattern.split(","))

    @property
    def starting_type(self) -> TurnType:
        return self.pattern[0]

    def type_for_turn(self, turn_number: int) -> TurnType:
        """Contribution type for a 1-based turn number, cycling the pattern."""
        pattern = self.pattern
        return pattern[(turn_number - 1) % len(pattern)]

    def submission_timeout(self, turn_type: TurnType) -> timedelta:
        if turn_type == TurnType.WRITING:
            return parse_duration(self.writing_timeout)
        return parse_duration(self.drawing_timeout)

    def warning_lead(self, turn_type: TurnType) -> timedelta:
        if turn_type == TurnType.WRITING:
            return parse_duration(self.writing_warning)
        return parse_duration(self.drawing_warning)

    def with_overrides(self: C, **updates: Any) -> C:
        """Return a validated copy with ``updates`` applied."""
        data = self.model_dump()
        data.update(updates)
        return build_config(type(self), data)


class SeasonConfig(RulesConfig):
    """Rules for a season: roster bounds, claim window and open window."""

    claim_timeout: str = "1d"
    open_duration: str = "7d"
    min_players: int = Field(default=6, ge=1, le=100)
    max_players: int = Field(default=20, ge=1, le=100)

    @field_validator("claim_timeout", "open_duration")
    @classmethod
    def _check_season_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @model_validator(mode="after")
    def _check_roster_bounds(self):
        if self.min_players > self.max_players:
            raise ValueError("min_players must be less than or equal to max_players")
        return self

    @property
    def claim_window(self) -> timedelta:
        return parse_duration(self.claim_timeout)

    @property
    def open_window(self) -> timedelta:
        return parse_duration(self.open_duration)


class GameConfig(RulesConfig):
    """
    Rules for a standalone game.

    The game ends at ``max_turns`` resolved turns, or once it has at least
    ``min_turns`` and nothing happened for ``stale_timeout``. The return
    policy lets a player contribute again: up to ``return_count`` times,
    and past that only after ``return_cooldown`` turns by others.
    """

    writing_timeout: str = "5m"
    drawing_timeout: str = "20m"
    drawing_warning: str = "2m"
    stale_timeout: str = "3d"
    min_turns: int = Field(default=6, ge=1)
    max_turns: Optional[int] = Field(default=None, ge=1)
    return_count: int = Field(default=0, ge=0, le=50)
    return_cooldown: int = Field(default=3, ge=0, le=100)

    @field_validator("stale_timeout")
    @classmethod
    def _check_stale(cls, value: str) -> str:
        parse_duration(value)
        return value

    @model_validator(mode="after")
    def _check_turn_bounds(self):
        if self.max_turns is not None and self.max_turns < self.min_turns:
            raise ValueError("max_turns must be greater than or equal to min_turns")
        return self

    @property
    def stale_window(self) -> timedelta:
        return parse_duration(self.stale_timeout)


def build_config(cls: Type[C], data: Dict[str, Any]) -> C:
    """
    Build a config, translating pydantic errors to ConfigValidationError.

    Only the first error is reported; its message is meant for end users.
    """
    try:
        return cls.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "config"
        reason = first.get("msg", "invalid value")
        if reason.startswith("Value error, "):
            reason = reason[len("Value error, "):]
        raise ConfigValidationError(field, reason) from e


def validate_config_updates(base: C, updates: Dict[str, Any]) -> Result[C]:
    """Apply updates to ``base`` and report problems as a VALIDATION failure."""
    try:
        return Result.success(base.with_overrides(**updates))
    except ConfigValidationError as e:
        return Result.fail(FailureKind.VALIDATION, e.reason, field=e.field)
