"""
epyc_engine — Turn Rotation and Lifecycle Engine
================================================

Core engine for an asynchronous "telephone pictionary" game: players
alternate writing and drawing turns inside games, and games are grouped
into seasons with a fixed roster.

Quick Start:
    from epyc_engine import EpycEngine, Store, TurnContent

    engine = EpycEngine(Store.open("epyc.db"))
    alice = engine.register_player("discord:1", "alice")
    season = engine.create_season(creator_id=alice.id).unwrap()
    engine.join_season(season.id, alice.id)

Standalone matches:
    turn = engine.create_standalone_game(alice.id).unwrap()
    engine.submit_turn(turn.id, alice.id, TurnContent.of_text("a cat in a hat"))

Operations return a ``Result``: check ``result.ok`` and read
``result.value`` or ``result.failure``. Exceptions are reserved for
invariant violations and infrastructure failures.
"""

from .engine import EpycEngine
from .settings import EngineSettings, load_settings
from ._store import Store
from ._shared import (
    format_duration,
    parse_duration,
    setup_logging,
)
from ._engine import (
    ActivationTrigger,
    AdvanceTrigger,
    ErrorCategory,
    Failure,
    FailureKind,
    Game,
    GameConfig,
    GameStatus,
    InMemoryScheduler,
    LoggingNotifier,
    NotificationGateway,
    Player,
    RecordingNotifier,
    Result,
    SchedulingGateway,
    Season,
    SeasonConfig,
    SeasonStatus,
    Turn,
    TurnContent,
    TurnStatus,
    TurnType,
    select_next_player,
)
from .errors import (
    EpycEngineError,
    DurationFormatError,
    ConfigValidationError,
    InvariantViolationError,
    InfrastructureError,
    RetryExhaustedError,
)

__all__ = [
    # Main classes
    "EpycEngine",
    "EngineSettings",
    "Store",
    "load_settings",
    "setup_logging",
    # Durations
    "parse_duration",
    "format_duration",
    # Selection
    "select_next_player",
    # Results
    "Result",
    "Failure",
    "FailureKind",
    "ErrorCategory",
    # Records and enums
    "Player",
    "Season",
    "Game",
    "Turn",
    "TurnContent",
    "TurnType",
    "TurnStatus",
    "GameStatus",
    "SeasonStatus",
    "AdvanceTrigger",
    "ActivationTrigger",
    # Configs
    "SeasonConfig",
    "GameConfig",
    # Gateways
    "SchedulingGateway",
    "NotificationGateway",
    "InMemoryScheduler",
    "LoggingNotifier",
    "RecordingNotifier",
    # Errors
    "EpycEngineError",
    "DurationFormatError",
    "ConfigValidationError",
    "InvariantViolationError",
    "InfrastructureError",
    "RetryExhaustedError",
]
__version__ = "1.0.0"
