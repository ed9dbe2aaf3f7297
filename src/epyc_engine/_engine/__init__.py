# Area: Engine
"""
epyc_engine._engine — Turn rotation and lifecycle engine
========================================================

This package contains:
- Player selection (pure)
- Turn state machine with conditional store updates
- Game and season lifecycles, completion strategies
- Timeout job planning, outbound instructions and gateways
- Config models, config sessions and the player registry
"""

from .enums import (
    ActivationTrigger,
    AdvanceTrigger,
    EntityKind,
    ErrorCategory,
    FailureKind,
    GameStatus,
    JobKind,
    MessageKind,
    SeasonStatus,
    TurnEvent,
    TurnStatus,
    TurnType,
)
from .results import Failure, Result
from .models import Game, Player, Season, Turn, TurnContent
from .config import GameConfig, SeasonConfig, build_config, validate_config_updates
from .player_selector import (
    GameHistory,
    SelectionInput,
    select_next_player,
    select_with_trace,
)
from .turn_state_machine import TRANSITIONS, TurnStateMachine, can_transition
from .completion import (
    RosterCoverageCompletion,
    TurnCountCompletion,
    is_season_complete,
)
from .game_lifecycle import GameLifecycle
from .season_lifecycle import JoinReceipt, SeasonLifecycle
from .gateways import (
    EffectRunner,
    InMemoryScheduler,
    LoggingNotifier,
    NotificationGateway,
    RecordingNotifier,
    SchedulingGateway,
)
from .instructions import (
    CreateRecord,
    DeleteRecord,
    Effects,
    NotificationInstruction,
    UpdateRecord,
)
from .timeouts import job_id
from .players import PlayerRegistry
from .config_session import ConfigSession, ConfigSessionStore

__all__ = [
    "ActivationTrigger",
    "AdvanceTrigger",
    "EntityKind",
    "ErrorCategory",
    "FailureKind",
    "GameStatus",
    "JobKind",
    "MessageKind",
    "SeasonStatus",
    "TurnEvent",
    "TurnStatus",
    "TurnType",
    "Failure",
    "Result",
    "Game",
    "Player",
    "Season",
    "Turn",
    "TurnContent",
    "GameConfig",
    "SeasonConfig",
    "build_config",
    "validate_config_updates",
    "GameHistory",
    "SelectionInput",
    "select_next_player",
    "select_with_trace",
    "TRANSITIONS",
    "TurnStateMachine",
    "can_transition",
    "RosterCoverageCompletion",
    "TurnCountCompletion",
    "is_season_complete",
    "GameLifecycle",
    "JoinReceipt",
    "SeasonLifecycle",
    "EffectRunner",
    "InMemoryScheduler",
    "LoggingNotifier",
    "NotificationGateway",
    "RecordingNotifier",
    "SchedulingGateway",
    "CreateRecord",
    "DeleteRecord",
    "Effects",
    "NotificationInstruction",
    "UpdateRecord",
    "job_id",
    "PlayerRegistry",
    "ConfigSession",
    "ConfigSessionStore",
]
