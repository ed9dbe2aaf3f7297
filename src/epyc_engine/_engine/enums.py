# Area: Engine
"""
epyc_engine._engine.enums — Engine Enums
========================================

Statuses for turns, games and seasons, plus the event, trigger and
failure vocabularies the engine reports in.
"""

from enum import Enum


class TurnType(Enum):
    """Kind of contribution a turn expects."""
    WRITING = "WRITING"
    DRAWING = "DRAWING"

    @classmethod
    def from_pattern_token(cls, token: str) -> "TurnType":
        """Map a turn-pattern entry ("writing"/"drawing") to a TurnType."""
        return cls(token.strip().upper())


class TurnStatus(Enum):
    """
    Turn lifecycle states.

    AVAILABLE -> OFFERED (offer)
    OFFERED -> PENDING (claim)
    OFFERED -> AVAILABLE (dismiss)
    PENDING -> COMPLETED (submit)
    PENDING -> SKIPPED (skip)
    COMPLETED and SKIPPED are terminal.
    """
    AVAILABLE = "AVAILABLE"
    OFFERED = "OFFERED"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"


class TurnEvent(Enum):
    OFFER = "offer"
    CLAIM = "claim"
    DISMISS = "dismiss"
    SUBMIT = "submit"
    SKIP = "skip"


class GameStatus(Enum):
    SETUP = "SETUP"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    TERMINATED = "TERMINATED"


class SeasonStatus(Enum):
    """
    Season lifecycle states.

    SETUP -> OPEN -> ACTIVE -> COMPLETED
    SETUP -> PENDING -> OPEN (deferred opening)
    OPEN | PENDING -> CANCELLED
    any non-terminal state -> TERMINATED
    """
    SETUP = "SETUP"
    PENDING = "PENDING"
    OPEN = "OPEN"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    TERMINATED = "TERMINATED"


# Turn states that count as "assigned" when computing player statistics
ASSIGNED_TURN_STATUSES = frozenset({
    TurnStatus.OFFERED,
    TurnStatus.PENDING,
    TurnStatus.COMPLETED,
    TurnStatus.SKIPPED,
})

RESOLVED_TURN_STATUSES = frozenset({TurnStatus.COMPLETED, TurnStatus.SKIPPED})

TERMINAL_SEASON_STATUSES = frozenset({
    SeasonStatus.COMPLETED,
    SeasonStatus.CANCELLED,
    SeasonStatus.TERMINATED,
})

# Seasons accept new roster members while in these states
JOINABLE_SEASON_STATUSES = frozenset({
    SeasonStatus.SETUP,
    SeasonStatus.PENDING,
    SeasonStatus.OPEN,
})


class AdvanceTrigger(Enum):
    """Why a game is being advanced to its next turn."""
    TURN_COMPLETED = "turn_completed"
    TURN_SKIPPED = "turn_skipped"
    SEASON_ACTIVATED = "season_activated"
    CLAIM_TIMEOUT = "claim_timeout"
    TURN_DISMISSED = "turn_dismissed"
    GAME_CREATED = "game_created"


class ActivationTrigger(Enum):
    """Why a season activation was attempted."""
    MAX_PLAYERS = "max_players"
    OPEN_DURATION_TIMEOUT = "open_duration_timeout"


class ErrorCategory(Enum):
    """Top-level failure taxonomy reported to callers."""
    NOT_FOUND = "NotFound"
    INVALID_TRANSITION = "InvalidTransition"
    VALIDATION = "ValidationError"
    SELECTION = "SelectionFailure"
    INFRASTRUCTURE = "InfrastructureError"


class FailureKind(Enum):
    """Specific failure reasons. Each maps to one ErrorCategory."""
    NOT_FOUND = "NotFound"
    WRONG_STATE = "WrongState"
    WRONG_HOLDER = "WrongHolder"
    INVALID_CONTENT = "InvalidContent"
    PENDING_ELSEWHERE = "PendingElsewhere"
    NOT_OPEN = "NotOpen"
    ALREADY_JOINED = "AlreadyJoined"
    FULL = "Full"
    PLAYER_BANNED = "PlayerBanned"
    RETURN_NOT_ALLOWED = "ReturnNotAllowed"
    NO_ELIGIBLE_PLAYERS = "NoEligiblePlayers"
    VALIDATION = "Validation"
    INFRASTRUCTURE = "Infrastructure"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORY_BY_KIND[self]


_CATEGORY_BY_KIND = {
    FailureKind.NOT_FOUND: ErrorCategory.NOT_FOUND,
    FailureKind.WRONG_STATE: ErrorCategory.INVALID_TRANSITION,
    FailureKind.WRONG_HOLDER: ErrorCategory.INVALID_TRANSITION,
    FailureKind.INVALID_CONTENT: ErrorCategory.VALIDATION,
    FailureKind.PENDING_ELSEWHERE: ErrorCategory.INVALID_TRANSITION,
    FailureKind.NOT_OPEN: ErrorCategory.INVALID_TRANSITION,
    FailureKind.ALREADY_JOINED: ErrorCategory.INVALID_TRANSITION,
    FailureKind.FULL: ErrorCategory.INVALID_TRANSITION,
    FailureKind.PLAYER_BANNED: ErrorCategory.VALIDATION,
    FailureKind.RETURN_NOT_ALLOWED: ErrorCategory.INVALID_TRANSITION,
    FailureKind.NO_ELIGIBLE_PLAYERS: ErrorCategory.SELECTION,
    FailureKind.VALIDATION: ErrorCategory.VALIDATION,
    FailureKind.INFRASTRUCTURE: ErrorCategory.INFRASTRUCTURE,
}


class JobKind(Enum):
    """Scheduled job kinds. The value doubles as the job id prefix."""
    CLAIM_TIMEOUT = "turn-claim-timeout"
    SUBMISSION_TIMEOUT = "turn-submission-timeout"
    SUBMISSION_WARNING = "turn-warning"
    SEASON_ACTIVATION = "season-activation"


class MessageKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


class EntityKind(Enum):
    PLAYER = "player"
    SEASON = "season"
    GAME = "game"
    TURN = "turn"
