# Area: Engine
"""
epyc_engine._engine.turn_state_machine — Turn State Machine
===========================================================

Enforces the per-turn lifecycle:

    AVAILABLE --offer--> OFFERED --claim--> PENDING --submit--> COMPLETED
                         OFFERED --dismiss--> AVAILABLE
                                            PENDING --skip--> SKIPPED

Guards are pure functions over a turn snapshot. ``TurnStateMachine``
runs a guard and the matching conditional UPDATE inside one store
transaction; a guard failure or a lost race is returned as a typed
``Failure`` and nothing is written.
"""

import logging
import sqlite3
from typing import Callable, Optional

from ..errors import InvariantViolationError
from .._shared.clock import Clock, utc_now
from .enums import FailureKind, TurnEvent, TurnStatus, TurnType
from .models import Turn, TurnContent
from .results import Failure, Result

logger = logging.getLogger("epyc_engine.engine.turns")


# Valid transitions: {current_status: {event: next_status}}
TRANSITIONS = {
    TurnStatus.AVAILABLE: {
        TurnEvent.OFFER: TurnStatus.OFFERED,
    },
    TurnStatus.OFFERED: {
        TurnEvent.CLAIM: TurnStatus.PENDING,
        TurnEvent.DISMISS: TurnStatus.AVAILABLE,
    },
    TurnStatus.PENDING: {
        TurnEvent.SUBMIT: TurnStatus.COMPLETED,
        TurnEvent.SKIP: TurnStatus.SKIPPED,
    },
    TurnStatus.COMPLETED: {},
    TurnStatus.SKIPPED: {},
}


def can_transition(status: TurnStatus, event: TurnEvent) -> bool:
    return event in TRANSITIONS.get(status, {})


def next_status(status: TurnStatus, event: TurnEvent) -> TurnStatus:
    """
    Resolve the status an event leads to.

    Raises:
        InvariantViolationError: If the event is not valid from ``status``
    """
    if not can_transition(status, event):
        raise InvariantViolationError(
            "turn", f"{event.value} is not valid from {status.value}"
        )
    return TRANSITIONS[status][event]


# ── Guards ─────────────────────────────────────────────────────

def _not_found(turn_id: str) -> Failure:
    return Failure(FailureKind.NOT_FOUND, "Turn not found", {"turn_id": turn_id})


def _check_state(turn: Turn, event: TurnEvent) -> Optional[Failure]:
    if can_transition(turn.status, event):
        return None
    return Failure(
        FailureKind.WRONG_STATE,
        f"Cannot {event.value} a turn that is {turn.status.value}",
        {"turn_id": turn.id, "status": turn.status.value},
    )


def _wrong_holder(turn: Turn, player_id: str) -> Failure:
    return Failure(
        FailureKind.WRONG_HOLDER,
        "Turn belongs to another player",
        {"turn_id": turn.id, "player_id": player_id, "holder_id": turn.player_id},
    )


def validate_content(turn_type: TurnType, content: Optional[TurnContent]) -> Optional[Failure]:
    """Writing turns need non-blank text, drawing turns a non-blank image reference."""
    if content is None:
        return Failure(FailureKind.INVALID_CONTENT, "No content submitted")
    if turn_type == TurnType.WRITING:
        if content.image_url is not None:
            return Failure(FailureKind.INVALID_CONTENT, "Writing turns take text, not images")
        if not content.text or not content.text.strip():
            return Failure(FailureKind.INVALID_CONTENT, "Text content cannot be empty")
    else:
        if content.text is not None:
            return Failure(FailureKind.INVALID_CONTENT, "Drawing turns take an image, not text")
        if not content.image_url or not content.image_url.strip():
            return Failure(FailureKind.INVALID_CONTENT, "Image reference cannot be empty")
    return None


def check_offer(turn: Optional[Turn], turn_id: str) -> Optional[Failure]:
    if turn is None:
        return _not_found(turn_id)
    return _check_state(turn, TurnEvent.OFFER)


def check_claim(turn: Optional[Turn], turn_id: str, player_id: str) -> Optional[Failure]:
    if turn is None:
        return _not_found(turn_id)
    failure = _check_state(turn, TurnEvent.CLAIM)
    if failure:
        return failure
    if turn.player_id is not None and turn.player_id != player_id:
        return _wrong_holder(turn, player_id)
    return None


def check_dismiss(turn: Optional[Turn], turn_id: str, player_id: str) -> Optional[Failure]:
    if turn is None:
        return _not_found(turn_id)
    failure = _check_state(turn, TurnEvent.DISMISS)
    if failure:
        return failure
    if turn.player_id != player_id:
        return _wrong_holder(turn, player_id)
    return None


def check_submit(
    turn: Optional[Turn], turn_id: str, player_id: str, content: Optional[TurnContent]
) -> Optional[Failure]:
    if turn is None:
        return _not_found(turn_id)
    failure = _check_state(turn, TurnEvent.SUBMIT)
    if failure:
        return failure
    if turn.player_id != player_id:
        return _wrong_holder(turn, player_id)
    return validate_content(turn.type, content)


def check_skip(turn: Optional[Turn], turn_id: str) -> Optional[Failure]:
    if turn is None:
        return _not_found(turn_id)
    return _check_state(turn, TurnEvent.SKIP)


# ── Service ────────────────────────────────────────────────────

class TurnStateMachine:
    """
    Applies turn transitions against the store.

    Every public method accepts an optional connection so callers can
    make a transition part of a larger transaction (game creation,
    advance). Without one, the method opens its own transaction.
    """

    def __init__(self, db, turns, games, clock: Clock = utc_now):
        self.db = db
        self.turns = turns
        self.games = games
        self.clock = clock

    def offer(
        self, turn_id: str, player_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Result[Turn]:
        """
        AVAILABLE -> OFFERED.

        Offering a turn in any other state is a logic error in the caller.

        Raises:
            InvariantViolationError: If the turn is not AVAILABLE
        """
        def guard(turn: Optional[Turn]) -> Optional[Failure]:
            failure = check_offer(turn, turn_id)
            if failure and failure.kind == FailureKind.WRONG_STATE:
                raise InvariantViolationError(f"turn {turn_id}", failure.reason)
            return failure

        now = self.clock()
        return self._run(
            TurnEvent.OFFER, turn_id, guard,
            lambda c: self.turns.offer(turn_id, player_id, now, c), conn,
        )

    def claim(
        self, turn_id: str, player_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Result[Turn]:
        """OFFERED -> PENDING, at most one winner per turn."""
        def guard(turn: Optional[Turn], c: sqlite3.Connection) -> Optional[Failure]:
            failure = check_claim(turn, turn_id, player_id)
            if failure:
                return failure
            return self._pending_elsewhere(turn, player_id, c)

        now = self.clock()
        return self._run(
            TurnEvent.CLAIM, turn_id, guard,
            lambda c: self.turns.claim(turn_id, player_id, now, c), conn,
            guard_needs_conn=True,
        )

    def dismiss(
        self, turn_id: str, player_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Result[Turn]:
        """OFFERED -> AVAILABLE, clearing the holder and offer timestamps."""
        return self._run(
            TurnEvent.DISMISS, turn_id,
            lambda turn: check_dismiss(turn, turn_id, player_id),
            lambda c: self.turns.dismiss(turn_id, player_id, c), conn,
        )

    def submit(
        self,
        turn_id: str,
        player_id: str,
        content: Optional[TurnContent],
        conn: Optional[sqlite3.Connection] = None,
    ) -> Result[Turn]:
        """PENDING -> COMPLETED with content matching the turn type."""
        now = self.clock()
        return self._run(
            TurnEvent.SUBMIT, turn_id,
            lambda turn: check_submit(turn, turn_id, player_id, content),
            lambda c: self.turns.complete(turn_id, player_id, content, now, c), conn,
        )

    def skip(self, turn_id: str, conn: Optional[sqlite3.Connection] = None) -> Result[Turn]:
        """PENDING -> SKIPPED."""
        now = self.clock()
        return self._run(
            TurnEvent.SKIP, turn_id,
            lambda turn: check_skip(turn, turn_id),
            lambda c: self.turns.skip(turn_id, now, c), conn,
        )

    def _pending_elsewhere(
        self, turn: Turn, player_id: str, conn: sqlite3.Connection
    ) -> Optional[Failure]:
        game = self.games.get(turn.game_id, conn)
        if game is None or game.season_id is None:
            return None
        if self.turns.count_pending_in_season(player_id, game.season_id, conn) == 0:
            return None
        return Failure(
            FailureKind.PENDING_ELSEWHERE,
            "Player already has a pending turn in this season",
            {"turn_id": turn.id, "player_id": player_id, "season_id": game.season_id},
        )

    def _run(
        self,
        event: TurnEvent,
        turn_id: str,
        guard: Callable,
        apply: Callable[[sqlite3.Connection], bool],
        conn: Optional[sqlite3.Connection],
        guard_needs_conn: bool = False,
    ) -> Result[Turn]:
        if conn is None:
            with self.db.transaction() as tx:
                return self._run(event, turn_id, guard, apply, tx, guard_needs_conn)

        def evaluate():
            turn = self.turns.get(turn_id, conn)
            failure = guard(turn, conn) if guard_needs_conn else guard(turn)
            return turn, failure

        before, failure = evaluate()
        if failure is None and not apply(conn):
            # The row changed between the read and the conditional update
            before, failure = evaluate()
            failure = failure or Failure(
                FailureKind.WRONG_STATE, "Turn changed concurrently", {"turn_id": turn_id}
            )
        if failure is not None:
            logger.info(
                "Turn %s %s refused: %s (%s)",
                turn_id, event.value, failure.kind.value, failure.reason,
            )
            return Result.from_failure(failure)

        turn = self.turns.get(turn_id, conn)
        if turn.status != next_status(before.status, event):
            raise InvariantViolationError(
                f"turn {turn_id}", f"{event.value} left the turn {turn.status.value}"
            )
        self.games.touch(turn.game_id, self.clock(), conn)
        logger.info(
            "Turn %s %s -> %s (player=%s)",
            turn_id, event.value, turn.status.value, turn.player_id,
        )
        return Result.success(turn)
