# Area: Engine
"""
epyc_engine._engine.player_selector — Next Player Selection
===========================================================

Pure, deterministic choice of the player who receives the next turn of
a season game. Selection runs in two phases:

MUST rules remove ineligible players. An empty pool after this phase is
a hard ``NO_ELIGIBLE_PLAYERS`` failure:

1. no repeat play: anyone already assigned a turn in this game is out
2. one pending turn per player across the whole season
3. banned players are out

SHOULD rules then narrow the pool in order, each one skipped when it
would remove every remaining candidate. A turn that was just declined or
let lapse first prefers anyone but the players who passed on it.

1. avoid repeating a pairing: drop players who, earlier in the season,
   took a turn of the target type right after the player who produced
   this game's latest resolved turn
2. drop players whose count of the target type reached floor(roster/2)
3. keep the minimum count of the target type
4. keep the minimum number of pending turns

Remaining ties go to the smallest player id.

Nothing here touches the store; callers read the inputs inside the same
transaction that creates and offers the turn.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .enums import ASSIGNED_TURN_STATUSES, FailureKind, TurnStatus, TurnType
from .models import Player, Turn
from .results import Result

logger = logging.getLogger("epyc_engine.engine.selector")


@dataclass(frozen=True)
class GameHistory:
    """A game id with all of its turns."""

    game_id: str
    turns: Tuple[Turn, ...] = ()


@dataclass(frozen=True)
class SelectionInput:
    """
    Everything selection needs.

    Attributes:
        current: The game the next turn belongs to
        roster: Season roster in join order
        season_games: Every game of the season, normally including ``current``
        turn_type: Contribution type of the turn being assigned
        passed_player_ids: Players who declined or let this turn lapse
    """

    current: GameHistory
    roster: Tuple[Player, ...]
    season_games: Tuple[GameHistory, ...]
    turn_type: TurnType
    passed_player_ids: Tuple[str, ...] = ()


@dataclass
class PlayerTurnStats:
    """Season-wide counters for one player."""

    player_id: str
    writing_turns: int = 0
    drawing_turns: int = 0
    pending_turns: int = 0
    played_in_current_game: bool = False

    def count_of(self, turn_type: TurnType) -> int:
        if turn_type == TurnType.WRITING:
            return self.writing_turns
        return self.drawing_turns


@dataclass(frozen=True)
class SelectionTrace:
    """Candidate ids left after each stage, for logs and tests."""

    stages: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()

    def after(self, stage: str) -> Optional[Tuple[str, ...]]:
        for name, ids in self.stages:
            if name == stage:
                return ids
        return None


@dataclass
class _Selection:
    candidates: List[Player]
    stats: Dict[str, PlayerTurnStats]
    trace: List[Tuple[str, Tuple[str, ...]]] = field(default_factory=list)

    def record(self, stage: str) -> None:
        self.trace.append((stage, tuple(p.id for p in self.candidates)))


def _all_games(data: SelectionInput) -> Tuple[GameHistory, ...]:
    if any(g.game_id == data.current.game_id for g in data.season_games):
        return data.season_games
    return data.season_games + (data.current,)


def compute_player_stats(data: SelectionInput) -> Dict[str, PlayerTurnStats]:
    """
    Count assigned turns per roster member across the season.

    A turn counts as assigned once it is OFFERED, PENDING, COMPLETED or
    SKIPPED. Turns held by players outside the roster are ignored.
    """
    stats = {p.id: PlayerTurnStats(p.id) for p in data.roster}
    for game in _all_games(data):
        for turn in game.turns:
            entry = stats.get(turn.player_id) if turn.player_id else None
            if entry is None or turn.status not in ASSIGNED_TURN_STATUSES:
                continue
            if turn.type == TurnType.WRITING:
                entry.writing_turns += 1
            else:
                entry.drawing_turns += 1
            if turn.status == TurnStatus.PENDING:
                entry.pending_turns += 1
            if game.game_id == data.current.game_id:
                entry.played_in_current_game = True
    return stats


def preceding_player_id(current: GameHistory) -> Optional[str]:
    """Holder of the highest-numbered resolved turn in the game, if any."""
    resolved = [t for t in current.turns if t.is_resolved and t.player_id]
    if not resolved:
        return None
    return max(resolved, key=lambda t: t.turn_number).player_id


def count_followed_pairings(
    games: Sequence[GameHistory],
    follower_id: str,
    preceding_id: str,
    turn_type: TurnType,
) -> int:
    """
    How often ``follower_id`` took a ``turn_type`` turn directly after
    ``preceding_id``, looking only at resolved turns of each game.
    """
    count = 0
    for game in games:
        chain = sorted(
            (t for t in game.turns if t.is_resolved),
            key=lambda t: t.turn_number,
        )
        for previous, turn in zip(chain, chain[1:]):
            if (
                turn.player_id == follower_id
                and turn.type == turn_type
                and previous.player_id == preceding_id
            ):
                count += 1
    return count


# ── Rules ──────────────────────────────────────────────────────

def _must_filter(sel: _Selection) -> None:
    sel.candidates = [
        p for p in sel.candidates
        if not sel.stats[p.id].played_in_current_game
        and sel.stats[p.id].pending_turns == 0
        and not p.is_banned
    ]
    sel.record("must")


def _narrow(sel: _Selection, stage: str, keep: Callable[[Player], bool]) -> None:
    """Apply a SHOULD rule unless it would leave nobody."""
    narrowed = [p for p in sel.candidates if keep(p)]
    if narrowed:
        sel.candidates = narrowed
    else:
        logger.debug("Rule %s would remove every candidate; skipped", stage)
    sel.record(stage)


def _avoid_passed(sel: _Selection, data: SelectionInput) -> None:
    if not data.passed_player_ids:
        return
    passed = set(data.passed_player_ids)
    _narrow(sel, "avoid_passed", lambda p: p.id not in passed)


def _avoid_repeat_pairing(sel: _Selection, data: SelectionInput) -> None:
    preceding = preceding_player_id(data.current)
    if preceding is None:
        sel.record("avoid_repeat_pairing")
        return
    games = _all_games(data)
    _narrow(
        sel, "avoid_repeat_pairing",
        lambda p: count_followed_pairings(games, p.id, preceding, data.turn_type) == 0,
    )


def _below_type_cap(sel: _Selection, data: SelectionInput) -> None:
    cap = len(data.roster) // 2
    _narrow(
        sel, "below_type_cap",
        lambda p: sel.stats[p.id].count_of(data.turn_type) < cap,
    )


def _min_type_count(sel: _Selection, data: SelectionInput) -> None:
    if not sel.candidates:
        return
    lowest = min(sel.stats[p.id].count_of(data.turn_type) for p in sel.candidates)
    _narrow(
        sel, "min_type_count",
        lambda p: sel.stats[p.id].count_of(data.turn_type) == lowest,
    )


def _min_pending(sel: _Selection) -> None:
    if not sel.candidates:
        return
    lowest = min(sel.stats[p.id].pending_turns for p in sel.candidates)
    _narrow(sel, "min_pending", lambda p: sel.stats[p.id].pending_turns == lowest)


def select_with_trace(
    data: SelectionInput,
) -> Tuple[Result[Player], SelectionTrace]:
    """
    Pick the player for the next turn and report how the pool shrank.

    Args:
        data: Current game, roster, season games and target turn type

    Returns:
        (result, trace). The result holds the chosen Player or a
        NO_ELIGIBLE_PLAYERS failure; the trace lists candidates per stage.
    """
    sel = _Selection(candidates=list(data.roster), stats=compute_player_stats(data))
    sel.record("roster")

    _must_filter(sel)
    if not sel.candidates:
        logger.warning(
            "No eligible players for game %s (%s turn, roster of %d)",
            data.current.game_id, data.turn_type.value, len(data.roster),
        )
        result: Result[Player] = Result.fail(
            FailureKind.NO_ELIGIBLE_PLAYERS,
            "No eligible players: everyone has played this game or has a pending turn",
            game_id=data.current.game_id,
            turn_type=data.turn_type.value,
            roster_size=len(data.roster),
        )
        return result, SelectionTrace(tuple(sel.trace))

    _avoid_passed(sel, data)
    _avoid_repeat_pairing(sel, data)
    _below_type_cap(sel, data)
    _min_type_count(sel, data)
    _min_pending(sel)

    chosen = min(sel.candidates, key=lambda p: p.id)
    sel.trace.append(("chosen", (chosen.id,)))
    logger.debug(
        "Selected %s for game %s from %s",
        chosen.id, data.current.game_id, [p.id for p in sel.candidates],
    )
    return Result.success(chosen), SelectionTrace(tuple(sel.trace))


def select_next_player(data: SelectionInput) -> Result[Player]:
    """Pick the player for the next turn (see ``select_with_trace``)."""
    result, _ = select_with_trace(data)
    return result
