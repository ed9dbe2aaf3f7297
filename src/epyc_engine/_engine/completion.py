# Area: Engine
"""
epyc_engine._engine.completion — Completion Strategies
======================================================

Season games and standalone games finish under different rules, so each
rule is its own named strategy:

- ``RosterCoverageCompletion``: every roster member of the season who is
  not banned has a COMPLETED or SKIPPED turn in the game.
- ``TurnCountCompletion``: the game reached ``max_turns`` resolved turns,
  or it reached ``min_turns`` and has been idle for ``stale_timeout``.

Season completion and the standalone return policy live here as well.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence

from .config import GameConfig
from .enums import FailureKind, GameStatus, SeasonStatus
from .models import Game, Turn
from .results import Result


@dataclass(frozen=True)
class CompletionContext:
    game: Game
    turns: Sequence[Turn]
    now: datetime
    roster_ids: Sequence[str] = ()
    game_config: Optional[GameConfig] = None
    # Roster members no longer eligible for turns (banned)
    excused_ids: Sequence[str] = ()


class CompletionStrategy(ABC):
    name = "base"

    @abstractmethod
    def is_complete(self, ctx: CompletionContext) -> bool:
        ...


class RosterCoverageCompletion(CompletionStrategy):
    """
    Complete once each roster member resolved a turn in the game.

    Excused members (banned after joining) can never be offered a turn,
    so they are not waited for.
    """

    name = "roster_coverage"

    def is_complete(self, ctx: CompletionContext) -> bool:
        if not ctx.roster_ids:
            return False
        resolved_by = {t.player_id for t in ctx.turns if t.is_resolved}
        excused = set(ctx.excused_ids)
        return all(pid in resolved_by for pid in ctx.roster_ids if pid not in excused)


class TurnCountCompletion(CompletionStrategy):
    """Complete at max_turns, or at min_turns once the game went stale."""

    name = "turn_count"

    def is_complete(self, ctx: CompletionContext) -> bool:
        config = ctx.game_config or GameConfig()
        resolved = sum(1 for t in ctx.turns if t.is_resolved)
        if config.max_turns is not None and resolved >= config.max_turns:
            return True
        if resolved >= config.min_turns:
            last_activity = ctx.game.last_activity_at or ctx.game.created_at
            if last_activity is not None and ctx.now >= last_activity + config.stale_window:
                return True
        return False


ROSTER_COVERAGE = RosterCoverageCompletion()
TURN_COUNT = TurnCountCompletion()


def strategy_for(game: Game) -> CompletionStrategy:
    return TURN_COUNT if game.is_standalone else ROSTER_COVERAGE


def is_season_complete(status: SeasonStatus, game_statuses: Iterable[GameStatus]) -> bool:
    """
    A season is complete when all of its games are COMPLETED.

    With no games at all, a season counts as complete only once it has
    left SETUP and PENDING.
    """
    statuses = list(game_statuses)
    if not statuses:
        return status not in (SeasonStatus.SETUP, SeasonStatus.PENDING)
    return all(s == GameStatus.COMPLETED for s in statuses)


def check_return_policy(
    player_id: str, turns: Sequence[Turn], config: GameConfig
) -> Result[None]:
    """
    Whether a player may take another turn in a standalone game.

    ``return_count`` of 0 allows a single contribution. Otherwise a player
    may contribute up to ``return_count`` times; past that, a positive
    ``return_cooldown`` lets them back in after that many resolved turns
    by other players.
    """
    mine = [t for t in turns if t.player_id == player_id and t.is_resolved]
    if not mine:
        return Result.success()
    limit = max(config.return_count, 1)
    if len(mine) < limit:
        return Result.success()
    if config.return_count and config.return_cooldown > 0:
        last = max(t.turn_number for t in mine)
        since = sum(
            1 for t in turns
            if t.is_resolved and t.turn_number > last and t.player_id != player_id
        )
        if since >= config.return_cooldown:
            return Result.success()
        return Result.fail(
            FailureKind.RETURN_NOT_ALLOWED,
            "Return cooldown not met",
            turns_until_eligible=config.return_cooldown - since,
        )
    return Result.fail(FailureKind.RETURN_NOT_ALLOWED, "Return limit exceeded")
