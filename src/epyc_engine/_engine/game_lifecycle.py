# Area: Engine
"""
epyc_engine._engine.game_lifecycle — Game Lifecycle
===================================================

Creates games and their turns, advances a game to its next turn, and
detects completion.

Advancing reads the game's turns, the season roster and every season
turn inside the same transaction that creates and offers the next turn,
so selection never acts on stale history. If nobody is eligible the new
AVAILABLE turn is still committed and the failure is returned; the next
advance picks that turn up again instead of creating another.
"""

import logging
import sqlite3
from typing import Optional, Sequence, Union

from .._shared.clock import Clock, new_id, utc_now
from .._shared.duration import format_duration
from .completion import CompletionContext, check_return_policy, strategy_for
from .config import GameConfig, SeasonConfig
from .enums import (
    AdvanceTrigger,
    FailureKind,
    GameStatus,
    MessageKind,
    TurnStatus,
)
from .instructions import CreateRecord, Effects
from .models import Game, Turn
from .player_selector import GameHistory, SelectionInput, select_next_player
from .results import Result
from .timeouts import plan_claim_timeout, plan_open_turn_cancels, plan_submission_jobs
from .turn_state_machine import TurnStateMachine

logger = logging.getLogger("epyc_engine.engine.games")

RulesLike = Union[SeasonConfig, GameConfig]

OPEN_TURN_STATUSES = (TurnStatus.OFFERED, TurnStatus.PENDING)


class GameLifecycle:
    """
    Turn creation, advancement and completion for one game at a time.

    Methods that take ``effects`` append the notifications and timer
    requests their changes imply; the caller delivers them after commit.
    """

    def __init__(self, store, turn_machine: TurnStateMachine, clock: Clock = utc_now):
        self.store = store
        self.turn_machine = turn_machine
        self.clock = clock

    # ── Creation ───────────────────────────────────────────────

    def config_for(self, game: Game, conn: Optional[sqlite3.Connection] = None) -> RulesLike:
        if game.is_standalone:
            config = self.store.configs.get_game_config(game.config_id, conn)
        else:
            config = self.store.configs.get_season_config(game.config_id, conn)
        return config if config is not None else (GameConfig() if game.is_standalone else SeasonConfig())

    def create_game(
        self,
        conn: sqlite3.Connection,
        config_id: str,
        season_id: Optional[str] = None,
        guild_id: Optional[str] = None,
        creator_id: Optional[str] = None,
    ) -> Game:
        now = self.clock()
        game = Game(
            id=new_id(),
            status=GameStatus.ACTIVE,
            config_id=config_id,
            season_id=season_id,
            guild_id=guild_id,
            creator_id=creator_id,
            created_at=now,
            last_activity_at=now,
        )
        self.store.writer.apply(conn, CreateRecord(game))
        logger.info("Created game %s (season=%s)", game.id, season_id)
        return game

    def create_initial_turn(
        self,
        game: Game,
        player_id: str,
        conn: sqlite3.Connection,
        effects: Effects,
        trigger: AdvanceTrigger = AdvanceTrigger.SEASON_ACTIVATED,
    ) -> Turn:
        """
        Create turn 1, already OFFERED to ``player_id``.

        Its type is the first entry of the game's turn pattern.
        """
        config = self.config_for(game, conn)
        now = self.clock()
        turn = Turn(
            id=new_id(),
            game_id=game.id,
            turn_number=1,
            type=config.starting_type,
            status=TurnStatus.OFFERED,
            player_id=player_id,
            created_at=now,
            offered_at=now,
        )
        self.store.writer.apply(conn, CreateRecord(turn))
        plan_claim_timeout(effects, turn, config, now)
        self._notify_offered(effects, turn, config, trigger)
        return turn

    # ── Advancement ────────────────────────────────────────────

    def advance(
        self,
        game_id: str,
        trigger: AdvanceTrigger,
        effects: Effects,
        passed_player_ids: Sequence[str] = (),
    ) -> Result[Turn]:
        """
        Move a game to its next turn.

        Reuses an existing AVAILABLE turn (left by a dismiss or a failed
        selection) or creates the next one, with its type taken from the
        cyclic turn pattern. Season games then offer it to the selected
        player; standalone games leave it AVAILABLE for anyone to take.
        """
        with self.store.db.transaction() as conn:
            game = self.store.games.get(game_id, conn)
            if game is None:
                return Result.fail(FailureKind.NOT_FOUND, "Game not found", game_id=game_id)
            if game.status != GameStatus.ACTIVE:
                return Result.fail(
                    FailureKind.WRONG_STATE, f"Game is {game.status.value}",
                    game_id=game_id, status=game.status.value,
                )

            turns = self.store.turns.list_for_game(game_id, conn)
            open_turns = [t for t in turns if t.status in OPEN_TURN_STATUSES]
            if open_turns:
                return Result.fail(
                    FailureKind.WRONG_STATE, "Game already has an open turn",
                    game_id=game_id, turn_id=open_turns[0].id,
                )

            config = self.config_for(game, conn)
            turn = next((t for t in turns if t.status == TurnStatus.AVAILABLE), None)
            if turn is None:
                turn = self._create_next_turn(game, turns, config, conn)
                turns.append(turn)

            if game.is_standalone:
                effects.notify(
                    MessageKind.INFO, None, "turn.available",
                    game_id=game.id, turn_id=turn.id,
                    turn_number=turn.turn_number, turn_type=turn.type.value,
                )
                return Result.success(turn)

            selection = select_next_player(
                self._selection_input(game, turns, turn, conn, passed_player_ids)
            )
            if not selection.ok:
                logger.warning(
                    "Advance of game %s (%s) left turn %s unassigned: %s",
                    game_id, trigger.value, turn.id, selection.failure.reason,
                )
                effects.notify(
                    MessageKind.WARNING, None, "turn.selection_failed",
                    game_id=game.id, turn_id=turn.id, reason=selection.failure.reason,
                )
                return Result.from_failure(selection.failure)

            offered = self.turn_machine.offer(turn.id, selection.value.id, conn)
            if not offered.ok:
                return offered
            plan_claim_timeout(effects, offered.value, config, self.clock())
            self._notify_offered(effects, offered.value, config, trigger)
            logger.info(
                "Game %s advanced (%s): turn %d offered to %s",
                game_id, trigger.value, offered.value.turn_number, selection.value.id,
            )
            return offered

    def _create_next_turn(
        self, game: Game, turns: list, config: RulesLike, conn: sqlite3.Connection
    ) -> Turn:
        last = turns[-1] if turns else None
        number = last.turn_number + 1 if last else 1
        turn = Turn(
            id=new_id(),
            game_id=game.id,
            turn_number=number,
            type=config.type_for_turn(number),
            status=TurnStatus.AVAILABLE,
            previous_turn_id=last.id if last else None,
            created_at=self.clock(),
        )
        self.store.writer.apply(conn, CreateRecord(turn))
        return turn

    def _selection_input(
        self,
        game: Game,
        turns: list,
        turn: Turn,
        conn: sqlite3.Connection,
        passed_player_ids: Sequence[str] = (),
    ) -> SelectionInput:
        roster_ids = self.store.seasons.roster(game.season_id, conn)
        roster = self.store.players.get_many(roster_ids, conn)
        by_game = self.store.turns.list_for_season(game.season_id, conn)
        season_games = tuple(
            GameHistory(g.id, tuple(by_game.get(g.id, ())))
            for g in self.store.games.list_for_season(game.season_id, conn)
        )
        return SelectionInput(
            current=GameHistory(game.id, tuple(turns)),
            roster=tuple(roster),
            season_games=season_games,
            turn_type=turn.type,
            passed_player_ids=tuple(passed_player_ids),
        )

    def _notify_offered(
        self, effects: Effects, turn: Turn, config: RulesLike, trigger: AdvanceTrigger
    ) -> None:
        payload = dict(
            game_id=turn.game_id, turn_id=turn.id,
            turn_number=turn.turn_number, turn_type=turn.type.value,
            trigger=trigger.value,
        )
        if isinstance(config, SeasonConfig):
            payload["claim_timeout"] = config.claim_timeout
        effects.notify(MessageKind.INFO, turn.player_id, "turn.offered", **payload)

    # ── Standalone games ───────────────────────────────────────

    def take_standalone_turn(
        self, game_id: str, player_id: str, effects: Effects
    ) -> Result[Turn]:
        """
        Give the next AVAILABLE turn of a standalone game to ``player_id``.

        The turn is offered and claimed in one step, subject to the game's
        return policy.
        """
        with self.store.db.transaction() as conn:
            game = self.store.games.get(game_id, conn)
            if game is None:
                return Result.fail(FailureKind.NOT_FOUND, "Game not found", game_id=game_id)
            if not game.is_standalone or game.status != GameStatus.ACTIVE:
                return Result.fail(
                    FailureKind.WRONG_STATE, "Game is not an active standalone game",
                    game_id=game_id,
                )
            player = self.store.players.get(player_id, conn)
            if player is None:
                return Result.fail(FailureKind.NOT_FOUND, "Player not found", player_id=player_id)
            if player.is_banned:
                return Result.fail(FailureKind.PLAYER_BANNED, "Player is banned", player_id=player_id)

            config = self.config_for(game, conn)
            turns = self.store.turns.list_for_game(game_id, conn)
            policy = check_return_policy(player_id, turns, config)
            if not policy.ok:
                return Result.from_failure(policy.failure)
            turn = next((t for t in turns if t.status == TurnStatus.AVAILABLE), None)
            if turn is None:
                return Result.fail(
                    FailureKind.WRONG_STATE, "No turn is available in this game", game_id=game_id
                )

            offered = self.turn_machine.offer(turn.id, player_id, conn)
            if not offered.ok:
                return offered
            claimed = self.turn_machine.claim(turn.id, player_id, conn)
            if not claimed.ok:
                return claimed
            plan_submission_jobs(effects, claimed.value, config, self.clock())
            effects.notify(
                MessageKind.SUCCESS, player_id, "turn.claimed",
                game_id=game_id, turn_id=turn.id, turn_type=turn.type.value,
                submission_timeout=format_duration(config.submission_timeout(turn.type)),
            )
            return claimed

    # ── Completion ─────────────────────────────────────────────

    def check_completion(self, game_id: str, effects: Effects) -> Result[bool]:
        """
        Complete the game if its strategy says so.

        Idempotent: an already COMPLETED game reports True and is not
        touched again, so ``completed_at`` is stamped exactly once.
        """
        with self.store.db.transaction() as conn:
            game = self.store.games.get(game_id, conn)
            if game is None:
                return Result.fail(FailureKind.NOT_FOUND, "Game not found", game_id=game_id)
            if game.status == GameStatus.COMPLETED:
                return Result.success(True)
            if game.status != GameStatus.ACTIVE:
                return Result.success(False)

            turns = self.store.turns.list_for_game(game_id, conn)
            strategy = strategy_for(game)
            roster = self.store.seasons.roster(game.season_id, conn) if game.season_id else []
            ctx = CompletionContext(
                game=game,
                turns=turns,
                now=self.clock(),
                roster_ids=roster,
                game_config=None if game.season_id else self.config_for(game, conn),
                excused_ids=[p.id for p in self.store.players.get_many(roster, conn)
                             if p.is_banned],
            )
            if not strategy.is_complete(ctx):
                return Result.success(False)

            if self.store.games.mark_completed(game_id, self.clock(), conn):
                for turn in turns:
                    if turn.status in OPEN_TURN_STATUSES:
                        plan_open_turn_cancels(effects, turn)
                effects.notify(
                    MessageKind.SUCCESS, None, "game.completed",
                    game_id=game_id, season_id=game.season_id, strategy=strategy.name,
                    resolved_turns=sum(1 for t in turns if t.is_resolved),
                )
                logger.info("Game %s completed (%s)", game_id, strategy.name)
            return Result.success(True)

    def terminate(self, game_id: str, effects: Effects) -> Result[Game]:
        """Admin stop for a game that has not finished."""
        with self.store.db.transaction() as conn:
            game = self.store.games.get(game_id, conn)
            if game is None:
                return Result.fail(FailureKind.NOT_FOUND, "Game not found", game_id=game_id)
            if not self.store.games.terminate([game_id], conn):
                return Result.fail(
                    FailureKind.WRONG_STATE, f"Game is {game.status.value}", game_id=game_id
                )
            for turn in self.store.turns.list_for_game(game_id, conn):
                if turn.status in OPEN_TURN_STATUSES:
                    plan_open_turn_cancels(effects, turn)
            logger.info("Game %s terminated", game_id)
            return Result.success(self.store.games.get(game_id, conn))
