# Area: Engine
"""
epyc_engine._engine.season_lifecycle — Season Lifecycle
=======================================================

Roster management, activation, cancellation, termination and completion
of seasons.

    SETUP -> OPEN -> ACTIVE -> COMPLETED
    SETUP -> PENDING -> OPEN
    OPEN | PENDING -> CANCELLED
    any non-terminal -> TERMINATED

Activation happens once, either when the roster reaches ``max_players``
or when the open window elapses. Every status change is a conditional
update on the expected current status, so a duplicate trigger is
refused instead of creating a second set of games.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .._shared.clock import Clock, new_id, utc_now
from .completion import is_season_complete
from .config import SeasonConfig
from .enums import (
    ActivationTrigger,
    EntityKind,
    FailureKind,
    JOINABLE_SEASON_STATUSES,
    MessageKind,
    SeasonStatus,
    TERMINAL_SEASON_STATUSES,
)
from .game_lifecycle import GameLifecycle
from .instructions import CreateRecord, Effects, UpdateRecord
from .models import Season
from .results import Result
from .timeouts import (
    cancel_season_activation,
    plan_open_turn_cancels,
    plan_season_activation,
)

logger = logging.getLogger("epyc_engine.engine.seasons")


@dataclass(frozen=True)
class JoinReceipt:
    season_id: str
    player_id: str
    roster_size: int
    max_players: int

    @property
    def is_full(self) -> bool:
        return self.roster_size >= self.max_players


class SeasonLifecycle:
    def __init__(self, store, games: GameLifecycle, clock: Clock = utc_now):
        self.store = store
        self.games = games
        self.clock = clock

    # ── Creation ───────────────────────────────────────────────

    def create(
        self,
        effects: Effects,
        creator_id: Optional[str] = None,
        guild_id: Optional[str] = None,
        config: Optional[SeasonConfig] = None,
        open_now: bool = True,
    ) -> Result[Season]:
        """
        Create a season.

        Without an explicit config the guild default is used, falling back
        to built-in defaults. The config is stored as its own copy. With
        ``open_now`` the season opens immediately and its activation timer
        starts; otherwise it waits in PENDING for ``open_season``.
        """
        now = self.clock()
        with self.store.db.transaction() as conn:
            if creator_id is not None and self.store.players.get(creator_id, conn) is None:
                return Result.fail(FailureKind.NOT_FOUND, "Creator not found", player_id=creator_id)
            if config is None and guild_id is not None:
                config = self.store.configs.get_guild_default_season_config(guild_id, conn)
            config = config or SeasonConfig()
            config_id = self.store.configs.save(config, now, conn)
            season = Season(
                id=new_id(),
                status=SeasonStatus.SETUP,
                config_id=config_id,
                guild_id=guild_id,
                creator_id=creator_id,
                created_at=now,
                updated_at=now,
            )
            self.store.writer.apply(conn, CreateRecord(season))
            target = SeasonStatus.OPEN if open_now else SeasonStatus.PENDING
            self.store.seasons.transition(season.id, [SeasonStatus.SETUP], target, now, conn)
            if open_now:
                plan_season_activation(effects, season, config, now)
            logger.info("Season %s created (%s)", season.id, target.value)
            return Result.success(self.store.seasons.get(season.id, conn))

    def open_season(self, season_id: str, effects: Effects) -> Result[Season]:
        """Open a SETUP or PENDING season and start its activation timer."""
        now = self.clock()
        with self.store.db.transaction() as conn:
            season = self.store.seasons.get(season_id, conn)
            if season is None:
                return Result.fail(FailureKind.NOT_FOUND, "Season not found", season_id=season_id)
            if not self.store.seasons.transition(
                season_id, [SeasonStatus.SETUP, SeasonStatus.PENDING], SeasonStatus.OPEN, now, conn
            ):
                return Result.fail(
                    FailureKind.WRONG_STATE, f"Season is {season.status.value}",
                    season_id=season_id, status=season.status.value,
                )
            config = self.store.configs.get_season_config(season.config_id, conn)
            plan_season_activation(effects, season, config, now)
            opened = self.store.seasons.get(season_id, conn)
            roster_size = self.store.seasons.roster_size(season_id, conn)
        if roster_size >= config.max_players:
            self.activate(season_id, ActivationTrigger.MAX_PLAYERS, effects)
            opened = self.store.seasons.get(season_id)
        return Result.success(opened)

    # ── Roster ─────────────────────────────────────────────────

    def join(self, season_id: str, player_id: str, effects: Effects) -> Result[JoinReceipt]:
        """
        Add a player to the roster.

        Failures: NOT_FOUND (player or season), PLAYER_BANNED, NOT_OPEN,
        ALREADY_JOINED, FULL. When this join fills an OPEN season, the
        season is activated right away.
        """
        now = self.clock()
        with self.store.db.transaction() as conn:
            player = self.store.players.get(player_id, conn)
            if player is None:
                return Result.fail(FailureKind.NOT_FOUND, "Player not found", player_id=player_id)
            if player.is_banned:
                return Result.fail(FailureKind.PLAYER_BANNED, "Player is banned", player_id=player_id)
            season = self.store.seasons.get(season_id, conn)
            if season is None:
                return Result.fail(FailureKind.NOT_FOUND, "Season not found", season_id=season_id)
            if season.status not in JOINABLE_SEASON_STATUSES:
                return Result.fail(
                    FailureKind.NOT_OPEN, f"Season is {season.status.value}",
                    season_id=season_id, status=season.status.value,
                )
            if self.store.seasons.is_member(season_id, player_id, conn):
                return Result.fail(
                    FailureKind.ALREADY_JOINED, "Player already joined this season",
                    season_id=season_id, player_id=player_id,
                )
            config = self.store.configs.get_season_config(season.config_id, conn)
            if self.store.seasons.roster_size(season_id, conn) >= config.max_players:
                return Result.fail(
                    FailureKind.FULL, "Season is full",
                    season_id=season_id, max_players=config.max_players,
                )
            size = self.store.seasons.add_member(season_id, player_id, now, conn)
            receipt = JoinReceipt(season_id, player_id, size, config.max_players)
            effects.notify(
                MessageKind.SUCCESS, player_id, "season.joined",
                season_id=season_id, roster_size=size, max_players=config.max_players,
            )
            logger.info("Player %s joined season %s (%d/%d)",
                        player_id, season_id, size, config.max_players)

        if receipt.is_full and season.status == SeasonStatus.OPEN:
            self.activate(season_id, ActivationTrigger.MAX_PLAYERS, effects)
        return Result.success(receipt)

    # ── Activation ─────────────────────────────────────────────

    def activate(
        self, season_id: str, trigger: ActivationTrigger, effects: Effects
    ) -> Result[Season]:
        """
        Activate an OPEN season: one game per roster member, each with its
        first turn offered to that member.

        When the open window elapses with fewer than ``min_players`` the
        season is CANCELLED instead and no games are created. Any status
        other than OPEN is refused with WRONG_STATE.
        """
        now = self.clock()
        with self.store.db.transaction() as conn:
            season = self.store.seasons.get(season_id, conn)
            if season is None:
                return Result.fail(FailureKind.NOT_FOUND, "Season not found", season_id=season_id)
            if season.status != SeasonStatus.OPEN:
                logger.info("Season %s not activated (%s): status %s",
                            season_id, trigger.value, season.status.value)
                return Result.fail(
                    FailureKind.WRONG_STATE, f"Season is {season.status.value}, not OPEN",
                    season_id=season_id, status=season.status.value,
                )
            config = self.store.configs.get_season_config(season.config_id, conn)
            roster = self.store.seasons.roster(season_id, conn)

            if len(roster) < config.min_players:
                if trigger != ActivationTrigger.OPEN_DURATION_TIMEOUT:
                    return Result.fail(
                        FailureKind.WRONG_STATE, "Roster is below the minimum",
                        season_id=season_id, roster_size=len(roster),
                        min_players=config.min_players,
                    )
                cancelled = self.store.writer.apply(conn, UpdateRecord(
                    EntityKind.SEASON, season_id,
                    changes={"status": SeasonStatus.CANCELLED, "updated_at": now},
                    expected={"status": SeasonStatus.OPEN},
                ))
                if not cancelled:
                    return Result.fail(FailureKind.WRONG_STATE, "Season changed concurrently",
                                       season_id=season_id)
                cancel_season_activation(effects, season_id)
                for player_id in roster:
                    effects.notify(
                        MessageKind.WARNING, player_id, "season.cancelled",
                        season_id=season_id, roster_size=len(roster),
                        min_players=config.min_players,
                    )
                logger.info("Season %s cancelled: %d/%d players",
                            season_id, len(roster), config.min_players)
                return Result.success(self.store.seasons.get(season_id, conn))

            if not self.store.seasons.transition(
                season_id, [SeasonStatus.OPEN], SeasonStatus.ACTIVE, now, conn
            ):
                return Result.fail(FailureKind.WRONG_STATE, "Season changed concurrently",
                                   season_id=season_id)
            for player_id in roster:
                game = self.games.create_game(
                    conn, season.config_id, season_id=season_id,
                    guild_id=season.guild_id, creator_id=season.creator_id,
                )
                self.games.create_initial_turn(game, player_id, conn, effects)
            cancel_season_activation(effects, season_id)
            effects.notify(
                MessageKind.SUCCESS, None, "season.activated",
                season_id=season_id, trigger=trigger.value, games=len(roster),
            )
            logger.info("Season %s activated (%s) with %d games",
                        season_id, trigger.value, len(roster))
            return Result.success(self.store.seasons.get(season_id, conn))

    # ── Cancellation and termination ───────────────────────────

    def cancel(self, season_id: str, effects: Effects) -> Result[Season]:
        """Cancel an OPEN or PENDING season."""
        now = self.clock()
        with self.store.db.transaction() as conn:
            season = self.store.seasons.get(season_id, conn)
            if season is None:
                return Result.fail(FailureKind.NOT_FOUND, "Season not found", season_id=season_id)
            if not self.store.seasons.transition(
                season_id, [SeasonStatus.OPEN, SeasonStatus.PENDING],
                SeasonStatus.CANCELLED, now, conn,
            ):
                return Result.fail(
                    FailureKind.WRONG_STATE, f"Season is {season.status.value}",
                    season_id=season_id, status=season.status.value,
                )
            cancel_season_activation(effects, season_id)
            for player_id in self.store.seasons.roster(season_id, conn):
                effects.notify(MessageKind.WARNING, player_id, "season.cancelled",
                               season_id=season_id)
            return Result.success(self.store.seasons.get(season_id, conn))

    def terminate(self, season_id: str, effects: Effects) -> Result[Season]:
        """Admin stop: any non-terminal season and its unfinished games."""
        now = self.clock()
        non_terminal = [s for s in SeasonStatus if s not in TERMINAL_SEASON_STATUSES]
        with self.store.db.transaction() as conn:
            season = self.store.seasons.get(season_id, conn)
            if season is None:
                return Result.fail(FailureKind.NOT_FOUND, "Season not found", season_id=season_id)
            if not self.store.seasons.transition(
                season_id, non_terminal, SeasonStatus.TERMINATED, now, conn
            ):
                return Result.fail(
                    FailureKind.WRONG_STATE, f"Season is {season.status.value}",
                    season_id=season_id, status=season.status.value,
                )
            games = self.store.games.list_for_season(season_id, conn)
            self.store.games.terminate([g.id for g in games], conn)
            for turn in self.store.turns.list_open_for_season(season_id, conn):
                plan_open_turn_cancels(effects, turn)
            cancel_season_activation(effects, season_id)
            effects.notify(MessageKind.WARNING, None, "season.terminated", season_id=season_id)
            logger.info("Season %s terminated (%d games)", season_id, len(games))
            return Result.success(self.store.seasons.get(season_id, conn))

    # ── Completion ─────────────────────────────────────────────

    def check_completion(self, season_id: str, effects: Effects) -> Result[bool]:
        """
        Report whether the season is complete, completing an ACTIVE one.

        A season with no games is complete only once it has left SETUP
        and PENDING; only an ACTIVE season is moved to COMPLETED.
        """
        now = self.clock()
        with self.store.db.transaction() as conn:
            season = self.store.seasons.get(season_id, conn)
            if season is None:
                return Result.fail(FailureKind.NOT_FOUND, "Season not found", season_id=season_id)
            if season.status == SeasonStatus.COMPLETED:
                return Result.success(True)
            games = self.store.games.list_for_season(season_id, conn)
            complete = is_season_complete(season.status, [g.status for g in games])
            if complete and season.status == SeasonStatus.ACTIVE:
                if self.store.seasons.transition(
                    season_id, [SeasonStatus.ACTIVE], SeasonStatus.COMPLETED, now, conn
                ):
                    effects.notify(MessageKind.SUCCESS, None, "season.completed",
                                   season_id=season_id, games=len(games))
                    logger.info("Season %s completed", season_id)
            return Result.success(complete)
