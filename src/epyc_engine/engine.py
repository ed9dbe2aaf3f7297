# Area: Engine
"""
epyc_engine.engine — Engine Facade
==================================

Single entry point wiring the store, the lifecycles and the gateways.

Every public operation follows the same shape: do the state change in a
store transaction while collecting ``Effects``, commit, then hand the
effects to the ``EffectRunner``. Delivery failures are kept in
``last_effect_failures`` and logged; they never undo a committed change.

Resolving a turn (submit, or skip on submission timeout) cascades: the
game is checked for completion, a completed season game triggers the
season completion check, and an unfinished game advances to its next
turn. Season games that were left with an unassigned turn are retried
at the same point, since the resolution may have freed a player.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from ._engine.config import GameConfig, RulesConfig, SeasonConfig
from ._engine.config_session import ConfigSession, ConfigSessionStore
from ._engine.enums import (
    ActivationTrigger,
    AdvanceTrigger,
    FailureKind,
    GameStatus,
    JobKind,
    MessageKind,
    SeasonStatus,
    TurnStatus,
)
from ._engine.game_lifecycle import OPEN_TURN_STATUSES, GameLifecycle
from ._engine.gateways import (
    EffectRunner,
    InMemoryScheduler,
    LoggingNotifier,
    NotificationGateway,
    SchedulingGateway,
)
from ._engine.instructions import Effects
from ._engine.models import Game, Player, Season, Turn, TurnContent
from ._engine.players import PlayerRegistry
from ._engine.results import Failure, Result
from ._engine.season_lifecycle import JoinReceipt, SeasonLifecycle
from ._engine.timeouts import job_id, plan_resolution_cancels, plan_submission_jobs
from ._engine.turn_state_machine import TurnStateMachine
from ._shared.clock import Clock, utc_now
from ._shared.duration import format_duration
from ._shared.resilience import CircuitBreaker, RetryPolicy
from ._store import Store
from .settings import EngineSettings

logger = logging.getLogger("epyc_engine.engine")


class EpycEngine:
    """
    Turn rotation and lifecycle engine.

    Args:
        store: Persistence
        scheduler: Timer gateway (defaults to an ``InMemoryScheduler``)
        notifier: Message gateway (defaults to a ``LoggingNotifier``)
        retry: Retry policy for gateway calls
        scheduler_breaker: Circuit breaker in front of the scheduler
        notifier_breaker: Circuit breaker in front of the notifier
        clock: Source of "now"; tests and simulations pass a manual clock
    """

    def __init__(
        self,
        store: Store,
        scheduler: Optional[SchedulingGateway] = None,
        notifier: Optional[NotificationGateway] = None,
        retry: Optional[RetryPolicy] = None,
        scheduler_breaker: Optional[CircuitBreaker] = None,
        notifier_breaker: Optional[CircuitBreaker] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.clock = clock
        self.scheduler = scheduler if scheduler is not None else InMemoryScheduler(clock)
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.runner = EffectRunner(
            self.scheduler, self.notifier, retry,
            scheduler_breaker=scheduler_breaker, notifier_breaker=notifier_breaker,
        )
        self.turns = TurnStateMachine(store.db, store.turns, store.games, clock)
        self.games = GameLifecycle(store, self.turns, clock)
        self.seasons = SeasonLifecycle(store, self.games, clock)
        self.players = PlayerRegistry(store, clock)
        self.config_sessions = ConfigSessionStore()
        self.last_effect_failures: List[Failure] = []

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        scheduler: Optional[SchedulingGateway] = None,
        notifier: Optional[NotificationGateway] = None,
        clock: Clock = utc_now,
    ) -> "EpycEngine":
        retry = RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
        )
        store = Store.open(settings.database_path)
        return cls(store, scheduler=scheduler, notifier=notifier, retry=retry, clock=clock)

    def _deliver(self, effects: Effects) -> None:
        self.last_effect_failures = self.runner.run(effects)
        if self.last_effect_failures:
            logger.error(
                "%d of %d effects failed after commit",
                len(self.last_effect_failures), len(effects),
            )

    # ── Players ────────────────────────────────────────────────

    def register_player(self, external_id: str, name: str) -> Player:
        return self.players.get_or_create(external_id, name)

    def ban_player(self, player_id: str) -> Result[Player]:
        """
        Ban a player.

        A banned player is never offered another turn, and season games
        no longer wait for them. Games in the player's active seasons that
        were stalled only on them complete right away.
        """
        result = self.players.ban(player_id)
        if not result.ok:
            return result
        effects = Effects()
        for season in self.store.seasons.list_for_member(player_id, SeasonStatus.ACTIVE):
            self._retry_stalled(season.id, effects)
        self._deliver(effects)
        return result

    def unban_player(self, player_id: str) -> Result[Player]:
        return self.players.unban(player_id)

    # ── Configuration ──────────────────────────────────────────

    def set_guild_season_config(self, guild_id: str, config: SeasonConfig) -> str:
        return self.store.configs.set_guild_default(guild_id, config, self.clock())

    def set_guild_game_config(self, guild_id: str, config: GameConfig) -> str:
        return self.store.configs.set_guild_default(guild_id, config, self.clock())

    def start_config_session(
        self, owner_id: str, base: Optional[RulesConfig] = None
    ) -> ConfigSession:
        """Begin a multi-step edit of ``base`` (a new SeasonConfig by default)."""
        return self.config_sessions.start(owner_id, base or SeasonConfig(), self.clock())

    def update_config_session(self, session_id: str, **fields: Any) -> Result[RulesConfig]:
        session = self.config_sessions.get(session_id, self.clock())
        if session is None:
            return Result.fail(
                FailureKind.NOT_FOUND, "Configuration session not found or expired",
                session_id=session_id,
            )
        return session.update(self.clock(), **fields)

    def finish_config_session(self, session_id: str) -> Result[RulesConfig]:
        session = self.config_sessions.get(session_id, self.clock())
        if session is None:
            return Result.fail(
                FailureKind.NOT_FOUND, "Configuration session not found or expired",
                session_id=session_id,
            )
        result = session.finish(self.clock())
        if result.ok:
            self.config_sessions.close(session_id)
        return result

    # ── Seasons ────────────────────────────────────────────────

    def create_season(
        self,
        creator_id: Optional[str] = None,
        guild_id: Optional[str] = None,
        config: Optional[SeasonConfig] = None,
        open_now: bool = True,
    ) -> Result[Season]:
        effects = Effects()
        result = self.seasons.create(effects, creator_id, guild_id, config, open_now)
        self._deliver(effects)
        return result

    def open_season(self, season_id: str) -> Result[Season]:
        effects = Effects()
        result = self.seasons.open_season(season_id, effects)
        self._deliver(effects)
        return result

    def join_season(self, season_id: str, player_id: str) -> Result[JoinReceipt]:
        effects = Effects()
        result = self.seasons.join(season_id, player_id, effects)
        self._deliver(effects)
        return result

    def activate_season(
        self, season_id: str, trigger: ActivationTrigger = ActivationTrigger.MAX_PLAYERS
    ) -> Result[Season]:
        effects = Effects()
        result = self.seasons.activate(season_id, trigger, effects)
        self._deliver(effects)
        return result

    def cancel_season(self, season_id: str) -> Result[Season]:
        effects = Effects()
        result = self.seasons.cancel(season_id, effects)
        self._deliver(effects)
        return result

    def terminate_season(self, season_id: str) -> Result[Season]:
        effects = Effects()
        result = self.seasons.terminate(season_id, effects)
        self._deliver(effects)
        return result

    def check_season_completion(self, season_id: str) -> Result[bool]:
        effects = Effects()
        result = self.seasons.check_completion(season_id, effects)
        self._deliver(effects)
        return result

    def retry_stalled_games(self, season_id: str) -> List[Result[Turn]]:
        """Advance every season game that is waiting on an unassigned turn."""
        effects = Effects()
        results = self._retry_stalled(season_id, effects)
        self._deliver(effects)
        return results

    # ── Standalone games ───────────────────────────────────────

    def create_standalone_game(
        self,
        creator_id: str,
        guild_id: Optional[str] = None,
        config: Optional[GameConfig] = None,
    ) -> Result[Turn]:
        """
        Start a game outside any season.

        The creator takes turn 1 right away. Returns that turn, already
        PENDING; its ``game_id`` identifies the new game.
        """
        effects = Effects()
        now = self.clock()
        with self.store.db.transaction() as conn:
            creator = self.store.players.get(creator_id, conn)
            if creator is None:
                return Result.fail(FailureKind.NOT_FOUND, "Player not found", player_id=creator_id)
            if creator.is_banned:
                return Result.fail(FailureKind.PLAYER_BANNED, "Player is banned", player_id=creator_id)
            if config is None and guild_id is not None:
                config = self.store.configs.get_guild_default_game_config(guild_id, conn)
            config = config or GameConfig()
            config_id = self.store.configs.save(config, now, conn)
            game = self.games.create_game(conn, config_id, None, guild_id, creator_id)
            turn = self.games.create_initial_turn(
                game, creator_id, conn, effects, trigger=AdvanceTrigger.GAME_CREATED
            )
            claimed = self.turns.claim(turn.id, creator_id, conn)
            if not claimed.ok:
                return claimed
            plan_submission_jobs(effects, claimed.value, config, now)
            self._notify_claimed(effects, claimed.value, config)
        self._deliver(effects)
        return claimed

    def join_standalone_game(self, game_id: str, player_id: str) -> Result[Turn]:
        effects = Effects()
        result = self.games.take_standalone_turn(game_id, player_id, effects)
        self._deliver(effects)
        return result

    def sweep_stale_games(self) -> List[str]:
        """Complete standalone games that went stale. Returns their ids."""
        effects = Effects()
        completed = []
        for game in self.store.games.list_active_standalone():
            result = self.games.check_completion(game.id, effects)
            if result.ok and result.value:
                completed.append(game.id)
        self._deliver(effects)
        if completed:
            logger.info("Stale sweep completed %d games", len(completed))
        return completed

    # ── Games ──────────────────────────────────────────────────

    def advance_game(
        self, game_id: str, trigger: AdvanceTrigger = AdvanceTrigger.TURN_COMPLETED
    ) -> Result[Turn]:
        effects = Effects()
        result = self.games.advance(game_id, trigger, effects)
        self._deliver(effects)
        return result

    def check_game_completion(self, game_id: str) -> Result[bool]:
        effects = Effects()
        result = self.games.check_completion(game_id, effects)
        if result.ok and result.value:
            game = self.store.games.get(game_id)
            if game.season_id is not None:
                self.seasons.check_completion(game.season_id, effects)
        self._deliver(effects)
        return result

    def terminate_game(self, game_id: str) -> Result[Game]:
        effects = Effects()
        result = self.games.terminate(game_id, effects)
        self._deliver(effects)
        return result

    # ── Turns ──────────────────────────────────────────────────

    def claim_turn(self, turn_id: str, player_id: str) -> Result[Turn]:
        """Accept an offered turn; starts the submission timer."""
        effects = Effects()
        with self.store.db.transaction() as conn:
            result = self.turns.claim(turn_id, player_id, conn)
            if not result.ok:
                return result
            game = self.store.games.get(result.value.game_id, conn)
            config = self.games.config_for(game, conn)
            plan_submission_jobs(effects, result.value, config, self.clock())
            self._notify_claimed(effects, result.value, config)
        self._deliver(effects)
        return result

    def claim_next_offered(self, player_id: str) -> Result[Turn]:
        """
        Claim the oldest turn currently offered to ``player_id``.

        Offers that can no longer be claimed are skipped; if none can be,
        the last failure is returned.
        """
        last: Optional[Result[Turn]] = None
        for turn in self.store.turns.list_offered_to_player(player_id):
            last = self.claim_turn(turn.id, player_id)
            if last.ok:
                return last
        if last is None:
            return Result.fail(
                FailureKind.NOT_FOUND, "No turn is offered to this player", player_id=player_id
            )
        return last

    def dismiss_turn(self, turn_id: str, player_id: str) -> Result[Turn]:
        """Decline an offered turn; the game re-offers it to someone else."""
        effects = Effects()
        result = self.turns.dismiss(turn_id, player_id)
        if not result.ok:
            return result
        effects.cancel(job_id(JobKind.CLAIM_TIMEOUT, turn_id))
        self.games.advance(
            result.value.game_id, AdvanceTrigger.TURN_DISMISSED, effects,
            passed_player_ids=[player_id],
        )
        self._deliver(effects)
        return result

    def submit_turn(
        self, turn_id: str, player_id: str, content: Optional[TurnContent]
    ) -> Result[Turn]:
        effects = Effects()
        with self.store.db.transaction() as conn:
            result = self.turns.submit(turn_id, player_id, content, conn)
            if not result.ok:
                return result
            turn = result.value
            plan_resolution_cancels(effects, turn.id)
            effects.notify(
                MessageKind.SUCCESS, player_id, "turn.completed",
                game_id=turn.game_id, turn_id=turn.id, turn_number=turn.turn_number,
            )
        self._after_resolution(turn.game_id, AdvanceTrigger.TURN_COMPLETED, effects)
        self._deliver(effects)
        return result

    def skip_turn(self, turn_id: str) -> Result[Turn]:
        """Skip a PENDING turn on behalf of its holder."""
        effects = Effects()
        result = self._skip(turn_id, effects)
        if result.ok:
            self._after_resolution(result.value.game_id, AdvanceTrigger.TURN_SKIPPED, effects)
        self._deliver(effects)
        return result

    def _skip(self, turn_id: str, effects: Effects) -> Result[Turn]:
        result = self.turns.skip(turn_id)
        if result.ok:
            turn = result.value
            plan_resolution_cancels(effects, turn.id)
            effects.notify(
                MessageKind.WARNING, turn.player_id, "turn.skipped",
                game_id=turn.game_id, turn_id=turn.id, turn_number=turn.turn_number,
            )
        return result

    def _notify_claimed(self, effects: Effects, turn: Turn, config: RulesConfig) -> None:
        effects.notify(
            MessageKind.SUCCESS, turn.player_id, "turn.claimed",
            game_id=turn.game_id, turn_id=turn.id, turn_type=turn.type.value,
            submission_timeout=format_duration(config.submission_timeout(turn.type)),
        )

    def _after_resolution(self, game_id: str, trigger: AdvanceTrigger, effects: Effects) -> None:
        done = self.games.check_completion(game_id, effects)
        game = self.store.games.get(game_id)
        if done.ok and done.value:
            if game.season_id is not None:
                self.seasons.check_completion(game.season_id, effects)
        else:
            self.games.advance(game_id, trigger, effects)
        if game.season_id is not None:
            self._retry_stalled(game.season_id, effects, exclude=game_id)

    def _retry_stalled(
        self, season_id: str, effects: Effects, exclude: Optional[str] = None
    ) -> List[Result[Turn]]:
        by_game = self.store.turns.list_for_season(season_id)
        results = []
        completed_any = False
        for game in self.store.games.list_for_season(season_id):
            if game.status != GameStatus.ACTIVE or game.id == exclude:
                continue
            turns = by_game.get(game.id, [])
            waiting = any(t.status == TurnStatus.AVAILABLE for t in turns)
            held = any(t.status in OPEN_TURN_STATUSES for t in turns)
            if not waiting or held:
                continue
            # The player the game waited for may have been banned meanwhile
            done = self.games.check_completion(game.id, effects)
            if done.ok and done.value:
                completed_any = True
                continue
            results.append(self.games.advance(game.id, AdvanceTrigger.TURN_COMPLETED, effects))
        if completed_any:
            self.seasons.check_completion(season_id, effects)
        return results

    # ── Timeout handlers ───────────────────────────────────────

    def _open_turn(self, turn_id: str, status: TurnStatus) -> Result[Optional[Turn]]:
        """
        Look up a turn a timer fired for.

        Succeeds with None when the timer is stale: the turn moved on or
        its game is no longer ACTIVE.
        """
        turn = self.store.turns.get(turn_id)
        if turn is None:
            return Result.fail(FailureKind.NOT_FOUND, "Turn not found", turn_id=turn_id)
        game = self.store.games.get(turn.game_id)
        if turn.status != status or game is None or game.status != GameStatus.ACTIVE:
            logger.debug("Timer for turn %s is stale (%s)", turn_id, turn.status.value)
            return Result.success(None)
        return Result.success(turn)

    def handle_claim_timeout(self, turn_id: str) -> Result[Optional[Turn]]:
        """An offer expired: take it back and offer the turn to someone else."""
        found = self._open_turn(turn_id, TurnStatus.OFFERED)
        if not found.ok or found.value is None:
            return found
        holder = found.value.player_id
        effects = Effects()
        result = self.turns.dismiss(turn_id, holder)
        if not result.ok:
            # Claimed or dismissed between the lookup and the update
            return Result.success(None)
        effects.notify(
            MessageKind.WARNING, holder, "turn.claim_timed_out",
            game_id=result.value.game_id, turn_id=turn_id,
        )
        self.games.advance(
            result.value.game_id, AdvanceTrigger.CLAIM_TIMEOUT, effects,
            passed_player_ids=[holder],
        )
        self._deliver(effects)
        return result

    def handle_submission_timeout(self, turn_id: str) -> Result[Optional[Turn]]:
        """The holder ran out of time: skip the turn and move the game on."""
        found = self._open_turn(turn_id, TurnStatus.PENDING)
        if not found.ok or found.value is None:
            return found
        effects = Effects()
        result = self._skip(turn_id, effects)
        if not result.ok:
            return Result.success(None)
        self._after_resolution(result.value.game_id, AdvanceTrigger.TURN_SKIPPED, effects)
        self._deliver(effects)
        return result

    def handle_submission_warning(self, turn_id: str) -> Result[Optional[Turn]]:
        found = self._open_turn(turn_id, TurnStatus.PENDING)
        if not found.ok or found.value is None:
            return found
        turn = found.value
        game = self.store.games.get(turn.game_id)
        config = self.games.config_for(game)
        deadline = turn.claimed_at + config.submission_timeout(turn.type)
        remaining = max(int((deadline - self.clock()).total_seconds()), 0)
        effects = Effects()
        effects.notify(
            MessageKind.WARNING, turn.player_id, "turn.warning",
            game_id=turn.game_id, turn_id=turn.id,
            remaining=format_duration(remaining),
        )
        self._deliver(effects)
        return found

    def handle_season_activation(self, season_id: str) -> Result[Season]:
        return self.activate_season(season_id, ActivationTrigger.OPEN_DURATION_TIMEOUT)

    def dispatch_job(self, kind: Union[str, JobKind], payload: Dict[str, Any]) -> Result:
        """Route a fired scheduler job to its handler."""
        try:
            kind = JobKind(kind)
        except ValueError:
            return Result.fail(FailureKind.VALIDATION, f"Unknown job kind: {kind}")
        if kind == JobKind.CLAIM_TIMEOUT:
            return self.handle_claim_timeout(payload["turn_id"])
        if kind == JobKind.SUBMISSION_TIMEOUT:
            return self.handle_submission_timeout(payload["turn_id"])
        if kind == JobKind.SUBMISSION_WARNING:
            return self.handle_submission_warning(payload["turn_id"])
        return self.handle_season_activation(payload["season_id"])

    def run_due_jobs(self, now: Optional[datetime] = None) -> int:
        """
        Fire every due job of the in-memory scheduler.

        Raises:
            TypeError: If the engine runs with another scheduler
        """
        if not isinstance(self.scheduler, InMemoryScheduler):
            raise TypeError("run_due_jobs needs an InMemoryScheduler")
        return self.scheduler.run_due(now or self.clock(), self.dispatch_job)

    # ── Queries ────────────────────────────────────────────────

    def game_turns(self, game_id: str) -> List[Turn]:
        return self.store.turns.list_for_game(game_id)

    def season_games(self, season_id: str) -> List[Game]:
        return self.store.games.list_for_season(season_id)

    def holder_chain(self, game_id: str) -> Sequence[Optional[str]]:
        """Players of a game's resolved turns, in turn order."""
        return [t.player_id for t in self.store.turns.list_resolved_for_game(game_id)]
