# Area: Engine Tests
"""End-to-end tests for the EpycEngine facade."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from epyc_engine import (
    EngineSettings,
    EpycEngine,
    ErrorCategory,
    FailureKind,
    GameConfig,
    GameStatus,
    InfrastructureError,
    SchedulingGateway,
    SeasonConfig,
    SeasonStatus,
    TurnContent,
    TurnStatus,
    TurnType,
)
from epyc_engine._shared import CircuitBreaker, RetryPolicy
from epyc_engine._shared.resilience import CircuitState

SMALL = SeasonConfig(min_players=3, max_players=3)


def content_for(turn):
    if turn.type == TurnType.WRITING:
        return TurnContent.of_text("a cat in a hat")
    return TurnContent.of_image("https://img.invalid/cat.png")


@pytest.fixture
def season_of_three(engine, make_players):
    """An ACTIVE three-player season; returns (season, players, {game_id: first holder})."""
    players = make_players(3)
    season = engine.create_season(creator_id=players[0].id, config=SMALL).unwrap()
    for player in players:
        engine.join_season(season.id, player.id).unwrap()
    first_holders = {
        game.id: engine.game_turns(game.id)[0].player_id
        for game in engine.season_games(season.id)
    }
    return engine.store.seasons.get(season.id), players, first_holders


class TestSeasonPlay:
    """Tests for claiming, submitting and dismissing season turns."""

    def test_activation_offers_every_member(self, season_of_three, notifier):
        """Test that each member is offered the first turn of one game."""
        season, players, first_holders = season_of_three
        assert season.status == SeasonStatus.ACTIVE
        assert sorted(first_holders.values()) == sorted(p.id for p in players)
        for player in players:
            assert notifier.keys_for(player.id).count("turn.offered") == 1

    def test_claim_schedules_submission_jobs(self, engine, season_of_three, scheduler):
        """Test that claiming swaps the claim timer for submission timers."""
        _, players, _ = season_of_three
        turn = engine.claim_next_offered(players[0].id).unwrap()
        assert turn.status == TurnStatus.PENDING
        job_ids = {job.job_id for job in scheduler.pending()}
        assert f"turn-claim-timeout-{turn.id}" not in job_ids
        assert f"turn-submission-timeout-{turn.id}" in job_ids
        assert f"turn-warning-{turn.id}" in job_ids

    def test_claim_next_offered_without_offers(self, engine, make_players):
        """Test NOT_FOUND when nothing is offered."""
        (player,) = make_players(1)
        assert engine.claim_next_offered(player.id).failure.kind == FailureKind.NOT_FOUND

    def test_submit_advances_game(self, engine, season_of_three, notifier):
        """Test that a submission offers the next turn to another member."""
        _, players, _ = season_of_three
        turn = engine.claim_next_offered(players[0].id).unwrap()

        done = engine.submit_turn(turn.id, players[0].id, content_for(turn))

        assert done.value.status == TurnStatus.COMPLETED
        turns = engine.game_turns(turn.game_id)
        assert len(turns) == 2
        assert turns[1].type == TurnType.DRAWING
        assert turns[1].status == TurnStatus.OFFERED
        assert turns[1].player_id != players[0].id
        assert "turn.completed" in notifier.keys_for(players[0].id)
        assert engine.holder_chain(turn.game_id) == [players[0].id]

    def test_submit_rejects_wrong_content(self, engine, season_of_three):
        """Test that a drawing cannot be submitted for a writing turn."""
        _, players, _ = season_of_three
        turn = engine.claim_next_offered(players[0].id).unwrap()
        result = engine.submit_turn(turn.id, players[0].id, TurnContent.of_image("x.png"))
        assert result.failure.kind == FailureKind.INVALID_CONTENT
        assert result.failure.category == ErrorCategory.VALIDATION
        assert engine.store.turns.get(turn.id).status == TurnStatus.PENDING

    def test_second_pending_turn_refused(self, engine, season_of_three):
        """Test that a player cannot hold two pending turns in one season."""
        _, players, _ = season_of_three
        first = engine.claim_next_offered(players[0].id).unwrap()
        engine.submit_turn(first.id, players[0].id, content_for(first))
        holder = engine.game_turns(first.game_id)[1].player_id
        engine.claim_next_offered(holder).unwrap()
        again = engine.claim_next_offered(holder)
        assert again.failure.kind == FailureKind.PENDING_ELSEWHERE

    def test_dismiss_reoffers_to_someone_else(self, engine, season_of_three, scheduler):
        """Test that a dismissed turn goes to another member with a fresh claim timer."""
        _, players, first_holders = season_of_three
        game_id = next(g for g, holder in first_holders.items() if holder == players[0].id)
        turn = engine.game_turns(game_id)[0]

        result = engine.dismiss_turn(turn.id, players[0].id)

        assert result.value.status == TurnStatus.AVAILABLE
        reoffered = engine.store.turns.get(turn.id)
        assert reoffered.status == TurnStatus.OFFERED
        assert reoffered.player_id not in (None, players[0].id)
        assert f"turn-claim-timeout-{turn.id}" in {j.job_id for j in scheduler.pending()}

    def test_dismiss_by_non_holder(self, engine, season_of_three):
        """Test that only the offered player can dismiss."""
        _, players, first_holders = season_of_three
        game_id = next(g for g, holder in first_holders.items() if holder == players[0].id)
        turn = engine.game_turns(game_id)[0]
        result = engine.dismiss_turn(turn.id, players[1].id)
        assert result.failure.kind == FailureKind.WRONG_HOLDER


class TestTimers:
    """Tests for the timeout handlers, fired through the in-memory scheduler."""

    def test_claim_timeout_reoffers(self, engine, season_of_three, clock, notifier):
        """Test that unclaimed offers lapse and move to another member."""
        _, _, first_holders = season_of_three
        clock.advance(timedelta(days=1))

        assert engine.run_due_jobs() == 3

        for game_id, holder in first_holders.items():
            turn = engine.game_turns(game_id)[0]
            assert turn.status == TurnStatus.OFFERED
            assert turn.player_id != holder
            assert "turn.claim_timed_out" in notifier.keys_for(holder)

    def test_submission_warning(self, engine, season_of_three, clock, notifier):
        """Test that the warning fires one warning-lead before the deadline."""
        _, players, _ = season_of_three
        turn = engine.claim_next_offered(players[0].id).unwrap()
        clock.advance(timedelta(days=1) - timedelta(minutes=1))

        engine.run_due_jobs()

        warning = [n for n in notifier.sent if n.template_key == "turn.warning"]
        assert len(warning) == 1
        assert warning[0].recipient_id == players[0].id
        assert warning[0].payload == {"game_id": turn.game_id, "turn_id": turn.id,
                                      "remaining": "1m"}

    def test_submission_timeout_skips(self, engine, season_of_three, clock, notifier):
        """Test that a lapsed submission is skipped and the game moves on."""
        _, players, _ = season_of_three
        turns = [engine.claim_next_offered(p.id).unwrap() for p in players]
        clock.advance(timedelta(days=1))

        engine.run_due_jobs()

        for turn in turns:
            chain = engine.game_turns(turn.game_id)
            assert chain[0].status == TurnStatus.SKIPPED
            assert len(chain) == 2
        assert notifier.keys_for(players[0].id).count("turn.skipped") == 1

    def test_stale_timer_is_ignored(self, engine, season_of_three):
        """Test that a claim timeout for an already claimed turn does nothing."""
        _, players, _ = season_of_three
        turn = engine.claim_next_offered(players[0].id).unwrap()
        result = engine.dispatch_job("turn-claim-timeout", {"turn_id": turn.id})
        assert result.ok and result.value is None
        assert engine.store.turns.get(turn.id).status == TurnStatus.PENDING

    def test_dispatch_unknown_kind(self, engine):
        """Test that unknown job kinds are reported, not raised."""
        result = engine.dispatch_job("cleanup", {})
        assert result.failure.kind == FailureKind.VALIDATION

    def test_handler_for_missing_turn(self, engine):
        """Test NOT_FOUND for a timer whose turn does not exist."""
        assert engine.handle_submission_timeout("ghost").failure.kind == FailureKind.NOT_FOUND

    def test_activation_timer_cancels_small_season(self, engine, make_players, clock):
        """Test that the open window elapsing short of min_players cancels."""
        (player,) = make_players(1)
        season = engine.create_season(config=SMALL).unwrap()
        engine.join_season(season.id, player.id)
        clock.advance(timedelta(days=7))
        engine.run_due_jobs()
        assert engine.store.seasons.get(season.id).status == SeasonStatus.CANCELLED
        assert engine.season_games(season.id) == []

    def test_run_due_jobs_needs_in_memory_scheduler(self, store):
        """Test that run_due_jobs refuses external schedulers."""
        engine = EpycEngine(store, scheduler=MagicMock(spec=SchedulingGateway))
        with pytest.raises(TypeError):
            engine.run_due_jobs()


class TestSeasonCompletion:
    """Tests for the completion cascade."""

    def test_game_completion_cascades_to_season(self, engine, seed):
        """Test that completing the last game completes the season."""
        a, b = seed.player("a"), seed.player("b")
        season = seed.season([a, b])
        g1 = seed.game(season)
        seed.game(season, status=GameStatus.COMPLETED)
        seed.turn(g1, 1, status=TurnStatus.COMPLETED, player=a)
        seed.turn(g1, 2, TurnType.DRAWING, status=TurnStatus.COMPLETED, player=b)

        assert engine.check_game_completion(g1.id).value is True
        assert engine.store.seasons.get(season.id).status == SeasonStatus.COMPLETED

    def test_retry_stalled_games(self, engine, seed):
        """Test that a game left with an unassigned turn is offered again."""
        a, b = seed.player("a"), seed.player("b")
        season = seed.season([a, b])
        game = seed.game(season)
        seed.turn(game, 1, status=TurnStatus.COMPLETED, player=a)
        waiting = seed.turn(game, 2, TurnType.DRAWING)

        results = engine.retry_stalled_games(season.id)

        assert [r.value.id for r in results] == [waiting.id]
        assert engine.store.turns.get(waiting.id).player_id == b.id

    def test_full_season_completes(self, engine, season_of_three, clock):
        """Test that prompt players finish a season with every chain covering the roster."""
        season, players, _ = season_of_three
        for _ in range(100):
            if engine.store.seasons.get(season.id).status != SeasonStatus.ACTIVE:
                break
            moved = False
            for player in players:
                pending = [t for t in engine.store.turns.list_open_for_season(season.id)
                           if t.player_id == player.id and t.status == TurnStatus.PENDING]
                if pending:
                    engine.submit_turn(pending[0].id, player.id, content_for(pending[0])).unwrap()
                    moved = True
                elif engine.claim_next_offered(player.id).ok:
                    moved = True
            if not moved:
                clock.now = engine.scheduler.next_fire_time()
                engine.run_due_jobs()

        assert engine.store.seasons.get(season.id).status == SeasonStatus.COMPLETED
        roster = sorted(p.id for p in players)
        for game in engine.season_games(season.id):
            assert game.status == GameStatus.COMPLETED
            assert sorted(engine.holder_chain(game.id)) == roster


class TestBans:
    """Tests for banning a member of an active season."""

    def test_season_completes_without_banned_member(self, engine, season_of_three, clock):
        """Test that games stop waiting for a member banned after activation."""
        season, players, _ = season_of_three
        active, banned = players[:2], players[2]
        engine.ban_player(banned.id).unwrap()

        for _ in range(100):
            if engine.store.seasons.get(season.id).status != SeasonStatus.ACTIVE:
                break
            moved = False
            for player in active:
                pending = [t for t in engine.store.turns.list_open_for_season(season.id)
                           if t.player_id == player.id and t.status == TurnStatus.PENDING]
                if pending:
                    engine.submit_turn(pending[0].id, player.id, content_for(pending[0])).unwrap()
                    moved = True
                elif engine.claim_next_offered(player.id).ok:
                    moved = True
            if not moved:
                next_fire = engine.scheduler.next_fire_time()
                if next_fire is None:
                    break
                clock.now = next_fire
                engine.run_due_jobs()

        assert engine.store.seasons.get(season.id).status == SeasonStatus.COMPLETED
        for game in engine.season_games(season.id):
            assert game.status == GameStatus.COMPLETED
            assert sorted(engine.holder_chain(game.id)) == sorted(p.id for p in active)

    def test_ban_completes_game_stalled_on_player(self, engine, seed):
        """Test that a game waiting only on the banned player completes at once."""
        a, b, c = seed.player("a"), seed.player("b"), seed.player("c")
        season = seed.season([a, b, c])
        game = seed.game(season)
        seed.turn(game, 1, status=TurnStatus.COMPLETED, player=a)
        seed.turn(game, 2, TurnType.DRAWING, status=TurnStatus.COMPLETED, player=b)
        seed.turn(game, 3)

        engine.ban_player(c.id).unwrap()

        assert engine.store.games.get(game.id).status == GameStatus.COMPLETED
        assert engine.store.seasons.get(season.id).status == SeasonStatus.COMPLETED

    def test_ban_unknown_player(self, engine):
        """Test NOT_FOUND for an unknown id."""
        assert engine.ban_player("ghost").failure.kind == FailureKind.NOT_FOUND


class TestStandalone:
    """Tests for standalone games through the facade."""

    def test_two_turn_game(self, engine, make_players, notifier):
        """Test create, submit, join and completion of a standalone game."""
        alice, bob = make_players(2)
        config = GameConfig(min_turns=2, max_turns=2)
        first = engine.create_standalone_game(alice.id, config=config).unwrap()
        assert first.status == TurnStatus.PENDING
        assert "turn.claimed" in notifier.keys_for(alice.id)

        engine.submit_turn(first.id, alice.id, content_for(first)).unwrap()
        assert "turn.available" in notifier.keys_for(None)

        second = engine.join_standalone_game(first.game_id, bob.id).unwrap()
        assert second.type == TurnType.DRAWING
        engine.submit_turn(second.id, bob.id, content_for(second)).unwrap()

        assert engine.store.games.get(first.game_id).status == GameStatus.COMPLETED
        assert "game.completed" in notifier.keys_for(None)

    def test_guild_default_game_config(self, engine, make_players):
        """Test that a guild default applies to new standalone games."""
        (alice,) = make_players(1)
        engine.set_guild_game_config("g1", GameConfig(turn_pattern="drawing"))
        turn = engine.create_standalone_game(alice.id, guild_id="g1").unwrap()
        assert turn.type == TurnType.DRAWING

    def test_banned_creator(self, engine, make_players):
        """Test that banned players cannot start games."""
        (alice,) = make_players(1)
        engine.ban_player(alice.id)
        assert engine.create_standalone_game(alice.id).failure.kind == FailureKind.PLAYER_BANNED

    def test_sweep_stale_games(self, engine, make_players, clock):
        """Test that idle games with enough turns are completed by the sweep."""
        (alice,) = make_players(1)
        config = GameConfig(min_turns=1, stale_timeout="1h")
        first = engine.create_standalone_game(alice.id, config=config).unwrap()
        engine.submit_turn(first.id, alice.id, content_for(first)).unwrap()
        assert engine.sweep_stale_games() == []
        clock.advance(timedelta(hours=1))
        assert engine.sweep_stale_games() == [first.game_id]


class TestFacadeMisc:
    """Tests for configuration sessions, delivery failures and wiring."""

    def test_config_session_roundtrip(self, engine):
        """Test a multi-step season config edit."""
        session = engine.start_config_session("admin")
        assert engine.update_config_session(session.id, min_players=2).ok
        config = engine.finish_config_session(session.id).value
        assert config.min_players == 2
        assert engine.finish_config_session(session.id).failure.kind == FailureKind.NOT_FOUND

    def test_delivery_failure_keeps_state(self, store, clock, make_players):
        """Test that a failing notifier is reported without undoing the change."""
        notifier = MagicMock()
        notifier.send.side_effect = InfrastructureError("send", "forbidden", transient=False)
        engine = EpycEngine(store, notifier=notifier, retry=RetryPolicy(sleep=lambda _: None),
                            clock=clock)
        player = engine.register_player("ext:x", "x")
        season = engine.create_season(config=SeasonConfig(min_players=1, max_players=1)).unwrap()

        assert engine.join_season(season.id, player.id).ok
        assert engine.last_effect_failures
        assert engine.last_effect_failures[0].category == ErrorCategory.INFRASTRUCTURE
        assert engine.store.seasons.get(season.id).status == SeasonStatus.ACTIVE

    def test_unexpected_notifier_error_is_reported(self, store, scheduler, clock):
        """Test that an arbitrary transport error is reported and timers still get scheduled."""
        notifier = MagicMock()
        notifier.send.side_effect = RuntimeError("bot token revoked")
        engine = EpycEngine(store, scheduler=scheduler, notifier=notifier,
                            retry=RetryPolicy(sleep=lambda _: None), clock=clock)
        player = engine.register_player("ext:x", "x")
        season = engine.create_season(config=SeasonConfig(min_players=1, max_players=1)).unwrap()

        joined = engine.join_season(season.id, player.id)

        assert joined.ok
        assert engine.store.seasons.roster(season.id) == [player.id]
        assert engine.last_effect_failures
        assert all(f.category == ErrorCategory.INFRASTRUCTURE
                   for f in engine.last_effect_failures)
        assert engine.last_effect_failures[0].data["error_type"] == "RuntimeError"
        (turn,) = engine.game_turns(engine.season_games(season.id)[0].id)
        assert f"turn-claim-timeout-{turn.id}" in {j.job_id for j in scheduler.pending()}

    def test_notifier_circuit_opens(self, store, scheduler, clock):
        """Test that a failing notifier trips its breaker while the scheduler keeps working."""
        notifier = MagicMock()
        notifier.send.side_effect = RuntimeError("down")
        breaker = CircuitBreaker("notifier", failure_threshold=1)
        engine = EpycEngine(store, scheduler=scheduler, notifier=notifier,
                            retry=RetryPolicy(sleep=lambda _: None),
                            notifier_breaker=breaker, clock=clock)
        player = engine.register_player("ext:x", "x")
        season = engine.create_season(config=SeasonConfig(min_players=1, max_players=1)).unwrap()

        assert engine.join_season(season.id, player.id).ok

        assert breaker.state == CircuitState.OPEN
        assert notifier.send.call_count == 1
        assert any("circuit open" in f.reason for f in engine.last_effect_failures)
        assert engine.runner.scheduler_breaker.state == CircuitState.CLOSED
        assert any(j.kind == "turn-claim-timeout" for j in scheduler.pending())

    def test_from_settings(self, db_path, clock):
        """Test building an engine from settings."""
        engine = EpycEngine.from_settings(EngineSettings(database_path=db_path), clock=clock)
        assert engine.register_player("ext:a", "a").name == "a"
        assert engine.runner.retry.max_attempts == 3
        assert engine.runner.notifier_breaker is not engine.runner.scheduler_breaker
