# Area: Engine Tests
"""Tests for SeasonLifecycle: creation, roster, activation and termination."""

from datetime import timedelta

import pytest

from epyc_engine import (
    ActivationTrigger,
    FailureKind,
    GameStatus,
    SeasonConfig,
    SeasonStatus,
    TurnStatus,
)
from epyc_engine._engine.enums import JobKind
from epyc_engine._engine.instructions import CancelJob, Effects, NotificationInstruction, ScheduleJob

SMALL = SeasonConfig(min_players=3, max_players=3)


def keys(effects):
    return [e.template_key for e in effects if isinstance(e, NotificationInstruction)]


@pytest.fixture
def seasons(engine):
    return engine.seasons


class TestCreate:
    """Tests for season creation and opening."""

    def test_create_opens_and_schedules_activation(self, seasons, seed, store, clock):
        """Test that a new season is OPEN with an activation job after open_duration."""
        a = seed.player("a")
        effects = Effects()
        season = seasons.create(effects, creator_id=a.id, config=SMALL).value
        assert season.status == SeasonStatus.OPEN
        job = next(e for e in effects if isinstance(e, ScheduleJob))
        assert job.kind == JobKind.SEASON_ACTIVATION
        assert job.fire_at == clock() + timedelta(days=7)
        assert store.configs.get_season_config(season.config_id) == SMALL

    def test_guild_default_config(self, seasons, store, clock):
        """Test that the guild default applies when no config is given."""
        store.configs.set_guild_default("g1", SeasonConfig(min_players=2), clock())
        season = seasons.create(Effects(), guild_id="g1").value
        assert store.configs.get_season_config(season.config_id).min_players == 2

    def test_unknown_creator(self, seasons):
        """Test that an unknown creator is NOT_FOUND."""
        assert seasons.create(Effects(), creator_id="ghost").failure.kind == FailureKind.NOT_FOUND

    def test_deferred_open(self, seasons):
        """Test the PENDING -> OPEN path."""
        effects = Effects()
        season = seasons.create(effects, open_now=False).value
        assert season.status == SeasonStatus.PENDING
        assert len(effects) == 0
        opened = seasons.open_season(season.id, effects).value
        assert opened.status == SeasonStatus.OPEN
        assert seasons.open_season(season.id, Effects()).failure.kind == FailureKind.WRONG_STATE
        assert seasons.open_season("ghost", Effects()).failure.kind == FailureKind.NOT_FOUND


class TestJoin:
    """Tests for roster joins."""

    def test_filling_roster_activates(self, seasons, seed, store):
        """Test that the join reaching max_players creates one game per member."""
        players = [seed.player(n) for n in "abc"]
        season = seasons.create(Effects(), config=SMALL).value
        effects = Effects()
        receipts = [seasons.join(season.id, p.id, effects).value for p in players]

        assert [r.roster_size for r in receipts] == [1, 2, 3]
        assert receipts[-1].is_full
        assert store.seasons.get(season.id).status == SeasonStatus.ACTIVE
        games = store.games.list_for_season(season.id)
        assert len(games) == 3
        holders = []
        for game in games:
            turns = store.turns.list_for_game(game.id)
            assert [t.status for t in turns] == [TurnStatus.OFFERED]
            holders.append(turns[0].player_id)
        assert sorted(holders) == sorted(p.id for p in players)
        assert "season.activated" in keys(effects)
        assert any(isinstance(e, CancelJob) and e.job_id.startswith("season-activation-")
                   for e in effects)

    def test_join_failures(self, seasons, seed):
        """Test each refusal reason."""
        a, b, c, d = (seed.player(n) for n in "abcd")
        banned = seed.player("x", banned=True)
        season = seasons.create(Effects(), config=SeasonConfig(min_players=2, max_players=2)).value
        seasons.join(season.id, a.id, Effects())

        def kind(season_id, player_id):
            return seasons.join(season_id, player_id, Effects()).failure.kind

        assert kind(season.id, a.id) == FailureKind.ALREADY_JOINED
        assert kind(season.id, banned.id) == FailureKind.PLAYER_BANNED
        assert kind(season.id, "ghost") == FailureKind.NOT_FOUND
        assert kind("ghost", b.id) == FailureKind.NOT_FOUND
        seasons.join(season.id, b.id, Effects())
        assert kind(season.id, c.id) == FailureKind.NOT_OPEN

        pending = seasons.create(Effects(), open_now=False,
                                 config=SeasonConfig(min_players=1, max_players=1)).value
        seasons.join(pending.id, c.id, Effects())
        assert kind(pending.id, d.id) == FailureKind.FULL

    def test_open_full_pending_season_activates(self, seasons, seed, store):
        """Test that opening an already full season activates it."""
        a = seed.player("a")
        season = seasons.create(Effects(), open_now=False,
                                config=SeasonConfig(min_players=1, max_players=1)).value
        seasons.join(season.id, a.id, Effects())
        assert seasons.open_season(season.id, Effects()).value.status == SeasonStatus.ACTIVE
        assert len(store.games.list_for_season(season.id)) == 1


class TestActivate:
    """Tests for explicit activation."""

    def test_timeout_below_minimum_cancels(self, seasons, seed, store):
        """Test that the open window elapsing short of min_players cancels the season."""
        a = seed.player("a")
        season = seasons.create(Effects(), config=SMALL).value
        seasons.join(season.id, a.id, Effects())
        effects = Effects()

        result = seasons.activate(season.id, ActivationTrigger.OPEN_DURATION_TIMEOUT, effects)

        assert result.value.status == SeasonStatus.CANCELLED
        assert store.games.list_for_season(season.id) == []
        assert keys(effects) == ["season.cancelled"]

    def test_timeout_with_enough_players_activates(self, seasons, seed, store):
        """Test activation by timeout once min_players joined."""
        players = [seed.player(n) for n in "ab"]
        season = seasons.create(Effects(), config=SeasonConfig(min_players=2, max_players=5)).value
        for p in players:
            seasons.join(season.id, p.id, Effects())
        result = seasons.activate(season.id, ActivationTrigger.OPEN_DURATION_TIMEOUT, Effects())
        assert result.value.status == SeasonStatus.ACTIVE
        assert len(store.games.list_for_season(season.id)) == 2

    def test_activation_happens_once(self, seasons, seed, store):
        """Test that a second trigger is refused without creating games."""
        players = [seed.player(n) for n in "abc"]
        season = seasons.create(Effects(), config=SMALL).value
        for p in players:
            seasons.join(season.id, p.id, Effects())
        again = seasons.activate(season.id, ActivationTrigger.OPEN_DURATION_TIMEOUT, Effects())
        assert again.failure.kind == FailureKind.WRONG_STATE
        assert len(store.games.list_for_season(season.id)) == 3

    def test_max_players_trigger_below_minimum(self, seasons, seed):
        """Test that only the timeout trigger may cancel."""
        season = seasons.create(Effects(), config=SMALL).value
        result = seasons.activate(season.id, ActivationTrigger.MAX_PLAYERS, Effects())
        assert result.failure.kind == FailureKind.WRONG_STATE


class TestEndOfSeason:
    """Tests for cancel, terminate and completion."""

    def test_cancel(self, seasons, seed):
        """Test cancelling an OPEN season notifies its roster."""
        a = seed.player("a")
        season = seasons.create(Effects(), config=SMALL).value
        seasons.join(season.id, a.id, Effects())
        effects = Effects()
        assert seasons.cancel(season.id, effects).value.status == SeasonStatus.CANCELLED
        assert keys(effects) == ["season.cancelled"]
        assert seasons.cancel(season.id, Effects()).failure.kind == FailureKind.WRONG_STATE

    def test_terminate_stops_games(self, seasons, seed, store):
        """Test that termination ends the season and its unfinished games."""
        players = [seed.player(n) for n in "abc"]
        season = seasons.create(Effects(), config=SMALL).value
        for p in players:
            seasons.join(season.id, p.id, Effects())
        effects = Effects()

        result = seasons.terminate(season.id, effects)

        assert result.value.status == SeasonStatus.TERMINATED
        assert {g.status for g in store.games.list_for_season(season.id)} == {GameStatus.TERMINATED}
        assert "season.terminated" in keys(effects)
        assert seasons.terminate(season.id, Effects()).failure.kind == FailureKind.WRONG_STATE

    def test_completion(self, seasons, seed, store, clock):
        """Test that the season completes once every game has."""
        a, b = seed.player("a"), seed.player("b")
        season = seed.season([a, b])
        g1, g2 = seed.game(season), seed.game(season)
        store.games.mark_completed(g1.id, clock())
        assert seasons.check_completion(season.id, Effects()).value is False
        store.games.mark_completed(g2.id, clock())
        effects = Effects()
        assert seasons.check_completion(season.id, effects).value is True
        assert store.seasons.get(season.id).status == SeasonStatus.COMPLETED
        assert keys(effects) == ["season.completed"]
        assert seasons.check_completion(season.id, Effects()).value is True
        assert seasons.check_completion("ghost", Effects()).failure.kind == FailureKind.NOT_FOUND
