# Area: Engine Tests
"""Shared fixtures: temporary database, manual clock and a wired engine."""

import logging
import os
import tempfile
from datetime import datetime, timezone

import pytest

from epyc_engine import (
    EpycEngine,
    Game,
    GameConfig,
    GameStatus,
    InMemoryScheduler,
    Player,
    RecordingNotifier,
    Season,
    SeasonConfig,
    SeasonStatus,
    Store,
    Turn,
    TurnStatus,
    TurnType,
)
from epyc_engine._shared import ManualClock, RetryPolicy, disable_quiet_mode, new_id

START = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_path():
    """Create temporary database file for testing."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    os.unlink(path)


@pytest.fixture
def store(db_path):
    return Store.open(db_path)


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def scheduler(clock):
    return InMemoryScheduler(clock)


@pytest.fixture
def engine(store, scheduler, notifier, clock):
    return EpycEngine(
        store,
        scheduler=scheduler,
        notifier=notifier,
        retry=RetryPolicy(sleep=lambda _: None),
        clock=clock,
    )


@pytest.fixture
def make_players(engine):
    """Factory registering ``n`` players named p1..pn."""
    def make(n, prefix="p"):
        return [engine.register_player(f"ext:{prefix}{i}", f"{prefix}{i}")
                for i in range(1, n + 1)]
    return make


class Seeder:
    """Writes records straight through the repositories."""

    def __init__(self, store, clock):
        self.store = store
        self.clock = clock

    def player(self, name, banned=False):
        player = Player(new_id(), f"ext:{name}", name,
                        banned_at=self.clock() if banned else None, created_at=self.clock())
        self.store.players.insert(player)
        return player

    def season(self, members=(), status=SeasonStatus.ACTIVE, config=None):
        config_id = self.store.configs.save(config or SeasonConfig(), self.clock())
        season = Season(new_id(), status, config_id,
                        created_at=self.clock(), updated_at=self.clock())
        self.store.seasons.insert(season)
        for member in members:
            self.store.seasons.add_member(season.id, member.id, self.clock())
        return season

    def game(self, season=None, config=None, status=GameStatus.ACTIVE):
        if season is not None:
            config_id = season.config_id
        else:
            config_id = self.store.configs.save(config or GameConfig(), self.clock())
        game = Game(new_id(), status, config_id, season.id if season else None,
                    created_at=self.clock(), last_activity_at=self.clock())
        self.store.games.insert(game)
        return game

    def turn(self, game, number=1, turn_type=TurnType.WRITING,
             status=TurnStatus.AVAILABLE, player=None, **fields):
        now = self.clock()
        if status != TurnStatus.AVAILABLE:
            fields.setdefault("offered_at", now)
        if status in (TurnStatus.PENDING, TurnStatus.COMPLETED, TurnStatus.SKIPPED):
            fields.setdefault("claimed_at", now)
        turn = Turn(new_id(), game.id, number, turn_type, status,
                    player.id if player else None, created_at=now, **fields)
        self.store.turns.insert(turn)
        return turn


@pytest.fixture
def seed(store, clock):
    return Seeder(store, clock)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging so caplog sees records in every test."""
    yield
    pkg_logger = logging.getLogger("epyc_engine")
    for handler in pkg_logger.handlers:
        handler.close()
    pkg_logger.handlers.clear()
    pkg_logger.setLevel(logging.NOTSET)
    pkg_logger.propagate = True
    disable_quiet_mode()
