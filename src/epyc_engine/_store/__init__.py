# Area: Store
"""
epyc_engine._store — SQLite persistence
=======================================

Schema, repositories and the instruction writer. ``Store`` bundles one
of each around a single ``Database``.
"""

from .database import BaseRepository, Database, get_connection, init_database
from .repo_configs import ConfigRepository
from .repo_games import GameRepository
from .repo_players import PlayerRepository
from .repo_seasons import SeasonRepository
from .repo_turns import TurnRepository
from .writer import InstructionWriter


class Store:
    """All repositories over one database."""

    def __init__(self, db: Database):
        self.db = db
        self.players = PlayerRepository(db)
        self.configs = ConfigRepository(db)
        self.seasons = SeasonRepository(db)
        self.games = GameRepository(db)
        self.turns = TurnRepository(db)
        self.writer = InstructionWriter(db)

    @classmethod
    def open(cls, db_path: str, initialize: bool = True) -> "Store":
        db = Database(db_path)
        if initialize:
            db.initialize()
        return cls(db)


__all__ = [
    "BaseRepository",
    "Database",
    "get_connection",
    "init_database",
    "ConfigRepository",
    "GameRepository",
    "PlayerRepository",
    "SeasonRepository",
    "TurnRepository",
    "InstructionWriter",
    "Store",
]
