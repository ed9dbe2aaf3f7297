# Area: Store
"""
epyc_engine._store.repo_configs — Configs Repository
====================================================

Stores season and game configs as JSON documents. A config may be
marked as the default for a guild; at most one default exists per
guild and kind.
"""

import sqlite3
from datetime import datetime
from typing import Optional, Union

from .._engine.config import GameConfig, SeasonConfig
from .._shared.clock import new_id, to_iso
from .database import BaseRepository

AnyConfig = Union[SeasonConfig, GameConfig]


def _kind_of(config: AnyConfig) -> str:
    return "season" if isinstance(config, SeasonConfig) else "game"


class ConfigRepository(BaseRepository):
    """Handles saving and loading config documents."""

    def save(
        self,
        config: AnyConfig,
        now: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> str:
        """
        Persist a config and return its new id.

        Configs are immutable; every change is stored as a new row.
        """
        config_id = new_id()
        query = """
            INSERT INTO configs (id, kind, body, created_at)
            VALUES (?, ?, ?, ?)
        """
        self._execute(
            query, (config_id, _kind_of(config), config.model_dump_json(), to_iso(now)), conn
        )
        return config_id

    def get_season_config(
        self, config_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[SeasonConfig]:
        row = self._fetch_one(
            "SELECT body FROM configs WHERE id = ? AND kind = 'season'", (config_id,), conn
        )
        return SeasonConfig.model_validate_json(row["body"]) if row else None

    def get_game_config(
        self, config_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[GameConfig]:
        row = self._fetch_one(
            "SELECT body FROM configs WHERE id = ? AND kind = 'game'", (config_id,), conn
        )
        return GameConfig.model_validate_json(row["body"]) if row else None

    def set_guild_default(
        self,
        guild_id: str,
        config: AnyConfig,
        now: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> str:
        """Store ``config`` as the guild default, replacing any previous one."""
        if conn is None:
            with self.db.transaction() as tx:
                return self.set_guild_default(guild_id, config, now, tx)
        conn.execute(
            "UPDATE configs SET guild_default_for = NULL "
            "WHERE kind = ? AND guild_default_for = ?",
            (_kind_of(config), guild_id),
        )
        config_id = self.save(config, now, conn)
        conn.execute(
            "UPDATE configs SET guild_default_for = ? WHERE id = ?",
            (guild_id, config_id),
        )
        return config_id

    def get_guild_default_season_config(
        self, guild_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[SeasonConfig]:
        row = self._fetch_one(
            "SELECT body FROM configs WHERE kind = 'season' AND guild_default_for = ?",
            (guild_id,), conn,
        )
        return SeasonConfig.model_validate_json(row["body"]) if row else None

    def get_guild_default_game_config(
        self, guild_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[GameConfig]:
        row = self._fetch_one(
            "SELECT body FROM configs WHERE kind = 'game' AND guild_default_for = ?",
            (guild_id,), conn,
        )
        return GameConfig.model_validate_json(row["body"]) if row else None
