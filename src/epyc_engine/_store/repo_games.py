# Area: Store
"""
epyc_engine._store.repo_games — Games Repository
================================================

Repository for the games table.
"""

import sqlite3
from datetime import datetime
from typing import Iterable, List, Optional

from .._engine.enums import GameStatus
from .._engine.models import Game
from .._shared.clock import from_iso, to_iso
from .database import BaseRepository


def row_to_game(row: dict) -> Game:
    return Game(
        id=row["id"],
        status=GameStatus(row["status"]),
        config_id=row["config_id"],
        season_id=row["season_id"],
        guild_id=row["guild_id"],
        creator_id=row["creator_id"],
        created_at=from_iso(row["created_at"]),
        last_activity_at=from_iso(row["last_activity_at"]),
        completed_at=from_iso(row["completed_at"]),
    )


class GameRepository(BaseRepository):
    """Handles saving, retrieving and completing games."""

    def insert(self, game: Game, conn: Optional[sqlite3.Connection] = None) -> None:
        query = """
            INSERT INTO games
            (id, status, config_id, season_id, guild_id, creator_id,
             created_at, last_activity_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        self._execute(
            query,
            (game.id, game.status.value, game.config_id, game.season_id,
             game.guild_id, game.creator_id, to_iso(game.created_at),
             to_iso(game.last_activity_at or game.created_at),
             to_iso(game.completed_at)),
            conn,
        )

    def get(self, game_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Game]:
        row = self._fetch_one("SELECT * FROM games WHERE id = ?", (game_id,), conn)
        return row_to_game(row) if row else None

    def list_for_season(
        self, season_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> List[Game]:
        rows = self._fetch_all(
            "SELECT * FROM games WHERE season_id = ? ORDER BY created_at, rowid",
            (season_id,), conn,
        )
        return [row_to_game(row) for row in rows]

    def list_active_standalone(
        self, conn: Optional[sqlite3.Connection] = None
    ) -> List[Game]:
        rows = self._fetch_all(
            "SELECT * FROM games WHERE season_id IS NULL AND status = 'ACTIVE' "
            "ORDER BY created_at, rowid",
            (), conn,
        )
        return [row_to_game(row) for row in rows]

    def mark_completed(
        self, game_id: str, now: datetime, conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        """
        Complete an ACTIVE game and stamp ``completed_at``.

        Returns:
            True only for the call that performed the change
        """
        changed = self._execute(
            "UPDATE games SET status = 'COMPLETED', completed_at = ? "
            "WHERE id = ? AND status = 'ACTIVE'",
            (to_iso(now), game_id), conn,
        )
        return changed == 1

    def terminate(
        self,
        game_ids: Iterable[str],
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Terminate the given games unless they already finished."""
        ids = list(game_ids)
        if not ids:
            return 0
        marks = ",".join("?" for _ in ids)
        return self._execute(
            f"UPDATE games SET status = 'TERMINATED' "
            f"WHERE id IN ({marks}) AND status IN ('SETUP', 'ACTIVE')",
            tuple(ids), conn,
        )

    def touch(self, game_id: str, now: datetime, conn: Optional[sqlite3.Connection] = None) -> None:
        self._execute(
            "UPDATE games SET last_activity_at = ? WHERE id = ?",
            (to_iso(now), game_id), conn,
        )
