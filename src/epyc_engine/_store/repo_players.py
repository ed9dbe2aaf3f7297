# Area: Store
"""
epyc_engine._store.repo_players — Players Repository
====================================================

Repository for the players table. Players are created on first
interaction and never deleted.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional

from .._engine.models import Player
from .._shared.clock import from_iso, to_iso
from .database import BaseRepository


def row_to_player(row: dict) -> Player:
    return Player(
        id=row["id"],
        external_id=row["external_id"],
        name=row["name"],
        banned_at=from_iso(row["banned_at"]),
        created_at=from_iso(row["created_at"]),
    )


class PlayerRepository(BaseRepository):
    """Handles saving, retrieving and banning players."""

    def insert(self, player: Player, conn: Optional[sqlite3.Connection] = None) -> None:
        query = """
            INSERT INTO players (id, external_id, name, banned_at, created_at)
            VALUES (?, ?, ?, ?, ?)
        """
        self._execute(
            query,
            (player.id, player.external_id, player.name,
             to_iso(player.banned_at), to_iso(player.created_at)),
            conn,
        )

    def get(self, player_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Player]:
        row = self._fetch_one("SELECT * FROM players WHERE id = ?", (player_id,), conn)
        return row_to_player(row) if row else None

    def get_by_external_id(
        self, external_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Player]:
        row = self._fetch_one(
            "SELECT * FROM players WHERE external_id = ?", (external_id,), conn
        )
        return row_to_player(row) if row else None

    def get_many(
        self, player_ids: List[str], conn: Optional[sqlite3.Connection] = None
    ) -> List[Player]:
        """Players for the given ids, in the order of ``player_ids``."""
        if not player_ids:
            return []
        marks = ",".join("?" for _ in player_ids)
        rows = self._fetch_all(
            f"SELECT * FROM players WHERE id IN ({marks})", tuple(player_ids), conn
        )
        by_id = {row["id"]: row_to_player(row) for row in rows}
        return [by_id[pid] for pid in player_ids if pid in by_id]

    def rename(self, player_id: str, name: str, conn: Optional[sqlite3.Connection] = None) -> None:
        self._execute("UPDATE players SET name = ? WHERE id = ?", (name, player_id), conn)

    def set_banned_at(
        self,
        player_id: str,
        banned_at: Optional[datetime],
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """Set or clear the ban timestamp. Returns False for an unknown id."""
        changed = self._execute(
            "UPDATE players SET banned_at = ? WHERE id = ?",
            (to_iso(banned_at), player_id),
            conn,
        )
        return changed == 1
