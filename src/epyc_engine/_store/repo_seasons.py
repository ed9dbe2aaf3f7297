# Area: Store
"""
epyc_engine._store.repo_seasons — Seasons Repository
====================================================

Repository for the seasons and season_players tables. Roster order is
join order, tracked by an explicit position column.
"""

import sqlite3
from datetime import datetime
from typing import Iterable, List, Optional

from .._engine.enums import SeasonStatus
from .._engine.models import Season
from .._shared.clock import from_iso, to_iso
from .database import BaseRepository


def row_to_season(row: dict) -> Season:
    return Season(
        id=row["id"],
        status=SeasonStatus(row["status"]),
        config_id=row["config_id"],
        guild_id=row["guild_id"],
        creator_id=row["creator_id"],
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
    )


class SeasonRepository(BaseRepository):
    """
    Repository for seasons and their rosters.

    Status changes are conditional on the expected current status so
    that a late or duplicate trigger cannot move a season twice.
    """

    def insert(self, season: Season, conn: Optional[sqlite3.Connection] = None) -> None:
        query = """
            INSERT INTO seasons
            (id, status, config_id, guild_id, creator_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """
        self._execute(
            query,
            (season.id, season.status.value, season.config_id, season.guild_id,
             season.creator_id, to_iso(season.created_at), to_iso(season.updated_at)),
            conn,
        )

    def get(self, season_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Season]:
        """
        Get a season by ID.

        Returns:
            Season record or None if not found
        """
        row = self._fetch_one("SELECT * FROM seasons WHERE id = ?", (season_id,), conn)
        return row_to_season(row) if row else None

    def transition(
        self,
        season_id: str,
        from_statuses: Iterable[SeasonStatus],
        to_status: SeasonStatus,
        now: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """
        Move a season to ``to_status`` if it is currently in ``from_statuses``.

        Returns:
            True if this call performed the change
        """
        allowed = [s.value for s in from_statuses]
        marks = ",".join("?" for _ in allowed)
        query = f"""
            UPDATE seasons SET status = ?, updated_at = ?
            WHERE id = ? AND status IN ({marks})
        """
        changed = self._execute(
            query, (to_status.value, to_iso(now), season_id, *allowed), conn
        )
        return changed == 1

    def list_by_status(
        self, status: SeasonStatus, conn: Optional[sqlite3.Connection] = None
    ) -> List[Season]:
        rows = self._fetch_all(
            "SELECT * FROM seasons WHERE status = ? ORDER BY created_at",
            (status.value,), conn,
        )
        return [row_to_season(row) for row in rows]

    def list_for_member(
        self,
        player_id: str,
        status: SeasonStatus,
        conn: Optional[sqlite3.Connection] = None,
    ) -> List[Season]:
        """Seasons in ``status`` whose roster includes the player."""
        rows = self._fetch_all(
            """
            SELECT s.* FROM seasons s
            JOIN season_players sp ON sp.season_id = s.id
            WHERE sp.player_id = ? AND s.status = ?
            ORDER BY s.created_at
            """,
            (player_id, status.value), conn,
        )
        return [row_to_season(row) for row in rows]

    def add_member(
        self,
        season_id: str,
        player_id: str,
        now: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """
        Append a player to the roster.

        Returns:
            The new roster size
        """
        with self._conn(conn) as c:
            c.execute(
                """
                INSERT INTO season_players (season_id, player_id, position, joined_at)
                VALUES (?, ?, (SELECT COALESCE(MAX(position), 0) + 1
                               FROM season_players WHERE season_id = ?), ?)
                """,
                (season_id, player_id, season_id, to_iso(now)),
            )
            return self.roster_size(season_id, c)

    def roster(self, season_id: str, conn: Optional[sqlite3.Connection] = None) -> List[str]:
        """Player ids in join order."""
        rows = self._fetch_all(
            "SELECT player_id FROM season_players WHERE season_id = ? ORDER BY position",
            (season_id,), conn,
        )
        return [row["player_id"] for row in rows]

    def roster_size(self, season_id: str, conn: Optional[sqlite3.Connection] = None) -> int:
        row = self._fetch_one(
            "SELECT COUNT(*) AS n FROM season_players WHERE season_id = ?",
            (season_id,), conn,
        )
        return row["n"]

    def is_member(
        self, season_id: str, player_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        row = self._fetch_one(
            "SELECT 1 AS hit FROM season_players WHERE season_id = ? AND player_id = ?",
            (season_id, player_id), conn,
        )
        return row is not None
