# Area: Store
"""
epyc_engine._store.repo_turns — Turns Repository
================================================

Repository for the turns table: set queries used by player selection
and completion checks, plus one conditional UPDATE per state-machine
transition. Each conditional update repeats the transition guard in its
WHERE clause and reports whether exactly one row changed, so the store
itself decides the winner of a race.
"""

import sqlite3
from datetime import datetime
from typing import Dict, List, Optional

from .._engine.enums import TurnStatus, TurnType
from .._engine.models import Turn, TurnContent
from .._shared.clock import from_iso, to_iso
from .database import BaseRepository


def row_to_turn(row: dict) -> Turn:
    return Turn(
        id=row["id"],
        game_id=row["game_id"],
        turn_number=row["turn_number"],
        type=TurnType(row["type"]),
        status=TurnStatus(row["status"]),
        player_id=row["player_id"],
        text_content=row["text_content"],
        image_url=row["image_url"],
        previous_turn_id=row["previous_turn_id"],
        created_at=from_iso(row["created_at"]),
        offered_at=from_iso(row["offered_at"]),
        claimed_at=from_iso(row["claimed_at"]),
        completed_at=from_iso(row["completed_at"]),
        skipped_at=from_iso(row["skipped_at"]),
    )


class TurnRepository(BaseRepository):
    """Handles turn queries and conditional state transitions."""

    def insert(self, turn: Turn, conn: Optional[sqlite3.Connection] = None) -> None:
        query = """
            INSERT INTO turns
            (id, game_id, turn_number, type, status, player_id, text_content,
             image_url, previous_turn_id, created_at, offered_at, claimed_at,
             completed_at, skipped_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        self._execute(
            query,
            (turn.id, turn.game_id, turn.turn_number, turn.type.value,
             turn.status.value, turn.player_id, turn.text_content, turn.image_url,
             turn.previous_turn_id, to_iso(turn.created_at), to_iso(turn.offered_at),
             to_iso(turn.claimed_at), to_iso(turn.completed_at),
             to_iso(turn.skipped_at)),
            conn,
        )

    # ── Queries ─────────────────────────────────────────────────

    def get(self, turn_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Turn]:
        row = self._fetch_one("SELECT * FROM turns WHERE id = ?", (turn_id,), conn)
        return row_to_turn(row) if row else None

    def list_for_game(
        self, game_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> List[Turn]:
        """All turns of a game in turn-number order."""
        rows = self._fetch_all(
            "SELECT * FROM turns WHERE game_id = ? ORDER BY turn_number",
            (game_id,), conn,
        )
        return [row_to_turn(row) for row in rows]

    def list_resolved_for_game(
        self, game_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> List[Turn]:
        rows = self._fetch_all(
            "SELECT * FROM turns WHERE game_id = ? "
            "AND status IN ('COMPLETED', 'SKIPPED') ORDER BY turn_number",
            (game_id,), conn,
        )
        return [row_to_turn(row) for row in rows]

    def list_for_season(
        self, season_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Dict[str, List[Turn]]:
        """Turns of every game in a season, keyed by game id."""
        rows = self._fetch_all(
            """
            SELECT t.* FROM turns t JOIN games g ON g.id = t.game_id
            WHERE g.season_id = ?
            ORDER BY t.game_id, t.turn_number
            """,
            (season_id,), conn,
        )
        by_game: Dict[str, List[Turn]] = {}
        for row in rows:
            turn = row_to_turn(row)
            by_game.setdefault(turn.game_id, []).append(turn)
        return by_game

    def list_open_for_season(
        self, season_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> List[Turn]:
        """OFFERED and PENDING turns across a season."""
        rows = self._fetch_all(
            """
            SELECT t.* FROM turns t JOIN games g ON g.id = t.game_id
            WHERE g.season_id = ? AND t.status IN ('OFFERED', 'PENDING')
            """,
            (season_id,), conn,
        )
        return [row_to_turn(row) for row in rows]

    def list_offered_to_player(
        self, player_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> List[Turn]:
        """Turns currently offered to a player, oldest offer first."""
        rows = self._fetch_all(
            "SELECT * FROM turns WHERE player_id = ? AND status = 'OFFERED' "
            "ORDER BY offered_at, rowid",
            (player_id,), conn,
        )
        return [row_to_turn(row) for row in rows]

    def count_pending_in_season(
        self,
        player_id: str,
        season_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        row = self._fetch_one(
            """
            SELECT COUNT(*) AS n FROM turns t JOIN games g ON g.id = t.game_id
            WHERE t.player_id = ? AND t.status = 'PENDING' AND g.season_id = ?
            """,
            (player_id, season_id), conn,
        )
        return row["n"]

    # ── Conditional transitions ────────────────────────────────

    def offer(
        self,
        turn_id: str,
        player_id: str,
        now: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        changed = self._execute(
            "UPDATE turns SET status = 'OFFERED', player_id = ?, offered_at = ? "
            "WHERE id = ? AND status = 'AVAILABLE'",
            (player_id, to_iso(now), turn_id), conn,
        )
        return changed == 1

    def claim(
        self,
        turn_id: str,
        player_id: str,
        now: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """
        OFFERED -> PENDING for ``player_id``.

        Also refuses when the player already has a PENDING turn anywhere in
        the same season. Standalone games have no season and skip that check.
        """
        changed = self._execute(
            """
            UPDATE turns SET status = 'PENDING', player_id = ?, claimed_at = ?
            WHERE id = ? AND status = 'OFFERED'
              AND (player_id IS NULL OR player_id = ?)
              AND NOT EXISTS (
                  SELECT 1 FROM turns other JOIN games og ON og.id = other.game_id
                  WHERE other.player_id = ? AND other.status = 'PENDING'
                    AND other.id <> turns.id
                    AND og.season_id = (
                        SELECT g.season_id FROM games g WHERE g.id = turns.game_id
                    )
              )
            """,
            (player_id, to_iso(now), turn_id, player_id, player_id), conn,
        )
        return changed == 1

    def dismiss(
        self,
        turn_id: str,
        player_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        changed = self._execute(
            "UPDATE turns SET status = 'AVAILABLE', player_id = NULL, "
            "offered_at = NULL, claimed_at = NULL "
            "WHERE id = ? AND status = 'OFFERED' AND player_id = ?",
            (turn_id, player_id), conn,
        )
        return changed == 1

    def complete(
        self,
        turn_id: str,
        player_id: str,
        content: TurnContent,
        now: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        changed = self._execute(
            "UPDATE turns SET status = 'COMPLETED', text_content = ?, image_url = ?, "
            "completed_at = ? "
            "WHERE id = ? AND status = 'PENDING' AND player_id = ?",
            (content.text, content.image_url, to_iso(now), turn_id, player_id), conn,
        )
        return changed == 1

    def skip(
        self, turn_id: str, now: datetime, conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        changed = self._execute(
            "UPDATE turns SET status = 'SKIPPED', skipped_at = ? "
            "WHERE id = ? AND status = 'PENDING'",
            (to_iso(now), turn_id), conn,
        )
        return changed == 1
