# Area: Store
"""
epyc_engine._store.writer — Update Instruction Writer
=====================================================

Applies ``CreateRecord`` / ``UpdateRecord`` / ``DeleteRecord``
instructions inside a caller's transaction. Only whitelisted columns can
be changed, and an update with ``expected`` values is conditional.
"""

import logging
import sqlite3
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from ..errors import InvariantViolationError
from .._engine.enums import EntityKind
from .._engine.instructions import CreateRecord, DeleteRecord, UpdateInstruction, UpdateRecord
from .._engine.models import Game, Player, Season, Turn
from .._shared.clock import to_iso
from .database import Database
from .repo_games import GameRepository
from .repo_players import PlayerRepository
from .repo_seasons import SeasonRepository
from .repo_turns import TurnRepository

logger = logging.getLogger("epyc_engine.store.writer")

# entity -> (table, columns an UpdateRecord may touch)
TABLES = {
    EntityKind.PLAYER: ("players", frozenset({"name", "banned_at"})),
    EntityKind.SEASON: ("seasons", frozenset({"status", "updated_at"})),
    EntityKind.GAME: ("games", frozenset({"status", "last_activity_at", "completed_at"})),
    EntityKind.TURN: ("turns", frozenset({
        "status", "player_id", "text_content", "image_url",
        "offered_at", "claimed_at", "completed_at", "skipped_at",
    })),
}


def _to_column(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_iso(value)
    return value


class InstructionWriter:
    """Turns update instructions into SQL against the repositories."""

    def __init__(self, db: Database):
        self.players = PlayerRepository(db)
        self.seasons = SeasonRepository(db)
        self.games = GameRepository(db)
        self.turns = TurnRepository(db)

    def apply(self, conn: sqlite3.Connection, instruction: UpdateInstruction) -> int:
        """
        Apply one instruction.

        Returns:
            Rows affected (1 for a create)

        Raises:
            InvariantViolationError: For an unknown instruction or column
        """
        if isinstance(instruction, CreateRecord):
            return self._create(conn, instruction)
        if isinstance(instruction, UpdateRecord):
            return self._update(conn, instruction)
        if isinstance(instruction, DeleteRecord):
            table, _ = TABLES[instruction.entity]
            return conn.execute(
                f"DELETE FROM {table} WHERE id = ?", (instruction.entity_id,)
            ).rowcount
        raise InvariantViolationError("instruction", f"unknown variant {instruction!r}")

    def apply_all(
        self, conn: sqlite3.Connection, instructions: Iterable[UpdateInstruction]
    ) -> int:
        return sum(self.apply(conn, i) for i in instructions)

    def _create(self, conn: sqlite3.Connection, instruction: CreateRecord) -> int:
        record = instruction.record
        if isinstance(record, Player):
            self.players.insert(record, conn)
        elif isinstance(record, Season):
            self.seasons.insert(record, conn)
        elif isinstance(record, Game):
            self.games.insert(record, conn)
        elif isinstance(record, Turn):
            self.turns.insert(record, conn)
        else:
            raise InvariantViolationError("instruction", f"cannot create {record!r}")
        logger.debug("Created %s %s", instruction.entity.value, record.id)
        return 1

    def _update(self, conn: sqlite3.Connection, instruction: UpdateRecord) -> int:
        table, allowed = TABLES[instruction.entity]
        unknown = set(instruction.changes) - allowed
        if unknown or not instruction.changes:
            raise InvariantViolationError(
                instruction.entity.value, f"cannot update columns {sorted(unknown) or '[]'}"
            )
        assignments = ", ".join(f"{col} = ?" for col in instruction.changes)
        params = [_to_column(v) for v in instruction.changes.values()]
        where = ["id = ?"]
        params.append(instruction.entity_id)
        for col, value in instruction.expected.items():
            if col not in allowed:
                raise InvariantViolationError(instruction.entity.value, f"cannot match on {col}")
            if value is None:
                where.append(f"{col} IS NULL")
            else:
                where.append(f"{col} = ?")
                params.append(_to_column(value))
        query = f"UPDATE {table} SET {assignments} WHERE {' AND '.join(where)}"
        return conn.execute(query, tuple(params)).rowcount
