# Area: Engine
"""
epyc_engine._engine.players — Player Registry
=============================================

Get-or-create by external account id, plus ban and unban. Ban state is
consumed elsewhere as a flag only.
"""

import logging
import sqlite3
from typing import Optional

from .._shared.clock import Clock, new_id, utc_now
from .enums import FailureKind
from .instructions import CreateRecord
from .models import Player
from .results import Result

logger = logging.getLogger("epyc_engine.engine.players")


class PlayerRegistry:
    def __init__(self, store, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    def get_or_create(self, external_id: str, name: str) -> Player:
        """
        Return the player for ``external_id``, creating it on first sight.

        An existing player whose display name changed is renamed.
        """
        with self.store.db.transaction() as conn:
            player = self.store.players.get_by_external_id(external_id, conn)
            if player is None:
                player = Player(new_id(), external_id, name, created_at=self.clock())
                self.store.writer.apply(conn, CreateRecord(player))
                logger.info("Registered player %s (%s)", player.id, name)
                return player
            if player.name != name:
                self.store.players.rename(player.id, name, conn)
                logger.info("Renamed player %s: %s -> %s", player.id, player.name, name)
                player = self.store.players.get(player.id, conn)
            return player

    def get(
        self, player_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Result[Player]:
        player = self.store.players.get(player_id, conn)
        if player is None:
            return Result.fail(FailureKind.NOT_FOUND, "Player not found", player_id=player_id)
        return Result.success(player)

    def ban(self, player_id: str) -> Result[Player]:
        return self._set_ban(player_id, banned=True)

    def unban(self, player_id: str) -> Result[Player]:
        return self._set_ban(player_id, banned=False)

    def _set_ban(self, player_id: str, banned: bool) -> Result[Player]:
        when = self.clock() if banned else None
        if not self.store.players.set_banned_at(player_id, when):
            return Result.fail(FailureKind.NOT_FOUND, "Player not found", player_id=player_id)
        logger.info("Player %s %s", player_id, "banned" if banned else "unbanned")
        return self.get(player_id)
