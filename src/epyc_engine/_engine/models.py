# Area: Engine
"""
epyc_engine._engine.models — Entity Records
===========================================

Immutable snapshots of players, seasons, games and turns as read from
the store. Services never mutate these; a transition produces a fresh
snapshot on the next read.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .enums import GameStatus, SeasonStatus, TurnStatus, TurnType, RESOLVED_TURN_STATUSES


@dataclass(frozen=True)
class Player:
    """
    A participant, identified by an external account id.

    Players are never deleted; a ban sets ``banned_at``.
    """

    id: str
    external_id: str
    name: str
    banned_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_banned(self) -> bool:
        return self.banned_at is not None


@dataclass(frozen=True)
class Season:
    id: str
    status: SeasonStatus
    config_id: str
    guild_id: Optional[str] = None
    creator_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Game:
    """
    One match. ``season_id`` is None for a standalone game.

    ``config_id`` points at a season config for season games and at a
    game config for standalone ones.
    """

    id: str
    status: GameStatus
    config_id: str
    season_id: Optional[str] = None
    guild_id: Optional[str] = None
    creator_id: Optional[str] = None
    created_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_standalone(self) -> bool:
        return self.season_id is None


@dataclass(frozen=True)
class TurnContent:
    """Submitted content: text for writing turns, an image reference for drawing."""

    text: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def of_text(cls, text: str) -> "TurnContent":
        return cls(text=text)

    @classmethod
    def of_image(cls, image_url: str) -> "TurnContent":
        return cls(image_url=image_url)


@dataclass(frozen=True)
class Turn:
    """
    One contribution slot in a game.

    ``previous_turn_id`` is a display-only link resolved by lookup.
    """

    id: str
    game_id: str
    turn_number: int
    type: TurnType
    status: TurnStatus
    player_id: Optional[str] = None
    text_content: Optional[str] = None
    image_url: Optional[str] = None
    previous_turn_id: Optional[str] = None
    created_at: Optional[datetime] = None
    offered_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    skipped_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.status in RESOLVED_TURN_STATUSES

    @property
    def content(self) -> TurnContent:
        return TurnContent(text=self.text_content, image_url=self.image_url)
