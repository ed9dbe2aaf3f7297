# Area: Engine
"""
epyc_engine._engine.instructions — Outbound Instructions
========================================================

Typed descriptions of work the engine asks others to do:

- ``NotificationInstruction``: a message for the NotificationGateway
- ``ScheduleJob`` / ``CancelJob``: requests for the SchedulingGateway
- ``CreateRecord`` / ``UpdateRecord`` / ``DeleteRecord``: a closed set of
  persistent writes, applied by the store's instruction writer

Services collect these in an ``Effects`` batch while a transaction is
open and hand the batch over only after it commits.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from .enums import EntityKind, JobKind, MessageKind
from .models import Game, Player, Season, Turn


@dataclass(frozen=True)
class NotificationInstruction:
    """
    A message for one recipient.

    Attributes:
        kind: success / error / info / warning
        recipient_id: Player id, or None for a channel-wide announcement
        template_key: Message template the delivery layer renders
        payload: Template variables
    """

    kind: MessageKind
    recipient_id: Optional[str]
    template_key: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScheduleJob:
    job_id: str
    fire_at: datetime
    kind: JobKind
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CancelJob:
    job_id: str


# ── Persistent writes ──────────────────────────────────────────

Record = Union[Player, Season, Game, Turn]

_KIND_BY_TYPE = {
    Player: EntityKind.PLAYER,
    Season: EntityKind.SEASON,
    Game: EntityKind.GAME,
    Turn: EntityKind.TURN,
}


def entity_kind_of(record: Record) -> EntityKind:
    return _KIND_BY_TYPE[type(record)]


@dataclass(frozen=True)
class CreateRecord:
    record: Record

    @property
    def entity(self) -> EntityKind:
        return entity_kind_of(self.record)


@dataclass(frozen=True)
class UpdateRecord:
    """
    Change columns of one row.

    ``expected`` holds column values the row must still have; the update
    is applied only when they match, which makes it a conditional write.
    """

    entity: EntityKind
    entity_id: str
    changes: Mapping[str, Any]
    expected: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteRecord:
    entity: EntityKind
    entity_id: str


UpdateInstruction = Union[CreateRecord, UpdateRecord, DeleteRecord]

Effect = Union[NotificationInstruction, ScheduleJob, CancelJob]


class Effects:
    """Ordered batch of side effects gathered inside a transaction."""

    def __init__(self) -> None:
        self.items: List[Effect] = []

    def notify(
        self,
        kind: MessageKind,
        recipient_id: Optional[str],
        template_key: str,
        **payload: Any,
    ) -> None:
        self.items.append(NotificationInstruction(kind, recipient_id, template_key, payload))

    def schedule(self, job: ScheduleJob) -> None:
        self.items.append(job)

    def cancel(self, job_id: str) -> None:
        self.items.append(CancelJob(job_id))

    def extend(self, other: "Effects") -> None:
        self.items.extend(other.items)

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)
