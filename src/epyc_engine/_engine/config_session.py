# Area: Engine
"""
epyc_engine._engine.config_session — Configuration Sessions
===========================================================

Multi-step configuration (an admin filling in a season or game config
over several interactions) is held in an explicit session object with
an expiry, passed from step to step, instead of in per-user globals.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Generic, List, Optional, TypeVar

from .._shared.clock import new_id
from .config import RulesConfig, validate_config_updates
from .enums import FailureKind
from .results import Result

logger = logging.getLogger("epyc_engine.engine.config_session")

C = TypeVar("C", bound=RulesConfig)

DEFAULT_SESSION_TTL = timedelta(minutes=15)


@dataclass
class ConfigSession(Generic[C]):
    """
    Partial config edits for one owner.

    Each ``update`` is validated against the base config immediately,
    so a bad value is reported at the step that introduced it.
    """

    owner_id: str
    base: C
    expires_at: datetime
    id: str = field(default_factory=new_id)
    updates: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def update(self, now: datetime, **fields: Any) -> Result[C]:
        if self.is_expired(now):
            return Result.fail(FailureKind.VALIDATION, "Configuration session expired",
                               session_id=self.id)
        merged = dict(self.updates, **fields)
        result = validate_config_updates(self.base, merged)
        if result.ok:
            self.updates = merged
        return result

    def finish(self, now: datetime) -> Result[C]:
        """Build the final config from the base and accumulated updates."""
        if self.is_expired(now):
            return Result.fail(FailureKind.VALIDATION, "Configuration session expired",
                               session_id=self.id)
        return validate_config_updates(self.base, self.updates)


class ConfigSessionStore:
    """Open sessions by id, with explicit expiry sweeps."""

    def __init__(self, ttl: timedelta = DEFAULT_SESSION_TTL):
        self.ttl = ttl
        self._sessions: Dict[str, ConfigSession] = {}
        self._lock = threading.Lock()

    def start(self, owner_id: str, base: C, now: datetime) -> ConfigSession[C]:
        session = ConfigSession(owner_id=owner_id, base=base, expires_at=now + self.ttl)
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str, now: datetime) -> Optional[ConfigSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.is_expired(now):
                del self._sessions[session_id]
                return None
            return session

    def close(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def purge_expired(self, now: datetime) -> List[str]:
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.info("Purged %d expired config sessions", len(expired))
        return expired
