# Area: Engine
"""
epyc_engine._engine.gateways — Scheduling and Notification Gateways
===================================================================

Interfaces the engine consumes for timers and message delivery, simple
in-process implementations of both, and ``EffectRunner``, which
delivers a committed ``Effects`` batch through them under the retry
policy.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .._shared.resilience import CircuitBreaker, RetryPolicy
from .enums import FailureKind
from .instructions import CancelJob, Effects, NotificationInstruction, ScheduleJob
from .results import Failure

logger = logging.getLogger("epyc_engine.engine.gateways")


class SchedulingGateway(ABC):
    """Fires timeout callbacks. Job ids are unique per pending job."""

    @abstractmethod
    def schedule_job(
        self, job_id: str, fire_at: datetime, payload: Dict[str, Any], kind: str
    ) -> bool:
        """Register a job. Returns False if refused (duplicate id, past time)."""

    @abstractmethod
    def cancel_job(self, job_id: str) -> bool:
        """Drop a pending job. Returns False if no such job was pending."""


class NotificationGateway(ABC):
    """Delivers messages; formatting and transport are its concern."""

    @abstractmethod
    def send(self, instruction: NotificationInstruction) -> bool:
        ...


@dataclass(frozen=True)
class PendingJob:
    job_id: str
    fire_at: datetime
    kind: str
    payload: Dict[str, Any]


class InMemoryScheduler(SchedulingGateway):
    """
    Process-local scheduler.

    Jobs are stored until ``run_due`` hands them to a dispatcher. The
    clock is injected so a simulation can jump forward in time.
    """

    def __init__(self, clock: Callable[[], datetime]):
        self.clock = clock
        self._jobs: Dict[str, PendingJob] = {}
        self._lock = threading.Lock()

    def schedule_job(
        self, job_id: str, fire_at: datetime, payload: Dict[str, Any], kind: str
    ) -> bool:
        with self._lock:
            if job_id in self._jobs:
                logger.warning("Job %s already scheduled", job_id)
                return False
            if fire_at <= self.clock():
                logger.warning("Job %s fire time %s is in the past", job_id, fire_at)
                return False
            self._jobs[job_id] = PendingJob(job_id, fire_at, kind, dict(payload))
        logger.debug("Scheduled %s at %s", job_id, fire_at.isoformat())
        return True

    def cancel_job(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def pending(self) -> List[PendingJob]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: (j.fire_at, j.job_id))

    def next_fire_time(self) -> Optional[datetime]:
        jobs = self.pending()
        return jobs[0].fire_at if jobs else None

    def due_jobs(self, now: datetime) -> List[PendingJob]:
        return [j for j in self.pending() if j.fire_at <= now]

    def run_due(self, now: datetime, dispatch: Callable[[str, Dict[str, Any]], Any]) -> int:
        """
        Remove each due job and pass it to ``dispatch(kind, payload)``.

        Returns:
            Number of jobs fired
        """
        fired = 0
        for job in self.due_jobs(now):
            if not self.cancel_job(job.job_id):
                continue
            logger.info("Firing job %s", job.job_id)
            dispatch(job.kind, job.payload)
            fired += 1
        return fired


class LoggingNotifier(NotificationGateway):
    """Writes every instruction to the log instead of delivering it."""

    def send(self, instruction: NotificationInstruction) -> bool:
        logger.info(
            "[%s] to=%s %s %s",
            instruction.kind.value, instruction.recipient_id,
            instruction.template_key, instruction.payload,
        )
        return True


class RecordingNotifier(NotificationGateway):
    """Keeps sent instructions in memory."""

    def __init__(self) -> None:
        self.sent: List[NotificationInstruction] = []

    def send(self, instruction: NotificationInstruction) -> bool:
        self.sent.append(instruction)
        return True

    def keys_for(self, recipient_id: Optional[str]) -> List[str]:
        return [i.template_key for i in self.sent if i.recipient_id == recipient_id]


class EffectRunner:
    """
    Delivers effects after their transaction committed.

    Scheduling and notification are fire-and-forget: a failure is logged
    and reported back as an INFRASTRUCTURE ``Failure``, never raised,
    since the state change that caused it is already durable. One failed
    effect does not stop the rest of the batch.

    Each gateway sits behind its own ``CircuitBreaker``, so a dead
    notifier does not stop timers from being scheduled.
    """

    def __init__(
        self,
        scheduler: SchedulingGateway,
        notifier: NotificationGateway,
        retry: Optional[RetryPolicy] = None,
        scheduler_breaker: Optional[CircuitBreaker] = None,
        notifier_breaker: Optional[CircuitBreaker] = None,
    ):
        self.scheduler = scheduler
        self.notifier = notifier
        self.retry = retry or RetryPolicy()
        self.scheduler_breaker = scheduler_breaker or CircuitBreaker("scheduler")
        self.notifier_breaker = notifier_breaker or CircuitBreaker("notifier")
        self._scheduler_retry = replace(self.retry, breaker=self.scheduler_breaker)
        self._notifier_retry = replace(self.retry, breaker=self.notifier_breaker)

    def run(self, effects: Effects) -> List[Failure]:
        failures: List[Failure] = []
        for effect in effects:
            try:
                self._run_one(effect)
            except Exception as e:
                logger.error("Effect %s failed: %s", type(effect).__name__, e)
                failures.append(Failure(
                    FailureKind.INFRASTRUCTURE, str(e),
                    {"effect": repr(effect), "error_type": type(e).__name__},
                ))
        return failures

    def _run_one(self, effect) -> None:
        if isinstance(effect, ScheduleJob):
            ok = self._scheduler_retry.call(
                f"schedule {effect.job_id}", self.scheduler.schedule_job,
                effect.job_id, effect.fire_at, effect.payload, effect.kind.value,
            )
            if not ok:
                logger.warning("Scheduler refused job %s", effect.job_id)
        elif isinstance(effect, CancelJob):
            if self._scheduler_retry.call(
                f"cancel {effect.job_id}", self.scheduler.cancel_job, effect.job_id
            ):
                logger.debug("Cancelled job %s", effect.job_id)
        elif isinstance(effect, NotificationInstruction):
            self._notifier_retry.call(
                f"notify {effect.template_key}", self.notifier.send, effect
            )
        else:
            raise TypeError(f"Unknown effect {effect!r}")
