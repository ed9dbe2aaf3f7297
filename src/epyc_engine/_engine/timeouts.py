# Area: Engine
"""
epyc_engine._engine.timeouts — Timeout Jobs
===========================================

Deterministic job ids and the schedule/cancel requests attached to turn
and season transitions. A job id is ``<kind>-<entity id>``, so
re-scheduling or cancelling the same timeout always targets the same job.
"""

from datetime import datetime
from typing import Union

from .config import GameConfig, SeasonConfig
from .enums import JobKind
from .instructions import Effects, ScheduleJob
from .models import Season, Turn

RulesLike = Union[SeasonConfig, GameConfig]


def job_id(kind: JobKind, entity_id: str) -> str:
    """
    >>> job_id(JobKind.CLAIM_TIMEOUT, "abc")
    'turn-claim-timeout-abc'
    """
    return f"{kind.value}-{entity_id}"


def plan_claim_timeout(effects: Effects, turn: Turn, config: RulesLike, now: datetime) -> None:
    """
    Schedule the claim timeout for a freshly offered turn.

    Standalone games have no claim window of their own and use the
    submission timeout of the turn type.
    """
    if isinstance(config, SeasonConfig):
        window = config.claim_window
    else:
        window = config.submission_timeout(turn.type)
    effects.schedule(ScheduleJob(
        job_id=job_id(JobKind.CLAIM_TIMEOUT, turn.id),
        fire_at=now + window,
        kind=JobKind.CLAIM_TIMEOUT,
        payload={"turn_id": turn.id, "player_id": turn.player_id},
    ))


def plan_submission_jobs(effects: Effects, turn: Turn, config: RulesLike, now: datetime) -> None:
    """
    After a claim: drop the claim timeout, schedule the submission timeout
    and, when it still lies in the future, the advance warning.
    """
    effects.cancel(job_id(JobKind.CLAIM_TIMEOUT, turn.id))
    deadline = now + config.submission_timeout(turn.type)
    payload = {"turn_id": turn.id, "player_id": turn.player_id}
    effects.schedule(ScheduleJob(
        job_id=job_id(JobKind.SUBMISSION_TIMEOUT, turn.id),
        fire_at=deadline,
        kind=JobKind.SUBMISSION_TIMEOUT,
        payload=payload,
    ))
    warn_at = deadline - config.warning_lead(turn.type)
    if warn_at > now:
        effects.schedule(ScheduleJob(
            job_id=job_id(JobKind.SUBMISSION_WARNING, turn.id),
            fire_at=warn_at,
            kind=JobKind.SUBMISSION_WARNING,
            payload=dict(payload, deadline=deadline.isoformat()),
        ))


def plan_resolution_cancels(effects: Effects, turn_id: str) -> None:
    """A submitted or skipped turn needs no more timers."""
    effects.cancel(job_id(JobKind.SUBMISSION_TIMEOUT, turn_id))
    effects.cancel(job_id(JobKind.SUBMISSION_WARNING, turn_id))


def plan_open_turn_cancels(effects: Effects, turn: Turn) -> None:
    """Cancel whatever timer an OFFERED or PENDING turn may have."""
    effects.cancel(job_id(JobKind.CLAIM_TIMEOUT, turn.id))
    plan_resolution_cancels(effects, turn.id)


def plan_season_activation(
    effects: Effects, season: Season, config: SeasonConfig, now: datetime
) -> None:
    effects.schedule(ScheduleJob(
        job_id=job_id(JobKind.SEASON_ACTIVATION, season.id),
        fire_at=now + config.open_window,
        kind=JobKind.SEASON_ACTIVATION,
        payload={"season_id": season.id},
    ))


def cancel_season_activation(effects: Effects, season_id: str) -> None:
    effects.cancel(job_id(JobKind.SEASON_ACTIVATION, season_id))
