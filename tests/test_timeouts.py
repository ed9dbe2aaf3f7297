# Area: Engine Tests
"""Tests for timeout job ids and the schedule/cancel plans."""

from datetime import datetime, timedelta, timezone

import pytest

from epyc_engine import GameConfig, SeasonConfig, Turn, TurnStatus, TurnType
from epyc_engine._engine.enums import JobKind
from epyc_engine._engine.instructions import CancelJob, Effects, ScheduleJob
from epyc_engine._engine.timeouts import (
    cancel_season_activation,
    job_id,
    plan_claim_timeout,
    plan_open_turn_cancels,
    plan_resolution_cancels,
    plan_season_activation,
    plan_submission_jobs,
)

START = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_turn(turn_type=TurnType.WRITING):
    return Turn("t1", "g1", 1, turn_type, TurnStatus.OFFERED, "p1")


def scheduled(effects):
    return {e.kind: e for e in effects if isinstance(e, ScheduleJob)}


def cancelled(effects):
    return [e.job_id for e in effects if isinstance(e, CancelJob)]


class TestJobIds:
    """Tests for job_id."""

    @pytest.mark.parametrize("kind,expected", [
        (JobKind.CLAIM_TIMEOUT, "turn-claim-timeout-abc123"),
        (JobKind.SUBMISSION_TIMEOUT, "turn-submission-timeout-abc123"),
        (JobKind.SUBMISSION_WARNING, "turn-warning-abc123"),
        (JobKind.SEASON_ACTIVATION, "season-activation-abc123"),
    ])
    def test_id_format(self, kind, expected):
        """Test the id of each job kind."""
        assert job_id(kind, "abc123") == expected


class TestTurnPlans:
    """Tests for the turn timeout plans."""

    def test_claim_timeout_uses_claim_window(self):
        """Test that season turns use the season claim timeout."""
        effects = Effects()
        plan_claim_timeout(effects, make_turn(), SeasonConfig(claim_timeout="6h"), START)
        job = scheduled(effects)[JobKind.CLAIM_TIMEOUT]
        assert job.job_id == "turn-claim-timeout-t1"
        assert job.fire_at == START + timedelta(hours=6)
        assert job.payload == {"turn_id": "t1", "player_id": "p1"}

    def test_standalone_claim_timeout_uses_submission_timeout(self):
        """Test that game configs fall back to the submission timeout."""
        effects = Effects()
        plan_claim_timeout(effects, make_turn(TurnType.DRAWING), GameConfig(), START)
        assert scheduled(effects)[JobKind.CLAIM_TIMEOUT].fire_at == START + timedelta(minutes=20)

    def test_submission_jobs(self):
        """Test that claiming swaps the claim timer for submission and warning timers."""
        effects = Effects()
        plan_submission_jobs(effects, make_turn(), SeasonConfig(), START)
        assert cancelled(effects) == ["turn-claim-timeout-t1"]
        jobs = scheduled(effects)
        deadline = START + timedelta(days=1)
        assert jobs[JobKind.SUBMISSION_TIMEOUT].fire_at == deadline
        warning = jobs[JobKind.SUBMISSION_WARNING]
        assert warning.fire_at == deadline - timedelta(minutes=1)
        assert warning.payload["deadline"] == deadline.isoformat()

    def test_drawing_warning_lead(self):
        """Test that drawing turns use the drawing warning lead."""
        effects = Effects()
        plan_submission_jobs(effects, make_turn(TurnType.DRAWING), GameConfig(), START)
        warning = scheduled(effects)[JobKind.SUBMISSION_WARNING]
        assert warning.fire_at == START + timedelta(minutes=18)

    def test_resolution_and_open_turn_cancels(self):
        """Test the cancel plans."""
        effects = Effects()
        plan_resolution_cancels(effects, "t1")
        assert cancelled(effects) == ["turn-submission-timeout-t1", "turn-warning-t1"]
        effects = Effects()
        plan_open_turn_cancels(effects, make_turn())
        assert len(cancelled(effects)) == 3


class TestSeasonPlans:
    """Tests for season activation scheduling."""

    def test_activation_job(self, seed):
        """Test that opening a season schedules activation after open_duration."""
        season = seed.season()
        effects = Effects()
        plan_season_activation(effects, season, SeasonConfig(open_duration="2d"), START)
        job = scheduled(effects)[JobKind.SEASON_ACTIVATION]
        assert job.fire_at == START + timedelta(days=2)
        assert job.payload == {"season_id": season.id}
        cancel_season_activation(effects, season.id)
        assert cancelled(effects) == [job.job_id]
