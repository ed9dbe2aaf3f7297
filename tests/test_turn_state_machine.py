# Area: Engine Tests
"""Tests for the turn state machine."""

import threading
from datetime import timedelta

import pytest

from epyc_engine import (
    ErrorCategory,
    FailureKind,
    InvariantViolationError,
    TurnContent,
    TurnStatus,
    TurnType,
)
from epyc_engine._engine.enums import TurnEvent
from epyc_engine._engine.turn_state_machine import (
    TRANSITIONS,
    TurnStateMachine,
    can_transition,
    next_status,
    validate_content,
)


class TestTransitionTable:
    """Tests for the pure transition table."""

    def test_valid_transitions(self):
        """Test every edge of the lifecycle."""
        assert next_status(TurnStatus.AVAILABLE, TurnEvent.OFFER) == TurnStatus.OFFERED
        assert next_status(TurnStatus.OFFERED, TurnEvent.CLAIM) == TurnStatus.PENDING
        assert next_status(TurnStatus.OFFERED, TurnEvent.DISMISS) == TurnStatus.AVAILABLE
        assert next_status(TurnStatus.PENDING, TurnEvent.SUBMIT) == TurnStatus.COMPLETED
        assert next_status(TurnStatus.PENDING, TurnEvent.SKIP) == TurnStatus.SKIPPED

    def test_terminal_states(self):
        """Test that COMPLETED and SKIPPED accept no events."""
        for status in (TurnStatus.COMPLETED, TurnStatus.SKIPPED):
            assert TRANSITIONS[status] == {}
            for event in TurnEvent:
                assert can_transition(status, event) is False

    def test_invalid_raises(self):
        """Test that next_status raises on an invalid pair."""
        with pytest.raises(InvariantViolationError):
            next_status(TurnStatus.AVAILABLE, TurnEvent.CLAIM)


class TestValidateContent:
    """Tests for content validation."""

    def test_writing_needs_text(self):
        """Test writing turn content rules."""
        assert validate_content(TurnType.WRITING, TurnContent.of_text("a cat")) is None
        assert validate_content(TurnType.WRITING, TurnContent.of_text("   ")).kind \
            == FailureKind.INVALID_CONTENT
        assert validate_content(TurnType.WRITING, TurnContent.of_image("x.png")) is not None

    def test_drawing_needs_image(self):
        """Test drawing turn content rules."""
        assert validate_content(TurnType.DRAWING, TurnContent.of_image("x.png")) is None
        assert validate_content(TurnType.DRAWING, TurnContent.of_image("")) is not None
        assert validate_content(TurnType.DRAWING, TurnContent.of_text("a cat")) is not None

    def test_missing_content(self):
        """Test that None content is invalid."""
        assert validate_content(TurnType.WRITING, None).kind == FailureKind.INVALID_CONTENT

    def test_both_fields_rejected(self):
        """Test that content with text and image is rejected for either type."""
        both = TurnContent(text="a", image_url="b.png")
        assert validate_content(TurnType.WRITING, both) is not None
        assert validate_content(TurnType.DRAWING, both) is not None


class TestTurnStateMachine:
    """Tests for TurnStateMachine against the store."""

    @pytest.fixture
    def tsm(self, store, clock):
        return TurnStateMachine(store.db, store.turns, store.games, clock)

    @pytest.fixture
    def world(self, seed):
        a, b = seed.player("a"), seed.player("b")
        season = seed.season([a, b])
        game = seed.game(season)
        return a, b, season, game

    def test_offer(self, tsm, seed, world, store, clock):
        """Test AVAILABLE -> OFFERED stamps holder and time."""
        a, _, _, game = world
        turn = seed.turn(game)
        result = tsm.offer(turn.id, a.id)
        assert result.ok
        assert result.value.status == TurnStatus.OFFERED
        assert result.value.player_id == a.id
        assert result.value.offered_at == clock.now

    def test_offer_non_available_is_logic_error(self, tsm, seed, world):
        """Test that offering an OFFERED turn raises."""
        a, b, _, game = world
        turn = seed.turn(game, status=TurnStatus.OFFERED, player=a)
        with pytest.raises(InvariantViolationError):
            tsm.offer(turn.id, b.id)

    def test_offer_missing_turn(self, tsm):
        """Test that a missing turn is NOT_FOUND."""
        result = tsm.offer("nope", "p")
        assert result.failure.kind == FailureKind.NOT_FOUND
        assert result.failure.category == ErrorCategory.NOT_FOUND

    def test_claim(self, tsm, seed, world, clock):
        """Test OFFERED -> PENDING by the holder."""
        a, _, _, game = world
        turn = seed.turn(game, status=TurnStatus.OFFERED, player=a)
        clock.advance(timedelta(minutes=3))
        result = tsm.claim(turn.id, a.id)
        assert result.ok
        assert result.value.status == TurnStatus.PENDING
        assert result.value.claimed_at == clock.now

    def test_claim_wrong_holder(self, tsm, seed, world, store):
        """Test that only the offered player may claim."""
        a, b, _, game = world
        turn = seed.turn(game, status=TurnStatus.OFFERED, player=a)
        result = tsm.claim(turn.id, b.id)
        assert result.failure.kind == FailureKind.WRONG_HOLDER
        assert store.turns.get(turn.id).status == TurnStatus.OFFERED

    def test_claim_pending_elsewhere(self, tsm, seed, world, store):
        """Test the one-pending-turn-per-season rule."""
        a, _, season, game = world
        other = seed.game(season)
        seed.turn(other, status=TurnStatus.PENDING, player=a)
        turn = seed.turn(game, status=TurnStatus.OFFERED, player=a)
        result = tsm.claim(turn.id, a.id)
        assert result.failure.kind == FailureKind.PENDING_ELSEWHERE
        assert result.failure.category == ErrorCategory.INVALID_TRANSITION
        assert store.turns.get(turn.id).status == TurnStatus.OFFERED

    def test_pending_in_other_season_allowed(self, tsm, seed, world):
        """Test that a pending turn in another season does not block a claim."""
        a, b, _, game = world
        other_season = seed.season([a, b])
        seed.turn(seed.game(other_season), status=TurnStatus.PENDING, player=a)
        turn = seed.turn(game, status=TurnStatus.OFFERED, player=a)
        assert tsm.claim(turn.id, a.id).ok

    def test_dismiss(self, tsm, seed, world):
        """Test OFFERED -> AVAILABLE clears the holder."""
        a, _, _, game = world
        turn = seed.turn(game, status=TurnStatus.OFFERED, player=a)
        result = tsm.dismiss(turn.id, a.id)
        assert result.ok
        assert result.value.status == TurnStatus.AVAILABLE
        assert result.value.player_id is None
        assert result.value.offered_at is None

    def test_dismiss_by_other_player(self, tsm, seed, world):
        """Test that only the holder may dismiss."""
        a, b, _, game = world
        turn = seed.turn(game, status=TurnStatus.OFFERED, player=a)
        assert tsm.dismiss(turn.id, b.id).failure.kind == FailureKind.WRONG_HOLDER

    def test_submit(self, tsm, seed, world):
        """Test PENDING -> COMPLETED stores the content."""
        a, _, _, game = world
        turn = seed.turn(game, status=TurnStatus.PENDING, player=a)
        result = tsm.submit(turn.id, a.id, TurnContent.of_text("a cat in a hat"))
        assert result.ok
        assert result.value.status == TurnStatus.COMPLETED
        assert result.value.content == TurnContent.of_text("a cat in a hat")

    def test_submit_empty_content_keeps_pending(self, tsm, seed, world, store):
        """Test that empty content fails and the turn stays PENDING."""
        a, _, _, game = world
        turn = seed.turn(game, status=TurnStatus.PENDING, player=a)
        result = tsm.submit(turn.id, a.id, TurnContent.of_text(""))
        assert result.failure.kind == FailureKind.INVALID_CONTENT
        stored = store.turns.get(turn.id)
        assert stored.status == TurnStatus.PENDING
        assert stored.text_content is None

    def test_submit_drawing(self, tsm, seed, world):
        """Test that drawing turns accept an image reference."""
        a, _, _, game = world
        turn = seed.turn(game, turn_type=TurnType.DRAWING, status=TurnStatus.PENDING, player=a)
        result = tsm.submit(turn.id, a.id, TurnContent.of_image("https://img/1.png"))
        assert result.value.image_url == "https://img/1.png"
        assert result.value.text_content is None

    def test_submit_wrong_holder(self, tsm, seed, world):
        """Test that another player cannot submit."""
        a, b, _, game = world
        turn = seed.turn(game, status=TurnStatus.PENDING, player=a)
        result = tsm.submit(turn.id, b.id, TurnContent.of_text("mine now"))
        assert result.failure.kind == FailureKind.WRONG_HOLDER

    def test_skip(self, tsm, seed, world, clock):
        """Test PENDING -> SKIPPED."""
        a, _, _, game = world
        turn = seed.turn(game, status=TurnStatus.PENDING, player=a)
        result = tsm.skip(turn.id)
        assert result.value.status == TurnStatus.SKIPPED
        assert result.value.skipped_at == clock.now
        assert result.value.player_id == a.id

    def test_skip_completed_is_refused(self, tsm, seed, world, store):
        """Test that skipping a COMPLETED turn fails without mutation."""
        a, _, _, game = world
        turn = seed.turn(game, status=TurnStatus.COMPLETED, player=a, text_content="done")
        before = store.turns.get(turn.id)
        result = tsm.skip(turn.id)
        assert result.failure.kind == FailureKind.WRONG_STATE
        assert result.failure.category == ErrorCategory.INVALID_TRANSITION
        assert store.turns.get(turn.id) == before

    def test_transition_touches_game(self, tsm, seed, world, store, clock):
        """Test that a successful transition updates last_activity_at."""
        a, _, _, game = world
        turn = seed.turn(game, status=TurnStatus.OFFERED, player=a)
        clock.advance(timedelta(hours=2))
        tsm.claim(turn.id, a.id)
        assert store.games.get(game.id).last_activity_at == clock.now

    def test_failed_transition_does_not_touch_game(self, tsm, seed, world, store, clock):
        """Test that a refused transition leaves the game alone."""
        a, b, _, game = world
        turn = seed.turn(game, status=TurnStatus.OFFERED, player=a)
        clock.advance(timedelta(hours=2))
        tsm.claim(turn.id, b.id)
        assert store.games.get(game.id).last_activity_at == game.last_activity_at

    def test_shared_transaction_rolls_back(self, tsm, seed, world, store):
        """Test that a transition inside a failed outer transaction is undone."""
        a, _, _, game = world
        turn = seed.turn(game, status=TurnStatus.OFFERED, player=a)
        with pytest.raises(RuntimeError):
            with store.db.transaction() as conn:
                assert tsm.claim(turn.id, a.id, conn).ok
                raise RuntimeError("abort")
        assert store.turns.get(turn.id).status == TurnStatus.OFFERED


class TestConcurrentClaim:
    """Two callers racing on one offered turn."""

    def test_at_most_one_winner(self, store, clock, seed):
        """Test that exactly one of two concurrent claims succeeds."""
        a = seed.player("a")
        season = seed.season([a])
        turn = seed.turn(seed.game(season), status=TurnStatus.OFFERED, player=a)
        barrier = threading.Barrier(2)
        results = []
        lock = threading.Lock()

        def claim():
            tsm = TurnStateMachine(store.db, store.turns, store.games, clock)
            barrier.wait()
            result = tsm.claim(turn.id, a.id)
            with lock:
                results.append(result)

        threads = [threading.Thread(target=claim) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert len(results) == 2
        winners = [r for r in results if r.ok]
        losers = [r for r in results if not r.ok]
        assert len(winners) == 1
        assert losers[0].failure.kind == FailureKind.WRONG_STATE
        assert store.turns.get(turn.id).status == TurnStatus.PENDING
