"""Unit tests for the adaptive difficulty tracker."""
import pytest
from tablequest.constants import BEGINNER_TOPICS, INTERMEDIATE_TOPICS
from tablequest.services.difficulty import (
    AnswerHistory,
    DifficultyTier,
    DifficultyTracker,
    topic_pool,
)


def record(tracker, outcomes):
    for outcome in outcomes:
        tracker.record_answer(outcome)


class TestAnswerHistory:
    """Tests for the bounded answer window."""

    def test_evicts_oldest_past_capacity(self):
        history = AnswerHistory(capacity=10)
        for _ in range(10):
            history.push(False)
        history.push(True)

        assert len(history) == 10
        assert history.correct_count == 1
        assert list(history)[-1] is True

    def test_clear(self):
        history = AnswerHistory()
        history.push(True)
        history.clear()
        assert len(history) == 0


class TestSuccessRate:
    """Tests for the windowed success rate."""

    def test_empty_window_is_perfect(self):
        """No answers yet counts as 1.0."""
        assert DifficultyTracker().success_rate() == 1.0

    def test_rate_over_window(self):
        tracker = DifficultyTracker()
        record(tracker, [True, True, False, True])
        assert tracker.success_rate() == 0.75

    def test_rate_only_sees_last_ten(self):
        tracker = DifficultyTracker()
        record(tracker, [False] * 5 + [True] * 10)
        assert tracker.success_rate() == 1.0

    def test_stats_percentage_rounds_half_up(self):
        tracker = DifficultyTracker()
        record(tracker, [True, True, False])
        stats = tracker.stats()
        assert stats["total"] == 3
        assert stats["correct"] == 2
        assert stats["incorrect"] == 1
        assert stats["percentage"] == 67


class TestEvaluateAdjustment:
    """Tests for tier promotion and demotion."""

    def test_no_change_below_minimum_answers(self):
        """Four answers, even all wrong, never move the tier."""
        tracker = DifficultyTracker()
        record(tracker, [False] * 4)

        adjustment = tracker.evaluate_adjustment(DifficultyTier.INTERMEDIATE)

        assert adjustment.should_change is False
        assert adjustment.new_tier == DifficultyTier.INTERMEDIATE

    def test_promote_at_exactly_eighty_percent(self):
        tracker = DifficultyTracker()
        record(tracker, [True, True, True, True, False])

        adjustment = tracker.evaluate_adjustment(DifficultyTier.BEGINNER)

        assert adjustment.should_change is True
        assert adjustment.new_tier == DifficultyTier.INTERMEDIATE
        assert adjustment.success_rate == pytest.approx(0.8)

    def test_promote_intermediate_to_advanced(self):
        tracker = DifficultyTracker()
        record(tracker, [True] * 6)
        assert tracker.evaluate_adjustment(DifficultyTier.INTERMEDIATE).new_tier == DifficultyTier.ADVANCED

    def test_advanced_is_ceiling(self):
        tracker = DifficultyTracker()
        record(tracker, [True] * 10)
        adjustment = tracker.evaluate_adjustment(DifficultyTier.ADVANCED)
        assert adjustment.should_change is False
        assert adjustment.new_tier == DifficultyTier.ADVANCED

    def test_demote_at_exactly_fifty_percent(self):
        tracker = DifficultyTracker()
        record(tracker, [True, False] * 3)

        adjustment = tracker.evaluate_adjustment(DifficultyTier.ADVANCED)

        assert adjustment.should_change is True
        assert adjustment.new_tier == DifficultyTier.INTERMEDIATE

    def test_beginner_is_floor(self):
        tracker = DifficultyTracker()
        record(tracker, [False] * 10)
        adjustment = tracker.evaluate_adjustment(DifficultyTier.BEGINNER)
        assert adjustment.should_change is False
        assert adjustment.new_tier == DifficultyTier.BEGINNER

    def test_middle_band_keeps_tier(self):
        tracker = DifficultyTracker()
        record(tracker, [True, True, True, False, False])  # 0.6
        assert tracker.evaluate_adjustment(DifficultyTier.INTERMEDIATE).should_change is False

    def test_reset_clears_window(self):
        tracker = DifficultyTracker()
        record(tracker, [True] * 8)
        tracker.reset()
        assert tracker.evaluate_adjustment(DifficultyTier.BEGINNER).should_change is False
        assert tracker.stats()["total"] == 0


class TestTopicPools:
    def test_pools(self):
        assert topic_pool(DifficultyTier.BEGINNER) == BEGINNER_TOPICS
        assert topic_pool(DifficultyTier.INTERMEDIATE) == INTERMEDIATE_TOPICS
        assert topic_pool(DifficultyTier.ADVANCED) == tuple(range(1, 11))
        assert topic_pool(DifficultyTier.ADAPTIVE) == BEGINNER_TOPICS
