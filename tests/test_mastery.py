"""Unit tests for mastery tier calculation and topic statistics."""
import pytest
from tablequest.services.mastery import (
    build_topic_grid,
    calculate_mastery_tier,
    fold_session_result,
    get_global_statistics,
    get_or_create_topic_stat,
    get_tier_label,
    update_topic_stat,
)


class TestMasteryTierCalculation:
    """Tests for calculate_mastery_tier."""

    def test_no_attempts_is_tier_one(self):
        assert calculate_mastery_tier(0, 0) == 1

    @pytest.mark.parametrize("correct,attempts,expected", [
        (48, 50, 5),   # 0.96 with 50 attempts
        (40, 50, 3),   # 0.80 misses the 0.85 needed for tier 4
        (47, 50, 4),   # 0.94 misses tier 5's 0.95
        (15, 20, 3),   # exactly 0.75 at 20 attempts
        (6, 10, 2),    # exactly 0.60 at 10 attempts
        (5, 10, 1),
        (9, 9, 1),     # perfect but too few attempts
        (29, 29, 3),   # 1.0 but below 30 attempts
    ])
    def test_tier_table(self, correct, attempts, expected):
        assert calculate_mastery_tier(correct, attempts) == expected

    def test_first_matching_rule_wins(self):
        """A profile meeting several rules gets the highest tier."""
        assert calculate_mastery_tier(100, 100) == 5

    def test_tier_labels(self):
        assert [get_tier_label(t) for t in range(1, 6)] == [
            "Beginner", "Intermediate", "Advanced", "Expert", "Master"
        ]


class TestTopicStats:
    """Tests for folding sessions into topic statistics."""

    def test_fold_creates_and_accumulates(self, test_db, profile):
        fold_session_result(test_db, profile.id, 7, correct_delta=9, attempts_delta=10)
        result = fold_session_result(test_db, profile.id, 7, correct_delta=8, attempts_delta=10)

        assert result["correct_count"] == 17
        assert result["attempt_count"] == 20
        assert result["mastery_tier"] == 3

    def test_tier_recomputed_from_totals(self, test_db, profile):
        """Fifty answers at 96% reach Master in one fold."""
        result = fold_session_result(test_db, profile.id, 4, correct_delta=48, attempts_delta=50)
        assert result["mastery_tier"] == 5
        assert result["tier_label"] == "Master"

    def test_tier_can_drop(self, test_db, profile):
        fold_session_result(test_db, profile.id, 4, 10, 10)
        assert get_or_create_topic_stat(test_db, profile.id, 4).mastery_tier == 2

        fold_session_result(test_db, profile.id, 4, 0, 10)
        assert get_or_create_topic_stat(test_db, profile.id, 4).mastery_tier == 1

    def test_mean_response_weighted_by_correct_answers(self, test_db, profile):
        stat = get_or_create_topic_stat(test_db, profile.id, 3)
        update_topic_stat(stat, 2, 2, mean_response_seconds=3.0)
        update_topic_stat(stat, 6, 8, mean_response_seconds=5.0)

        assert stat.mean_response_seconds == pytest.approx(4.5)

    def test_session_without_correct_answers_keeps_mean(self, test_db, profile):
        stat = get_or_create_topic_stat(test_db, profile.id, 3)
        update_topic_stat(stat, 4, 4, mean_response_seconds=2.0)
        update_topic_stat(stat, 0, 5)

        assert stat.mean_response_seconds == pytest.approx(2.0)
        assert stat.last_session_at is not None


class TestDashboardAggregates:
    """Tests for the topic grid and global statistics."""

    def test_empty_profile(self, test_db, profile):
        grid = build_topic_grid(test_db, profile.id)
        stats = get_global_statistics(test_db, profile.id)

        assert [tile["topic"] for tile in grid] == list(range(2, 10))
        assert all(tile["mastery_tier"] == 1 and tile["attempts"] == 0 for tile in grid)
        assert stats == {
            "total_correct": 0,
            "total_attempts": 0,
            "success_percentage": 0,
            "topics_mastered": 0,
        }

    def test_global_statistics_only_count_tracked_topics(self, test_db, profile):
        fold_session_result(test_db, profile.id, 7, 45, 50)   # tier 4
        fold_session_result(test_db, profile.id, 3, 5, 10)    # tier 1
        fold_session_result(test_db, profile.id, 10, 10, 10)  # not tracked

        stats = get_global_statistics(test_db, profile.id)

        assert stats["total_correct"] == 50
        assert stats["total_attempts"] == 60
        assert stats["success_percentage"] == 83
        assert stats["topics_mastered"] == 1

    def test_grid_marks_mastered_tables(self, test_db, profile):
        fold_session_result(test_db, profile.id, 7, 45, 50)
        grid = {tile["topic"]: tile for tile in build_topic_grid(test_db, profile.id)}

        assert grid[7]["is_mastered"] is True
        assert grid[7]["tier_label"] == "Expert"
        assert grid[7]["success_percentage"] == 90
        assert grid[6]["is_mastered"] is False
