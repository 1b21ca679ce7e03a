"""Difficulty tiers and the rolling-window adaptation algorithm."""
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, Tuple
from tablequest.constants import (
    ANSWER_HISTORY_SIZE,
    MIN_ANSWERS_FOR_ADJUSTMENT,
    PROMOTION_THRESHOLD,
    DEMOTION_THRESHOLD,
    BEGINNER_TOPICS,
    INTERMEDIATE_TOPICS,
    ADVANCED_TOPICS,
)


class DifficultyTier(str, Enum):
    """Difficulty tier of a practice session."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    ADAPTIVE = "adaptive"  # starts from Beginner's pool, moves with the tracker


TOPIC_POOLS: Dict[DifficultyTier, Tuple[int, ...]] = {
    DifficultyTier.BEGINNER: BEGINNER_TOPICS,
    DifficultyTier.INTERMEDIATE: INTERMEDIATE_TOPICS,
    DifficultyTier.ADVANCED: ADVANCED_TOPICS,
}

_PROMOTIONS = {
    DifficultyTier.BEGINNER: DifficultyTier.INTERMEDIATE,
    DifficultyTier.INTERMEDIATE: DifficultyTier.ADVANCED,
}

_DEMOTIONS = {
    DifficultyTier.ADVANCED: DifficultyTier.INTERMEDIATE,
    DifficultyTier.INTERMEDIATE: DifficultyTier.BEGINNER,
}


def topic_pool(tier: DifficultyTier) -> Tuple[int, ...]:
    """
    Get the tables a tier draws its first operand from.

    Adaptive resolves to the Beginner pool.

    Args:
        tier: Difficulty tier

    Returns:
        Tuple of allowed table numbers
    """
    return TOPIC_POOLS.get(DifficultyTier(tier), BEGINNER_TOPICS)


@dataclass(frozen=True)
class DifficultyAdjustment:
    """Result of a difficulty adjustment check."""
    should_change: bool
    new_tier: DifficultyTier
    success_rate: float


class AnswerHistory:
    """Bounded FIFO of recent answer outcomes."""

    def __init__(self, capacity: int = ANSWER_HISTORY_SIZE):
        self.capacity = capacity
        self._entries: Deque[bool] = deque(maxlen=capacity)

    def push(self, correct: bool) -> None:
        self._entries.append(bool(correct))

    def clear(self) -> None:
        self._entries.clear()

    @property
    def correct_count(self) -> int:
        return sum(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)


class DifficultyTracker:
    """
    Decides when an adaptive session should change tier.

    Keeps the last ANSWER_HISTORY_SIZE outcomes. Once the window holds
    MIN_ANSWERS_FOR_ADJUSTMENT answers, a success rate at or above
    PROMOTION_THRESHOLD raises the tier one step and a rate at or below
    DEMOTION_THRESHOLD lowers it one step.
    """

    def __init__(self, capacity: int = ANSWER_HISTORY_SIZE):
        self.history = AnswerHistory(capacity)

    def record_answer(self, correct: bool) -> None:
        """Append an outcome, evicting the oldest past capacity."""
        self.history.push(correct)

    def success_rate(self) -> float:
        """Share of correct answers in the window; 1.0 while the window is empty."""
        if len(self.history) == 0:
            return 1.0
        return self.history.correct_count / len(self.history)

    def evaluate_adjustment(self, current_tier: DifficultyTier) -> DifficultyAdjustment:
        """
        Check whether the tier should move.

        Args:
            current_tier: The session's effective tier

        Returns:
            DifficultyAdjustment; new_tier equals current_tier when unchanged
        """
        current_tier = DifficultyTier(current_tier)
        rate = self.success_rate()

        if len(self.history) < MIN_ANSWERS_FOR_ADJUSTMENT:
            return DifficultyAdjustment(False, current_tier, rate)

        if rate >= PROMOTION_THRESHOLD and current_tier in _PROMOTIONS:
            return DifficultyAdjustment(True, _PROMOTIONS[current_tier], rate)

        if rate <= DEMOTION_THRESHOLD and current_tier in _DEMOTIONS:
            return DifficultyAdjustment(True, _DEMOTIONS[current_tier], rate)

        return DifficultyAdjustment(False, current_tier, rate)

    def stats(self) -> Dict:
        """Window summary: totals, rate and rounded percentage."""
        total = len(self.history)
        correct = self.history.correct_count
        rate = self.success_rate()
        return {
            "total": total,
            "correct": correct,
            "incorrect": total - correct,
            "success_rate": rate,
            "percentage": int(rate * 100 + 0.5),
        }

    def reset(self) -> None:
        """Forget all recorded answers. Called when a session starts."""
        self.history.clear()
