"""Practice session state machine.

A PracticeSession owns one run of questions: it asks the generator for
questions, checks answers, awards stars, feeds outcomes to the difficulty
tracker and, when finished, summarizes the run and evaluates achievements.
It holds no timers and performs no I/O; persisting the summary is the
caller's job (see services.profiles.record_session_results).
"""
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence
from tablequest.constants import (
    DEFAULT_QUESTIONS_PER_SESSION,
    STARS_PER_CORRECT_ANSWER,
    STARS_PER_STREAK_ANSWER,
    PERFECT_STREAK_MIN_CORRECT,
)
from tablequest.errors import InvalidAnswerInput, NoActiveQuestion, NoActiveSession
from tablequest.services.achievements import evaluate_achievements
from tablequest.services.difficulty import DifficultyTier, DifficultyTracker
from tablequest.services.feedback import FeedbackCollector, FeedbackEvent
from tablequest.services.question_generator import Question, generate_question, generate_hint, pick_message

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle state of a practice session."""
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ResponseTime:
    elapsed_seconds: float
    correct: bool


@dataclass(frozen=True)
class TierChange:
    """Returned when an adaptive session moves to another tier."""
    from_tier: DifficultyTier
    to_tier: DifficultyTier
    success_rate: float

    @property
    def direction(self) -> str:
        order = [DifficultyTier.BEGINNER, DifficultyTier.INTERMEDIATE, DifficultyTier.ADVANCED]
        return "up" if order.index(self.to_tier) > order.index(self.from_tier) else "down"

    def to_dict(self) -> Dict:
        return {
            "from_tier": self.from_tier.value,
            "to_tier": self.to_tier.value,
            "direction": self.direction,
            "success_rate": self.success_rate,
        }


@dataclass(frozen=True)
class AnswerResult:
    """Outcome of one submitted answer."""
    correct: bool
    product: int
    operand_a: int
    operand_b: int
    submitted: int
    message: str
    hint: Optional[str]
    session_complete: bool
    elapsed_seconds: float
    stars_awarded: int
    progress: Dict

    def to_dict(self) -> Dict:
        return {
            "correct": self.correct,
            "product": self.product,
            "operand_a": self.operand_a,
            "operand_b": self.operand_b,
            "submitted": self.submitted,
            "message": self.message,
            "hint": self.hint,
            "session_complete": self.session_complete,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "stars_awarded": self.stars_awarded,
            "progress": dict(self.progress),
        }


@dataclass
class SessionResults:
    """Summary of a finished session, ready to be folded into progress."""
    topic: Optional[int]
    chosen_numbers: Optional[List[int]]
    tier: DifficultyTier
    final_tier: DifficultyTier
    target: int
    answered: int
    correct: int
    stars: int
    success_rate: float
    duration_seconds: int
    mean_response_seconds: float
    started_at: datetime
    completed_at: datetime
    response_log: List[ResponseTime] = field(default_factory=list)
    badges: List[str] = field(default_factory=list)

    @property
    def mode(self) -> str:
        if self.chosen_numbers:
            return "numbers"
        if self.topic is not None:
            return "table"
        return "difficulty"

    @property
    def success_percentage(self) -> int:
        return int(self.success_rate * 100 + 0.5)

    def to_dict(self) -> Dict:
        return {
            "mode": self.mode,
            "topic": self.topic,
            "chosen_numbers": self.chosen_numbers,
            "tier": self.tier.value,
            "final_tier": self.final_tier.value,
            "target": self.target,
            "answered": self.answered,
            "correct": self.correct,
            "incorrect": self.answered - self.correct,
            "stars": self.stars,
            "success_percentage": self.success_percentage,
            "duration_seconds": self.duration_seconds,
            "mean_response_seconds": self.mean_response_seconds,
            "response_times": [
                {"elapsed_seconds": round(r.elapsed_seconds, 2), "correct": r.correct}
                for r in self.response_log
            ],
            "badges": list(self.badges),
        }


def parse_answer(raw) -> int:
    """
    Turn raw learner input into an integer answer.

    Args:
        raw: Text or number typed by the learner

    Returns:
        The answer as an int

    Raises:
        InvalidAnswerInput: If the input is empty or not a whole number
    """
    if isinstance(raw, bool):
        raise InvalidAnswerInput("Answer must be a whole number")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if raw.is_integer():
            return int(raw)
        raise InvalidAnswerInput("Answer must be a whole number")
    text = str(raw).strip() if raw is not None else ""
    try:
        return int(text)
    except ValueError:
        raise InvalidAnswerInput(f"'{text}' is not a whole number") from None


class PracticeSession:
    """
    One practice session: Idle -> InProgress -> Completed.

    start() may be called in any state and discards whatever was in progress.
    finish() must be called once per session; calling it twice would count
    the same results twice once they are persisted.
    """

    def __init__(
        self,
        tracker: DifficultyTracker = None,
        rng: random.Random = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        feedback: FeedbackCollector = None
    ):
        self.tracker = tracker or DifficultyTracker()
        self.rng = rng or random.Random()
        self.clock = clock
        self.feedback = feedback or FeedbackCollector()
        self.state = SessionState.IDLE
        self._reset_fields()

    def _reset_fields(self) -> None:
        self.topic: Optional[int] = None
        self.chosen_numbers: Optional[List[int]] = None
        self.tier = DifficultyTier.BEGINNER
        self.effective_tier = DifficultyTier.BEGINNER
        self.target = DEFAULT_QUESTIONS_PER_SESSION
        self.answered = 0
        self.correct = 0
        self.stars = 0
        self.current_question: Optional[Question] = None
        self.started_at: Optional[datetime] = None
        self.question_started_at: Optional[datetime] = None
        self.response_log: List[ResponseTime] = []

    def start(
        self,
        topic: Optional[int] = None,
        tier: DifficultyTier = DifficultyTier.BEGINNER,
        target: int = DEFAULT_QUESTIONS_PER_SESSION,
        chosen_numbers: Optional[Sequence[int]] = None
    ) -> "PracticeSession":
        """
        Begin a new session, discarding any previous one.

        Args:
            topic: Table to practise (table mode), or None
            tier: Requested difficulty tier
            target: Number of answers that completes the session
            chosen_numbers: Values to combine (chosen-numbers mode), or None

        Returns:
            self, for chaining
        """
        self._reset_fields()
        self.topic = topic
        self.chosen_numbers = sorted(set(chosen_numbers)) if chosen_numbers else None
        self.tier = DifficultyTier(tier)
        # Adaptive sessions begin with the Beginner pool
        self.effective_tier = (
            DifficultyTier.BEGINNER if self.tier == DifficultyTier.ADAPTIVE else self.tier
        )
        self.target = target
        self.started_at = self.clock()
        self.tracker.reset()
        self.state = SessionState.IN_PROGRESS

        logger.info(
            f"Practice session started: mode={self.mode}, tier={self.tier.value}, target={self.target}"
        )
        return self

    @property
    def mode(self) -> str:
        if self.chosen_numbers:
            return "numbers"
        if self.topic is not None:
            return "table"
        return "difficulty"

    def _require_in_progress(self) -> None:
        if self.state != SessionState.IN_PROGRESS:
            raise NoActiveSession("No practice session in progress")

    def next_question(self) -> Question:
        """Generate the next question and start its timer."""
        self._require_in_progress()
        question = generate_question(
            topic=self.topic,
            tier=self.effective_tier,
            chosen_numbers=self.chosen_numbers,
            rng=self.rng,
        )
        self.current_question = question
        self.question_started_at = self.clock()
        return question

    def _stars_for(self, correct: bool) -> int:
        if not correct:
            return 0
        history = self.tracker.history
        if history.correct_count >= PERFECT_STREAK_MIN_CORRECT and self.tracker.success_rate() == 1.0:
            return STARS_PER_STREAK_ANSWER
        return STARS_PER_CORRECT_ANSWER

    def progress(self) -> Dict:
        return {
            "answered": self.answered,
            "correct": self.correct,
            "target": self.target,
            "stars": self.stars,
        }

    def submit_answer(self, value) -> AnswerResult:
        """
        Check an answer against the pending question.

        Args:
            value: The learner's answer (int, or text parsed by parse_answer)

        Returns:
            AnswerResult for the question

        Raises:
            InvalidAnswerInput: If value is not a whole number (nothing changes)
            NoActiveQuestion: If no question is pending (nothing changes)
        """
        submitted = parse_answer(value)
        question = self.current_question
        if question is None:
            raise NoActiveQuestion("No question in progress")

        correct = submitted == question.product
        now = self.clock()
        elapsed = (
            (now - self.question_started_at).total_seconds()
            if self.question_started_at else 0.0
        )
        self.response_log.append(ResponseTime(elapsed_seconds=elapsed, correct=correct))

        # The window includes this answer when the streak bonus is checked
        self.tracker.record_answer(correct)

        self.answered += 1
        stars = self._stars_for(correct)
        if correct:
            self.correct += 1
            self.stars += stars

        self.current_question = None
        self.question_started_at = None

        self.feedback.emit(
            FeedbackEvent.ANSWER_CORRECT if correct else FeedbackEvent.ANSWER_INCORRECT
        )

        return AnswerResult(
            correct=correct,
            product=question.product,
            operand_a=question.operand_a,
            operand_b=question.operand_b,
            submitted=submitted,
            message=pick_message(correct, self.rng),
            hint=None if correct else generate_hint(question.operand_a, question.operand_b),
            session_complete=self.answered >= self.target,
            elapsed_seconds=elapsed,
            stars_awarded=stars,
            progress=self.progress(),
        )

    def adjust_difficulty(self) -> Optional[TierChange]:
        """
        Move an adaptive session to another tier when the tracker says so.

        Has no effect unless the session was started with the adaptive tier.

        Returns:
            TierChange when the effective tier changed, None otherwise
        """
        if self.state != SessionState.IN_PROGRESS or self.tier != DifficultyTier.ADAPTIVE:
            return None

        adjustment = self.tracker.evaluate_adjustment(self.effective_tier)
        if not adjustment.should_change:
            return None

        change = TierChange(
            from_tier=self.effective_tier,
            to_tier=adjustment.new_tier,
            success_rate=adjustment.success_rate,
        )
        self.effective_tier = adjustment.new_tier
        logger.info(
            f"Adaptive tier changed {change.from_tier.value} -> {change.to_tier.value} "
            f"(window success {adjustment.success_rate:.2f})"
        )
        return change

    def finish(self) -> SessionResults:
        """
        Close the session and summarize it.

        Returns:
            SessionResults including the achievements earned this session

        Raises:
            NoActiveSession: If the session was never started
        """
        if self.state == SessionState.IDLE:
            raise NoActiveSession("No practice session to finish")

        completed_at = self.clock()
        duration = (completed_at - self.started_at).total_seconds()

        correct_times = [r.elapsed_seconds for r in self.response_log if r.correct]
        mean_response = sum(correct_times) / len(correct_times) if correct_times else 0.0
        success_rate = self.correct / self.answered if self.answered else 0.0

        badges = evaluate_achievements(
            answered=self.answered,
            target=self.target,
            success_rate=success_rate,
            duration_seconds=duration,
            topic=self.topic,
        )

        self.state = SessionState.COMPLETED
        self.current_question = None

        results = SessionResults(
            topic=self.topic,
            chosen_numbers=list(self.chosen_numbers) if self.chosen_numbers else None,
            tier=self.tier,
            final_tier=self.effective_tier,
            target=self.target,
            answered=self.answered,
            correct=self.correct,
            stars=self.stars,
            success_rate=success_rate,
            duration_seconds=int(duration),
            mean_response_seconds=round(mean_response, 1),
            started_at=self.started_at,
            completed_at=completed_at,
            response_log=list(self.response_log),
            badges=badges,
        )
        logger.info(
            f"Practice session finished: answered={results.answered}, correct={results.correct}, "
            f"stars={results.stars}, badges={results.badges}"
        )
        return results

    def snapshot(self) -> Dict:
        """Current state for display."""
        return {
            "state": self.state.value,
            "mode": self.mode,
            "topic": self.topic,
            "chosen_numbers": self.chosen_numbers,
            "tier": self.tier.value,
            "effective_tier": self.effective_tier.value,
            "question": self.current_question.to_dict() if self.current_question else None,
            "progress": self.progress(),
            "window": self.tracker.stats(),
            "started_at": self.started_at.isoformat() + "Z" if self.started_at else None,
        }
