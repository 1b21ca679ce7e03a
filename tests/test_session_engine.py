"""Unit tests for the practice session state machine."""
import pytest
from tablequest.constants import INTERMEDIATE_TOPICS
from tablequest.errors import InvalidAnswerInput, NoActiveQuestion, NoActiveSession
from tablequest.services.difficulty import DifficultyTier
from tablequest.services.session_engine import PracticeSession, SessionState, parse_answer


@pytest.fixture
def session(rng, clock):
    return PracticeSession(rng=rng, clock=clock)


def answer_correctly(session, seconds=2.0):
    question = session.next_question()
    session.clock.advance(seconds)
    return session.submit_answer(question.product)


def answer_wrongly(session, seconds=2.0):
    question = session.next_question()
    session.clock.advance(seconds)
    return session.submit_answer(question.product + 1)


class TestParseAnswer:
    """Tests for learner input parsing."""

    @pytest.mark.parametrize("raw,expected", [(42, 42), ("42", 42), (" 7 ", 7), ("-3", -3), (12.0, 12)])
    def test_valid_input(self, raw, expected):
        assert parse_answer(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "abc", "4.5", None, 4.5, True])
    def test_invalid_input(self, raw):
        with pytest.raises(InvalidAnswerInput):
            parse_answer(raw)


class TestStart:
    """Tests for starting sessions."""

    def test_new_session_is_idle(self, session):
        assert session.state == SessionState.IDLE

    def test_start_table_mode(self, session):
        session.start(topic=7, tier=DifficultyTier.INTERMEDIATE, target=12)

        assert session.state == SessionState.IN_PROGRESS
        assert session.mode == "table"
        assert session.target == 12
        assert session.progress() == {"answered": 0, "correct": 0, "target": 12, "stars": 0}

    def test_chosen_numbers_are_deduplicated_and_sorted(self, session):
        session.start(chosen_numbers=[8, 3, 8, 7])
        assert session.chosen_numbers == [3, 7, 8]
        assert session.mode == "numbers"

    def test_difficulty_mode(self, session):
        session.start(tier=DifficultyTier.ADVANCED)
        assert session.mode == "difficulty"

    def test_adaptive_starts_at_beginner(self, session):
        session.start(tier=DifficultyTier.ADAPTIVE)
        assert session.tier == DifficultyTier.ADAPTIVE
        assert session.effective_tier == DifficultyTier.BEGINNER

    def test_restart_discards_previous_session(self, session):
        session.start(topic=3)
        answer_correctly(session)
        session.start(topic=4)

        assert session.answered == 0
        assert session.stars == 0
        assert len(session.tracker.history) == 0

    def test_question_before_start_raises(self, session):
        with pytest.raises(NoActiveSession):
            session.next_question()


class TestSubmitAnswer:
    """Tests for answer checking."""

    def test_correct_answer(self, session):
        session.start(topic=6)
        result = answer_correctly(session, seconds=3.5)

        assert result.correct is True
        assert result.hint is None
        assert result.stars_awarded == 10
        assert result.elapsed_seconds == 3.5
        assert session.correct == 1
        assert session.answered == 1

    def test_incorrect_answer_gets_hint_and_no_stars(self, session):
        session.start(topic=6)
        result = answer_wrongly(session)

        assert result.correct is False
        assert result.hint
        assert result.stars_awarded == 0
        assert session.stars == 0
        assert session.answered == 1

    def test_text_answer_is_parsed(self, session):
        session.start(topic=2)
        question = session.next_question()
        result = session.submit_answer(f" {question.product} ")
        assert result.correct is True

    def test_invalid_input_changes_nothing(self, session):
        """Bad input keeps the question pending and counts nothing."""
        session.start(topic=2)
        question = session.next_question()

        with pytest.raises(InvalidAnswerInput):
            session.submit_answer("twelve")

        assert session.answered == 0
        assert session.current_question == question
        assert len(session.tracker.history) == 0

    def test_answer_without_question_raises(self, session):
        session.start(topic=2)
        with pytest.raises(NoActiveQuestion):
            session.submit_answer(4)
        assert session.answered == 0

    def test_question_cannot_be_answered_twice(self, session):
        session.start(topic=2)
        question = session.next_question()
        session.submit_answer(question.product)

        with pytest.raises(NoActiveQuestion):
            session.submit_answer(question.product)
        assert session.answered == 1

    def test_session_complete_at_target(self, session):
        session.start(topic=5, target=3)
        results = [answer_correctly(session) for _ in range(3)]
        assert [r.session_complete for r in results] == [False, False, True]

    def test_ten_question_session_completes_on_tenth_answer(self, session):
        session.start(topic=7, target=10)
        results = [answer_correctly(session) for _ in range(10)]

        assert [r.session_complete for r in results] == [False] * 9 + [True]
        assert session.progress() == {"answered": 10, "correct": 10, "target": 10, "stars": 130}

    def test_seven_times_three(self, session):
        """Table 7 answered with 21 on a 7 x 3 question is correct."""
        session.start(topic=7, target=10)
        question = session.next_question()
        for _ in range(200):
            if {question.operand_a, question.operand_b} == {7, 3}:
                break
            question = session.next_question()

        assert {question.operand_a, question.operand_b} == {7, 3}
        result = session.submit_answer("21")

        assert result.correct is True
        assert result.product == 21
        assert result.submitted == 21
        assert result.progress["correct"] == 1

    def test_feedback_events(self, session):
        session.start(topic=5)
        answer_correctly(session)
        answer_wrongly(session)
        assert [e["type"] for e in session.feedback.drain()] == ["answer_correct", "answer_incorrect"]
        assert session.feedback.drain() == []


class TestStars:
    """Tests for the star reward rule."""

    def test_fifth_consecutive_correct_earns_streak_bonus(self, session):
        session.start(topic=8, target=20)
        awarded = [answer_correctly(session).stars_awarded for _ in range(5)]

        assert awarded == [10, 10, 10, 10, 15]
        assert session.stars == 55

    def test_streak_bonus_continues_while_window_is_perfect(self, session):
        session.start(topic=8, target=20)
        awarded = [answer_correctly(session).stars_awarded for _ in range(7)]
        assert awarded[4:] == [15, 15, 15]

    def test_mistake_in_window_blocks_bonus(self, session):
        session.start(topic=8, target=30)
        answer_wrongly(session)
        awarded = [answer_correctly(session).stars_awarded for _ in range(10)]

        # The miss leaves the 10-answer window only on the tenth correct answer
        assert awarded[:9] == [10] * 9
        assert awarded[9] == 15


class TestAdjustDifficulty:
    """Tests for the adaptive tier hook."""

    def test_fixed_tier_never_changes(self, session):
        session.start(tier=DifficultyTier.BEGINNER)
        for _ in range(6):
            answer_correctly(session)
        assert session.adjust_difficulty() is None
        assert session.effective_tier == DifficultyTier.BEGINNER

    def test_adaptive_promotes_after_good_run(self, session):
        session.start(tier=DifficultyTier.ADAPTIVE, target=20)
        for _ in range(5):
            answer_correctly(session)

        change = session.adjust_difficulty()

        assert change is not None
        assert change.from_tier == DifficultyTier.BEGINNER
        assert change.to_tier == DifficultyTier.INTERMEDIATE
        assert change.direction == "up"
        assert session.effective_tier == DifficultyTier.INTERMEDIATE
        assert session.tier == DifficultyTier.ADAPTIVE

    def test_promoted_questions_use_new_pool(self, session):
        session.start(tier=DifficultyTier.ADAPTIVE, target=50)
        for _ in range(5):
            answer_correctly(session)
        session.adjust_difficulty()

        for _ in range(30):
            q = session.next_question()
            assert q.operand_a in INTERMEDIATE_TOPICS or q.operand_b in INTERMEDIATE_TOPICS

    def test_adaptive_demotes_after_poor_run(self, session):
        session.start(tier=DifficultyTier.ADAPTIVE, target=30)
        for _ in range(5):
            answer_correctly(session)
        session.adjust_difficulty()
        for _ in range(10):
            answer_wrongly(session)

        change = session.adjust_difficulty()

        assert change.to_tier == DifficultyTier.BEGINNER
        assert change.direction == "down"

    def test_too_few_answers(self, session):
        session.start(tier=DifficultyTier.ADAPTIVE)
        for _ in range(4):
            answer_correctly(session)
        assert session.adjust_difficulty() is None


class TestFinish:
    """Tests for session completion."""

    def test_finish_summary(self, session):
        session.start(topic=7, target=4)
        answer_correctly(session, seconds=2.0)
        answer_correctly(session, seconds=4.0)
        answer_wrongly(session, seconds=10.0)
        answer_correctly(session, seconds=3.0)
        session.clock.advance(1)

        results = session.finish()

        assert session.state == SessionState.COMPLETED
        assert results.answered == 4
        assert results.correct == 3
        assert results.stars == 30
        assert results.success_percentage == 75
        assert results.duration_seconds == 20
        # Mean over correct answers only
        assert results.mean_response_seconds == 3.0
        assert results.mode == "table"
        assert results.badges == ["first_steps"]

    def test_perfect_fast_table_session_earns_all_badges(self, session):
        session.start(topic=7, target=10)
        for _ in range(10):
            answer_correctly(session, seconds=3.0)

        results = session.finish()

        assert results.badges == ["first_steps", "perfection", "topic_7_master", "speed"]

    def test_slow_session_misses_speed_badge(self, session):
        session.start(topic=7, target=10)
        for _ in range(10):
            answer_correctly(session, seconds=31.0)

        assert "speed" not in session.finish().badges

    def test_numbers_mode_has_no_topic_badge(self, session):
        session.start(chosen_numbers=[3, 4], target=10)
        for _ in range(10):
            answer_correctly(session)

        results = session.finish()

        assert results.topic is None
        assert not any(b.startswith("topic_") for b in results.badges)

    def test_finish_without_answers(self, session):
        session.start(topic=3)
        results = session.finish()

        assert results.success_rate == 0.0
        assert results.mean_response_seconds == 0.0
        assert results.badges == []

    def test_finish_before_start_raises(self, session):
        with pytest.raises(NoActiveSession):
            session.finish()

    def test_no_questions_after_finish(self, session):
        session.start(topic=3)
        session.finish()
        with pytest.raises(NoActiveSession):
            session.next_question()

    def test_results_to_dict(self, session):
        session.start(chosen_numbers=[2, 9], tier=DifficultyTier.ADAPTIVE, target=1)
        answer_correctly(session)
        data = session.finish().to_dict()

        assert data["mode"] == "numbers"
        assert data["chosen_numbers"] == [2, 9]
        assert data["tier"] == "adaptive"
        assert data["final_tier"] == "beginner"
        assert data["incorrect"] == 0
        assert len(data["response_times"]) == 1
