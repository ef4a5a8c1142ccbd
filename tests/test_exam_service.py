"""
Unit tests for toeic_exam.services.exam_service (scoring).
"""

from decimal import Decimal

from toeic_exam.models.question_model import ExamConfiguration, TimeMode
from toeic_exam.models.result_model import PartScore
from toeic_exam.models.session_state import Answer
from toeic_exam.services.exam_service import (
    calculate_part_scores,
    calculate_score,
    calculate_time_spent,
    get_incorrect_questions,
    is_correct,
    round_half_up,
    score_session,
)


def _answers(**choices):
    return {qid: Answer(question_id=qid, selected_choice=c) for qid, c in choices.items()}


class TestRoundHalfUp:
    def test_round_half_up_when_exactly_half_then_rounds_up(self):
        assert round_half_up(Decimal("12.5")) == 13
        assert round_half_up(Decimal("62.5")) == 63

    def test_round_half_up_when_below_half_then_rounds_down(self):
        assert round_half_up(Decimal("33.333")) == 33


class TestIsCorrect:
    def test_is_correct_when_no_answer_then_false(self, question_factory):
        assert not is_correct(question_factory("q", 5), None)

    def test_is_correct_when_choice_cleared_then_false(self, question_factory):
        q = question_factory("q", 5)
        assert not is_correct(q, Answer(question_id="q", selected_choice=""))

    def test_is_correct_when_case_differs_then_false(self, question_factory):
        q = question_factory("q", 5, correct="A")
        assert not is_correct(q, Answer(question_id="q", selected_choice="a"))


class TestCalculateScore:
    def test_calculate_score_when_one_of_eight_then_half_rounds_up(self, question_factory):
        questions = [question_factory(f"q{i}", 5) for i in range(8)]
        assert calculate_score(questions, _answers(q0="A")) == 13

    def test_calculate_score_when_no_questions_then_zero(self):
        assert calculate_score([], {}) == 0

    def test_calculate_score_when_all_correct_then_hundred(self, reading_questions):
        assert calculate_score(reading_questions, _answers(q1="A", q2="A", q3="C")) == 100


class TestPartScores:
    def test_part_scores_when_selected_part_missing_then_zero_entry(self, reading_questions):
        scores = calculate_part_scores(reading_questions, _answers(q1="A"), parts={5, 6, 7})

        assert list(scores) == [5, 6, 7]
        assert scores[6] == PartScore(total=0, correct=0, accuracy=0.0)

    def test_part_scores_when_one_of_three_then_one_decimal(self, question_factory):
        questions = [question_factory(f"q{i}", 6) for i in range(3)]
        scores = calculate_part_scores(questions, _answers(q0="A"))
        assert scores[6].accuracy == 33.3


class TestScoreSession:
    def test_score_session_when_mixed_answers_then_expected_breakdown(self, reading_questions):
        """One right, one wrong, one unanswered."""
        result = score_session(reading_questions, _answers(q1="A", q2="B"), time_spent_seconds=60)

        assert result.correct_count == 1
        assert result.answered_count == 2
        assert result.score_percent == 33
        assert result.per_part_breakdown[5] == PartScore(total=2, correct=1, accuracy=50.0)
        assert result.per_part_breakdown[7] == PartScore(total=1, correct=0, accuracy=0.0)
        assert result.incorrect_count == 2
        assert result.unanswered_count == 1

    def test_score_session_when_repeated_then_identical(self, reading_questions):
        answers = _answers(q1="A", q3="B")
        assert score_session(reading_questions, answers) == score_session(reading_questions, answers)

    def test_score_session_when_called_then_answers_not_mutated(self, reading_questions):
        answers = _answers(q1="A")
        score_session(reading_questions, answers)
        assert list(answers) == ["q1"]


class TestTimeSpent:
    def test_time_spent_when_standard_then_limit_minus_remaining(self):
        config = ExamConfiguration(question_count=1, time_limit_minutes=1)
        assert calculate_time_spent(config, seconds_remaining=15) == 45

    def test_time_spent_when_unlimited_then_elapsed_whole_seconds(self):
        config = ExamConfiguration(question_count=1, time_mode=TimeMode.UNLIMITED)
        assert calculate_time_spent(config, elapsed_seconds=12.7) == 12


class TestIncorrectQuestions:
    def test_incorrect_questions_when_wrong_and_unanswered_then_original_order(
        self, reading_questions
    ):
        incorrect = get_incorrect_questions(reading_questions, _answers(q2="B", q1="A"))
        assert [q.id for q in incorrect] == ["q2", "q3"]
