"""
Shared fixtures: question factories, exam configurations and a ManualClock.
"""

import pytest

from toeic_exam.models.question_model import ExamConfiguration, Question, TimeMode
from toeic_exam.services.clock import ManualClock
from toeic_exam.services.exam_session import ExamSession


def make_question(qid, part, correct="A", passage_id=None, number=0, choices=None):
    if choices is None:
        choices = ["A", "B", "C"] if part == 2 else ["A", "B", "C", "D"]
    return Question(
        id=qid,
        part=part,
        prompt=f"Question {qid}",
        choices=choices,
        correct_choice=correct,
        passage_id=passage_id,
        question_number=number,
    )


@pytest.fixture
def question_factory():
    return make_question


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def reading_questions():
    """Parts 5, 5, 7 with correct answers A, A, C."""
    return [
        make_question("q1", 5, correct="A", number=101),
        make_question("q2", 5, correct="A", number=102),
        make_question("q3", 7, correct="C", number=147),
    ]


@pytest.fixture
def listening_questions():
    """Parts 1, 2, 3, 3 (one conversation) followed by two part 5 questions."""
    return [
        make_question("l1", 1, number=1),
        make_question("l2", 2, correct="B", number=7),
        make_question("l3", 3, passage_id="conv-1", number=32),
        make_question("l4", 3, correct="D", passage_id="conv-1", number=33),
        make_question("r1", 5, number=101),
        make_question("r2", 5, correct="B", number=102),
    ]


@pytest.fixture
def one_minute_config():
    return ExamConfiguration(
        selected_parts=frozenset({5, 7}),
        question_count=3,
        time_limit_minutes=1,
    )


@pytest.fixture
def unlimited_config():
    return ExamConfiguration(
        selected_parts=frozenset({5, 7}),
        question_count=3,
        time_mode=TimeMode.UNLIMITED,
    )


@pytest.fixture
def listening_config():
    return ExamConfiguration(
        selected_parts=frozenset({1, 2, 3, 5}),
        question_count=6,
        time_limit_minutes=30,
    )


@pytest.fixture
def running_session(one_minute_config, reading_questions, clock):
    session = ExamSession(one_minute_config, reading_questions, clock)
    session.start()
    yield session
    session.dispose()


@pytest.fixture
def submission_record(running_session, clock):
    """Scored record: q1 correct, q2 wrong, q3 unanswered, 20s used."""
    running_session.select_answer("q1", "A")
    running_session.select_answer("q2", "B")
    clock.advance(20)
    running_session.submit()
    return running_session.submission
