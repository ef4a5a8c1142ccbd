"""
services/exam_service.py

시험 채점 및 결과 분석 비즈니스 로직.
순수 Python 함수로 구성 — 전역 상태 변경 없음, 같은 입력에는 항상 같은 결과.
"""

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from toeic_exam.models.question_model import ExamConfiguration, Question
from toeic_exam.models.result_model import PartScore, ScoreResult
from toeic_exam.models.session_state import Answer


def round_half_up(value: Decimal) -> int:
    """사사오입 (Python round()의 은행가 반올림을 쓰지 않는다)."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_correct(question: Question, answer: Optional[Answer]) -> bool:
    """
    정답 판정: answer.selected_choice == question.correct_choice (완전 일치만 인정).
    답안이 없거나 선택 해제 상태면 오답.
    """
    if answer is None or not answer.selected_choice:
        return False
    return answer.selected_choice == question.correct_choice


def calculate_score(
    questions: List[Question],
    answers: Mapping[str, Answer],
) -> int:
    """
    사용자 답안을 채점하여 100점 만점 환산 점수를 반환한다.

    Returns:
        round(correct / total * 100) — 사사오입 정수.
        questions가 빈 리스트이면 0.
    """
    if not questions:
        return 0

    correct_count = sum(1 for q in questions if is_correct(q, answers.get(q.id)))
    return round_half_up(Decimal(correct_count * 100) / Decimal(len(questions)))


def calculate_part_scores(
    questions: List[Question],
    answers: Mapping[str, Answer],
    parts: Optional[Iterable[int]] = None,
) -> Dict[int, PartScore]:
    """
    파트별 점수를 계산하여 반환한다.

    Args:
        parts: 결과에 반드시 포함할 파트 (선택했지만 출제되지 않은 파트 → total 0, accuracy 0)

    Returns:
        {part: PartScore} 파트 번호 기준 정렬. accuracy는 백분율.
    """
    buckets: Dict[int, Dict[str, int]] = defaultdict(lambda: {"total": 0, "correct": 0})
    for p in parts or ():
        buckets.setdefault(p, {"total": 0, "correct": 0})

    for q in questions:
        buckets[q.part]["total"] += 1
        if is_correct(q, answers.get(q.id)):
            buckets[q.part]["correct"] += 1

    result: Dict[int, PartScore] = {}
    for part in sorted(buckets):
        b = buckets[part]
        accuracy = round(b["correct"] / b["total"] * 100, 1) if b["total"] else 0.0
        result[part] = PartScore(total=b["total"], correct=b["correct"], accuracy=accuracy)
    return result


def calculate_time_spent(
    config: ExamConfiguration,
    seconds_remaining: Optional[int] = None,
    elapsed_seconds: float = 0,
) -> int:
    """
    사용 시간(초).

    STANDARD : 제한 시간 - 제출 시점 남은 시간
    UNLIMITED: start() 이후 단조 시계 기준 경과 시간
    """
    if config.is_unlimited:
        return max(0, int(elapsed_seconds))
    remaining = seconds_remaining if seconds_remaining is not None else config.time_limit_seconds
    return max(0, config.time_limit_seconds - remaining)


def score_session(
    questions: List[Question],
    answers: Mapping[str, Answer],
    time_spent_seconds: int = 0,
    parts: Optional[Iterable[int]] = None,
) -> ScoreResult:
    """
    세션 전체 채점. 부수 효과 없음.

    응답하지 않은 문항(키 없음)은 오답이며 체류 시간도 0으로 본다.
    """
    total = len(questions)
    correct_count = sum(1 for q in questions if is_correct(q, answers.get(q.id)))
    answered_count = sum(
        1 for q in questions if answers.get(q.id) is not None and answers[q.id].is_answered
    )

    return ScoreResult(
        total_questions=total,
        correct_count=correct_count,
        answered_count=answered_count,
        score_percent=calculate_score(questions, answers),
        time_spent_seconds=time_spent_seconds,
        per_part_breakdown=calculate_part_scores(questions, answers, parts),
    )


def get_incorrect_questions(
    questions: List[Question],
    answers: Mapping[str, Answer],
) -> List[Question]:
    """
    오답 문제 리스트를 반환한다 (오답 노트용).

    사용자가 고른 답이 정답과 다르거나 아예 응답하지 않은 문제. 원본 순서 유지.
    """
    return [q for q in questions if not is_correct(q, answers.get(q.id))]
