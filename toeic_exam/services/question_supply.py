"""
services/question_supply.py

문제 공급자(QuestionSupply) — 시험 구성(ExamConfiguration)을 받아 출제 순서대로 정렬된 문제를 돌려준다.

Public API:
  - QuestionSupply                 : 공급자 프로토콜 (fetch_questions)
  - InMemoryQuestionSupply         : 메모리 문제은행 (샘플 문제/테스트)
  - SupabaseQuestionSupply         : Supabase questions / exam_questions 테이블
  - order_questions(questions)     : 파트 → 문항 번호 순 정렬 + 지문 묶음 연속 배치
  - group_passages(questions)      : 순서를 유지한 채 지문 묶음만 모으기
  - limit_questions(questions, n)  : 지문 묶음을 쪼개지 않고 n문항 이내로 자르기
  - scaled_time_limit(...)         : 문항 수에 비례한 제한 시간
  - load_questions(supply, config) : 공급 + 검증. 실패/0문항이면 LoadFailed
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol

from pydantic import ValidationError

from toeic_exam.models.question_model import ExamConfiguration, Question
from toeic_exam.services.errors import LoadFailed
from toeic_exam.services.exam_service import round_half_up

logger = logging.getLogger(__name__)

_CHOICE_KEYS = ("A", "B", "C", "D")


class QuestionSupply(Protocol):
    def fetch_questions(self, config: ExamConfiguration) -> List[Question]:
        ...


# ══════════════════════════════════════════════════════════════════════════════
# 정렬 / 자르기
# ══════════════════════════════════════════════════════════════════════════════

def group_passages(questions: Iterable[Question]) -> List[Question]:
    """
    같은 passage_id를 가진 문제를 첫 등장 위치로 모은다. 그 밖의 순서는 그대로 유지.
    """
    questions = list(questions)
    members: Dict[str, List[Question]] = {}
    for q in questions:
        if q.passage_id:
            members.setdefault(q.passage_id, []).append(q)

    ordered: List[Question] = []
    emitted = set()
    for q in questions:
        if not q.passage_id:
            ordered.append(q)
        elif q.passage_id not in emitted:
            emitted.add(q.passage_id)
            ordered.extend(members[q.passage_id])
    return ordered


def order_questions(questions: Iterable[Question]) -> List[Question]:
    """파트 → 문항 번호 순으로 정렬한 뒤 지문 묶음을 연속 배치한다."""
    return group_passages(sorted(questions, key=lambda q: (q.part, q.question_number)))


def _split_groups(questions: List[Question]) -> List[List[Question]]:
    groups: List[List[Question]] = []
    for q in questions:
        if q.passage_id and groups and groups[-1][0].passage_id == q.passage_id:
            groups[-1].append(q)
        else:
            groups.append([q])
    return groups


def limit_questions(questions: List[Question], count: int) -> List[Question]:
    """
    앞에서부터 count문항 이내로 자른다. 지문 묶음 중간에서 자르지 않는다.
    (첫 묶음 하나가 count보다 크면 그 묶음만 사용)
    """
    if len(questions) <= count:
        return list(questions)

    selected: List[Question] = []
    for group in _split_groups(questions):
        if len(selected) + len(group) > count:
            if not selected:
                selected.extend(group)
            break
        selected.extend(group)
    return selected


def scaled_time_limit(time_limit_minutes: int, planned_count: int, actual_count: int) -> int:
    """
    실제 출제 문항 수에 비례한 제한 시간(분). 최소 1분.

    예: 200문항 120분 시험에서 100문항만 출제 → 60분
    """
    if planned_count <= 0:
        return time_limit_minutes
    scaled = round_half_up(Decimal(time_limit_minutes * actual_count) / Decimal(planned_count))
    return max(1, scaled)


def load_questions(supply: QuestionSupply, config: ExamConfiguration) -> List[Question]:
    """
    공급자에서 문제를 받아 선택 파트로 거르고, 지문 묶음을 모은 뒤 목표 문항 수로 자른다.

    Raises:
        LoadFailed: 공급자 예외 또는 사용할 수 있는 문제가 0개
    """
    try:
        fetched = supply.fetch_questions(config)
    except LoadFailed:
        raise
    except Exception as e:
        logger.error(f"문제 불러오기 실패: {e}")
        raise LoadFailed(f"문제를 불러오지 못했습니다: {e}", cause=e) from e

    questions = [q for q in fetched or [] if q.part in config.selected_parts]
    questions = limit_questions(group_passages(questions), config.question_count)
    if not questions:
        logger.error(f"출제 가능한 문제 없음 (파트: {sorted(config.selected_parts)})")
        raise LoadFailed("선택한 파트에 출제 가능한 문제가 없습니다.")

    logger.info(f"문제 {len(questions)}개 로드 (요청 {config.question_count}개)")
    return questions


# ══════════════════════════════════════════════════════════════════════════════
# 구현체
# ══════════════════════════════════════════════════════════════════════════════

class InMemoryQuestionSupply:
    """
    메모리 문제은행.

    Args:
        questions: 전체 문제
        exam_sets: {exam_set_id: [question_id, ...]} 시험지별 문제 순서
    """

    def __init__(self, questions: List[Question], exam_sets: Optional[Dict[str, List[str]]] = None):
        self._questions = list(questions)
        self._exam_sets = exam_sets or {}

    def fetch_questions(self, config: ExamConfiguration) -> List[Question]:
        if config.exam_set_id is None:
            return order_questions(q for q in self._questions if q.part in config.selected_parts)

        ids = self._exam_sets.get(config.exam_set_id)
        if ids is None:
            raise LoadFailed(f"시험지를 찾을 수 없습니다: {config.exam_set_id}")
        by_id = {q.id: q for q in self._questions}
        return [by_id[qid] for qid in ids if qid in by_id and by_id[qid].part in config.selected_parts]


def _row_to_question(row: dict) -> Question:
    """Supabase questions 행 → Question. choices는 {A: ..., B: ...} JSON."""
    raw_choices = row.get("choices") or {}
    choice_texts = {k: str(raw_choices[k]) for k in _CHOICE_KEYS if raw_choices.get(k)}
    choices = list(choice_texts)
    # Part 1, 2는 보기 본문 없이 음성만 있는 경우가 있다
    if len(choices) < 2:
        choices = list(_CHOICE_KEYS[:3] if row.get("part") == 2 else _CHOICE_KEYS)

    return Question(
        id=str(row["id"]),
        part=row["part"],
        prompt=row.get("prompt_text") or "",
        choices=choices,
        choice_texts=choice_texts,
        correct_choice=row.get("correct_choice") or "",
        passage_id=row.get("passage_id"),
        question_number=row.get("question_number") or 0,
        explanation=row.get("explain_en") or row.get("explain_vi") or "",
    )


class SupabaseQuestionSupply:
    """
    Supabase 문제은행.

    exam_set_id가 있으면 exam_questions.order_index 순서를, 없으면 게시(published)된 문제 전체를
    파트/문항 번호 순으로 사용한다.
    """

    def __init__(self, client):
        self.client = client

    def _exam_set_question_ids(self, exam_set_id: str) -> List[str]:
        response = (
            self.client.table("exam_questions")
            .select("question_id, order_index")
            .eq("exam_set_id", exam_set_id)
            .order("order_index")
            .execute()
        )
        return [str(r["question_id"]) for r in response.data or []]

    def fetch_questions(self, config: ExamConfiguration) -> List[Question]:
        parts = sorted(config.selected_parts)
        ids: Optional[List[str]] = None

        if config.exam_set_id:
            ids = self._exam_set_question_ids(config.exam_set_id)
            if not ids:
                raise LoadFailed(f"시험지에 배정된 문제가 없습니다: {config.exam_set_id}")
            query = self.client.table("questions").select("*").in_("id", ids)
        else:
            query = self.client.table("questions").select("*").eq("status", "published")

        response = query.in_("part", parts).execute()
        rows = response.data or []

        questions: List[Question] = []
        for row in rows:
            try:
                questions.append(_row_to_question(row))
            except (ValidationError, KeyError) as e:
                logger.warning(f"문제 {row.get('id')} 변환 실패, 건너뜀: {e}")

        logger.info(f"Supabase 문제 {len(questions)}/{len(rows)}개 변환 (파트 {parts})")

        if ids is None:
            return order_questions(questions)
        position = {qid: i for i, qid in enumerate(ids)}
        return sorted(questions, key=lambda q: position.get(q.id, len(position)))
