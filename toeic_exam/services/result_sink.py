"""
services/result_sink.py

채점이 끝난 세션을 저장하는 결과 저장소(ResultSink)와 재시도 전달 로직.

Public API:
  - ResultSink                      : 저장소 프로토콜 (save → 결과 ID)
  - InMemoryResultSink              : 메모리 저장 (샘플 모드/테스트)
  - SupabaseResultSink              : exam_sessions + exam_attempts 테이블
  - deliver_submission(record, sink): 지수 백오프 재시도, 최종 실패 시 PersistenceFailed

설계 원칙:
- 저장 실패가 채점 결과를 버리지 않는다. PersistenceFailed가 record를 그대로 들고 올라간다.
- Supabase 행 ID는 uuid5로 결정적으로 만들어 upsert → 재시도해도 중복 행이 생기지 않는다.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Protocol
from uuid import NAMESPACE_DNS, uuid5

from config import PERSIST_BACKOFF_BASE, PERSIST_MAX_RETRIES
from toeic_exam.models.result_model import SubmissionRecord
from toeic_exam.services.errors import PersistenceFailed

logger = logging.getLogger(__name__)


class ResultSink(Protocol):
    def save(self, record: SubmissionRecord) -> str:
        ...


class InMemoryResultSink:
    def __init__(self):
        self._lock = threading.Lock()
        self.records: Dict[str, SubmissionRecord] = {}

    def save(self, record: SubmissionRecord) -> str:
        result_id = session_row_id(record)
        with self._lock:
            self.records[result_id] = record
        return result_id

    def get(self, result_id: str) -> Optional[SubmissionRecord]:
        with self._lock:
            return self.records.get(result_id)


def session_row_id(record: SubmissionRecord) -> str:
    return str(uuid5(NAMESPACE_DNS, f"toeic-exam-session:{record.exam_config_id}"))


def _attempt_row_id(session_id: str, question_id: str) -> str:
    return str(uuid5(NAMESPACE_DNS, f"toeic-exam-attempt:{session_id}:{question_id}"))


class SupabaseResultSink:
    """
    Supabase 결과 저장.

    exam_sessions 1행 + 응답한 문항마다 exam_attempts 1행.
    """

    def __init__(self, client, user_id: str):
        self.client = client
        self.user_id = user_id

    def _session_row(self, record: SubmissionRecord, session_id: str) -> dict:
        result = record.score_result
        return {
            "id": session_id,
            "user_id": self.user_id,
            "exam_set_id": record.exam_set_id,
            "total_questions": result.total_questions,
            "correct_answers": result.correct_count,
            "score": result.score_percent,
            "time_spent": result.time_spent_seconds,
            "status": "completed",
            "completed_at": record.submitted_at.isoformat(),
            "results": {
                "served_question_ids": record.question_ids,
                "selected_parts": record.selected_parts,
                "termination_reason": record.termination_reason.value,
                "per_part_breakdown": {
                    str(part): score.model_dump()
                    for part, score in result.per_part_breakdown.items()
                },
            },
        }

    def _attempt_rows(self, record: SubmissionRecord, session_id: str) -> List[dict]:
        correct_ids = set(record.correct_question_ids)
        return [
            {
                "id": _attempt_row_id(session_id, a.question_id),
                "session_id": session_id,
                "question_id": a.question_id,
                "user_answer": a.selected_choice,
                "is_correct": a.question_id in correct_ids,
                "time_spent": a.per_question_elapsed_ms // 1000,
            }
            for a in record.answers
        ]

    def save(self, record: SubmissionRecord) -> str:
        session_id = session_row_id(record)
        self.client.table("exam_sessions").upsert(
            self._session_row(record, session_id), on_conflict="id"
        ).execute()

        attempts = self._attempt_rows(record, session_id)
        if attempts:
            self.client.table("exam_attempts").upsert(attempts, on_conflict="id").execute()
        logger.info(f"결과 저장 완료: session={session_id}, attempts={len(attempts)}")
        return session_id


def deliver_submission(
    record: SubmissionRecord,
    sink: ResultSink,
    max_retries: int = PERSIST_MAX_RETRIES,
    backoff_base: float = PERSIST_BACKOFF_BASE,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """
    제출 기록을 저장소에 전달한다. 실패하면 지수 백오프로 재시도.

    Returns:
        저장소가 발급한 결과 ID (결과 화면 이동용)

    Raises:
        PersistenceFailed: 재시도를 모두 소진. record와 원인 예외를 담고 있다.
    """
    last_exception: Optional[Exception] = None
    for attempt in range(1, max_retries + 1):
        try:
            return sink.save(record)
        except Exception as e:
            last_exception = e
            if attempt < max_retries:
                wait = backoff_base * (2 ** (attempt - 1))
                logger.warning(f"결과 저장 실패, {wait:.1f}초 후 재시도 ({attempt}/{max_retries}): {e}")
                sleep(wait)
            else:
                logger.error(f"결과 저장 최종 실패: {e}")

    raise PersistenceFailed(
        "채점 결과를 저장하지 못했습니다. 결과는 보관되어 있으니 다시 시도해 주세요.",
        record=record,
        cause=last_exception,
    ) from last_exception
