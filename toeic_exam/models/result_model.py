"""
models/result_model.py

채점 결과(ScoreResult)와 결과 저장소로 넘기는 제출 기록(SubmissionRecord).
한 번 만들어지면 바뀌지 않는다 (frozen).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from toeic_exam.models.session_state import Answer


class TerminationReason(str, Enum):
    USER_SUBMITTED = "user_submitted"
    TIME_EXPIRED = "time_expired"


class PartScore(BaseModel):
    """파트별 집계. accuracy는 백분율 (소수점 첫째 자리 반올림)."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    correct: int = 0
    accuracy: float = 0.0


class ScoreResult(BaseModel):
    """
    세션 채점 결과.

    Attributes:
        total_questions:     전체 문항 수
        correct_count:       정답 수
        answered_count:      응답한 문항 수
        score_percent:       round(correct / total * 100), 사사오입
        time_spent_seconds:  사용 시간(초)
        per_part_breakdown:  {part: PartScore}
    """

    model_config = ConfigDict(frozen=True)

    total_questions: int
    correct_count: int
    answered_count: int = 0
    score_percent: int
    time_spent_seconds: int = Field(default=0, ge=0)
    per_part_breakdown: Dict[int, PartScore] = Field(default_factory=dict)

    @property
    def incorrect_count(self) -> int:
        return self.total_questions - self.correct_count

    @property
    def unanswered_count(self) -> int:
        return self.total_questions - self.answered_count


class SubmissionRecord(BaseModel):
    """
    결과 저장소(ResultSink)로 전달되는 제출 기록.
    """

    model_config = ConfigDict(frozen=True)

    exam_config_id: str
    exam_set_id: Optional[str] = None
    selected_parts: List[int] = Field(default_factory=list)
    question_ids: List[str] = Field(default_factory=list)
    score_result: ScoreResult
    answers: List[Answer] = Field(default_factory=list)
    correct_question_ids: List[str] = Field(default_factory=list)
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    termination_reason: TerminationReason
