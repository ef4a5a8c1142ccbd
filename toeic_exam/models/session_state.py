"""
models/session_state.py

시험 진행 상태를 담는 OMR 카드 모델.
Pydantic BaseModel 기반 — 직렬화/역직렬화 및 타입 안전성 확보.
상태 전이 규칙은 services/exam_session.py가 담당하고, 여기에는 데이터만 둔다.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Set, Union

from pydantic import BaseModel, ConfigDict, Field

from toeic_exam.models.question_model import Question


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    PAUSED = "paused"
    SUBMITTED = "submitted"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.SUBMITTED, SessionStatus.EXPIRED)


class TimeMarker(str, Enum):
    """남은 시간 자리에 숫자 대신 들어가는 표식. 0이나 -1 같은 숫자 센티널을 쓰지 않는다."""

    UNLIMITED = "unlimited"


UNLIMITED = TimeMarker.UNLIMITED

SecondsRemaining = Union[int, TimeMarker]


class Answer(BaseModel):
    """
    문항별 답안.

    Attributes:
        question_id:             문제 ID
        selected_choice:         선택한 보기. 빈 문자열이면 선택 해제 상태.
        per_question_elapsed_ms: 해당 문항에 머문 누적 시간 (ms)
    """

    question_id: str
    selected_choice: str = ""
    per_question_elapsed_ms: int = Field(default=0, ge=0)

    @property
    def is_answered(self) -> bool:
        return bool(self.selected_choice)


class SessionState(BaseModel):
    """
    사용자의 시험 세션 전체 상태.

    Attributes:
        status:            진행 상태
        questions:         출제 순서대로 정렬된 문제 리스트
        current_index:     현재 풀고 있는 문제 인덱스 (0-based)
        answers:           답안지. {question.id: Answer}
        seconds_remaining: 남은 시간(초) 또는 UNLIMITED
        flags:             다시 보기 표시한 문제 ID (채점과 무관)
    """

    status: SessionStatus = SessionStatus.NOT_STARTED
    questions: List[Question]
    current_index: int = Field(default=0, ge=0)
    answers: Dict[str, Answer] = Field(default_factory=dict)
    seconds_remaining: SecondsRemaining = 0
    flags: Set[str] = Field(default_factory=set)

    @property
    def current_question(self) -> Question:
        return self.questions[self.current_index]

    @property
    def answered_count(self) -> int:
        return sum(1 for a in self.answers.values() if a.is_answered)


class ExamSnapshot(BaseModel):
    """
    화면 표시용 읽기 전용 스냅샷. 상태가 바뀔 때마다 새로 만들어 구독자에게 전달한다.
    """

    model_config = ConfigDict(frozen=True)

    status: SessionStatus
    current_index: int
    total_questions: int
    seconds_remaining: SecondsRemaining
    answered_count: int
    unanswered_count: int
    current_question: Question
    flagged_ids: FrozenSet[str] = frozenset()
    time_display: str = ""
    is_time_warning: bool = False
    progress_percent: float = 0.0

    def is_flagged(self, question_id: str) -> bool:
        return question_id in self.flagged_ids


class SessionCheckpoint(BaseModel):
    """
    진행 상황 저장본 (자동 저장 / 이어풀기용).

    Attributes:
        config_id:         ExamConfiguration.config_id
        question_ids:      출제된 문제 ID (순서 유지). 복원 시 문제 목록과 대조한다.
        current_index:     저장 시점의 문제 인덱스
        answers:           저장 시점의 답안
        flags:             다시 보기 표시
        seconds_remaining: 남은 시간(초) 또는 UNLIMITED
        elapsed_seconds:   UNLIMITED 모드에서 지금까지 경과한 시간(초)
        saved_at:          저장 시각 (UTC)
    """

    config_id: str
    question_ids: List[str]
    current_index: int = Field(default=0, ge=0)
    answers: List[Answer] = Field(default_factory=list)
    flags: List[str] = Field(default_factory=list)
    seconds_remaining: SecondsRemaining
    elapsed_seconds: int = Field(default=0, ge=0)
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
