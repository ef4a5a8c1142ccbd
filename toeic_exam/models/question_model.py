"""
models/question_model.py

TOEIC 문제 및 시험 구성(ExamConfiguration) 모델.
Pydantic v2 적용. 세션은 문제를 읽기만 한다.
"""

import uuid
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LISTENING_PARTS = frozenset({1, 2, 3, 4})
READING_PARTS = frozenset({5, 6, 7})
ALL_PARTS = LISTENING_PARTS | READING_PARTS


def is_listening_part(part: int) -> bool:
    """Part 1~4 (듣기) 여부."""
    return part in LISTENING_PARTS


class TimeMode(str, Enum):
    STANDARD = "standard"
    UNLIMITED = "unlimited"


class Question(BaseModel):
    """
    TOEIC 문제 모델.

    passage_id가 같은 문제들은 하나의 지문 묶음(PassageGroup)을 이룬다.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="문제 고유 식별자"
    )
    part: int = Field(
        ...,
        ge=1,
        le=7,
        description="TOEIC 파트 번호 (1~4 듣기, 5~7 읽기)"
    )
    prompt: str = Field(
        "",
        description="발문 (Part 1, 2는 음성만 있어 빈 문자열일 수 있음)"
    )
    choices: List[str] = Field(
        ...,
        description="보기 식별자 리스트 (최대 4개, 순서 유지. 예: ['A', 'B', 'C', 'D'])"
    )
    choice_texts: Dict[str, str] = Field(
        default_factory=dict,
        description="보기 식별자 → 보기 본문 (듣기 파트는 비어 있을 수 있음)"
    )
    correct_choice: str = Field(
        ...,
        description="정답 보기 (choices 안의 값)"
    )
    passage_id: Optional[str] = Field(
        None,
        description="공유 지문/음성 묶음 식별자"
    )
    question_number: int = Field(
        0,
        ge=0,
        description="파트 내 문항 번호 (정렬용)"
    )
    explanation: str = Field(
        "",
        description="해설"
    )

    @field_validator("choices")
    @classmethod
    def validate_choices(cls, v: List[str]) -> List[str]:
        """
        검증 로직 1: 보기는 2개 이상 4개 이하. (Part 2는 3지선다)
        """
        if not 2 <= len(v) <= 4:
            raise ValueError(f"보기(choices)는 2~4개여야 합니다. (현재 {len(v)}개)")
        return v

    @model_validator(mode="after")
    def validate_correct_choice(self) -> "Question":
        """
        검증 로직 2: 정답은 반드시 보기 리스트 안에 있어야 한다.
        """
        if self.correct_choice not in self.choices:
            raise ValueError(
                f"정답('{self.correct_choice}')이 보기 리스트({self.choices})에 존재하지 않습니다."
            )
        return self

    @property
    def is_listening(self) -> bool:
        return is_listening_part(self.part)


class ExamConfiguration(BaseModel):
    """
    시험 시작 입력. 세션이 시작되면 변경 불가 (frozen).

    Attributes:
        config_id:          결과 저장 시 사용하는 구성 식별자.
        exam_set_id:        시험지(세트) 식별자. 없으면 문제은행 전체에서 출제.
        selected_parts:     응시할 파트 집합 (1~7).
        question_count:     목표 문항 수.
        time_limit_minutes: 제한 시간(분). UNLIMITED 모드에서는 무시된다.
        time_mode:          STANDARD(카운트다운) / UNLIMITED(무제한)
    """

    model_config = ConfigDict(frozen=True)

    config_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    exam_set_id: Optional[str] = None
    selected_parts: FrozenSet[int] = ALL_PARTS
    question_count: int = Field(..., ge=1)
    time_limit_minutes: int = 0
    time_mode: TimeMode = TimeMode.STANDARD

    @field_validator("selected_parts")
    @classmethod
    def validate_parts(cls, v: FrozenSet[int]) -> FrozenSet[int]:
        if not v:
            raise ValueError("최소 한 개 이상의 파트를 선택해야 합니다.")
        invalid = sorted(p for p in v if p not in ALL_PARTS)
        if invalid:
            raise ValueError(f"잘못된 파트 번호: {invalid} (1~7만 허용)")
        return v

    @model_validator(mode="after")
    def validate_time_limit(self) -> "ExamConfiguration":
        if self.time_mode == TimeMode.STANDARD and self.time_limit_minutes < 1:
            raise ValueError("STANDARD 모드에서는 제한 시간이 1분 이상이어야 합니다.")
        return self

    @property
    def time_limit_seconds(self) -> int:
        return self.time_limit_minutes * 60

    @property
    def is_unlimited(self) -> bool:
        return self.time_mode == TimeMode.UNLIMITED
