"""
services/errors.py

시험 세션 오류 정의.
모든 오류는 호출한 연산에 동기적으로 전달되며, 거부된 연산은 상태를 바꾸지 않는다.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    INVALID_TRANSITION = "invalid_transition"
    OUT_OF_RANGE = "out_of_range"
    NAVIGATION_LOCKED = "navigation_locked"
    ALREADY_SUBMITTED = "already_submitted"
    LOAD_FAILED = "load_failed"
    PERSISTENCE_FAILED = "persistence_failed"


class ExamSessionError(Exception):
    """시험 세션 오류의 기반 클래스. code로 사유를 구분한다."""

    code: ErrorCode = ErrorCode.INVALID_TRANSITION
    retryable: bool = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.code.value)
        self.message = message or self.code.value

    def to_dict(self) -> dict:
        return {"ok": False, "reason": self.code.value, "detail": self.message}


class InvalidTransition(ExamSessionError):
    """현재 상태에서 허용되지 않는 연산 (예: start() 두 번 호출)."""

    code = ErrorCode.INVALID_TRANSITION


class AlreadySubmitted(InvalidTransition):
    """이미 종료(제출/만료)된 세션에 대한 재진입."""

    code = ErrorCode.ALREADY_SUBMITTED


class OutOfRange(ExamSessionError):
    """이동 대상 인덱스가 [0, len) 밖이거나 존재하지 않는 문제/보기."""

    code = ErrorCode.OUT_OF_RANGE


class NavigationLocked(ExamSessionError):
    """듣기 파트(1~4)에서 뒤로 이동 시도."""

    code = ErrorCode.NAVIGATION_LOCKED


class LoadFailed(ExamSessionError):
    """문제 공급이 실패했거나 문제가 0개. 세션은 RUNNING에 들어가지 못한다."""

    code = ErrorCode.LOAD_FAILED
    retryable = True

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class PersistenceFailed(ExamSessionError):
    """
    채점 이후 결과 저장 실패.
    record(SubmissionRecord)를 그대로 들고 있어 재시도할 수 있다.
    """

    code = ErrorCode.PERSISTENCE_FAILED
    retryable = True

    def __init__(self, message: str = "", record=None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.record = record
        self.cause = cause

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["retryable"] = True
        if self.record is not None:
            d["score_percent"] = self.record.score_result.score_percent
        return d
