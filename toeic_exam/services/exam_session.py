"""
services/exam_session.py

시험 세션 상태 기계.

상태 전이:
  NOT_STARTED → RUNNING ⇄ PAUSED → {SUBMITTED, EXPIRED}  (종료 상태는 되돌릴 수 없음)

설계 원칙:
- 세션 1개가 시계(Clock) 1개를 소유한다. 전역 타이머 없음.
- 모든 연산은 전부-아니면-전무: 검증을 먼저 하고, 거부되면 상태를 바꾸지 않는다.
- 틱/만료 콜백과 사용자 연산은 같은 락으로 직렬화된다.
  (틱 하나가 만료 처리까지 끝나야 다음 틱이나 사용자 연산이 들어온다)
- 수동 제출과 시간 만료는 _finalize() 하나로 합쳐져 채점은 정확히 1번만 일어난다.
- 상태가 바뀔 때마다 구독자에게 읽기 전용 스냅샷(ExamSnapshot)을 전달한다.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set

from config import TIME_WARNING_SECONDS
from toeic_exam.models.question_model import ExamConfiguration, Question
from toeic_exam.models.result_model import ScoreResult, SubmissionRecord, TerminationReason
from toeic_exam.models.session_state import (
    UNLIMITED,
    Answer,
    ExamSnapshot,
    SecondsRemaining,
    SessionCheckpoint,
    SessionState,
    SessionStatus,
    TimeMarker,
)
from toeic_exam.services.answer_store import AnswerStore, normalize_choice
from toeic_exam.services.clock import Clock, ThreadingClock, format_time
from toeic_exam.services.errors import (
    AlreadySubmitted,
    InvalidTransition,
    LoadFailed,
    NavigationLocked,
    OutOfRange,
)
from toeic_exam.services.exam_service import (
    calculate_time_spent,
    get_incorrect_questions,
    is_correct,
    score_session,
)
from toeic_exam.services.question_supply import QuestionSupply, load_questions, scaled_time_limit

logger = logging.getLogger(__name__)

Listener = Callable[[ExamSnapshot], None]

_FINAL_STATUS = {
    TerminationReason.USER_SUBMITTED: SessionStatus.SUBMITTED,
    TerminationReason.TIME_EXPIRED: SessionStatus.EXPIRED,
}


class ExamSession:
    """
    한 응시자의 시험 1회분을 진행하는 상태 기계.

    Args:
        config:    시험 구성 (세션 동안 변경 불가)
        questions: 출제 순서대로 정렬된 문제 리스트 (지문 묶음은 연속 배치)
        clock:     카운트다운 시계. 생략하면 ThreadingClock을 새로 만든다.

    Raises:
        LoadFailed: 문제가 0개이거나 문제 ID가 중복될 때
    """

    def __init__(
        self,
        config: ExamConfiguration,
        questions: List[Question],
        clock: Optional[Clock] = None,
    ):
        if not questions:
            raise LoadFailed("출제할 문제가 없습니다.")
        ids = [q.id for q in questions]
        if len(set(ids)) != len(ids):
            raise LoadFailed("문제 ID가 중복되었습니다.")

        self.config = config
        self._questions: List[Question] = list(questions)
        self._index_by_id = {qid: i for i, qid in enumerate(ids)}
        self._answers = AnswerStore(ids)
        self._flags: Set[str] = set()

        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

        self._clock = clock if clock is not None else ThreadingClock()
        self._clock.set_expiry_callback(self._on_clock_expired)
        self._clock.set_tick_callback(self._on_clock_tick)

        self._status = SessionStatus.NOT_STARTED
        self._current_index = 0
        # 시계가 돌지 않는 동안(시작 전/일시정지/종료) 보관하는 남은 시간
        self._held_remaining: Optional[int] = (
            None if config.is_unlimited else config.time_limit_seconds
        )

        self._started_at: Optional[float] = None
        self._elapsed_offset = 0.0
        self._shown_at: Optional[float] = None
        self._pending_ms = 0.0

        self._result: Optional[ScoreResult] = None
        self._submission: Optional[SubmissionRecord] = None
        self._termination_reason: Optional[TerminationReason] = None
        self._disposed = False

    # ── 조회 ─────────────────────────────────────────────────────────────────

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def total_questions(self) -> int:
        return len(self._questions)

    @property
    def current_question(self) -> Question:
        return self._questions[self._current_index]

    @property
    def questions(self) -> List[Question]:
        return list(self._questions)

    @property
    def seconds_remaining(self) -> SecondsRemaining:
        with self._lock:
            return self._seconds_remaining_locked()

    @property
    def answered_count(self) -> int:
        return self._answers.answered_count

    @property
    def result(self) -> Optional[ScoreResult]:
        return self._result

    @property
    def termination_reason(self) -> Optional[TerminationReason]:
        return self._termination_reason

    @property
    def submission(self) -> Optional[SubmissionRecord]:
        return self._submission

    @property
    def is_navigation_locked(self) -> bool:
        """현재 문제가 듣기 파트(1~4)이면 뒤로 이동 불가."""
        return self.current_question.is_listening

    def is_flagged(self, question_id: str) -> bool:
        return question_id in self._flags

    def answer_for(self, question_id: str) -> Optional[Answer]:
        answer = self._answers.get(question_id)
        return answer.model_copy() if answer is not None else None

    def now(self) -> float:
        """세션 시계 기준 현재 시각(초)."""
        return self._clock.now()

    def snapshot(self) -> ExamSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def final_state(self) -> SessionState:
        """종료된 세션의 상태 사본. 진행 중인 세션의 내부 상태는 외부에 노출하지 않는다."""
        with self._lock:
            if not self._status.is_terminal:
                raise InvalidTransition("종료된 시험만 조회할 수 있습니다.")
            return SessionState(
                status=self._status,
                questions=list(self._questions),
                current_index=self._current_index,
                answers=self._answers.as_dict(),
                seconds_remaining=self._seconds_remaining_locked(),
                flags=set(self._flags),
            )

    def incorrect_questions(self) -> List[Question]:
        """오답 노트용 문제 리스트 (종료 후에만)."""
        state = self.final_state()
        return get_incorrect_questions(state.questions, state.answers)

    # ── 구독 ─────────────────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        상태 변경 구독. 같은 리스너를 여러 번 등록해도 1번만 호출된다.

        Returns:
            구독 해제 함수 (여러 번 호출해도 안전)
        """
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # ── 상태 전이 ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """NOT_STARTED → RUNNING. STANDARD 모드면 제한 시간으로 시계를 건다."""
        with self._lock:
            self._ensure_usable()
            if self._status != SessionStatus.NOT_STARTED:
                raise InvalidTransition("이미 시작된 시험입니다.")

            if not self.config.is_unlimited:
                self._clock.arm(self._held_remaining)
                self._held_remaining = None

            now = self._clock.now()
            self._started_at = now
            self._shown_at = now
            self._status = SessionStatus.RUNNING
            logger.info(
                f"시험 시작: {len(self._questions)}문항, "
                f"{'무제한' if self.config.is_unlimited else format_time(self.config.time_limit_seconds)}"
            )
            self._notify()

    def pause(self) -> None:
        """RUNNING → PAUSED. 시계를 멈추되 남은 시간은 유지한다. UNLIMITED 모드에서는 아무 일도 하지 않는다."""
        with self._lock:
            self._ensure_usable()
            if self.config.is_unlimited:
                logger.debug("무제한 모드: 일시정지 요청 무시")
                return
            self._require(SessionStatus.RUNNING, "진행 중인 시험만 일시정지할 수 있습니다.")

            self._clock.disarm()
            remaining = self._clock.seconds_remaining()
            if remaining <= 0:
                # 검사 직후 마지막 틱이 들어온 경우
                self._finalize(TerminationReason.TIME_EXPIRED)
                raise AlreadySubmitted("시험 시간이 종료되어 자동 제출되었습니다.")

            self._held_remaining = remaining
            self._bank_current_time(self._clock.now())
            self._status = SessionStatus.PAUSED
            logger.info(f"시험 일시정지 (남은 시간 {format_time(remaining)})")
            self._notify()

    def resume(self) -> None:
        """PAUSED → RUNNING. 보관한 남은 시간으로 시계를 다시 건다."""
        with self._lock:
            self._ensure_usable()
            if self.config.is_unlimited:
                logger.debug("무제한 모드: 재개 요청 무시")
                return
            self._require(SessionStatus.PAUSED, "일시정지된 시험만 재개할 수 있습니다.")

            self._clock.arm(self._held_remaining)
            self._held_remaining = None
            self._shown_at = self._clock.now()
            self._status = SessionStatus.RUNNING
            logger.info("시험 재개")
            self._notify()

    def submit(self) -> ScoreResult:
        """
        RUNNING/PAUSED → SUBMITTED. 채점 결과를 반환한다.

        Raises:
            AlreadySubmitted:  이미 제출/만료된 세션 (재채점하지 않음)
            InvalidTransition: 시작하지 않은 세션
        """
        with self._lock:
            self._ensure_usable()
            if self._status not in (SessionStatus.RUNNING, SessionStatus.PAUSED):
                raise InvalidTransition("시작하지 않은 시험은 제출할 수 없습니다.")
            return self._finalize(TerminationReason.USER_SUBMITTED)

    # ── 답안 / 이동 ───────────────────────────────────────────────────────────

    def select_answer(self, question_id: str, choice: Optional[str]) -> None:
        """
        답안 선택/변경. 현재 문제라면 마지막 표시(또는 이동) 이후 경과 시간을 누적한다.
        빈 문자열을 넘기면 선택 해제. 현재 문제 인덱스는 바뀌지 않는다.
        """
        with self._lock:
            self._require(SessionStatus.RUNNING, "진행 중인 시험에서만 답을 고를 수 있습니다.")
            question = self._question_by_id(question_id)
            choice = normalize_choice(choice)
            if choice and choice not in question.choices:
                raise OutOfRange(f"보기에 없는 선택지입니다: '{choice}'")

            elapsed_ms = 0
            if question_id == self.current_question.id:
                elapsed_ms = self._take_elapsed_ms(self._clock.now())

            self._answers.record(question_id, choice, elapsed_ms)
            self._notify()

    def go_to(self, index: int) -> None:
        with self._lock:
            self._require(SessionStatus.RUNNING, "진행 중인 시험에서만 이동할 수 있습니다.")
            self._check_target(index)
            if index == self._current_index:
                return
            self._move_to(index)

    def next(self) -> None:
        self.go_to(self._current_index + 1)

    def previous(self) -> None:
        self.go_to(self._current_index - 1)

    def toggle_flag(self, question_id: str) -> bool:
        """다시 보기 표시 토글. 채점에는 영향 없음. 토글 후 표시 여부를 반환."""
        with self._lock:
            self._ensure_usable()
            if self._status not in (SessionStatus.RUNNING, SessionStatus.PAUSED):
                raise InvalidTransition("진행 중인 시험에서만 표시할 수 있습니다.")
            self._question_by_id(question_id)

            if question_id in self._flags:
                self._flags.remove(question_id)
                flagged = False
            else:
                self._flags.add(question_id)
                flagged = True
            self._notify()
            return flagged

    # ── 저장 / 복원 ───────────────────────────────────────────────────────────

    def checkpoint(self) -> SessionCheckpoint:
        """진행 상황 저장본 (RUNNING/PAUSED에서만)."""
        with self._lock:
            self._ensure_usable()
            if self._status not in (SessionStatus.RUNNING, SessionStatus.PAUSED):
                raise InvalidTransition("진행 중인 시험만 저장할 수 있습니다.")
            return SessionCheckpoint(
                config_id=self.config.config_id,
                question_ids=[q.id for q in self._questions],
                current_index=self._current_index,
                answers=self._answers.as_list(),
                flags=sorted(self._flags),
                seconds_remaining=self._seconds_remaining_locked(),
                elapsed_seconds=int(self._elapsed_seconds(self._clock.now())),
            )

    @classmethod
    def restore(
        cls,
        config: ExamConfiguration,
        questions: List[Question],
        checkpoint: SessionCheckpoint,
        clock: Optional[Clock] = None,
    ) -> "ExamSession":
        """
        저장본으로 세션을 되살린다.

        STANDARD 모드는 PAUSED 상태로 돌아오며(시계 정지), 응시자가 resume()으로 이어간다.
        UNLIMITED 모드는 바로 RUNNING.

        Raises:
            LoadFailed: 저장본과 구성/문제 목록이 맞지 않거나 남은 시간이 없을 때
        """
        if checkpoint.config_id != config.config_id:
            raise LoadFailed("저장된 진행 상황의 시험 구성이 다릅니다.")
        if [q.id for q in questions] != checkpoint.question_ids:
            raise LoadFailed("저장된 진행 상황과 문제 목록이 일치하지 않습니다.")
        if not 0 <= checkpoint.current_index < len(questions):
            raise LoadFailed("저장된 문제 위치가 범위를 벗어났습니다.")

        remaining = checkpoint.seconds_remaining
        if config.is_unlimited != isinstance(remaining, TimeMarker):
            raise LoadFailed("저장본의 시간 모드가 시험 구성과 다릅니다.")
        if not config.is_unlimited and remaining < 1:
            raise LoadFailed("남은 시간이 없는 저장본은 복원할 수 없습니다.")

        session = cls(config, questions, clock)
        session._answers.load(checkpoint.answers)
        session._flags = {f for f in checkpoint.flags if f in session._index_by_id}
        session._current_index = checkpoint.current_index

        now = session._clock.now()
        session._started_at = now
        if config.is_unlimited:
            session._elapsed_offset = float(checkpoint.elapsed_seconds)
            session._shown_at = now
            session._status = SessionStatus.RUNNING
        else:
            session._held_remaining = remaining
            session._status = SessionStatus.PAUSED
        logger.info(
            f"진행 상황 복원: {checkpoint.current_index + 1}/{len(questions)}번, "
            f"답안 {session.answered_count}개"
        )
        return session

    # ── 정리 ─────────────────────────────────────────────────────────────────

    def dispose(self) -> None:
        """
        세션 폐기. 어떤 상태에서든 시계를 멈추고 콜백/구독을 모두 해제한다.
        여러 번 호출해도 안전하다. 상태(status)와 채점 결과는 그대로 남는다.
        """
        with self._lock:
            self._clock.disarm()
            self._clock.clear_callbacks()
            self._listeners.clear()
            if not self._disposed:
                logger.debug(f"세션 폐기 (상태: {self._status.value})")
            self._disposed = True

    def __enter__(self) -> "ExamSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # ── 시계 콜백 ─────────────────────────────────────────────────────────────

    def _on_clock_tick(self, remaining: int) -> None:
        with self._lock:
            if self._status == SessionStatus.RUNNING:
                self._notify()

    def _on_clock_expired(self) -> None:
        with self._lock:
            if self._status != SessionStatus.RUNNING:
                logger.debug(f"만료 신호 무시 (상태: {self._status.value})")
                return
            logger.warning("시험 시간이 종료되어 자동 제출합니다.")
            self._finalize(TerminationReason.TIME_EXPIRED)

    # ── 내부 ─────────────────────────────────────────────────────────────────

    def _finalize(self, reason: TerminationReason) -> ScoreResult:
        """제출/만료 공통 종료 처리. 호출자는 락을 잡고 있어야 한다."""
        if self._status.is_terminal:
            raise AlreadySubmitted("이미 제출된 시험입니다.")

        now = self._clock.now()
        if self.config.is_unlimited:
            remaining = None
        elif self._status == SessionStatus.RUNNING:
            remaining = max(0, self._clock.seconds_remaining())
        else:
            remaining = self._held_remaining
        if reason == TerminationReason.TIME_EXPIRED and remaining is not None:
            remaining = 0

        answers = self._answers.as_dict()
        time_spent = calculate_time_spent(self.config, remaining, self._elapsed_seconds(now))
        result = score_session(
            self._questions,
            answers,
            time_spent_seconds=time_spent,
            parts=self.config.selected_parts,
        )
        submission = SubmissionRecord(
            exam_config_id=self.config.config_id,
            exam_set_id=self.config.exam_set_id,
            selected_parts=sorted(self.config.selected_parts),
            question_ids=[q.id for q in self._questions],
            score_result=result,
            answers=list(answers.values()),
            correct_question_ids=[
                q.id for q in self._questions if is_correct(q, answers.get(q.id))
            ],
            submitted_at=datetime.now(timezone.utc),
            termination_reason=reason,
        )

        self._clock.disarm()
        self._held_remaining = remaining
        self._elapsed_offset = self._elapsed_seconds(now)
        self._started_at = None
        self._shown_at = None
        self._pending_ms = 0.0
        self._status = _FINAL_STATUS[reason]
        self._termination_reason = reason
        self._result = result
        self._submission = submission

        logger.info(
            f"시험 종료 ({reason.value}): {result.correct_count}/{result.total_questions} 정답, "
            f"{result.score_percent}점, {result.time_spent_seconds}초 사용"
        )
        self._notify()
        return result

    def _ensure_usable(self) -> None:
        if self._status.is_terminal:
            raise AlreadySubmitted("이미 제출된 시험입니다.")
        if self._disposed:
            raise InvalidTransition("폐기된 세션입니다.")
        if self._expire_if_due():
            raise AlreadySubmitted("시험 시간이 종료되어 자동 제출되었습니다.")

    def _expire_if_due(self) -> bool:
        """시계는 0에 닿았는데 만료 콜백이 아직 도착하지 않았다면 여기서 만료 처리한다."""
        if (
            self._status != SessionStatus.RUNNING
            or self.config.is_unlimited
            or self._clock.seconds_remaining() > 0
        ):
            return False
        logger.warning("시험 시간이 종료되어 자동 제출합니다.")
        self._finalize(TerminationReason.TIME_EXPIRED)
        return True

    def _require(self, status: SessionStatus, message: str) -> None:
        self._ensure_usable()
        if self._status != status:
            raise InvalidTransition(message)

    def _question_by_id(self, question_id: str) -> Question:
        index = self._index_by_id.get(question_id)
        if index is None:
            raise OutOfRange(f"출제되지 않은 문제입니다: {question_id}")
        return self._questions[index]

    def _check_target(self, index: int) -> None:
        # 뒤로 가기는 범위 검사보다 잠금 검사가 먼저 (듣기 파트에서는 항상 NAVIGATION_LOCKED)
        if index < self._current_index and self.is_navigation_locked:
            raise NavigationLocked(
                f"듣기 파트(Part {self.current_question.part})에서는 이전 문제로 돌아갈 수 없습니다."
            )
        if not 0 <= index < len(self._questions):
            raise OutOfRange(f"문제 범위를 벗어났습니다: {index} (0~{len(self._questions) - 1})")

    def _move_to(self, index: int) -> None:
        self._current_index = index
        self._shown_at = self._clock.now()
        self._pending_ms = 0.0
        self._notify()

    def _bank_current_time(self, now: float) -> None:
        if self._shown_at is not None:
            self._pending_ms += (now - self._shown_at) * 1000
        self._shown_at = None

    def _take_elapsed_ms(self, now: float) -> int:
        elapsed = self._pending_ms
        if self._shown_at is not None:
            elapsed += (now - self._shown_at) * 1000
        self._pending_ms = 0.0
        self._shown_at = now
        return max(0, int(round(elapsed)))

    def _elapsed_seconds(self, now: float) -> float:
        if self._started_at is None:
            return self._elapsed_offset
        return self._elapsed_offset + (now - self._started_at)

    def _seconds_remaining_locked(self) -> SecondsRemaining:
        if self.config.is_unlimited:
            return UNLIMITED
        if self._status == SessionStatus.RUNNING:
            return self._clock.seconds_remaining()
        return self._held_remaining

    def _snapshot_locked(self) -> ExamSnapshot:
        remaining = self._seconds_remaining_locked()
        total = len(self._questions)
        answered = self._answers.answered_count
        if remaining == UNLIMITED:
            time_display, warning = "무제한", False
        else:
            time_display = format_time(remaining)
            warning = (
                self._status in (SessionStatus.RUNNING, SessionStatus.PAUSED)
                and remaining < TIME_WARNING_SECONDS
            )
        return ExamSnapshot(
            status=self._status,
            current_index=self._current_index,
            total_questions=total,
            seconds_remaining=remaining,
            answered_count=answered,
            unanswered_count=total - answered,
            current_question=self.current_question,
            flagged_ids=frozenset(self._flags),
            time_display=time_display,
            is_time_warning=warning,
            progress_percent=round((self._current_index + 1) / total * 100, 1),
        )

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self._snapshot_locked()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("상태 구독자 처리 중 오류")


def open_session(
    config: ExamConfiguration,
    supply: QuestionSupply,
    clock: Optional[Clock] = None,
    scale_time_limit: bool = False,
) -> ExamSession:
    """
    문제 공급자로부터 문제를 받아 NOT_STARTED 세션을 만든다.

    Args:
        scale_time_limit: 공급된 문항 수가 목표보다 적으면 제한 시간을 비례해서 줄인다.

    Raises:
        LoadFailed: 공급 실패 또는 문제 0개 (세션은 만들어지지 않는다)
    """
    questions = load_questions(supply, config)
    if (
        scale_time_limit
        and not config.is_unlimited
        and len(questions) < config.question_count
    ):
        minutes = scaled_time_limit(config.time_limit_minutes, config.question_count, len(questions))
        logger.info(
            f"문항 수 {len(questions)}/{config.question_count} → 제한 시간 "
            f"{config.time_limit_minutes}분 → {minutes}분"
        )
        config = config.model_copy(update={"time_limit_minutes": minutes})
    return ExamSession(config, questions, clock)
