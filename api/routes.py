"""
api/routes.py — FastAPI 엔드포인트

시험 진행 규칙은 모두 ExamSession이 판단한다. 여기서는 요청을 세션 연산으로 옮기고,
ExamSessionError는 app.py의 핸들러가 {ok: false, reason, detail} 응답으로 바꾼다.
"""

import asyncio
import logging
import threading
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ValidationError

import config
import api.session as session
from toeic_exam.models.question_model import ALL_PARTS, ExamConfiguration, Question, TimeMode
from toeic_exam.models.session_state import ExamSnapshot, SessionStatus
from toeic_exam.services.errors import PersistenceFailed
from toeic_exam.services.exam_session import ExamSession, open_session
from toeic_exam.services.progress_store import AutoSaver
from toeic_exam.services.question_supply import load_questions
from toeic_exam.services.result_sink import deliver_submission

logger = logging.getLogger(__name__)

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class StartExamBody(BaseModel):
    exam_set_id: Optional[str] = None
    parts: List[int] = sorted(ALL_PARTS)
    question_count: int = config.DEFAULT_QUESTION_COUNT
    time_limit_minutes: int = config.DEFAULT_TIME_LIMIT_MINUTES
    time_mode: TimeMode = TimeMode.STANDARD
    scale_time_limit: bool = False

class SaveAnswerBody(BaseModel):
    question_id: str
    answer: str = ""

class NavigateBody(BaseModel):
    index: int = 0

class FlagBody(BaseModel):
    question_id: str

class ResumeSavedBody(BaseModel):
    exam_config: ExamConfiguration


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _sid(request: Request) -> str:
    return request.state.session_id


def _require_exam(request: Request) -> ExamSession:
    exam: Optional[ExamSession] = session.get(_sid(request), "exam_session")
    if exam is None:
        raise HTTPException(status_code=404, detail="시험 세션이 없습니다.")
    return exam


def _question_to_dict(q: Question, reveal: bool = False) -> dict:
    d = {
        "id": q.id,
        "part": q.part,
        "prompt": q.prompt,
        "choices": q.choices,
        "choice_texts": q.choice_texts,
        "passage_id": q.passage_id,
        "question_number": q.question_number,
        "is_listening": q.is_listening,
    }
    # 정답/해설은 시험이 끝난 뒤에만 내려보낸다
    if reveal:
        d["correct_choice"] = q.correct_choice
        d["explanation"] = q.explanation
    return d


def _snapshot_to_dict(exam: ExamSession, snap: ExamSnapshot) -> dict:
    q = snap.current_question
    answer = exam.answer_for(q.id)
    return {
        "status": snap.status.value,
        "current_index": snap.current_index,
        "total": snap.total_questions,
        "seconds_remaining": snap.seconds_remaining,
        "time_display": snap.time_display,
        "is_time_warning": snap.is_time_warning,
        "progress_percent": snap.progress_percent,
        "answered_count": snap.answered_count,
        "unanswered_count": snap.unanswered_count,
        "flagged_ids": sorted(snap.flagged_ids),
        "navigation_locked": q.is_listening,
        "question": _question_to_dict(q, reveal=snap.status.is_terminal),
        "saved_answer": answer.selected_choice if answer else "",
        "is_flagged": snap.is_flagged(q.id),
    }


def _state_response(exam: ExamSession) -> dict:
    d = _snapshot_to_dict(exam, exam.snapshot())
    d["ok"] = True
    return d


def _deliver_in_background(sid: str, exam: ExamSession, sink, backoff_base: float) -> None:
    """시간 만료로 자동 제출된 결과를 백그라운드에서 저장."""
    record = exam.submission
    try:
        result_id = deliver_submission(record, sink, backoff_base=backoff_base)
    except PersistenceFailed as e:
        if session.get(sid, "exam_session") is exam:
            session.put(sid, "submission_error", e)
        return
    if session.get(sid, "exam_session") is exam:
        session.put(sid, "result_id", result_id)
        session.put(sid, "submission_error", None)


def _install_session(request: Request, exam: ExamSession) -> None:
    """새 시험 세션을 사용자 세션에 연결. 이전 시험은 폐기한다."""
    sid = _sid(request)
    app_state = request.app.state
    session.reset(sid)

    def on_change(snapshot: ExamSnapshot) -> None:
        if snapshot.status == SessionStatus.EXPIRED:
            threading.Thread(
                target=_deliver_in_background,
                args=(sid, exam, app_state.result_sink, app_state.persist_backoff_base),
                daemon=True,
            ).start()

    exam.subscribe(on_change)
    autosaver = AutoSaver(exam, app_state.progress_store, exam.config.config_id).attach()
    session.put(sid, "exam_session", exam)
    session.put(sid, "autosaver", autosaver)


async def _deliver(request: Request, exam: ExamSession) -> str:
    sid = _sid(request)
    try:
        result_id = await asyncio.to_thread(
            deliver_submission,
            exam.submission,
            request.app.state.result_sink,
            backoff_base=request.app.state.persist_backoff_base,
        )
    except PersistenceFailed as e:
        session.put(sid, "submission_error", e)
        raise
    session.put(sid, "result_id", result_id)
    session.put(sid, "submission_error", None)
    return result_id


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.post("/api/start-exam")
async def start_exam(body: StartExamBody, request: Request):
    try:
        exam_config = ExamConfiguration(
            exam_set_id=body.exam_set_id,
            selected_parts=frozenset(body.parts),
            question_count=body.question_count,
            time_limit_minutes=body.time_limit_minutes,
            time_mode=body.time_mode,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=[err["msg"] for err in e.errors()])

    exam = await asyncio.to_thread(
        open_session,
        exam_config,
        request.app.state.question_supply,
        request.app.state.clock_factory(),
        body.scale_time_limit,
    )
    _install_session(request, exam)
    exam.start()
    logger.info(f"[{_sid(request)[:8]}] 시험 시작: 파트 {sorted(exam_config.selected_parts)}, {exam.total_questions}문항")

    d = _state_response(exam)
    d["config"] = exam.config.model_dump(mode="json")
    return d


@router.get("/api/exam-state")
async def get_exam_state(request: Request):
    exam = _require_exam(request)
    d = _state_response(exam)
    d["question_ids"] = [q.id for q in exam.questions]
    return d


@router.post("/api/save-answer")
async def save_answer(body: SaveAnswerBody, request: Request):
    exam = _require_exam(request)
    exam.select_answer(body.question_id, body.answer)
    return {"ok": True, "answered_count": exam.answered_count}


@router.post("/api/navigate")
async def navigate(body: NavigateBody, request: Request):
    exam = _require_exam(request)
    exam.go_to(body.index)
    return _state_response(exam)


@router.post("/api/next")
async def next_question(request: Request):
    exam = _require_exam(request)
    exam.next()
    return _state_response(exam)


@router.post("/api/previous")
async def previous_question(request: Request):
    exam = _require_exam(request)
    exam.previous()
    return _state_response(exam)


@router.post("/api/flag")
async def toggle_flag(body: FlagBody, request: Request):
    exam = _require_exam(request)
    flagged = exam.toggle_flag(body.question_id)
    return {"ok": True, "question_id": body.question_id, "flagged": flagged}


@router.post("/api/pause")
async def pause_exam(request: Request):
    exam = _require_exam(request)
    exam.pause()
    return _state_response(exam)


@router.post("/api/resume")
async def resume_exam(request: Request):
    exam = _require_exam(request)
    exam.resume()
    return _state_response(exam)


@router.post("/api/save-progress")
async def save_progress(request: Request):
    _require_exam(request)
    autosaver: AutoSaver = session.get(_sid(request), "autosaver")
    checkpoint = autosaver.save_now()
    return {
        "ok": True,
        "config_id": checkpoint.config_id,
        "saved_at": checkpoint.saved_at.isoformat(),
    }


@router.post("/api/resume-saved")
async def resume_saved(body: ResumeSavedBody, request: Request):
    checkpoint = request.app.state.progress_store.load(body.exam_config.config_id)
    if checkpoint is None:
        raise HTTPException(status_code=404, detail="저장된 진행 상황이 없습니다.")

    questions = await asyncio.to_thread(
        load_questions, request.app.state.question_supply, body.exam_config
    )
    exam = ExamSession.restore(
        body.exam_config, questions, checkpoint, request.app.state.clock_factory()
    )
    _install_session(request, exam)
    logger.info(f"[{_sid(request)[:8]}] 저장된 시험 이어풀기: {checkpoint.current_index + 1}번 문제부터")
    return _state_response(exam)


@router.post("/api/submit-exam")
async def submit_exam(request: Request):
    exam = _require_exam(request)
    result = exam.submit()
    result_id = await _deliver(request, exam)
    return {"ok": True, "score": result.score_percent, "result_id": result_id}


@router.post("/api/retry-persist")
async def retry_persist(request: Request):
    exam = _require_exam(request)
    if session.get(_sid(request), "submission_error") is None:
        raise HTTPException(status_code=404, detail="다시 저장할 결과가 없습니다.")
    result_id = await _deliver(request, exam)
    return {"ok": True, "result_id": result_id}


@router.get("/api/results")
async def get_results(request: Request):
    exam = _require_exam(request)
    state = exam.final_state()
    result = exam.result
    sid = _sid(request)
    error: Optional[PersistenceFailed] = session.get(sid, "submission_error")

    incorrect_data = []
    for q in exam.incorrect_questions():
        d = _question_to_dict(q, reveal=True)
        answer = state.answers.get(q.id)
        d["user_answer"] = answer.selected_choice if answer else ""
        incorrect_data.append(d)

    return {
        "status": state.status.value,
        "termination_reason": exam.termination_reason.value,
        "score": result.score_percent,
        "total": result.total_questions,
        "correct_count": result.correct_count,
        "incorrect_count": result.incorrect_count,
        "answered_count": result.answered_count,
        "unanswered_count": result.unanswered_count,
        "time_spent_seconds": result.time_spent_seconds,
        "part_scores": {
            str(part): score.model_dump() for part, score in result.per_part_breakdown.items()
        },
        "incorrect_questions": incorrect_data,
        "result_id": session.get(sid, "result_id"),
        "persistence_error": error.message if error else None,
    }


@router.post("/api/reset")
async def reset_session(request: Request):
    session.reset(_sid(request))
    return {"ok": True}
