"""
api/app.py — FastAPI 앱 인스턴스 + 세션 미들웨어 + 시험 오류 → HTTP 응답 변환 + static 파일 서빙
"""

import logging
import os
import threading
import time
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from config import PERSIST_BACKOFF_BASE, SESSION_TTL, STATIC_DIR, SUPABASE_USER_ID
from api.routes import router
from api.sample_questions import SAMPLE_QUESTIONS
import api.session as session
from toeic_exam.services.clock import Clock, ThreadingClock
from toeic_exam.services.errors import ErrorCode, ExamSessionError
from toeic_exam.services.progress_store import InMemoryProgressStore, ProgressStore
from toeic_exam.services.question_supply import (
    InMemoryQuestionSupply,
    QuestionSupply,
    SupabaseQuestionSupply,
)
from toeic_exam.services.result_sink import InMemoryResultSink, ResultSink, SupabaseResultSink
from toeic_exam.services.supabase_client import get_supabase, is_configured

logger = logging.getLogger(__name__)

SESSION_COOKIE = "toeic_session"

_STATUS_BY_CODE = {
    ErrorCode.INVALID_TRANSITION: 409,
    ErrorCode.ALREADY_SUBMITTED: 409,
    ErrorCode.OUT_OF_RANGE: 422,
    ErrorCode.NAVIGATION_LOCKED: 423,
    ErrorCode.LOAD_FAILED: 503,
    ErrorCode.PERSISTENCE_FAILED: 503,
}


def _default_backends() -> tuple:
    """Supabase 설정이 있으면 원격 저장소, 없으면 샘플 문제 + 메모리 저장소."""
    if is_configured():
        client = get_supabase()
        logger.info("Supabase 문제은행/결과 저장소 사용")
        return SupabaseQuestionSupply(client), SupabaseResultSink(client, SUPABASE_USER_ID)
    logger.info("Supabase 미설정: 샘플 문제 + 메모리 저장소 사용")
    return InMemoryQuestionSupply(SAMPLE_QUESTIONS), InMemoryResultSink()


def create_app(
    question_supply: Optional[QuestionSupply] = None,
    result_sink: Optional[ResultSink] = None,
    clock_factory: Optional[Callable[[], Clock]] = None,
    progress_store: Optional[ProgressStore] = None,
    persist_backoff_base: float = PERSIST_BACKOFF_BASE,
) -> FastAPI:
    app = FastAPI(title="TOEIC Mock Test", docs_url=None, redoc_url=None)

    if question_supply is None or result_sink is None:
        default_supply, default_sink = _default_backends()
        question_supply = question_supply or default_supply
        result_sink = result_sink or default_sink

    app.state.question_supply = question_supply
    app.state.result_sink = result_sink
    app.state.clock_factory = clock_factory or ThreadingClock
    app.state.progress_store = progress_store or InMemoryProgressStore()
    app.state.persist_backoff_base = persist_backoff_base

    # CORS (모바일 브라우저 등 다양한 출처 허용)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 세션 미들웨어: 쿠키에서 세션 ID를 읽고, 없으면 새로 발급
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=SESSION_TTL,
        )
        return response

    # 시험 오류는 화면까지 예외로 올라가지 않고 {ok: false, reason, detail} 응답이 된다
    @app.exception_handler(ExamSessionError)
    async def exam_error_handler(request: Request, exc: ExamSessionError):
        status_code = _STATUS_BY_CODE.get(exc.code, 400)
        if status_code >= 500:
            logger.error(f"{request.url.path} 실패 ({exc.code.value}): {exc.message}")
        else:
            logger.debug(f"{request.url.path} 거부 ({exc.code.value}): {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    app.include_router(router)

    # static 파일 마운트
    if os.path.isdir(STATIC_DIR):
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    # 루트 → index.html
    @app.get("/")
    async def serve_index():
        index_path = os.path.join(STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    # 만료 세션 주기적 정리 (5분마다)
    def _cleanup_loop():
        while True:
            time.sleep(300)
            removed = session.cleanup_expired()
            if removed:
                logger.info(f"만료 세션 {removed}개 정리")

    t = threading.Thread(target=_cleanup_loop, daemon=True)
    t.start()

    return app
