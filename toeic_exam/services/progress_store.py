"""
services/progress_store.py

진행 상황 자동 저장 / 이어풀기.

  - ProgressStore        : 저장소 프로토콜 (save / load / delete)
  - InMemoryProgressStore: 메모리 저장소
  - AutoSaver            : 세션을 구독해서 일정 간격마다, 그리고 일시정지 시 체크포인트를 저장.
                           세션이 끝나면 저장본을 지우고 구독을 해제한다.
"""

import logging
import threading
from typing import Callable, Dict, Optional, Protocol

from config import AUTOSAVE_INTERVAL_SECONDS
from toeic_exam.models.session_state import ExamSnapshot, SessionCheckpoint, SessionStatus

logger = logging.getLogger(__name__)


class ProgressStore(Protocol):
    def save(self, key: str, checkpoint: SessionCheckpoint) -> None:
        ...

    def load(self, key: str) -> Optional[SessionCheckpoint]:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryProgressStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._items: Dict[str, SessionCheckpoint] = {}

    def save(self, key: str, checkpoint: SessionCheckpoint) -> None:
        with self._lock:
            self._items[key] = checkpoint

    def load(self, key: str) -> Optional[SessionCheckpoint]:
        with self._lock:
            return self._items.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)


class AutoSaver:
    """
    세션 상태 구독자.

    Args:
        session:  ExamSession
        store:    ProgressStore
        key:      저장 키 (보통 사용자 세션 ID)
        interval: 저장 간격 (세션 시계 기준 초)
    """

    def __init__(self, session, store: ProgressStore, key: str,
                 interval: int = AUTOSAVE_INTERVAL_SECONDS):
        self.session = session
        self.store = store
        self.key = key
        self.interval = interval
        self.save_count = 0
        self._last_saved_at: Optional[float] = None
        self._last_status: Optional[SessionStatus] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self) -> "AutoSaver":
        if self._unsubscribe is None:
            self._last_saved_at = self.session.now()
            self._last_status = self.session.status
            self._unsubscribe = self.session.subscribe(self._on_change)
        return self

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def save_now(self) -> SessionCheckpoint:
        checkpoint = self.session.checkpoint()
        self.store.save(self.key, checkpoint)
        self._last_saved_at = self.session.now()
        self.save_count += 1
        logger.debug(f"진행 상황 저장: {self.key} ({checkpoint.current_index + 1}번 문제)")
        return checkpoint

    def _on_change(self, snapshot: ExamSnapshot) -> None:
        previous, self._last_status = self._last_status, snapshot.status

        if snapshot.status.is_terminal:
            self.store.delete(self.key)
            self.detach()
            return

        if snapshot.status == SessionStatus.PAUSED and previous != SessionStatus.PAUSED:
            self.save_now()
        elif snapshot.status == SessionStatus.RUNNING:
            if self.session.now() - (self._last_saved_at or 0.0) >= self.interval:
                self.save_now()
