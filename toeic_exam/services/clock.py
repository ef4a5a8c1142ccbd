"""
services/clock.py

1초 단위 카운트다운 시계.

Public API:
  - arm(seconds)        : 카운트다운 시작 (동작 중이면 기존 틱을 취소하고 재설정)
  - disarm()            : 정지. 여러 번 호출해도 안전하며 대기 중인 틱도 취소한다.
  - seconds_remaining() : 남은 시간(초)
  - now()               : 단조 증가 시각(초). 문항별 체류 시간 계산용.
  - 만료/틱 콜백        : 각각 구독자 1개

만료 콜백은 arm() 1회당 최대 1번 호출된다.
구현체:
  - ThreadingClock : threading.Timer 기반 실제 시계
  - ManualClock    : advance()로만 진행되는 결정적 시계 (테스트/시뮬레이션)
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from config import TICK_INTERVAL

logger = logging.getLogger(__name__)


def format_time(seconds: int) -> str:
    """남은 시간을 MM:SS 형식으로 변환."""
    seconds = max(0, int(seconds))
    minutes = seconds // 60
    return f"{minutes:02d}:{seconds % 60:02d}"


class Clock(ABC):
    """
    시계 공통 베이스. 콜백 등록/발화만 담당한다.

    구현체는 arm/disarm/seconds_remaining/is_armed를 반드시 구현해야 한다.
    """

    def __init__(self) -> None:
        self._on_expire: Optional[Callable[[], None]] = None
        self._on_tick: Optional[Callable[[int], None]] = None

    def set_expiry_callback(self, callback: Optional[Callable[[], None]]) -> None:
        self._on_expire = callback

    def set_tick_callback(self, callback: Optional[Callable[[int], None]]) -> None:
        self._on_tick = callback

    def clear_callbacks(self) -> None:
        self._on_expire = None
        self._on_tick = None

    @abstractmethod
    def arm(self, seconds: int) -> None:
        ...

    @abstractmethod
    def disarm(self) -> None:
        ...

    @abstractmethod
    def seconds_remaining(self) -> int:
        ...

    @property
    @abstractmethod
    def is_armed(self) -> bool:
        ...

    def now(self) -> float:
        return time.monotonic()

    def _emit_tick(self, remaining: int) -> None:
        if self._on_tick is not None:
            self._on_tick(remaining)

    def _emit_expire(self) -> None:
        logger.info("타이머 만료")
        if self._on_expire is not None:
            self._on_expire()


def _validate_seconds(seconds: int) -> int:
    if seconds < 1:
        raise ValueError(f"타이머는 1초 이상으로만 설정할 수 있습니다. (입력: {seconds})")
    return int(seconds)


class ThreadingClock(Clock):
    """
    threading.Timer로 매 interval마다 틱을 예약하는 시계.

    틱마다 다음 틱 하나만 예약하므로 동시에 살아 있는 타이머는 최대 1개.
    disarm()/재-arm() 시 세대(generation)를 올려, 이미 실행에 들어간 이전 틱도 무시한다.

    disarm() 시점에 진행 중이던 틱 구간의 남은 시간을 보관했다가, 다음 arm()의
    첫 틱을 그만큼 뒤에 예약한다. 일시정지/재개를 1초보다 자주 반복해도
    동작 중인 시간만큼은 카운트다운이 진행된다.
    """

    def __init__(self, interval: float = TICK_INTERVAL):
        super().__init__()
        self._interval = interval
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._remaining = 0
        self._armed = False
        self._next_tick_at: Optional[float] = None
        self._carry: Optional[float] = None

    def arm(self, seconds: int) -> None:
        seconds = _validate_seconds(seconds)
        with self._lock:
            self._cancel_locked()
            self._remaining = seconds
            self._armed = True
            delay = self._interval if self._carry is None else self._carry
            self._carry = None
            self._schedule_locked(delay)
        logger.debug(f"타이머 시작: {format_time(seconds)}")

    def disarm(self) -> None:
        with self._lock:
            if self._armed and self._next_tick_at is not None:
                self._carry = min(self._interval, max(0.0, self._next_tick_at - time.monotonic()))
            self._cancel_locked()
            self._armed = False

    def seconds_remaining(self) -> int:
        with self._lock:
            return self._remaining

    @property
    def is_armed(self) -> bool:
        with self._lock:
            return self._armed

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._next_tick_at = None
        self._generation += 1

    def _schedule_locked(self, delay: float) -> None:
        timer = threading.Timer(delay, self._tick, args=(self._generation,))
        timer.daemon = True
        self._timer = timer
        self._next_tick_at = time.monotonic() + delay
        timer.start()

    def _tick(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._armed:
                return
            self._remaining -= 1
            remaining = self._remaining
            expired = remaining <= 0
            if expired:
                self._remaining = 0
                self._armed = False
                self._timer = None
                self._next_tick_at = None
                self._generation += 1
            else:
                self._schedule_locked(self._interval)

        # 콜백은 시계 락 밖에서 호출 (콜백이 disarm()을 불러도 교착되지 않도록)
        try:
            self._emit_tick(remaining)
        except Exception:
            logger.exception("틱 콜백 처리 중 오류")
        if expired:
            try:
                self._emit_expire()
            except Exception:
                logger.exception("만료 콜백 처리 중 오류")


class ManualClock(Clock):
    """
    외부에서 advance()를 호출해야만 진행되는 시계.

    advance(seconds)는 벽시계 시간을 흘려보내며, arm 상태라면 1초마다 틱을 발생시킨다.
    disarm 상태에서 흘려보낸 시간은 now()에만 반영된다 (일시정지 중 경과 시간 재현용).
    """

    def __init__(self, start: float = 0.0):
        super().__init__()
        self._now = float(start)
        self._remaining = 0
        self._armed = False
        self.arm_count = 0
        self.disarm_count = 0

    def arm(self, seconds: int) -> None:
        self._remaining = _validate_seconds(seconds)
        self._armed = True
        self.arm_count += 1

    def disarm(self) -> None:
        if self._armed:
            self.disarm_count += 1
        self._armed = False

    def seconds_remaining(self) -> int:
        return self._remaining

    @property
    def is_armed(self) -> bool:
        return self._armed

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        whole = int(seconds)
        for _ in range(whole):
            self._now += 1
            if not self._armed:
                continue
            self._remaining -= 1
            expired = self._remaining <= 0
            if expired:
                self._remaining = 0
                self._armed = False
            self._emit_tick(self._remaining)
            if expired:
                self._emit_expire()
        self._now += seconds - whole

    def tick(self) -> None:
        self.advance(1)

    def fire_expiry(self) -> None:
        """만료 신호를 강제로 다시 보낸다 (중복 신호 처리 확인용)."""
        self._emit_expire()
