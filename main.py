"""
main.py — TOEIC 모의고사 앱 진입점

uvicorn 서버를 백그라운드 스레드로 띄우고, 준비되면 브라우저(앱 모드)를 연다.
기본은 서버만 실행한다. OPEN_BROWSER=1 이고 static/index.html 이 있을 때만 브라우저를 연다.
"""

import logging
import os
import socket
import subprocess
import sys
import threading
import time
import traceback
import webbrowser

# ── 모듈 경로 (반드시 최상단) ────────────────────────────────────────────────
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

from config import BASE_DIR, DEFAULT_HOST, DEFAULT_PORT, LOG_FILE, OPEN_BROWSER, STATIC_DIR

logger = logging.getLogger(__name__)

_BROWSER_CANDIDATES = [
    r"C:\Program Files\Google\Chrome\Application\chrome.exe",
    r"C:\Program Files\Microsoft\Edge\Application\msedge.exe",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
]


def _configure_logging() -> None:
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    try:
        logging.basicConfig(
            level=logging.INFO,
            format=fmt,
            handlers=[
                logging.FileHandler(LOG_FILE, encoding="utf-8"),
                logging.StreamHandler(sys.stdout),
            ],
        )
    except PermissionError:
        # 로그 파일 점유 시 콘솔 출력만 사용
        logging.basicConfig(level=logging.INFO, format=fmt)


# ── 포트 / 서버 ──────────────────────────────────────────────────────────────

def _pick_port() -> int:
    """PORT가 비어 있으면 그대로 쓰고, 사용 중이면 OS가 고른 빈 포트."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((DEFAULT_HOST, DEFAULT_PORT))
            return DEFAULT_PORT
        except OSError:
            pass
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((DEFAULT_HOST, 0))
        port = s.getsockname()[1]
    logger.warning(f"포트 {DEFAULT_PORT} 사용 중 → {port} 사용")
    return port


def _server_ready(port: int, timeout: float = 15.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection((DEFAULT_HOST, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _serve(port: int) -> None:
    try:
        import uvicorn
        from api.app import create_app

        logger.info(f"Uvicorn 서버 시작 - {DEFAULT_HOST}:{port}")
        uvicorn.run(create_app(), host=DEFAULT_HOST, port=port, log_level="warning")
    except Exception:
        logger.error(f"서버 오류 발생:\n{traceback.format_exc()}")


def _should_open_browser() -> bool:
    if not OPEN_BROWSER:
        return False
    if not os.path.exists(os.path.join(STATIC_DIR, "index.html")):
        logger.warning(f"{STATIC_DIR}/index.html 이 없어 브라우저를 열지 않습니다. API만 제공합니다.")
        return False
    return True


def _open_browser(url: str) -> None:
    """크롬/엣지가 있으면 앱 모드 창으로, 없으면 기본 브라우저로 연다."""
    for path in _BROWSER_CANDIDATES:
        if os.path.exists(path):
            logger.info(f"브라우저 실행: {path}")
            subprocess.Popen([path, f"--app={url}", "--no-first-run", "--window-size=1280,800"])
            return
    webbrowser.open(url)


def main() -> int:
    _configure_logging()
    logger.info("=== TOEIC Mock Test 시작 ===")
    os.chdir(BASE_DIR)

    port = _pick_port()
    threading.Thread(target=_serve, args=(port,), daemon=True).start()

    if not _server_ready(port):
        logger.error("서버 시작 제한 시간을 초과했습니다. 같은 포트를 쓰는 프로세스를 확인해 주세요.")
        return 1

    url = f"http://{DEFAULT_HOST}:{port}"
    logger.info(f"서버 준비 완료: {url}")
    if _should_open_browser():
        _open_browser(url)

    # 메인 스레드 유지
    try:
        while True:
            time.sleep(10)
    except KeyboardInterrupt:
        logger.info("사용자에 의해 종료되었습니다.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
