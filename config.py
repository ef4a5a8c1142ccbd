import os

from dotenv import load_dotenv

load_dotenv()

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
STATIC_DIR = os.path.join(BASE_DIR, "static")
LOG_FILE = os.getenv("LOG_FILE", os.path.join(BASE_DIR, "launch.log"))

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
OPEN_BROWSER = os.getenv("OPEN_BROWSER", "0") in ("1", "true", "yes")   # 화면(static/index.html)을 함께 배포할 때만 켠다
SESSION_TTL = int(os.getenv("SESSION_TTL", "3600"))     # 웹 세션 만료 (초)

# 시험 기본값 (TOEIC 정규 시험: 200문항 / 120분)
DEFAULT_TIME_LIMIT_MINUTES = 120
DEFAULT_QUESTION_COUNT = 200

# 타이머 설정
TICK_INTERVAL = float(os.getenv("TICK_INTERVAL", "1.0"))                # 초 단위 틱
TIME_WARNING_SECONDS = int(os.getenv("TIME_WARNING_SECONDS", "600"))    # 10분 미만이면 경고
AUTOSAVE_INTERVAL_SECONDS = int(os.getenv("AUTOSAVE_INTERVAL_SECONDS", "30"))

# 결과 저장 재시도
PERSIST_MAX_RETRIES = int(os.getenv("PERSIST_MAX_RETRIES", "3"))
PERSIST_BACKOFF_BASE = float(os.getenv("PERSIST_BACKOFF_BASE", "1.0"))

# Supabase 설정 (둘 다 있어야 원격 저장소 사용, 없으면 샘플 문제 + 메모리 저장)
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")
SUPABASE_USER_ID = os.getenv("SUPABASE_USER_ID", "")    # 결과 저장 시 exam_sessions.user_id
