"""Supabase 클라이언트 생성. 환경변수(SUPABASE_URL, SUPABASE_KEY)는 config에서 읽는다."""
import logging

from supabase import Client, create_client

import config

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    return bool(config.SUPABASE_URL and config.SUPABASE_KEY)


def get_supabase() -> Client:
    if not is_configured():
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    logger.info("Supabase 클라이언트 생성")
    return create_client(config.SUPABASE_URL, config.SUPABASE_KEY)
