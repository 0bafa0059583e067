"""표준화된 로거 모듈.

프로젝트 전체에서 일관된 로깅 형식을 제공하고, 요청 세션 단위로 로그를 묶을 수 있게 합니다.
"""

import logging
import os
import sys
from typing import Any

_LOG_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level() -> int:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """표준화된 로거를 반환합니다.

    Args:
        name: 로거 이름 (일반적으로 __name__ 사용).

    Returns:
        설정된 로거 인스턴스.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        level = _resolve_level()
        logger.setLevel(level)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(handler)

    return logger


class SessionLoggerAdapter(logging.LoggerAdapter):
    """메시지 앞에 planning session id를 붙이는 어댑터."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        session_id = (self.extra or {}).get("session_id", "-")
        return f"session={session_id} {msg}", kwargs


def get_session_logger(name: str, session_id: str) -> SessionLoggerAdapter:
    """세션 id가 붙는 로거를 반환합니다."""
    return SessionLoggerAdapter(get_logger(name), {"session_id": session_id})
