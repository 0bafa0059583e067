"""앱 시작 시 적용하는 로깅 설정."""

from __future__ import annotations

import copy
import logging.config
import os
from typing import Any

from uvicorn.config import LOGGING_CONFIG as UVICORN_LOGGING_CONFIG

_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
# provider HTTP 호출마다 찍히는 라이브러리 로그
_QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "openai")


def build_logging_config(level: str | None = None) -> dict[str, Any]:
    """uvicorn 포맷터로 root/서버 로그를 맞추고 HTTP 클라이언트 로그는 WARNING으로 낮춥니다."""
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    config = copy.deepcopy(UVICORN_LOGGING_CONFIG)
    config["root"] = {"handlers": ["default"], "level": log_level}
    config["loggers"].update({name: {**config["loggers"][name], "level": log_level} for name in _SERVER_LOGGERS})
    config["loggers"].update({name: {"level": "WARNING"} for name in _QUIET_LOGGERS})
    return config


def configure_logging(level: str | None = None) -> None:
    """dictConfig로 로깅을 구성합니다."""
    logging.config.dictConfig(build_logging_config(level))
