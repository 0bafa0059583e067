"""요청/LLM/provider 호출 타임아웃 정책."""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial

from app.core.config import Settings, get_settings

_MIN_SECONDS = 1
_CONNECT_SHARE = 0.3
_CONNECT_CEILING_SECONDS = 5.0


def _seconds(value: int | float | None, default: int, ceiling: int | None = None) -> int:
    """설정값을 1초 이상 정수로 바꾸고 상위 타임아웃을 넘지 않게 자릅니다."""
    try:
        seconds = int(default if value is None else value)
    except (TypeError, ValueError):
        seconds = int(default)
    seconds = max(_MIN_SECONDS, seconds)
    return seconds if ceiling is None else min(seconds, ceiling)


@dataclass(frozen=True, slots=True)
class TimeoutPolicy:
    """파이프라인 전체 타임아웃 정책.

    stop_resolution_timeout_seconds는 SearchPoint 하나를 해석하는 전체 시간 상한이며,
    places/events 타임아웃은 개별 provider 호출 한 번의 상한이다.
    """

    request_timeout_seconds: int
    llm_timeout_seconds: int
    external_api_timeout_seconds: int
    stop_resolution_timeout_seconds: int
    google_places_timeout_seconds: int
    ticketmaster_timeout_seconds: int


def build_timeout_policy(settings: Settings) -> TimeoutPolicy:
    """요청 타임아웃 > 외부 API 타임아웃 > provider 타임아웃 순서의 상한을 적용합니다."""
    request_timeout = _seconds(settings.REQUEST_TIMEOUT_SECONDS, 60)
    within_request = partial(_seconds, ceiling=request_timeout)
    external_timeout = within_request(settings.EXTERNAL_API_TIMEOUT_SECONDS, 15)
    within_external = partial(_seconds, ceiling=external_timeout)

    return TimeoutPolicy(
        request_timeout_seconds=request_timeout,
        llm_timeout_seconds=within_request(settings.LLM_TIMEOUT_SECONDS, 30),
        external_api_timeout_seconds=external_timeout,
        stop_resolution_timeout_seconds=within_request(settings.STOP_RESOLUTION_TIMEOUT_SECONDS, 25),
        google_places_timeout_seconds=within_external(settings.GOOGLE_PLACES_TIMEOUT_SECONDS, 10),
        ticketmaster_timeout_seconds=within_external(settings.TICKETMASTER_TIMEOUT_SECONDS, 10),
    )


def get_timeout_policy(settings: Settings | None = None) -> TimeoutPolicy:
    """현재 설정을 기반으로 타임아웃 정책을 반환합니다."""
    return build_timeout_policy(settings or get_settings())


def to_requests_timeout(total_timeout_seconds: int) -> tuple[float, float]:
    """provider 호출 한 번의 제한 시간을 requests용 (connect, read) 튜플로 나눕니다."""
    total = float(max(_MIN_SECONDS, int(total_timeout_seconds)))
    connect = min(_CONNECT_CEILING_SECONDS, max(1.0, total * _CONNECT_SHARE))
    if total <= connect:
        return connect, max(0.5, total * 0.5)
    return connect, total - connect
