"""경로 조립/품질 검사에서 쓰는 거리·시간 정책 공용 모듈."""

from __future__ import annotations

from dataclasses import dataclass, field

from app.core.config import Settings, get_settings
from app.schemas.enums import DurationType

_GENERAL_DISTANCE_CEILING_KM = {
    DurationType.FEW_HOURS: 3.0,
    DurationType.FULL_DAY: 10.0,
    DurationType.MULTI_DAY: 15.0,
}
_LOCAL_DISTANCE_CEILING_KM = {
    DurationType.FEW_HOURS: 2.5,
    DurationType.FULL_DAY: 6.0,
    DurationType.MULTI_DAY: 8.0,
}
_MAX_STOPS = {
    DurationType.FEW_HOURS: 3,
    DurationType.FULL_DAY: 6,
    DurationType.MULTI_DAY: 5,
}

_LOCAL_NEAREST_RADIUS_KM = 2.0
_LOCAL_FIRST_STOP_RADIUS_KM = 2.5
_LOCAL_CENTER_WEIGHT = 0.5
_MIN_VARIETY_RATIO = 0.3
_VARIETY_MIN_STOPS = 3


@dataclass(slots=True)
class RoutePolicyConfig:
    """경로 정책 설정.

    multi_day의 거리/정거장 상한은 하루 기준이며 day_count를 곱해 사용한다.
    """

    walk_minutes_per_km: float
    local_max_distance_km: float
    local_max_leg_km: float
    venue_stay_minutes: int
    event_duration_minutes: int
    local_nearest_radius_km: float = _LOCAL_NEAREST_RADIUS_KM
    local_first_stop_radius_km: float = _LOCAL_FIRST_STOP_RADIUS_KM
    local_center_weight: float = _LOCAL_CENTER_WEIGHT
    min_variety_ratio: float = _MIN_VARIETY_RATIO
    variety_min_stops: int = _VARIETY_MIN_STOPS
    general_distance_ceiling_km: dict[DurationType, float] = field(
        default_factory=lambda: dict(_GENERAL_DISTANCE_CEILING_KM)
    )
    local_distance_ceiling_km: dict[DurationType, float] = field(
        default_factory=lambda: dict(_LOCAL_DISTANCE_CEILING_KM)
    )
    max_stops: dict[DurationType, int] = field(default_factory=lambda: dict(_MAX_STOPS))

    def walk_minutes(self, distance_km: float) -> int:
        """거리(km)를 도보 분으로 환산합니다."""
        return int(round(max(0.0, distance_km) * self.walk_minutes_per_km))

    def distance_ceiling_km(self, duration_type: DurationType, *, local: bool, day_count: int = 0) -> float:
        """일정 길이별 총 이동거리 상한을 반환합니다."""
        table = self.local_distance_ceiling_km if local else self.general_distance_ceiling_km
        ceiling = table.get(duration_type, table[DurationType.FULL_DAY])
        if duration_type == DurationType.MULTI_DAY:
            ceiling *= max(1, day_count)
        return ceiling

    def max_stop_count(self, duration_type: DurationType, day_count: int = 0) -> int:
        """일정 길이별 정거장 수 상한을 반환합니다."""
        limit = self.max_stops.get(duration_type, self.max_stops[DurationType.FULL_DAY])
        if duration_type == DurationType.MULTI_DAY:
            limit *= max(1, day_count)
        return limit


def build_route_policy_config(settings: Settings | None = None) -> RoutePolicyConfig:
    """설정값으로 경로 정책 구성을 만듭니다."""
    resolved_settings = settings or get_settings()
    return RoutePolicyConfig(
        walk_minutes_per_km=float(resolved_settings.WALK_MINUTES_PER_KM),
        local_max_distance_km=float(resolved_settings.LOCAL_SEARCH_MAX_DISTANCE_KM),
        local_max_leg_km=float(resolved_settings.LOCAL_SEARCH_MAX_LEG_KM),
        venue_stay_minutes=max(1, int(resolved_settings.VENUE_STAY_MINUTES)),
        event_duration_minutes=max(1, int(resolved_settings.EVENT_DURATION_MINUTES)),
    )
