"""거리 계산, 방위 기반 좌표 이동, 위치 필터링을 위한 지리 유틸리티."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass

from app.schemas.place import Coordinate

_MIN_LAT = -90.0
_MAX_LAT = 90.0
_MIN_LNG = -180.0
_MAX_LNG = 180.0
_EARTH_RADIUS_KM = 6371.0
_KM_PER_LAT_DEGREE = 110.574
_KM_PER_LNG_DEGREE_EQUATOR = 111.320
_EPSILON = 1e-6


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """두 좌표 간 대원 거리(km)를 반환합니다."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    return _EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bearing_deg(a: Coordinate, b: Coordinate) -> float:
    """a에서 b로 향하는 초기 방위각(0-360)을 반환합니다."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    d_lng = math.radians(b.lng - a.lng)
    x = math.sin(d_lng) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(d_lng)
    return (math.degrees(math.atan2(x, y)) + 360.0) % 360.0


def offset_coordinate(origin: Coordinate, bearing: float, distance_km: float) -> Coordinate:
    """origin에서 방위각 bearing으로 distance_km 이동한 좌표를 반환합니다."""
    angular = max(0.0, float(distance_km)) / _EARTH_RADIUS_KM
    theta = math.radians(bearing)
    lat1 = math.radians(origin.lat)
    lng1 = math.radians(origin.lng)

    lat2 = math.asin(math.sin(lat1) * math.cos(angular) + math.cos(lat1) * math.sin(angular) * math.cos(theta))
    lng2 = lng1 + math.atan2(
        math.sin(theta) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2),
    )
    lng_deg = (math.degrees(lng2) + 540.0) % 360.0 - 180.0
    return Coordinate(lat=_clamp(math.degrees(lat2), _MIN_LAT, _MAX_LAT), lng=lng_deg)


def jitter_coordinate(origin: Coordinate, max_distance_km: float, rng: random.Random) -> Coordinate:
    """origin 주변 max_distance_km 이내의 임의 좌표를 반환합니다."""
    distance = rng.uniform(0.0, max(0.0, float(max_distance_km)))
    return offset_coordinate(origin, rng.uniform(0.0, 360.0), distance)


@dataclass(frozen=True, slots=True)
class GeoRectangle:
    """지리 필터링에 사용하는 위경도 사각형."""

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    def __post_init__(self) -> None:
        min_lat, max_lat = sorted((float(self.min_lat), float(self.max_lat)))
        min_lng, max_lng = sorted((float(self.min_lng), float(self.max_lng)))

        min_lat = _clamp(min_lat, _MIN_LAT, _MAX_LAT)
        max_lat = _clamp(max_lat, _MIN_LAT, _MAX_LAT)
        min_lng = _clamp(min_lng, _MIN_LNG, _MAX_LNG)
        max_lng = _clamp(max_lng, _MIN_LNG, _MAX_LNG)

        if math.isclose(min_lat, max_lat):
            min_lat = _clamp(min_lat - _EPSILON, _MIN_LAT, _MAX_LAT)
            max_lat = _clamp(max_lat + _EPSILON, _MIN_LAT, _MAX_LAT)
        if math.isclose(min_lng, max_lng):
            min_lng = _clamp(min_lng - _EPSILON, _MIN_LNG, _MAX_LNG)
            max_lng = _clamp(max_lng + _EPSILON, _MIN_LNG, _MAX_LNG)

        object.__setattr__(self, "min_lat", min_lat)
        object.__setattr__(self, "min_lng", min_lng)
        object.__setattr__(self, "max_lat", max_lat)
        object.__setattr__(self, "max_lng", max_lng)

    def contains(self, point: Coordinate) -> bool:
        """점이 사각형 내부(경계 포함)에 있는지 반환합니다."""
        return self.min_lat <= point.lat <= self.max_lat and self.min_lng <= point.lng <= self.max_lng

    def to_google_location_restriction_payload(self) -> dict[str, dict[str, float]]:
        """Google Places `locationRestriction` payload 형식으로 직렬화합니다."""
        return {
            "rectangle": {
                "low": {"latitude": self.min_lat, "longitude": self.min_lng},
                "high": {"latitude": self.max_lat, "longitude": self.max_lng},
            }
        }

    @classmethod
    def around(cls, center: Coordinate, radius_km: float) -> GeoRectangle:
        """center를 중심으로 반경 radius_km를 덮는 사각형을 만듭니다."""
        margin = max(0.0, float(radius_km))
        lat_margin_deg = margin / _KM_PER_LAT_DEGREE
        center_lat = _clamp(center.lat, -89.999999, 89.999999)
        cos_lat = max(abs(math.cos(math.radians(center_lat))), _EPSILON)
        lng_margin_deg = margin / (_KM_PER_LNG_DEGREE_EQUATOR * cos_lat)

        return cls(
            min_lat=center.lat - lat_margin_deg,
            min_lng=center.lng - lng_margin_deg,
            max_lat=center.lat + lat_margin_deg,
            max_lng=center.lng + lng_margin_deg,
        )


def to_google_circle_payload(center: Coordinate, radius_m: float) -> dict[str, dict]:
    """Google Places `locationBias` circle payload를 만듭니다. 반경은 API 상한 50km로 제한합니다."""
    return {
        "circle": {
            "center": {"latitude": center.lat, "longitude": center.lng},
            "radius": _clamp(float(radius_m), 1.0, 50000.0),
        }
    }
