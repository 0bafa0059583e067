"""지명별 기준 좌표 조회 유틸리티."""

from __future__ import annotations

import re

from app.core.logger import get_logger
from app.schemas.place import Coordinate

logger = get_logger(__name__)

# 길게 겹치는 이름을 먼저 매칭하도록 긴 이름부터 둔다.
AREA_ANCHOR_MAP: dict[str, Coordinate] = {
    "madison square garden": Coordinate(lat=40.7505, lng=-73.9934),
    "rockefeller center": Coordinate(lat=40.7587, lng=-73.9787),
    "brooklyn bridge": Coordinate(lat=40.7061, lng=-73.9969),
    "staten island": Coordinate(lat=40.5795, lng=-74.1502),
    "central park": Coordinate(lat=40.7829, lng=-73.9654),
    "times square": Coordinate(lat=40.7580, lng=-73.9855),
    "bryant park": Coordinate(lat=40.7536, lng=-73.9832),
    "wall street": Coordinate(lat=40.7074, lng=-74.0113),
    "rockefeller": Coordinate(lat=40.7587, lng=-73.9787),
    "manhattan": Coordinate(lat=40.7831, lng=-73.9712),
    "brooklyn": Coordinate(lat=40.6782, lng=-73.9442),
    "queens": Coordinate(lat=40.7282, lng=-73.7949),
    "bronx": Coordinate(lat=40.8448, lng=-73.8648),
    "soho": Coordinate(lat=40.7233, lng=-74.0030),
    "msg": Coordinate(lat=40.7505, lng=-73.9934),
}


def find_area_anchor(text: str | None) -> tuple[str, Coordinate] | None:
    """텍스트에 포함된 첫 번째(가장 긴) 지명과 좌표를 반환합니다."""
    normalized = (text or "").strip().lower()
    if not normalized:
        return None

    for name, coordinate in AREA_ANCHOR_MAP.items():
        if re.search(rf"\b{re.escape(name)}\b", normalized):
            return name, coordinate
    return None


def resolve_anchor(text: str | None, default: Coordinate) -> Coordinate:
    """지명 좌표를 찾고, 없으면 default를 반환합니다."""
    found = find_area_anchor(text)
    if found is None:
        if text:
            logger.debug("Area anchor not found: text=%s", text)
        return default
    return found[1]
