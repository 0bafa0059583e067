"""일정 생성 파이프라인 실행 서비스."""

from __future__ import annotations

import asyncio

from app.core.config import get_settings
from app.core.logger import get_logger
from app.core.route_policy import build_route_policy_config
from app.core.timeout_policy import get_timeout_policy
from app.graph.itinerary.nodes.route import build_day_plans, link_stops
from app.graph.itinerary.workflow import compiled_itinerary_graph
from app.schemas.enums import DurationType
from app.schemas.itinerary import Itinerary, ItineraryResponse
from app.schemas.place import Coordinate
from app.services.completion_service import CompletionServiceProtocol
from app.services.events_service import EventsServiceProtocol
from app.services.places_service import PlacesServiceProtocol

logger = get_logger(__name__)

_MAX_TRIP_DAYS = 7


class ItineraryPlanningError(RuntimeError):
    """일정을 만들 수 없을 때(빈 플랜, 해석된 정거장 없음, 시간 초과) 발생하는 예외."""


def _build_configurable(
    places_service: PlacesServiceProtocol | None,
    events_service: EventsServiceProtocol | None,
    completion_service: CompletionServiceProtocol | None,
) -> dict:
    services = {
        "places_service": places_service,
        "events_service": events_service,
        "completion_service": completion_service,
    }
    return {key: value for key, value in services.items() if value is not None}


async def plan_itinerary(
    prompt: str,
    origin: Coordinate | None = None,
    *,
    places_service: PlacesServiceProtocol | None = None,
    events_service: EventsServiceProtocol | None = None,
    completion_service: CompletionServiceProtocol | None = None,
) -> Itinerary:
    """요청 문장과 출발 좌표로 일정을 생성합니다.

    서비스를 넘기지 않으면 각 노드가 기본 provider 싱글톤을 사용한다.

    Raises:
        ItineraryPlanningError: 일정을 구성할 수 없는 경우
    """
    timeout_policy = get_timeout_policy()
    initial_state = {"prompt": prompt, "origin": origin}
    config = {"configurable": _build_configurable(places_service, events_service, completion_service)}

    try:
        result = await asyncio.wait_for(
            compiled_itinerary_graph.ainvoke(initial_state, config=config),
            timeout=timeout_policy.request_timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        logger.error("Itinerary pipeline timed out: timeout_s=%s", timeout_policy.request_timeout_seconds)
        raise ItineraryPlanningError("일정 생성 시간이 초과되었습니다.") from exc

    if error := result.get("error"):
        logger.error("Itinerary pipeline failed: error=%s", error)
        raise ItineraryPlanningError(error)

    itinerary = result.get("itinerary")
    if itinerary is None:
        raise ItineraryPlanningError("itinerary 결과가 없습니다.")
    return itinerary


def _truncate_stops(itinerary: Itinerary, origin: Coordinate, max_stops: int) -> Itinerary:
    if len(itinerary.stops) <= max_stops:
        return itinerary

    policy = build_route_policy_config()
    routed, total_distance, total_walk, max_from_origin = link_stops(itinerary.stops[:max_stops], origin, policy)
    return itinerary.model_copy(
        update={
            "stops": routed,
            "total_distance_km": total_distance,
            "total_walk_minutes": total_walk,
            "max_distance_from_origin_km": round(max_from_origin, 2),
            "days": build_day_plans(routed) if itinerary.duration_type == DurationType.MULTI_DAY else [],
        }
    )


async def plan_quick_trip(
    prompt: str,
    origin: Coordinate | None = None,
    max_stops: int = 3,
    **services,
) -> Itinerary:
    """정거장 수를 max_stops 이하로 자른 짧은 일정을 생성합니다."""
    settings = get_settings()
    itinerary = await plan_itinerary(prompt, origin, **services)
    anchor = origin or Coordinate(lat=settings.DEFAULT_ORIGIN_LAT, lng=settings.DEFAULT_ORIGIN_LNG)
    return _truncate_stops(itinerary, anchor, max(1, max_stops))


async def plan_multi_day_trip(
    prompt: str,
    days: int,
    origin: Coordinate | None = None,
    **services,
) -> Itinerary:
    """요청 문장에 일수를 덧붙여 여러 날 일정을 생성합니다."""
    day_count = max(1, min(_MAX_TRIP_DAYS, int(days)))
    return await plan_itinerary(f"{prompt} ({day_count} days)", origin, **services)


def build_itinerary_response(itinerary: Itinerary) -> ItineraryResponse:
    """Itinerary를 API 응답 형식으로 변환합니다."""
    return ItineraryResponse(
        itinerary=itinerary,
        quality_score=itinerary.quality_score,
        issues=itinerary.issues,
        no_events_found=itinerary.no_events_found,
        is_local_search=itinerary.is_local_search,
    )
