"""해석된 정거장으로 도보 경로를 조립하는 노드."""

from __future__ import annotations

import math
from collections import Counter
from typing import Sequence

from langchain_core.runnables import RunnableConfig

from app.core.geo import haversine_km
from app.core.logger import get_logger
from app.core.route_policy import RoutePolicyConfig, build_route_policy_config
from app.graph.itinerary.state import ItineraryState, PlanningSession
from app.schemas.enums import DurationType, SearchStrategyType
from app.schemas.itinerary import DayPlan, EventStop, Itinerary, ResolvedStop
from app.schemas.place import Coordinate
from app.schemas.plan import SearchPlan

logger = get_logger(__name__)

NO_EVENTS_NOTE = "No events found for the requested time period and location."

_DAY_THEMES = (
    ("museum", "Culture & Arts"),
    ("park", "Nature & Outdoors"),
    ("shopping", "Shopping & Dining"),
)
_DEFAULT_DAY_THEME = "Mixed Exploration"


def _distance(a: Coordinate | None, b: Coordinate | None) -> float:
    if a is None or b is None:
        return math.inf
    return haversine_km(a, b)


def _pick_next(
    last: Coordinate,
    remaining: list[ResolvedStop],
    session: PlanningSession,
    radius_km: float,
    center_weight: float,
) -> ResolvedStop:
    """마지막 좌표에서 가장 가까운 정거장을 고릅니다.

    로컬 검색이면 출발지 반경 밖 후보를 제외하고 출발지 거리도 가중해 고르며,
    반경 안 후보가 없으면 출발지에서 가장 가까운 후보를 고른다.
    """
    if not session.is_local_search:
        return min(remaining, key=lambda stop: _distance(last, stop.coordinate))

    origin = session.origin
    within = [stop for stop in remaining if _distance(origin, stop.coordinate) <= radius_km]
    if not within:
        return min(remaining, key=lambda stop: _distance(origin, stop.coordinate))
    return min(
        within,
        key=lambda stop: _distance(last, stop.coordinate) + center_weight * _distance(origin, stop.coordinate),
    )


def _order_group(stops: list[ResolvedStop], session: PlanningSession, policy: RoutePolicyConfig) -> list[ResolvedStop]:
    """시각이 정해진 이벤트를 기준으로 나머지 정거장을 최근접 이웃 순서로 끼워 넣습니다."""
    timed_events = sorted(
        (stop for stop in stops if isinstance(stop, EventStop) and stop.start_date is not None),
        key=lambda stop: stop.start_date,
    )
    timed_ids = {id(stop) for stop in timed_events}
    remaining = sorted((stop for stop in stops if id(stop) not in timed_ids), key=lambda stop: stop.stop_number)
    if not remaining and not timed_events:
        return []

    ordered: list[ResolvedStop] = []
    last = session.origin

    def _place(stop: ResolvedStop) -> None:
        nonlocal last
        ordered.append(stop)
        if stop.coordinate is not None:
            last = stop.coordinate

    if not timed_events:
        radius_km = policy.local_first_stop_radius_km
        if session.is_local_search:
            first = min(remaining, key=lambda stop: _distance(session.origin, stop.coordinate))
        else:
            first = remaining[0]
        remaining.remove(first)
        _place(first)
    else:
        radius_km = policy.local_nearest_radius_km
        for index, event in enumerate(timed_events):
            events_left = len(timed_events) - index
            take = math.ceil(len(remaining) / (events_left + 1))
            for _ in range(take):
                stop = _pick_next(last, remaining, session, radius_km, policy.local_center_weight)
                remaining.remove(stop)
                _place(stop)
            _place(event)

    while remaining:
        stop = _pick_next(last, remaining, session, radius_km, policy.local_center_weight)
        remaining.remove(stop)
        _place(stop)
    return ordered


def day_theme(stops: Sequence[ResolvedStop]) -> str:
    """하루 정거장의 주요 카테고리로 테마를 정합니다."""
    categories = Counter(
        stop.category.lower() for stop in stops if getattr(stop, "category", None)
    )
    if not categories:
        return _DEFAULT_DAY_THEME
    dominant = categories.most_common(1)[0][0]
    for keyword, theme in _DAY_THEMES:
        if keyword in dominant:
            return theme
    return _DEFAULT_DAY_THEME


def _group_by_day(stops: list[ResolvedStop]) -> list[tuple[int, list[ResolvedStop]]]:
    groups: dict[int, list[ResolvedStop]] = {}
    for stop in stops:
        groups.setdefault(stop.day_number or 1, []).append(stop)
    return sorted(groups.items())


def order_stops(
    stops: list[ResolvedStop],
    preserve_order: bool,
    session: PlanningSession,
    policy: RoutePolicyConfig | None = None,
) -> list[ResolvedStop]:
    """정거장 방문 순서를 정합니다. multi_day는 일자별로 따로 최적화합니다."""
    if preserve_order:
        return sorted(stops, key=lambda stop: stop.stop_number)

    resolved_policy = policy or build_route_policy_config()
    if session.duration_type == DurationType.MULTI_DAY:
        ordered: list[ResolvedStop] = []
        for _, day_stops in _group_by_day(stops):
            ordered.extend(_order_group(day_stops, session, resolved_policy))
        return ordered
    return _order_group(stops, session, resolved_policy)


def link_stops(
    ordered: list[ResolvedStop],
    origin: Coordinate,
    policy: RoutePolicyConfig,
) -> tuple[list[ResolvedStop], float, int, float]:
    """순서를 1..N으로 다시 매기고 구간 거리/도보 시간을 계산합니다.

    Returns:
        (정거장 목록, 총 거리 km, 총 도보 분, 출발지에서 가장 먼 거리 km)
    """
    routed: list[ResolvedStop] = []
    previous: Coordinate | None = None
    total_distance = 0.0
    total_walk = 0
    max_from_origin = 0.0
    for order, stop in enumerate(ordered, start=1):
        leg_km = 0.0
        if previous is not None and stop.coordinate is not None:
            leg_km = haversine_km(previous, stop.coordinate)
        walk_minutes = policy.walk_minutes(leg_km)
        total_distance += leg_km
        total_walk += walk_minutes
        if stop.coordinate is not None:
            previous = stop.coordinate
            max_from_origin = max(max_from_origin, haversine_km(origin, stop.coordinate))
        routed.append(
            stop.model_copy(
                update={
                    "order": order,
                    "distance_from_previous_km": leg_km,
                    "walk_time_minutes": walk_minutes,
                }
            )
        )
    return routed, total_distance, total_walk, max_from_origin


def build_day_plans(stops: list[ResolvedStop]) -> list[DayPlan]:
    return [
        DayPlan(day_number=day_number, theme=day_theme(day_stops), stop_orders=[stop.order for stop in day_stops])
        for day_number, day_stops in _group_by_day(stops)
    ]


def assemble_route(
    stops: list[ResolvedStop],
    preserve_order: bool,
    session: PlanningSession,
    plan: SearchPlan | None = None,
    policy: RoutePolicyConfig | None = None,
) -> Itinerary:
    """정거장을 순서대로 배치하고 구간 거리/도보 시간을 계산해 Itinerary를 만듭니다."""
    resolved_policy = policy or build_route_policy_config()
    ordered = order_stops(stops, preserve_order, session, resolved_policy)
    routed, total_distance, total_walk, max_from_origin = link_stops(ordered, session.origin, resolved_policy)

    warnings: list[str] = []
    if session.is_local_search and max_from_origin > resolved_policy.local_max_distance_km:
        warnings.append(
            f"Some stops are {max_from_origin:.1f} km from your starting point, "
            f"beyond the {resolved_policy.local_max_distance_km:.1f} km local range."
        )
        logger.warning(
            "Local route exceeds distance cap: session=%s max_km=%.2f cap_km=%.2f",
            session.session_id,
            max_from_origin,
            resolved_policy.local_max_distance_km,
        )

    days = build_day_plans(routed) if session.duration_type == DurationType.MULTI_DAY else []

    itinerary = Itinerary(
        title=plan.title if plan else None,
        description=plan.description if plan else None,
        duration=plan.duration if plan else "",
        duration_type=session.duration_type,
        day_count=session.day_count,
        stops=routed,
        total_distance_km=total_distance,
        total_walk_minutes=total_walk,
        is_local_search=session.is_local_search,
        search_radius_m=session.search_radius_m,
        local_distance_cap_km=resolved_policy.local_max_distance_km if session.is_local_search else None,
        max_distance_from_origin_km=round(max_from_origin, 2),
        warnings=warnings,
        no_events_found=session.no_events_found,
        event_note=NO_EVENTS_NOTE if session.no_events_found else None,
        days=days,
    )
    logger.info(
        "Route assembled: session=%s stops=%d preserve_order=%s total_km=%.1f walk_min=%d",
        session.session_id,
        len(routed),
        preserve_order,
        itinerary.total_distance_km or 0.0,
        total_walk,
    )
    return itinerary


def should_preserve_order(session: PlanningSession, plan: SearchPlan | None) -> bool:
    """사용자가 순서를 지정했거나 일반 검색의 minimal 전략이면 원래 순서를 유지합니다."""
    if session.intent is not None and session.intent.sequence_matters:
        return True
    return (
        plan is not None
        and plan.strategy.type == SearchStrategyType.MINIMAL
        and not session.is_local_search
    )


async def assemble_itinerary(state: ItineraryState, config: RunnableConfig) -> ItineraryState:
    """해석된 정거장으로 Itinerary를 조립해 상태에 반영합니다."""
    if state.get("error"):
        return state

    session = state.get("session")
    if session is None:
        return {**state, "error": "경로 조립에는 session이 필요합니다."}

    plan = state.get("search_plan")
    stops = state.get("resolved_stops") or []
    itinerary = assemble_route(stops, should_preserve_order(session, plan), session, plan)
    return {**state, "itinerary": itinerary}
