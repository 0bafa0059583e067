"""조립된 일정의 품질을 검사하고 한 번 보정하는 노드."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from langchain_core.runnables import RunnableConfig

from app.core.geo import haversine_km
from app.core.logger import get_logger, get_session_logger
from app.core.route_policy import RoutePolicyConfig, build_route_policy_config
from app.graph.itinerary.nodes.route import build_day_plans, link_stops
from app.graph.itinerary.state import ItineraryState, PlanningSession
from app.schemas.enums import DurationType, IssueSeverity, IssueType
from app.schemas.itinerary import EventStop, Itinerary, QualityIssue, ResolvedStop, VenueStop

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class QualityReport:
    """품질 검사 결과.

    score는 보정 전 통과한 검사 비율이며 itinerary는 보정이 반영된 일정이다.
    """

    valid: bool
    issues: list[QualityIssue]
    itinerary: Itinerary
    score: float


def _is_protected(stop: ResolvedStop) -> bool:
    return stop.is_explicit_request or stop.is_placeholder


def _origin_distance(stop: ResolvedStop, session: PlanningSession) -> float:
    if stop.coordinate is None:
        return 0.0
    return haversine_km(session.origin, stop.coordinate)


def _stay_minutes(stop: ResolvedStop, policy: RoutePolicyConfig) -> int:
    if isinstance(stop, VenueStop):
        return stop.estimated_duration_minutes or policy.venue_stay_minutes
    return policy.event_duration_minutes


def find_timing_conflicts(stops: list[ResolvedStop], policy: RoutePolicyConfig) -> list[int]:
    """시각이 정해진 앞 정거장에서 제시간에 도착할 수 없는 이벤트의 order 목록."""
    conflicts: list[int] = []
    clock: datetime | None = None
    for stop in stops:
        arrival = clock + timedelta(minutes=stop.walk_time_minutes) if clock is not None else None
        if isinstance(stop, EventStop) and stop.start_date is not None:
            if arrival is not None and arrival > stop.start_date:
                conflicts.append(stop.order)
            clock = stop.end_date or stop.start_date + timedelta(minutes=policy.event_duration_minutes)
        elif arrival is not None:
            clock = arrival + timedelta(minutes=_stay_minutes(stop, policy))
    return conflicts


def _category_of(stop: ResolvedStop) -> str:
    if isinstance(stop, VenueStop):
        return (stop.category or "venue").lower()
    return "event"


def _check_timing(stops: list[ResolvedStop], policy: RoutePolicyConfig) -> list[QualityIssue]:
    by_order = {stop.order: stop for stop in stops}
    issues: list[QualityIssue] = []
    for order in find_timing_conflicts(stops, policy):
        event = by_order[order]
        issues.append(
            QualityIssue(
                type=IssueType.TIMING,
                problem=f"Cannot reach {event.name} in time",
                suggestion="Remove the previous stop or find a closer alternative",
                severity=IssueSeverity.ERROR,
                stop_order=order,
            )
        )
    return issues


def _check_variety(stops: list[ResolvedStop], policy: RoutePolicyConfig) -> list[QualityIssue]:
    if len(stops) <= policy.variety_min_stops:
        return []
    ratio = len({_category_of(stop) for stop in stops}) / len(stops)
    if ratio >= policy.min_variety_ratio:
        return []
    return [
        QualityIssue(
            type=IssueType.VARIETY,
            problem="Lack of variety in activities",
            suggestion="Mix different types of activities",
        )
    ]


def _check_distance(itinerary: Itinerary, session: PlanningSession, policy: RoutePolicyConfig) -> list[QualityIssue]:
    ceiling = policy.distance_ceiling_km(
        itinerary.duration_type,
        local=session.is_local_search,
        day_count=itinerary.day_count,
    )
    total = itinerary.total_distance_km or 0.0
    if total <= ceiling:
        return []
    return [
        QualityIssue(
            type=IssueType.DISTANCE,
            problem=f"Total walking distance ({total:.1f}km) is too much",
            suggestion="Consider public transportation or reduce stops",
        )
    ]


def _beyond_local_cap(
    stops: list[ResolvedStop],
    session: PlanningSession,
    policy: RoutePolicyConfig,
) -> list[ResolvedStop]:
    return [stop for stop in stops if _origin_distance(stop, session) > policy.local_max_distance_km]


def _local_offenders(
    stops: list[ResolvedStop],
    session: PlanningSession,
    policy: RoutePolicyConfig,
) -> list[ResolvedStop]:
    """로컬 제약 위반 정거장. 반경 밖 정거장이 있으면 그것만, 없으면 구간 거리 초과 정거장.

    구간 거리는 현재 순서 기준으로 다시 계산된 값이어야 한다.
    """
    beyond = _beyond_local_cap(stops, session, policy)
    if beyond:
        return beyond
    return [stop for stop in stops if stop.distance_from_previous_km > policy.local_max_leg_km]


def _check_local_constraints(
    stops: list[ResolvedStop],
    session: PlanningSession,
    policy: RoutePolicyConfig,
) -> list[QualityIssue]:
    offenders = _beyond_local_cap(stops, session, policy) + [
        stop for stop in stops if stop.distance_from_previous_km > policy.local_max_leg_km
    ]
    offenders = list({stop.order: stop for stop in offenders}.values())
    if not offenders:
        return []
    names = ", ".join(stop.name for stop in offenders)
    return [
        QualityIssue(
            type=IssueType.LOCAL_CONSTRAINTS,
            problem=(
                f"Stops outside the local range ({policy.local_max_distance_km}km from origin "
                f"or {policy.local_max_leg_km}km per walk): {names}"
            ),
            suggestion="Replace far stops with places closer to your location",
        )
    ]


def _check_feasibility(itinerary: Itinerary, policy: RoutePolicyConfig) -> list[QualityIssue]:
    limit = policy.max_stop_count(itinerary.duration_type, itinerary.day_count)
    if len(itinerary.stops) <= limit:
        return []
    return [
        QualityIssue(
            type=IssueType.FEASIBILITY,
            problem="Too many stops for available time",
            suggestion=f"Reduce to {limit} stops maximum",
        )
    ]


def _check_completeness(itinerary: Itinerary) -> list[QualityIssue]:
    missing = [
        name
        for name, value in (
            ("title", itinerary.title),
            ("description", itinerary.description),
            ("total_distance_km", itinerary.total_distance_km),
        )
        if value is None or value == ""
    ]
    if missing:
        return [
            QualityIssue(
                type=IssueType.COMPLETENESS,
                problem=f"Missing required fields: {', '.join(missing)}",
                suggestion="Ensure all fields are populated",
                severity=IssueSeverity.ERROR,
            )
        ]
    if not itinerary.stops:
        return [
            QualityIssue(
                type=IssueType.COMPLETENESS,
                problem="No stops in itinerary",
                suggestion="Add at least one stop",
                severity=IssueSeverity.ERROR,
            )
        ]
    return []


def _remove_furthest(
    stops: list[ResolvedStop],
    offenders: list[ResolvedStop],
    session: PlanningSession,
) -> tuple[list[ResolvedStop], bool]:
    """보호되지 않은 위반 정거장 중 출발지에서 가장 먼 하나를 제거합니다.

    Returns:
        (정거장 목록, 위반 정거장이 모두 보호되어 제거하지 못했는지 여부)
    """
    removable = [stop for stop in offenders if not _is_protected(stop)]
    if not removable:
        return stops, bool(offenders)
    worst = max(removable, key=lambda stop: _origin_distance(stop, session))
    return [stop for stop in stops if stop.order != worst.order], False


def validate_itinerary(
    itinerary: Itinerary,
    session: PlanningSession,
    policy: RoutePolicyConfig | None = None,
) -> QualityReport:
    """일정을 검사하고 이슈 유형별로 한 번만 보정합니다."""
    resolved_policy = policy or build_route_policy_config()
    session_logger = get_session_logger(__name__, session.session_id)
    stops = list(itinerary.stops)

    checks: dict[IssueType, list[QualityIssue]] = {
        IssueType.TIMING: _check_timing(stops, resolved_policy),
        IssueType.VARIETY: _check_variety(stops, resolved_policy),
        IssueType.DISTANCE: _check_distance(itinerary, session, resolved_policy),
    }
    if session.is_local_search:
        checks[IssueType.LOCAL_CONSTRAINTS] = _check_local_constraints(stops, session, resolved_policy)
    checks[IssueType.FEASIBILITY] = _check_feasibility(itinerary, resolved_policy)
    checks[IssueType.COMPLETENESS] = _check_completeness(itinerary)

    passed = sum(1 for found in checks.values() if not found)
    score = round(passed / len(checks), 2)
    issues = [issue for found in checks.values() for issue in found]

    conflict_orders = {issue.stop_order for issue in checks[IssueType.TIMING]}
    stops = [
        stop.model_copy(update={"timing_conflict": True}) if stop.order in conflict_orders else stop
        for stop in stops
    ]

    distance_warning = itinerary.distance_warning
    needs_variety = itinerary.needs_variety
    for issue_type, found in checks.items():
        if not found:
            continue
        if issue_type == IssueType.DISTANCE:
            stops, blocked = _remove_furthest(stops, stops, session)
            distance_warning = distance_warning or blocked
        elif issue_type == IssueType.LOCAL_CONSTRAINTS:
            relinked = link_stops(stops, session.origin, resolved_policy)[0]
            stops, blocked = _remove_furthest(relinked, _local_offenders(relinked, session, resolved_policy), session)
            distance_warning = distance_warning or blocked
        elif issue_type == IssueType.TIMING:
            stops = [stop for stop in stops if not stop.timing_conflict or _is_protected(stop)]
        elif issue_type == IssueType.VARIETY:
            needs_variety = True
        elif issue_type == IssueType.COMPLETENESS:
            session_logger.warning("Completeness issue left unrepaired: problems=%s", [i.problem for i in found])

    routed, total_distance, total_walk, max_from_origin = link_stops(stops, session.origin, resolved_policy)
    ceiling = resolved_policy.distance_ceiling_km(
        itinerary.duration_type,
        local=session.is_local_search,
        day_count=itinerary.day_count,
    )
    if total_distance > ceiling:
        distance_warning = True
    if session.is_local_search and any(
        _is_protected(stop) for stop in _beyond_local_cap(routed, session, resolved_policy)
    ):
        distance_warning = True
    repaired = itinerary.model_copy(
        update={
            "stops": routed,
            "total_distance_km": total_distance,
            "total_walk_minutes": total_walk,
            "max_distance_from_origin_km": round(max_from_origin, 2),
            "quality_score": score,
            "issues": issues,
            "distance_warning": distance_warning,
            "needs_variety": needs_variety,
            "days": build_day_plans(routed) if itinerary.duration_type == DurationType.MULTI_DAY else [],
        }
    )
    session_logger.info(
        "Quality validation completed: score=%.2f issues=%s removed=%d distance_warning=%s needs_variety=%s",
        score,
        [issue.type.value for issue in issues],
        len(itinerary.stops) - len(routed),
        distance_warning,
        needs_variety,
    )
    return QualityReport(valid=not issues, issues=issues, itinerary=repaired, score=score)


async def check_quality(state: ItineraryState, config: RunnableConfig) -> ItineraryState:
    """일정 품질을 검사하고 보정 결과를 상태에 반영합니다."""
    if state.get("error"):
        return state

    itinerary = state.get("itinerary")
    session = state.get("session")
    if itinerary is None or session is None:
        return {**state, "error": "품질 검사에는 itinerary와 session이 필요합니다."}

    report = validate_itinerary(itinerary, session)
    return {**state, "itinerary": report.itinerary, "quality_issues": report.issues}
