"""SearchPoint를 실제 장소/이벤트로 해석하는 노드."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, TypeVar

from langchain_core.runnables import RunnableConfig

from app.core.config import Settings, get_settings
from app.core.fallback import try_each
from app.core.geo import haversine_km
from app.core.llm_router import Stage
from app.core.logger import get_logger, get_session_logger
from app.core.route_policy import RoutePolicyConfig, build_route_policy_config
from app.core.timeout_policy import get_timeout_policy
from app.graph.itinerary.nodes.intent import build_event_keywords
from app.graph.itinerary.state import ItineraryState, PlanningSession, SelectionSnapshot
from app.graph.itinerary.utils import complete_json, names_overlap
from app.schemas.enums import DurationType, StopKind
from app.schemas.itinerary import EventStop, ResolvedStop, VenueStop
from app.schemas.place import Event, Venue
from app.schemas.plan import SearchPoint
from app.services.completion_service import CompletionServiceProtocol, get_completion_service
from app.services.events_service import EventsServiceProtocol
from app.services.google_places_service import get_google_places_service
from app.services.places_service import PlacesServiceProtocol
from app.services.ticketmaster_service import get_ticketmaster_service

logger = get_logger(__name__)

T = TypeVar("T")

_RADIUS_MULTIPLIERS = (1, 2)
# 중복 제거로 후보가 모두 빠졌을 때만 쓰는 반경 배수
_DEDUP_RETRY_MULTIPLIER = 4
_SHORT_TRIP_EVENT_TARGET = 3
_DEFAULT_EVENT_TARGET = 10
_NEARBY_EVENT_LIMIT = 3
_GENERIC_EVENT_TERM = "music"
PLACEHOLDER_ADDRESS = "Location to be determined"
_DEFAULT_EVENT_SCORE = 0.5

_EVENT_RANKING_SYSTEM_PROMPT = (
    "You rank New York City events for one stop of a walking itinerary.\n"
    "Score every event from 0 to 1. Consider timing fit, match with the request, popularity, "
    "uniqueness of limited-time events and distance from the stop.\n"
    "For few_hours trips prefer events starting soon that are worth the time.\n"
    "Use only ids from the given events. Never invent ids.\n"
    'Return JSON only: {"rankings": [{"event_id": "id", "score": 0.9, "reason": "why"}]}'
)


@dataclass(slots=True)
class StopCandidates:
    """SearchPoint 하나에 대한 순위별 후보 목록."""

    point: SearchPoint
    venues: list[Venue] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)


def venue_score(venue: Venue) -> float:
    """평점과 로그 스케일 리뷰 수를 가중 합산한 점수."""
    rating = (venue.rating or 0.0) / 5.0
    reviews = min(math.log10(max(0, venue.user_ratings_total) + 1) / 4.0, 1.0)
    return 0.7 * rating + 0.3 * reviews


def rank_venues(
    venues: list[Venue],
    point: SearchPoint,
    session: PlanningSession,
    policy: RoutePolicyConfig,
) -> list[Venue]:
    """점수순으로 정렬하되 명시 요청 이름 일치 후보, 로컬 검색의 근거리 후보를 앞에 둡니다."""
    ranked = sorted(venues, key=venue_score, reverse=True)

    if point.explicit_request:
        preferred = [venue for venue in ranked if names_overlap(venue.name, point.query)]
    elif session.is_local_search:
        preferred = [
            venue
            for venue in ranked
            if venue.coordinate is not None
            and haversine_km(session.origin, venue.coordinate) <= policy.local_nearest_radius_km
        ]
    else:
        return ranked

    preferred_ids = {venue.id for venue in preferred}
    return preferred + [venue for venue in ranked if venue.id not in preferred_ids]


def event_time_window(settings: Settings, now: datetime | None = None) -> tuple[datetime, datetime]:
    start = now or datetime.now(timezone.utc)
    return start, start + timedelta(days=settings.EVENT_WINDOW_DAYS)


def event_search_terms(point: SearchPoint, session: PlanningSession) -> list[str]:
    """이벤트 검색어 사다리: 정거장 키워드 → Intent 키워드 → 검색어에서 만든 사다리 → 일반 검색어."""
    if point.event_keywords:
        return list(point.event_keywords)
    if session.intent is not None and session.intent.event_keywords:
        return list(session.intent.event_keywords)
    return build_event_keywords(point.query) or [_GENERIC_EVENT_TERM]


def _event_scores(payload: dict) -> dict[str, float]:
    scores: dict[str, float] = {}
    rankings = payload.get("rankings")
    if not isinstance(rankings, list):
        return scores
    for item in rankings:
        if not isinstance(item, dict) or not item.get("event_id"):
            continue
        score = item.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            score = _DEFAULT_EVENT_SCORE
        scores.setdefault(str(item["event_id"]), float(score))
    return scores


async def rank_events(
    events: list[Event],
    point: SearchPoint,
    session: PlanningSession,
    completion_service: CompletionServiceProtocol | None,
) -> list[Event]:
    """LLM 점수순으로 이벤트를 정렬합니다.

    점수가 없는 이벤트는 0.5로 보고, 같은 점수끼리는 provider 순서를 유지한다.
    LLM이 없거나 응답을 쓸 수 없으면 provider 순서를 그대로 돌려준다.
    """
    if completion_service is None or len(events) < 2:
        return list(events)

    request = session.intent.original_prompt if session.intent is not None else point.query
    user_prompt = json.dumps(
        {
            "request": request,
            "stop_query": point.query,
            "duration_type": session.duration_type.value,
            "events": [
                {
                    "id": event.id,
                    "name": event.name,
                    "type": event.event_type,
                    "start_time": event.start_date.isoformat() if event.start_date else None,
                    "price": event.price,
                    "venue": event.venue_name,
                }
                for event in events
            ],
        },
        ensure_ascii=False,
    )
    scores = _event_scores(
        await complete_json(completion_service, Stage.EVENT_RANKING, _EVENT_RANKING_SYSTEM_PROMPT, user_prompt)
    )
    if not scores:
        return list(events)
    logger.info("Events reranked: query=%s scored=%d candidates=%d", point.query, len(scores), len(events))
    return sorted(events, key=lambda event: scores.get(event.id, _DEFAULT_EVENT_SCORE), reverse=True)


async def _guarded(
    call: Awaitable[list[T]],
    timeout_seconds: float,
    label: str,
    session_logger: logging.LoggerAdapter,
) -> list[T]:
    """provider 호출 실패와 타임아웃을 빈 결과로 바꿉니다."""
    try:
        return list(await asyncio.wait_for(call, timeout=timeout_seconds))
    except asyncio.TimeoutError:
        session_logger.warning("Provider call timed out: call=%s timeout_s=%s", label, timeout_seconds)
    except Exception as exc:
        session_logger.warning("Provider call failed: call=%s error=%r", label, exc)
    return []


class StopResolver:
    """SearchPoint 목록을 동시에 해석하고 세션 상태에 한 번에 병합합니다."""

    def __init__(
        self,
        places_service: PlacesServiceProtocol,
        events_service: EventsServiceProtocol,
        session: PlanningSession,
        settings: Settings | None = None,
        completion_service: CompletionServiceProtocol | None = None,
    ) -> None:
        self._places = places_service
        self._events = events_service
        self._completion = completion_service
        self._session = session
        self._settings = settings or get_settings()
        self._policy = build_route_policy_config(self._settings)
        self._timeouts = get_timeout_policy(self._settings)
        self._logger = get_session_logger(__name__, session.session_id)

    @property
    def _event_radius_km(self) -> float:
        if self._session.is_local_search:
            return float(self._settings.LOCAL_EVENT_SEARCH_RADIUS_KM)
        return float(self._settings.EVENT_SEARCH_RADIUS_KM)

    async def _venue_candidates(self, point: SearchPoint, snapshot: SelectionSnapshot) -> list[Venue]:
        base_radius = point.search_radius_m or self._session.search_radius_m
        filtered_out = False

        def _radii():
            for factor in _RADIUS_MULTIPLIERS:
                yield base_radius * factor
            if filtered_out:
                yield base_radius * _DEDUP_RETRY_MULTIPLIER

        async def _attempt(radius_m: int) -> list[Venue]:
            nonlocal filtered_out
            found = await _guarded(
                self._places.search(
                    point.query,
                    point.location,
                    radius_m,
                    category=point.category,
                    limit=self._settings.GOOGLE_PLACES_PAGE_SIZE,
                ),
                self._timeouts.google_places_timeout_seconds,
                f"places:{point.query}",
                self._logger,
            )
            if point.explicit_request:
                return found
            fresh = [venue for venue in found if not snapshot.is_duplicate(venue.id, venue.name)]
            filtered_out = filtered_out or (bool(found) and not fresh)
            return fresh

        result = await try_each(_radii(), _attempt, accept=bool)
        ranked = rank_venues(result.value or [], point, self._session, self._policy)
        self._logger.info(
            "Venue resolution result: stop=%s query=%s radius_m=%s attempts=%d candidate_count=%d",
            point.stop_number,
            point.query,
            result.strategy or "exhausted",
            result.attempts,
            len(ranked),
        )
        return ranked[: self._settings.MAX_RESOLUTION_CANDIDATES]

    async def _event_candidates(self, point: SearchPoint, snapshot: SelectionSnapshot) -> list[Event]:
        terms = event_search_terms(point, self._session)
        target = (
            _SHORT_TRIP_EVENT_TARGET
            if self._session.duration_type == DurationType.FEW_HOURS
            else _DEFAULT_EVENT_TARGET
        )
        window = event_time_window(self._settings)
        collected: dict[str, Event] = {}

        async def _attempt(term: str) -> int:
            found = await _guarded(
                self._events.search(
                    point.location,
                    self._event_radius_km,
                    keyword=term,
                    time_window=window,
                    limit=target,
                ),
                self._timeouts.ticketmaster_timeout_seconds,
                f"events:{term}",
                self._logger,
            )
            for event in found:
                collected.setdefault(event.id, event)
            return len(collected)

        result = await try_each(terms, _attempt, accept=lambda count: count >= target)

        candidates: list[Event] = []
        for event in collected.values():
            if not point.explicit_request and snapshot.is_duplicate(event.id, event.name):
                continue
            if (
                self._session.is_local_search
                and event.coordinate is not None
                and haversine_km(self._session.origin, event.coordinate) > self._policy.local_max_distance_km
            ):
                continue
            candidates.append(event)
        candidates = await rank_events(candidates, point, self._session, self._completion)

        self._logger.info(
            "Event resolution result: stop=%s terms=%s attempts=%d collected=%d candidate_count=%d",
            point.stop_number,
            terms,
            result.attempts,
            len(collected),
            len(candidates),
        )
        return candidates[: self._settings.MAX_RESOLUTION_CANDIDATES]

    async def _candidates_for(self, point: SearchPoint, snapshot: SelectionSnapshot) -> StopCandidates:
        if point.kind == StopKind.EVENT:
            return StopCandidates(point=point, events=await self._event_candidates(point, snapshot))
        return StopCandidates(point=point, venues=await self._venue_candidates(point, snapshot))

    async def _bounded_candidates(self, point: SearchPoint, snapshot: SelectionSnapshot) -> StopCandidates:
        timeout = self._timeouts.stop_resolution_timeout_seconds
        try:
            return await asyncio.wait_for(self._candidates_for(point, snapshot), timeout=timeout)
        except asyncio.TimeoutError:
            self._logger.warning("Stop resolution timed out: stop=%s timeout_s=%s", point.stop_number, timeout)
            return StopCandidates(point=point)

    def _placeholder(self, point: SearchPoint) -> VenueStop:
        return VenueStop(
            id=f"placeholder_{point.stop_number}",
            name=point.query,
            category=point.category,
            coordinate=point.location,
            address=PLACEHOLDER_ADDRESS,
            description=point.purpose or None,
            stop_number=point.stop_number,
            is_explicit_request=point.explicit_request,
            is_placeholder=True,
            purpose=point.purpose,
            day_number=point.day_number,
            estimated_duration_minutes=point.estimated_duration_minutes or self._settings.VENUE_STAY_MINUTES,
        )

    def reconcile(self, results: list[StopCandidates]) -> list[ResolvedStop]:
        """stop_number 순서로 중복이 아닌 첫 후보를 골라 세션에 기록합니다."""
        stops: list[ResolvedStop] = []
        for candidates in sorted(results, key=lambda item: item.point.stop_number):
            point = candidates.point
            if point.kind == StopKind.EVENT:
                event = next(
                    (
                        item
                        for item in candidates.events
                        if point.explicit_request or not self._session.is_duplicate(item.id, item.name)
                    ),
                    None,
                )
                if event is None:
                    self._session.no_events_found = True
                    self._logger.warning("No events found: stop=%s query=%s", point.stop_number, point.query)
                    continue
                self._session.record(event.id, event.name)
                stops.append(
                    EventStop(
                        **event.model_dump(),
                        stop_number=point.stop_number,
                        is_explicit_request=point.explicit_request,
                        purpose=point.purpose,
                        day_number=point.day_number,
                    )
                )
                continue

            venue = next(
                (
                    item
                    for item in candidates.venues
                    if point.explicit_request or not self._session.is_duplicate(item.id, item.name)
                ),
                None,
            )
            if venue is None:
                self._logger.warning("Venue placeholder used: stop=%s query=%s", point.stop_number, point.query)
                stops.append(self._placeholder(point))
                continue
            self._session.record(venue.id, venue.name)
            stops.append(
                VenueStop(
                    **venue.model_dump(),
                    stop_number=point.stop_number,
                    is_explicit_request=point.explicit_request,
                    purpose=point.purpose,
                    day_number=point.day_number,
                    estimated_duration_minutes=point.estimated_duration_minutes or self._settings.VENUE_STAY_MINUTES,
                )
            )
        return stops

    async def _enrich_venue(self, stop: VenueStop) -> VenueStop:
        description = stop.description
        if not description:
            try:
                description = await asyncio.wait_for(
                    self._places.details(stop.id),
                    timeout=self._timeouts.google_places_timeout_seconds,
                )
            except asyncio.TimeoutError:
                self._logger.warning("Venue details timed out: venue_id=%s", stop.id)
            except Exception as exc:
                self._logger.warning("Venue details failed: venue_id=%s error=%r", stop.id, exc)

        nearby: list[Event] = []
        if stop.coordinate is not None:
            nearby = await _guarded(
                self._events.search(
                    stop.coordinate,
                    self._event_radius_km,
                    keyword=None,
                    time_window=event_time_window(self._settings),
                    limit=_NEARBY_EVENT_LIMIT,
                ),
                self._timeouts.ticketmaster_timeout_seconds,
                f"nearby_events:{stop.id}",
                self._logger,
            )
        return stop.model_copy(
            update={
                "description": description or f"Popular {stop.category} in the area",
                "nearby_events": nearby[:_NEARBY_EVENT_LIMIT],
            }
        )

    async def _enrich(self, stops: list[ResolvedStop]) -> list[ResolvedStop]:
        async def _one(stop: ResolvedStop) -> ResolvedStop:
            if isinstance(stop, VenueStop) and not stop.is_placeholder:
                return await self._enrich_venue(stop)
            return stop

        return list(await asyncio.gather(*(_one(stop) for stop in stops)))

    async def resolve_all(self, points: list[SearchPoint]) -> list[ResolvedStop]:
        """모든 SearchPoint를 동시에 해석합니다.

        각 작업은 시작 시점의 선택 스냅샷만 읽고 후보 목록을 돌려준다.
        세션 기록은 모든 작업이 끝난 뒤 reconcile에서 한 번에 반영한다.
        """
        snapshot = self._session.snapshot()
        results = await asyncio.gather(*(self._bounded_candidates(point, snapshot) for point in points))
        stops = self.reconcile(list(results))
        enriched = await self._enrich(stops)
        self._logger.info(
            "Stops resolved: points=%d stops=%d placeholders=%d no_events_found=%s",
            len(points),
            len(enriched),
            sum(1 for stop in enriched if stop.is_placeholder),
            self._session.no_events_found,
        )
        return enriched


async def resolve_all(
    points: list[SearchPoint],
    session: PlanningSession,
    places_service: PlacesServiceProtocol,
    events_service: EventsServiceProtocol,
    completion_service: CompletionServiceProtocol | None = None,
) -> list[ResolvedStop]:
    """SearchPoint 목록을 ResolvedStop 목록으로 해석합니다."""
    resolver = StopResolver(places_service, events_service, session, completion_service=completion_service)
    return await resolver.resolve_all(points)


def _services_from_config(config: RunnableConfig) -> tuple[PlacesServiceProtocol, EventsServiceProtocol]:
    configurable = config.get("configurable", {})
    places_service = configurable.get("places_service") or get_google_places_service()
    events_service = configurable.get("events_service") or get_ticketmaster_service()
    return places_service, events_service


def _completion_from_config(config: RunnableConfig) -> CompletionServiceProtocol | None:
    completion_service = config.get("configurable", {}).get("completion_service")
    if completion_service is not None:
        return completion_service
    try:
        return get_completion_service()
    except Exception as exc:
        logger.warning("CompletionService initialization failed. Events keep provider order: %s", exc)
        return None


async def resolve_stops(state: ItineraryState, config: RunnableConfig) -> ItineraryState:
    """검색 플랜의 모든 정거장을 해석해 상태에 반영합니다."""
    if state.get("error"):
        return state

    plan = state.get("search_plan")
    session = state.get("session")
    if plan is None or session is None:
        return {**state, "error": "정거장 해석에는 search_plan과 session이 필요합니다."}

    try:
        places_service, events_service = _services_from_config(config)
    except Exception as exc:
        logger.error("Provider initialization failed: %s", exc)
        return {**state, "error": "장소 검색 provider를 초기화할 수 없습니다."}

    completion_service = _completion_from_config(config)
    stops = await resolve_all(plan.points, session, places_service, events_service, completion_service)
    if not stops and not session.no_events_found:
        logger.error("No stops resolved: session=%s points=%d", session.session_id, len(plan.points))
        return {**state, "resolved_stops": [], "error": "해석된 정거장이 없습니다."}
    return {**state, "resolved_stops": stops}
