"""Intent를 SearchPoint 목록(검색 플랜)으로 바꾸는 노드."""

from __future__ import annotations

import itertools
import math
import random

from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.runnables import RunnableConfig
from pydantic import ValidationError

from app.core.area_anchor import AREA_ANCHOR_MAP, resolve_anchor
from app.core.config import get_settings
from app.core.geo import bearing_deg, haversine_km, jitter_coordinate, offset_coordinate
from app.core.llm_router import Stage
from app.core.logger import get_logger
from app.core.route_policy import build_route_policy_config
from app.graph.itinerary.nodes.intent import build_fallback_terms, find_meal_mentions, find_visit_mentions
from app.graph.itinerary.state import ItineraryState
from app.graph.itinerary.utils import complete_json, names_overlap
from app.schemas.enums import DurationType, SearchStrategyType, StopKind, Vibe
from app.schemas.intent import Intent
from app.schemas.place import Coordinate
from app.schemas.plan import PlanDraft, PlanDraftPoint, SearchPlan, SearchPoint, SearchStrategy
from app.services.completion_service import CompletionServiceProtocol, get_completion_service

logger = get_logger(__name__)

PLAN_SYSTEM_PROMPT = """\
You are an NYC outing planner. Turn the analysed request into search points for a places/events search.

Constraints:
- Keep the user's order for named places and meals.
- One search point per stop. type is "venue" or "event".
- query is a short search phrase ("lunch restaurant near Wall Street", "Brooklyn Bridge", "rock concert").
- Set is_explicit_request=true only for places the user named.
- Give lat/lng for named places when you know them; otherwise omit them.
- few_hours: at most 3 points. full_day: 4-6 points. multi_day: 3-5 points per day with day_number.
- Output must follow the schema exactly with no extra text.
"""

PLAN_USER_PROMPT = """\
Request: {prompt}
Origin: {lat}, {lng}
Duration: {duration_type} ({day_count} days)
Named places: {explicit_venues}
Meals: {meal_locations}
Visits: {visit_locations}
Categories: {categories}
Event interest: {event_interest} (keywords: {event_keywords})
Vibe: {vibe}
Order matters: {sequence_matters}

{format_instructions}
"""

_MIN_FULL_DAY_POINTS = 4
_MAX_FULL_DAY_POINTS = 6
_MIN_POINTS_PER_DAY = 3
_MAX_POINTS_PER_DAY = 5
_ROUTE_MIN_LEG_KM = 0.5
_ROUTE_LEG_STEP_KM = 0.25
_ROUTE_MAX_LEG_KM = 1.0
_ROUTE_BEARING_STEP = 120.0

_MEAL_QUERIES = {
    "breakfast": ("breakfast spot", "food"),
    "brunch": ("brunch restaurant", "food"),
    "lunch": ("lunch restaurant", "food"),
    "dinner": ("dinner restaurant", "food"),
    "coffee": ("coffee shop", "coffee"),
    "drinks": ("cocktail bar", "nightlife"),
    "dessert": ("dessert shop", "food"),
}
_DEFAULT_MEAL_QUERY = ("restaurant", "food")

_CATEGORY_QUERIES = {
    "food": "popular restaurant",
    "coffee": "coffee shop",
    "parks": "park",
    "museum": "museum",
    "shopping": "shopping",
    "nightlife": "cocktail bar",
}

_GENERIC_DEFAULTS = [
    ("popular restaurant", "food"),
    ("local attraction", "landmark"),
    ("coffee shop", "coffee"),
]
_VIBE_DEFAULTS = {
    Vibe.ROMANTIC: [("romantic restaurant", "food"), ("scenic viewpoint", "landmark"), ("dessert cafe", "coffee")],
    Vibe.RELAXED: [("park", "parks"), ("cozy cafe", "coffee"), ("bookstore", "shopping")],
    Vibe.ADVENTURE: [("local attraction", "landmark"), ("street food", "food"), ("observation deck", "landmark")],
    Vibe.CULTURAL: [("museum", "museum"), ("art gallery", "museum"), ("historic landmark", "landmark")],
    Vibe.FOODIE: [("popular restaurant", "food"), ("food market", "food"), ("bakery", "food")],
}
_PADDING_POOL = [
    ("park", "parks"),
    ("museum", "museum"),
    ("shopping street", "shopping"),
    ("cocktail bar", "nightlife"),
    ("art gallery", "museum"),
    ("bakery", "food"),
    ("historic landmark", "landmark"),
]

_FALLBACK_STRATEGIES = {
    DurationType.FEW_HOURS: SearchStrategyType.BALANCED,
    DurationType.FULL_DAY: SearchStrategyType.BALANCED,
    DurationType.MULTI_DAY: SearchStrategyType.COMPREHENSIVE,
}


def duration_label(intent: Intent) -> str:
    if intent.duration_type == DurationType.MULTI_DAY:
        return f"{intent.day_count} days"
    if intent.duration_type == DurationType.FULL_DAY:
        return "Full day"
    return f"{intent.estimated_hours} hours"


def _search_center(intent: Intent) -> Coordinate:
    return resolve_anchor(intent.original_prompt, intent.origin)


def build_rule_based_draft(intent: Intent) -> list[PlanDraftPoint]:
    """LLM 초안이 없을 때 Intent만으로 정거장 초안을 만듭니다."""
    prompt = intent.original_prompt
    points: list[PlanDraftPoint] = []

    mentions: list[tuple[int, str, str | None, str]] = [
        (position, "meal", meal, location) for position, meal, location in find_meal_mentions(prompt)
    ]
    mentions.extend((position, "visit", None, location) for position, location in find_visit_mentions(prompt))
    mentions.sort(key=lambda item: item[0])

    for _, mention_type, meal, location in mentions:
        anchor = resolve_anchor(location, intent.origin)
        if mention_type == "meal":
            query, category = _MEAL_QUERIES.get(meal or "", _DEFAULT_MEAL_QUERY)
            points.append(
                PlanDraftPoint(
                    type=StopKind.VENUE,
                    query=f"{query} near {location}",
                    category=category,
                    lat=anchor.lat,
                    lng=anchor.lng,
                    purpose=f"{(meal or 'meal').capitalize()} near {location}",
                )
            )
        else:
            points.append(
                PlanDraftPoint(
                    type=StopKind.VENUE,
                    query=location,
                    category="landmark",
                    lat=anchor.lat,
                    lng=anchor.lng,
                    purpose=f"Visit {location}",
                    is_explicit_request=True,
                )
            )

    for venue in intent.explicit_venues:
        if any(names_overlap(venue, point.query) for point in points):
            continue
        anchor = resolve_anchor(venue, intent.origin)
        points.append(
            PlanDraftPoint(
                query=venue,
                category="landmark",
                lat=anchor.lat,
                lng=anchor.lng,
                purpose=f"Visit {venue}",
                is_explicit_request=True,
            )
        )

    center = _search_center(intent)
    covered = {point.category for point in points}
    for category in intent.venue_categories:
        query = _CATEGORY_QUERIES.get(category)
        if query is None or category in covered:
            continue
        covered.add(category)
        points.append(
            PlanDraftPoint(query=query, category=category, lat=center.lat, lng=center.lng, purpose=f"Explore {query}")
        )

    if intent.event_interest:
        keyword = intent.event_keywords[0] if intent.event_keywords else "events"
        points.append(
            PlanDraftPoint(
                type=StopKind.EVENT,
                query=keyword,
                category="event",
                lat=center.lat,
                lng=center.lng,
                purpose=f"Catch {keyword}",
                estimated_duration_minutes=get_settings().EVENT_DURATION_MINUTES,
            )
        )

    if not points:
        for query, category in _VIBE_DEFAULTS.get(intent.vibe, _GENERIC_DEFAULTS):
            points.append(
                PlanDraftPoint(query=query, category=category, lat=center.lat, lng=center.lng, purpose=f"Enjoy a {query}")
            )
    return points


def _padding_points(intent: Intent, existing: list[PlanDraftPoint], missing: int) -> list[PlanDraftPoint]:
    if missing <= 0:
        return []
    center = _search_center(intent)
    used = {point.query.lower() for point in existing}
    pool = _VIBE_DEFAULTS.get(intent.vibe, _GENERIC_DEFAULTS) + _PADDING_POOL
    fresh = [entry for entry in dict.fromkeys(pool) if entry[0] not in used]
    filler = itertools.islice(itertools.cycle(fresh or pool), missing)
    return [
        PlanDraftPoint(query=query, category=category, lat=center.lat, lng=center.lng, purpose=f"Enjoy a {query}")
        for query, category in filler
    ]


def _fit_point_count(intent: Intent, points: list[PlanDraftPoint]) -> list[PlanDraftPoint]:
    """일정 길이별 정거장 수 범위에 맞게 자르거나 채웁니다."""
    if intent.duration_type == DurationType.FEW_HOURS:
        return points[: build_route_policy_config().max_stop_count(DurationType.FEW_HOURS)]

    if intent.duration_type == DurationType.FULL_DAY:
        minimum, maximum = _MIN_FULL_DAY_POINTS, _MAX_FULL_DAY_POINTS
    else:
        days = max(1, intent.day_count)
        minimum, maximum = _MIN_POINTS_PER_DAY * days, _MAX_POINTS_PER_DAY * days

    fitted = points[:maximum]
    return fitted + _padding_points(intent, fitted, minimum - len(fitted))


def _event_ladder(intent: Intent, query: str) -> list[str]:
    """이벤트 정거장마다 자기 검색어로 사다리를 만들고, 만들 수 없으면 Intent 검색어를 씁니다."""
    return build_fallback_terms(" ".join(query.lower().split())) or list(intent.event_keywords)


def _to_search_points(intent: Intent, drafts: list[PlanDraftPoint]) -> list[SearchPoint]:
    points: list[SearchPoint] = []
    for index, draft in enumerate(drafts, start=1):
        if draft.lat is not None and draft.lng is not None:
            location = Coordinate(lat=draft.lat, lng=draft.lng)
        else:
            location = resolve_anchor(draft.query, intent.origin)
        explicit = draft.is_explicit_request or (
            draft.type == StopKind.VENUE and any(names_overlap(draft.query, venue) for venue in intent.explicit_venues)
        )
        points.append(
            SearchPoint(
                stop_number=index,
                kind=draft.type,
                query=draft.query,
                category="event" if draft.type == StopKind.EVENT else draft.category,
                location=location,
                purpose=draft.purpose,
                explicit_request=explicit,
                day_number=draft.day_number,
                estimated_duration_minutes=draft.estimated_duration_minutes,
                event_keywords=_event_ladder(intent, draft.query) if draft.type == StopKind.EVENT else [],
            )
        )
    return points


def _assign_days(intent: Intent, points: list[SearchPoint]) -> list[SearchPoint]:
    if intent.duration_type != DurationType.MULTI_DAY or not points:
        return points
    per_day = math.ceil(len(points) / max(1, intent.day_count))
    return [
        point.model_copy(update={"day_number": min(intent.day_count, index // per_day + 1)})
        for index, point in enumerate(points)
    ]


def _apply_local_jitter(intent: Intent, points: list[SearchPoint], radius_m: int) -> list[SearchPoint]:
    """모든 정거장 좌표를 출발지 주변 작은 무작위 좌표로 바꿉니다."""
    max_distance_km = get_settings().LOCAL_JITTER_METERS / 1000
    jittered: list[SearchPoint] = []
    for point in points:
        rng = random.Random(f"{intent.original_prompt}:{point.stop_number}")
        location = jitter_coordinate(intent.origin, max_distance_km, rng)
        jittered.append(point.model_copy(update={"location": location, "search_radius_m": radius_m}))
    return jittered


def _apply_route_spread(intent: Intent, points: list[SearchPoint], radius_m: int) -> list[SearchPoint]:
    """러닝/사이클 경로가 되도록 기준점 주변에 삼각형으로 넓혀 배치합니다."""
    center = AREA_ANCHOR_MAP.get(intent.area_anchor or "", intent.origin)
    base = 0.0
    if points and haversine_km(center, points[0].location) > 0.01:
        base = bearing_deg(center, points[0].location)

    spread: list[SearchPoint] = []
    for index, point in enumerate(points):
        distance_km = min(_ROUTE_MIN_LEG_KM + _ROUTE_LEG_STEP_KM * index, _ROUTE_MAX_LEG_KM)
        location = offset_coordinate(center, base + _ROUTE_BEARING_STEP * index, distance_km)
        spread.append(point.model_copy(update={"location": location, "search_radius_m": radius_m}))
    return spread


def _parse_plan_draft(payload: dict) -> PlanDraft | None:
    if not payload:
        return None
    try:
        return PlanDraft.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Plan draft validation failed. Falling back to rules: errors=%d", exc.error_count())
        return None


def _build_user_prompt(intent: Intent, parser: PydanticOutputParser) -> str:
    return PLAN_USER_PROMPT.format(
        prompt=intent.original_prompt,
        lat=intent.origin.lat,
        lng=intent.origin.lng,
        duration_type=intent.duration_type.value,
        day_count=intent.day_count,
        explicit_venues=", ".join(intent.explicit_venues) or "none",
        meal_locations=", ".join(intent.meal_locations) or "none",
        visit_locations=", ".join(intent.visit_locations) or "none",
        categories=", ".join(intent.venue_categories) or "none",
        event_interest=intent.event_interest,
        event_keywords=", ".join(intent.event_keywords) or "none",
        vibe=intent.vibe.value,
        sequence_matters=intent.sequence_matters,
        format_instructions=parser.get_format_instructions(),
    )


async def adapt_plan(intent: Intent, completion_service: CompletionServiceProtocol | None = None) -> SearchPlan:
    """Intent로 검색 플랜을 만듭니다.

    LLM 초안이 깨졌거나 없으면 규칙 기반 초안을 쓰고, 유효한 초안이 정거장을 하나도
    담지 않았으면 빈 플랜을 그대로 돌려준다.
    """
    settings = get_settings()
    parser = PydanticOutputParser(pydantic_object=PlanDraft)
    payload = await complete_json(
        completion_service,
        Stage.PLAN_DRAFT,
        PLAN_SYSTEM_PROMPT,
        _build_user_prompt(intent, parser),
    )
    draft = _parse_plan_draft(payload)
    used_rules = draft is None
    if draft is None:
        draft = PlanDraft(search_points=build_rule_based_draft(intent))

    drafts = list(draft.search_points)
    if (
        intent.duration_type == DurationType.FEW_HOURS
        and not intent.event_interest
        and not intent.event_keywords
    ):
        drafts = [point for point in drafts if point.type != StopKind.EVENT]

    if drafts:
        drafts = _fit_point_count(intent, drafts)
    points = _assign_days(intent, _to_search_points(intent, drafts))

    strategy_type = draft.strategy_type or _FALLBACK_STRATEGIES[intent.duration_type]
    radius_m = settings.DEFAULT_SEARCH_RADIUS_METERS
    if intent.local_search:
        strategy_type = SearchStrategyType.MINIMAL
        radius_m = settings.LOCAL_SEARCH_RADIUS_METERS
        points = _apply_local_jitter(intent, points, radius_m)
    elif intent.route_activity:
        radius_m = settings.ROUTE_SEARCH_RADIUS_METERS
        points = _apply_route_spread(intent, points, radius_m)
    else:
        points = [point.model_copy(update={"search_radius_m": radius_m}) for point in points]

    label = duration_label(intent)
    plan = SearchPlan(
        title=draft.title or f"NYC {intent.vibe.value.capitalize()} Outing",
        description=draft.description or f"{label} plan for: {intent.original_prompt}",
        duration=draft.duration or label,
        duration_type=intent.duration_type,
        day_count=intent.day_count,
        vibe=intent.vibe,
        strategy=SearchStrategy(
            type=strategy_type,
            include_events=any(point.kind == StopKind.EVENT for point in points),
            search_radius_m=radius_m,
            max_stops=build_route_policy_config().max_stop_count(intent.duration_type, intent.day_count),
        ),
        is_local_search=intent.local_search,
        points=points,
    )
    logger.info(
        "Search plan built: points=%d strategy=%s radius_m=%s local=%s route=%s rules_used=%s",
        len(points),
        strategy_type.value,
        radius_m,
        intent.local_search,
        intent.route_activity or "-",
        used_rules,
    )
    return plan


async def build_search_plan(state: ItineraryState, config: RunnableConfig) -> ItineraryState:
    """Intent를 검색 플랜으로 바꿔 상태에 반영합니다."""
    if state.get("error"):
        return state

    intent = state.get("intent")
    if intent is None:
        return {**state, "error": "검색 플랜 생성에는 intent가 필요합니다."}

    completion_service = config.get("configurable", {}).get("completion_service")
    if completion_service is None:
        try:
            completion_service = get_completion_service()
        except Exception as exc:
            logger.warning("CompletionService initialization failed. Using rules only: %s", exc)

    plan = await adapt_plan(intent, completion_service)
    if not plan.points:
        logger.error("Search plan is empty: prompt=%s", intent.original_prompt)
        return {**state, "search_plan": plan, "error": "검색 플랜에 정거장이 없습니다."}

    session = state.get("session")
    if session is not None:
        session.is_local_search = plan.is_local_search
        session.search_radius_m = plan.strategy.search_radius_m
    return {**state, "search_plan": plan}
