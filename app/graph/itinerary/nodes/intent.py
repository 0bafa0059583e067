"""사용자 요청을 Intent로 정규화하는 노드.

LLM 분석 결과가 없거나 깨져도 같은 규칙 기반 보강 로직으로 Intent를 만든다.
"""

from __future__ import annotations

import re

from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.runnables import RunnableConfig
from pydantic import BaseModel, ConfigDict, ValidationError

from app.core.area_anchor import find_area_anchor
from app.core.config import get_settings
from app.core.llm_router import Stage
from app.core.logger import get_logger
from app.graph.itinerary.state import ItineraryState, PlanningSession
from app.graph.itinerary.utils import complete_json, dedupe_preserving_order
from app.schemas.enums import DurationType, Vibe
from app.schemas.intent import Intent, LocationContext
from app.schemas.place import Coordinate
from app.services.completion_service import CompletionServiceProtocol, get_completion_service

logger = get_logger(__name__)

INTENT_SYSTEM_PROMPT = """\
You analyse free-text New York City outing requests for an itinerary planner.
Extract what the user wants without inventing places they did not mention.

Rules:
- duration_type is one of few_hours, full_day, multi_day. "this weekend" or "tonight" describe when, not how long.
- explicit_venues lists only places the user named (e.g. "Brooklyn Bridge"), never generic types.
- meal_locations are places mentioned with a meal ("lunch at Wall Street" -> "Wall Street").
- visit_locations are places to visit or walk ("walk Brooklyn Bridge" -> "Brooklyn Bridge").
- sequence_matters is true when the user ordered the stops (then, after, before, first, next, finally).
- event_keywords go from most specific to most generic ("rock concert", "rock", "concert").
- Respond with JSON only.
"""

INTENT_USER_PROMPT = """\
Request: {prompt}

{format_instructions}
"""

_NUMBER_WORDS = {"one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6, "seven": 7}
_MAX_DAY_COUNT = 7
_DEFAULT_DAY_COUNT = 2
_DEFAULT_HOURS = {DurationType.FEW_HOURS: 3, DurationType.FULL_DAY: 8}

_TIMING_PHRASE_PATTERN = re.compile(
    r"\b(this weekend|this week|tonight|this evening|this afternoon|this morning|today|tomorrow)\b"
)
_DAY_COUNT_PATTERN = re.compile(r"\b(\d+|one|two|three|four|five|six|seven)[\s-]+days?\b")
_WEEK_PATTERN = re.compile(r"\b(week|weekend)\b")
_FULL_DAY_PATTERN = re.compile(r"\b(all day|full day|whole day|entire day|day trip|day)\b")
_HOURS_PATTERN = re.compile(r"\b(\d+)\s*(?:hours?|hrs?)\b")
_SEQUENCE_PATTERN = re.compile(r"\b(then|after|afterwards|before|first|next|finally|followed by)\b")

_CONNECTIVE = (
    r"(?:[,.;!?]|\band then\b|\bthen\b|\bafter that\b|\bafterwards\b|\bafter\b|\bbefore\b"
    r"|\bnext\b|\bfollowed by\b|\band\b|$)"
)
_MEAL_WORDS = r"(?:breakfast|brunch|lunch|dinner|coffee|drinks|dessert|eat|meal|food)"
_MEAL_PATTERN = re.compile(
    rf"\b(?:(?:grab|get|have)\s+(?:some\s+)?)?({_MEAL_WORDS})\s+(?:at|near|around|in)\s+(.+?)\s*(?={_CONNECTIVE})",
    re.IGNORECASE,
)
_VISIT_VERB = (
    r"(?:visit|go to|see|walk(?:\s+(?:at|in|across|over|through|to|around|along))?"
    r"|explore|check out|stroll(?:\s+(?:through|in|around|along))?|tour)"
)
_VISIT_PATTERNS = (
    re.compile(rf"\b{_VISIT_VERB}\s+(.+?)\s*(?={_CONNECTIVE})", re.IGNORECASE),
    re.compile(rf"\b(?:then|after that|next)\s+(.+?)\s*(?={_CONNECTIVE})", re.IGNORECASE),
)
_LEADING_VERB_PATTERN = re.compile(rf"^{_VISIT_VERB}\s+", re.IGNORECASE)
_MEAL_MENTION_PATTERN = re.compile(rf"\b{_MEAL_WORDS}\b", re.IGNORECASE)
_EVENT_MENTION_PATTERN = re.compile(
    r"\b(show|shows|concert|concerts|event|events|festival|festivals|game|games|performance|performances"
    r"|broadway|live music)\b",
    re.IGNORECASE,
)
_GENERIC_ARTICLE_PATTERN = re.compile(r"^(?:a|an|some|any)\s+", re.IGNORECASE)
_DEFINITE_ARTICLE_PATTERN = re.compile(r"^the\s+", re.IGNORECASE)
_SELF_REFERENCES = {"me", "us", "here", "home", "my place", "my location", "my hotel"}

_CATEGORY_PATTERNS = {
    "food": re.compile(
        r"\b(food|eat|eating|restaurants?|lunch|dinner|breakfast|brunch|pizza|burgers?|sushi|tacos|bagels?)\b"
    ),
    "coffee": re.compile(r"\b(coffee|cafes?|café|espresso|latte)\b"),
    "parks": re.compile(r"\b(parks?|gardens?|nature|outdoors?)\b"),
    "museum": re.compile(r"\b(museums?|galler(?:y|ies)|art|exhibits?|exhibitions?)\b"),
    "shopping": re.compile(r"\b(shop|shopping|stores?|boutiques?|markets?)\b"),
    "nightlife": re.compile(r"\b(bars?|drinks|cocktails?|nightlife|clubs?|pubs?)\b"),
}
_VIBE_PATTERNS = (
    (Vibe.ROMANTIC, re.compile(r"\b(date|romantic|romance|anniversary)\b")),
    (Vibe.RELAXED, re.compile(r"\b(relax|relaxing|relaxed|chill|calm|laid[- ]back|slow)\b")),
    (Vibe.ADVENTURE, re.compile(r"\b(adventure|adventurous|explore|exciting|thrill)\b")),
    (Vibe.CULTURAL, re.compile(r"\b(culture|cultural|history|historic|heritage)\b")),
    (Vibe.FOODIE, re.compile(r"\b(foodie|food tour|tasting)\b")),
)
_LOCAL_PATTERN = re.compile(
    r"\b(nearby|near me|near here|around here|around me|close by|close to me|walking distance|local|in my area)\b"
)
_ROUTE_ACTIVITY_PATTERNS = (
    ("running", re.compile(r"\b(run|running|jog|jogging)\b")),
    ("cycling", re.compile(r"\b(cycling|cycle|bike ride|biking)\b")),
)
_SPECIAL_REQUIREMENT_PATTERN = re.compile(
    r"\b(wheelchair|accessible|kid[- ]friendly|family|vegan|vegetarian|gluten[- ]free|budget|cheap|free)\b"
)

_SEED_PUNCTUATION_PATTERN = re.compile(r"[.,;:!?/\\|]+")
_SEED_TRIGGER_PATTERN = re.compile(
    r"\b((?:[a-z0-9'&-]+\s+){0,3})(concerts?|shows?|events?|festivals?|games?|performances?)\b"
)
_SEED_IDIOMS = ("live music", "broadway")
_GENERIC_TRIGGERS = {"event", "events", "show", "shows"}
SEED_STOPWORDS = frozenset(
    {
        "a",
        "an",
        "the",
        "any",
        "some",
        "please",
        "event",
        "events",
        "show",
        "shows",
        "to",
        "in",
        "at",
        "for",
        "near",
        "around",
        "of",
        "and",
        "then",
    }
)
_SEED_BREAK_WORDS = SEED_STOPWORDS | {
    "after",
    "before",
    "next",
    "see",
    "watch",
    "catch",
    "attend",
    "go",
    "find",
    "want",
    "like",
    "love",
    "get",
    "me",
    "my",
    "i",
    "we",
    "us",
    "with",
    "this",
    "that",
    "tonight",
    "weekend",
    "or",
}
_GENERIC_SEED = "music"


class IntentDraft(BaseModel):
    """LLM 요청 분석 초안.

    파싱 실패를 줄이기 위해 모든 필드를 선택값으로 둔다.
    """

    model_config = ConfigDict(extra="ignore")

    duration_type: DurationType | None = None
    estimated_hours: int | None = None
    day_count: int | None = None
    explicit_venues: list[str] = []
    venue_categories: list[str] = []
    event_interest: bool = False
    event_keywords: list[str] = []
    meal_locations: list[str] = []
    visit_locations: list[str] = []
    time_constraints: list[str] = []
    special_requirements: list[str] = []
    vibe: Vibe | None = None
    sequence_matters: bool = False


def _normalize(prompt: str) -> str:
    return re.sub(r"\s+", " ", (prompt or "").strip().lower())


def detect_duration(prompt: str) -> tuple[DurationType, int, int | None, bool]:
    """(duration_type, day_count, 요청된 시간, 명시 여부)를 규칙으로 판정합니다."""
    text = _TIMING_PHRASE_PATTERN.sub(" ", _normalize(prompt))

    day_match = _DAY_COUNT_PATTERN.search(text)
    if day_match:
        raw = day_match.group(1)
        count = int(raw) if raw.isdigit() else _NUMBER_WORDS.get(raw, _DEFAULT_DAY_COUNT)
        if count >= 2:
            return DurationType.MULTI_DAY, min(_MAX_DAY_COUNT, count), None, True
        return DurationType.FULL_DAY, 0, None, True

    week_match = _WEEK_PATTERN.search(text)
    if week_match:
        count = _MAX_DAY_COUNT if week_match.group(1) == "week" else _DEFAULT_DAY_COUNT
        return DurationType.MULTI_DAY, count, None, True
    if re.search(r"\bdays\b", text):
        return DurationType.MULTI_DAY, _DEFAULT_DAY_COUNT, None, True
    if _FULL_DAY_PATTERN.search(text):
        return DurationType.FULL_DAY, 0, None, True

    hours_match = _HOURS_PATTERN.search(text)
    if hours_match:
        hours = max(1, int(hours_match.group(1)))
        duration_type = DurationType.FULL_DAY if hours >= 6 else DurationType.FEW_HOURS
        return duration_type, 0, hours, True
    return DurationType.FEW_HOURS, 0, None, False


def _clean_location(text: str) -> str | None:
    cleaned = (text or "").strip(" '\"")
    previous = None
    while cleaned and cleaned != previous:
        previous = cleaned
        cleaned = _LEADING_VERB_PATTERN.sub("", cleaned).strip()
    if not cleaned or _GENERIC_ARTICLE_PATTERN.match(cleaned) or cleaned.lower() in _SELF_REFERENCES:
        return None
    cleaned = _DEFINITE_ARTICLE_PATTERN.sub("", cleaned).strip()
    return cleaned or None


def find_meal_mentions(prompt: str) -> list[tuple[int, str, str]]:
    """(위치, 식사 단어, 장소) 목록을 프롬프트 등장 순서로 반환합니다."""
    mentions: list[tuple[int, str, str]] = []
    for match in _MEAL_PATTERN.finditer(prompt or ""):
        location = _clean_location(match.group(2))
        if location and not _EVENT_MENTION_PATTERN.search(location):
            mentions.append((match.start(2), match.group(1).lower(), location))
    return mentions


def find_visit_mentions(prompt: str) -> list[tuple[int, str]]:
    """(위치, 장소) 목록을 프롬프트 등장 순서로 반환합니다."""
    mentions: list[tuple[int, str]] = []
    seen: set[str] = set()
    for pattern in _VISIT_PATTERNS:
        for match in pattern.finditer(prompt or ""):
            location = _clean_location(match.group(1))
            if not location or location.lower() in seen:
                continue
            if _MEAL_MENTION_PATTERN.search(location) or _EVENT_MENTION_PATTERN.search(location):
                continue
            seen.add(location.lower())
            mentions.append((match.start(1), location))
    return sorted(mentions)


def extract_event_seeds(prompt: str) -> list[str]:
    """트리거 명사 앞의 구절과 고정 관용구로 이벤트 검색 씨앗을 추출합니다."""
    text = re.sub(r"\s+", " ", _SEED_PUNCTUATION_PATTERN.sub(" ", (prompt or "").lower())).strip()
    seeds: list[str] = []

    for match in _SEED_TRIGGER_PATTERN.finditer(text):
        words = match.group(1).split()
        noun = match.group(2)
        cut = max((index for index, word in enumerate(words) if word in _SEED_BREAK_WORDS), default=-1)
        prefix = words[cut + 1 :]
        if prefix:
            seeds.append(" ".join([*prefix, noun]))
        elif noun not in _GENERIC_TRIGGERS:
            seeds.append(noun)

    for idiom in _SEED_IDIOMS:
        if re.search(rf"\b{idiom}\b", text):
            seeds.append(idiom)

    return dedupe_preserving_order(seeds)


def build_fallback_terms(seed: str) -> list[str]:
    """씨앗 구절 하나로 검색어 사다리를 만듭니다.

    전체 구절 → 오른쪽부터 잘라낸 부분 구절 → 불용어가 아닌 단어(길이 내림차순).
    """
    tokens = (seed or "").split()
    if not tokens:
        return []

    ladder = [" ".join(tokens)]
    for end in range(len(tokens) - 1, 0, -1):
        if tokens[end - 1] in SEED_STOPWORDS:
            continue
        ladder.append(" ".join(tokens[:end]))
    singles = [token for token in tokens if token not in SEED_STOPWORDS and len(token) > 1]
    ladder.extend(sorted(singles, key=len, reverse=True))
    return dedupe_preserving_order(ladder)


def build_event_keywords(prompt: str, provided: list[str] | None = None, event_interest: bool = False) -> list[str]:
    """프롬프트 씨앗 사다리와 LLM 키워드를 합쳐 이벤트 검색어 목록을 만듭니다."""
    terms: list[str] = []
    for seed in extract_event_seeds(prompt):
        terms.extend(build_fallback_terms(seed))
    merged = dedupe_preserving_order([*terms, *(provided or [])])
    if not merged and event_interest:
        return [_GENERIC_SEED]
    return merged


def _detect_categories(text: str) -> list[str]:
    return [category for category, pattern in _CATEGORY_PATTERNS.items() if pattern.search(text)]


def _detect_vibe(text: str) -> Vibe:
    for vibe, pattern in _VIBE_PATTERNS:
        if pattern.search(text):
            return vibe
    return Vibe.MIXED


def _detect_route_activity(text: str) -> str | None:
    for activity, pattern in _ROUTE_ACTIVITY_PATTERNS:
        if pattern.search(text):
            return activity
    return None


def _location_type(route_activity: str | None, locations: list[str], fallback: str | None) -> str:
    if route_activity:
        return "route"
    if len(locations) > 1:
        return "multiple"
    if locations:
        return "single"
    return fallback or "unspecified"


def enhance_analysis(draft: IntentDraft, prompt: str, origin: Coordinate) -> Intent:
    """LLM 초안(비어 있을 수 있음)을 규칙 기반 추출 결과로 보강해 Intent를 만듭니다."""
    text = _normalize(prompt)

    rule_duration, rule_days, rule_hours, explicit_duration = detect_duration(prompt)
    if explicit_duration or draft.duration_type is None:
        duration_type = rule_duration
    else:
        duration_type = draft.duration_type

    day_count = 0
    if duration_type == DurationType.MULTI_DAY:
        day_count = min(_MAX_DAY_COUNT, max(1, rule_days or draft.day_count or _DEFAULT_DAY_COUNT))

    if duration_type == DurationType.MULTI_DAY:
        estimated_hours = 24 * day_count
    elif rule_hours:
        estimated_hours = rule_hours
    elif draft.estimated_hours and draft.duration_type == duration_type:
        estimated_hours = max(1, draft.estimated_hours)
    else:
        estimated_hours = _DEFAULT_HOURS[duration_type]

    meal_locations = dedupe_preserving_order(
        [location for _, _, location in find_meal_mentions(prompt)] + draft.meal_locations
    )
    visit_locations = dedupe_preserving_order(
        [location for _, location in find_visit_mentions(prompt)] + draft.visit_locations
    )
    explicit_venues = dedupe_preserving_order(draft.explicit_venues + visit_locations)
    all_locations = dedupe_preserving_order(meal_locations + visit_locations + explicit_venues)

    event_interest = draft.event_interest or bool(_EVENT_MENTION_PATTERN.search(text))
    event_keywords = build_event_keywords(prompt, draft.event_keywords, event_interest)
    event_interest = event_interest or bool(event_keywords)

    route_activity = _detect_route_activity(text)
    anchor = find_area_anchor(text) if route_activity else None
    vibe = draft.vibe or _detect_vibe(text)

    return Intent(
        duration_type=duration_type,
        estimated_hours=estimated_hours,
        day_count=day_count,
        explicit_venues=explicit_venues,
        venue_categories=dedupe_preserving_order(draft.venue_categories + _detect_categories(text)),
        event_interest=event_interest,
        event_keywords=event_keywords,
        location_context=LocationContext(
            type=_location_type(route_activity, all_locations, None),
            locations=all_locations,
            meal_locations=meal_locations,
            visit_locations=visit_locations,
        ),
        time_constraints=dedupe_preserving_order(
            draft.time_constraints + [match.group(1) for match in _TIMING_PHRASE_PATTERN.finditer(text)]
        ),
        special_requirements=dedupe_preserving_order(
            draft.special_requirements + [match.group(1) for match in _SPECIAL_REQUIREMENT_PATTERN.finditer(text)]
        ),
        sequence_matters=draft.sequence_matters or bool(_SEQUENCE_PATTERN.search(text)),
        vibe=vibe,
        local_search=bool(_LOCAL_PATTERN.search(text)) and not all_locations and route_activity is None,
        route_activity=route_activity,
        area_anchor=anchor[0] if anchor else None,
        original_prompt=prompt,
        origin=origin,
    )


def _parse_draft(payload: dict) -> IntentDraft:
    if not payload:
        return IntentDraft()

    flattened = dict(payload)
    location_context = payload.get("location_context")
    if isinstance(location_context, dict):
        flattened.setdefault("meal_locations", location_context.get("meal_locations") or [])
        flattened.setdefault("visit_locations", location_context.get("visit_locations") or [])
    try:
        return IntentDraft.model_validate(flattened)
    except ValidationError as exc:
        logger.warning("Intent draft validation failed. Falling back to rules: errors=%d", exc.error_count())
        return IntentDraft()


async def normalize_intent(
    prompt: str,
    origin: Coordinate | None = None,
    completion_service: CompletionServiceProtocol | None = None,
) -> Intent:
    """요청 문장을 Intent로 정규화합니다. 외부로 예외를 던지지 않습니다."""
    settings = get_settings()
    resolved_origin = origin or Coordinate(lat=settings.DEFAULT_ORIGIN_LAT, lng=settings.DEFAULT_ORIGIN_LNG)

    parser = PydanticOutputParser(pydantic_object=IntentDraft)
    payload = await complete_json(
        completion_service,
        Stage.INTENT_ANALYSIS,
        INTENT_SYSTEM_PROMPT,
        INTENT_USER_PROMPT.format(prompt=prompt, format_instructions=parser.get_format_instructions()),
    )
    draft = _parse_draft(payload)
    intent = enhance_analysis(draft, prompt, resolved_origin)
    logger.info(
        "Intent normalized: duration=%s days=%d sequence=%s local=%s route=%s events=%s keywords=%s llm_used=%s",
        intent.duration_type.value,
        intent.day_count,
        intent.sequence_matters,
        intent.local_search,
        intent.route_activity or "-",
        intent.event_interest,
        intent.event_keywords,
        bool(payload),
    )
    return intent


async def analyze_intent(state: ItineraryState, config: RunnableConfig) -> ItineraryState:
    """요청을 분석해 Intent와 세션을 상태에 반영합니다."""
    prompt = (state.get("prompt") or "").strip()
    if not prompt:
        return {**state, "error": "요청 문장이 비어 있습니다."}

    completion_service = config.get("configurable", {}).get("completion_service")
    if completion_service is None:
        try:
            completion_service = get_completion_service()
        except Exception as exc:
            logger.warning("CompletionService initialization failed. Using rules only: %s", exc)

    intent = await normalize_intent(prompt, state.get("origin"), completion_service)

    session = state.get("session")
    if session is None:
        session = PlanningSession(origin=intent.origin)
    session.origin = intent.origin
    session.intent = intent
    session.duration_type = intent.duration_type
    session.day_count = intent.day_count
    return {**state, "intent": intent, "session": session}
