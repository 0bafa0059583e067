"""요청 분석(Intent 정규화) 테스트."""

from __future__ import annotations

import asyncio
import json

import pytest

from app.core.llm_router import Stage
from app.graph.itinerary.nodes.intent import (
    analyze_intent,
    build_event_keywords,
    build_fallback_terms,
    detect_duration,
    extract_event_seeds,
    find_meal_mentions,
    find_visit_mentions,
    normalize_intent,
)
from app.schemas.enums import DurationType, Vibe
from app.schemas.place import Coordinate
from tests.mocks.mock_completion_service import MockCompletionService

TIMES_SQUARE = Coordinate(lat=40.7580, lng=-73.9855)


def _normalize(prompt: str, completion_service: MockCompletionService | None = None):
    return asyncio.run(normalize_intent(prompt, TIMES_SQUARE, completion_service))


class TestDetectDuration:
    """일정 길이 규칙 판정 테스트."""

    def test_day_count_means_multi_day(self):
        assert detect_duration("3 days in Manhattan exploring museums") == (DurationType.MULTI_DAY, 3, None, True)

    def test_number_words_are_understood(self):
        assert detect_duration("two days of food")[:2] == (DurationType.MULTI_DAY, 2)

    def test_week_means_seven_days(self):
        assert detect_duration("a week in NYC")[:2] == (DurationType.MULTI_DAY, 7)

    def test_weekend_means_two_days(self):
        assert detect_duration("weekend trip to Brooklyn")[:2] == (DurationType.MULTI_DAY, 2)

    def test_this_weekend_is_a_timing_phrase(self):
        assert detect_duration("rock concert this weekend") == (DurationType.FEW_HOURS, 0, None, False)

    def test_all_day_means_full_day(self):
        assert detect_duration("all day in Central Park")[0] == DurationType.FULL_DAY

    def test_hours_are_returned(self):
        assert detect_duration("4 hours around SoHo") == (DurationType.FEW_HOURS, 0, 4, True)
        assert detect_duration("spend 8 hours in Brooklyn") == (DurationType.FULL_DAY, 0, 8, True)

    def test_default_is_few_hours(self):
        assert detect_duration("coffee and a walk") == (DurationType.FEW_HOURS, 0, None, False)


class TestMentions:
    """식사/방문 장소 추출 테스트."""

    def test_meal_then_visit(self):
        prompt = "lunch at Wall Street then walk Brooklyn Bridge"

        meals = find_meal_mentions(prompt)
        visits = find_visit_mentions(prompt)

        assert [(meal, location) for _, meal, location in meals] == [("lunch", "Wall Street")]
        assert [location for _, location in visits] == ["Brooklyn Bridge"]
        assert meals[0][0] < visits[0][0]

    def test_definite_article_is_stripped(self):
        prompt = "grab coffee at Blue Bottle, then visit the Met"

        assert [location for _, _, location in find_meal_mentions(prompt)] == ["Blue Bottle"]
        assert [location for _, location in find_visit_mentions(prompt)] == ["Met"]

    def test_generic_objects_are_not_locations(self):
        assert find_visit_mentions("I want to see a comedy show tonight") == []

    def test_self_reference_is_not_a_meal_location(self):
        assert find_meal_mentions("coffee near me") == []


class TestEventKeywords:
    """이벤트 검색어 사다리 테스트."""

    def test_seed_with_prefix(self):
        assert extract_event_seeds("rock concert this weekend") == ["rock concert"]

    def test_seed_cut_after_break_word(self):
        assert extract_event_seeds("I want to see a comedy show tonight") == ["comedy show"]

    def test_generic_trigger_without_prefix_is_skipped(self):
        assert extract_event_seeds("find some events this weekend") == []

    def test_idiom_seed(self):
        assert extract_event_seeds("live music tonight") == ["live music"]

    def test_fallback_terms_specific_to_generic(self):
        assert build_fallback_terms("rock concert") == ["rock concert", "rock", "concert"]
        assert build_fallback_terms("indie rock concert") == [
            "indie rock concert",
            "indie rock",
            "indie",
            "concert",
            "rock",
        ]

    def test_fallback_terms_skip_stopword_endings(self):
        assert build_fallback_terms("concert in the park") == ["concert in the park", "concert", "park"]

    def test_fallback_terms_empty_seed(self):
        assert build_fallback_terms("") == []

    def test_generic_keyword_when_interest_only(self):
        assert build_event_keywords("find some events this weekend", event_interest=True) == ["music"]
        assert build_event_keywords("find some events this weekend") == []

    def test_provided_keywords_follow_prompt_ladder(self):
        assert build_event_keywords("jazz festival", provided=["Jazz", "blues"]) == [
            "jazz festival",
            "jazz",
            "festival",
            "blues",
        ]


class TestNormalizeIntent:
    """normalize_intent 통합 테스트."""

    def test_meal_then_landmark_request(self):
        intent = _normalize("lunch at Wall Street then walk Brooklyn Bridge")

        assert intent.duration_type == DurationType.FEW_HOURS
        assert intent.meal_locations == ["Wall Street"]
        assert intent.visit_locations == ["Brooklyn Bridge"]
        assert intent.explicit_venues == ["Brooklyn Bridge"]
        assert intent.sequence_matters is True
        assert intent.location_context.type == "multiple"
        assert "food" in intent.venue_categories
        assert intent.event_interest is False
        assert intent.local_search is False

    def test_event_request(self):
        intent = _normalize("rock concert this weekend")

        assert intent.duration_type == DurationType.FEW_HOURS
        assert intent.event_interest is True
        assert intent.event_keywords == ["rock concert", "rock", "concert"]
        assert intent.time_constraints == ["this weekend"]

    def test_local_date_request(self):
        intent = _normalize("best spots nearby for a date")

        assert intent.local_search is True
        assert intent.vibe == Vibe.ROMANTIC
        assert intent.duration_type == DurationType.FEW_HOURS
        assert intent.origin == TIMES_SQUARE

    def test_local_request_with_self_reference(self):
        intent = _normalize("coffee near me")

        assert intent.local_search is True
        assert intent.meal_locations == []
        assert intent.venue_categories == ["coffee"]

    def test_named_location_disables_local_search(self):
        intent = _normalize("visit the Met and find food nearby")

        assert intent.local_search is False

    def test_route_activity(self):
        intent = _normalize("go for a run around Central Park")

        assert intent.route_activity == "running"
        assert intent.area_anchor == "central park"
        assert intent.location_context.type == "route"
        assert intent.local_search is False

    def test_multi_day_estimated_hours(self):
        intent = _normalize("3 days in Manhattan exploring museums")

        assert intent.duration_type == DurationType.MULTI_DAY
        assert intent.day_count == 3
        assert intent.estimated_hours == 72
        assert intent.venue_categories == ["museum"]

    def test_special_requirements(self):
        intent = _normalize("kid-friendly museum with vegan lunch")

        assert intent.special_requirements == ["kid-friendly", "vegan"]

    def test_default_origin_from_settings(self):
        intent = asyncio.run(normalize_intent("coffee and a walk"))

        assert intent.origin == TIMES_SQUARE

    def test_llm_draft_is_merged_with_rules(self):
        completion = MockCompletionService(
            {
                Stage.INTENT_ANALYSIS: json.dumps(
                    {
                        "duration_type": "full_day",
                        "estimated_hours": 7,
                        "vibe": "cultural",
                        "explicit_venues": ["The Met"],
                        "event_interest": True,
                        "event_keywords": ["opera"],
                        "location_context": {"visit_locations": ["The Met"]},
                    }
                )
            }
        )

        intent = _normalize("museum hopping with friends", completion)

        assert completion.calls == [Stage.INTENT_ANALYSIS]
        assert intent.duration_type == DurationType.FULL_DAY
        assert intent.estimated_hours == 7
        assert intent.vibe == Vibe.CULTURAL
        assert intent.explicit_venues == ["The Met"]
        assert intent.visit_locations == ["The Met"]
        assert intent.event_keywords == ["opera"]

    def test_explicit_prompt_duration_overrides_llm(self):
        completion = MockCompletionService({Stage.INTENT_ANALYSIS: json.dumps({"duration_type": "full_day"})})

        intent = _normalize("2 days of pizza", completion)

        assert intent.duration_type == DurationType.MULTI_DAY
        assert intent.day_count == 2

    @pytest.mark.parametrize("response", ["not json at all", "[1, 2, 3]", RuntimeError("llm down")])
    def test_broken_llm_output_falls_back_to_rules(self, response):
        rules_only = _normalize("lunch at Wall Street then walk Brooklyn Bridge")

        intent = _normalize(
            "lunch at Wall Street then walk Brooklyn Bridge",
            MockCompletionService({Stage.INTENT_ANALYSIS: response}),
        )

        assert intent == rules_only


class TestAnalyzeIntentNode:
    """analyze_intent 노드 테스트."""

    def test_empty_prompt_sets_error(self):
        result = asyncio.run(analyze_intent({"prompt": "   "}, {"configurable": {}}))

        assert result["error"] == "요청 문장이 비어 있습니다."

    def test_session_is_created(self):
        config = {"configurable": {"completion_service": MockCompletionService()}}

        result = asyncio.run(analyze_intent({"prompt": "3 days of museums", "origin": TIMES_SQUARE}, config))

        session = result["session"]
        assert session.origin == TIMES_SQUARE
        assert session.intent == result["intent"]
        assert session.duration_type == DurationType.MULTI_DAY
        assert session.day_count == 3
