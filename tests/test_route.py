"""경로 조립(RouteAssembler) 테스트."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from app.core.geo import haversine_km
from app.graph.itinerary.nodes.route import (
    NO_EVENTS_NOTE,
    assemble_itinerary,
    assemble_route,
    day_theme,
    order_stops,
    should_preserve_order,
)
from app.graph.itinerary.state import PlanningSession
from app.schemas.enums import DurationType, SearchStrategyType
from app.schemas.intent import Intent
from app.schemas.itinerary import EventStop, VenueStop
from app.schemas.place import Coordinate
from app.schemas.plan import SearchPlan, SearchStrategy

TIMES_SQUARE = Coordinate(lat=40.7580, lng=-73.9855)


def _venue(stop_number: int, lat: float, lng: float, *, category: str = "food", day: int | None = None) -> VenueStop:
    return VenueStop(
        id=f"v{stop_number}",
        name=f"Venue {stop_number}",
        category=category,
        coordinate=Coordinate(lat=lat, lng=lng),
        stop_number=stop_number,
        day_number=day,
    )


def _event(stop_number: int, lat: float | None, lng: float | None, start: datetime | None) -> EventStop:
    coordinate = Coordinate(lat=lat, lng=lng) if lat is not None and lng is not None else None
    return EventStop(
        id=f"e{stop_number}",
        name=f"Event {stop_number}",
        coordinate=coordinate,
        start_date=start,
        stop_number=stop_number,
    )


def _at(hour: int) -> datetime:
    return datetime(2030, 5, 17, hour, 0, tzinfo=timezone.utc)


def _session(**overrides) -> PlanningSession:
    return PlanningSession(origin=TIMES_SQUARE, **overrides)


def _plan(strategy: SearchStrategyType = SearchStrategyType.BALANCED) -> SearchPlan:
    return SearchPlan(
        title="Midtown Walk",
        description="A short walk",
        duration="3 hours",
        duration_type=DurationType.FEW_HOURS,
        strategy=SearchStrategy(type=strategy),
    )


class TestOrdering:
    """방문 순서 결정 테스트."""

    def test_preserve_order_follows_stop_numbers(self):
        stops = [_venue(2, 40.7061, -73.9969), _venue(1, 40.7074, -74.0113)]

        ordered = order_stops(stops, True, _session())

        assert [stop.stop_number for stop in ordered] == [1, 2]

    def test_nearest_neighbor_from_first_stop(self):
        stops = [
            _venue(1, 40.7580, -73.9855),
            _venue(2, 40.7074, -74.0113),
            _venue(3, 40.7600, -73.9800),
        ]

        ordered = order_stops(stops, False, _session())

        assert [stop.stop_number for stop in ordered] == [1, 3, 2]

    def test_timed_event_is_interleaved_with_venues(self):
        stops = [
            _venue(1, 40.7590, -73.9845),
            _venue(2, 40.7074, -74.0113),
            _event(3, 40.7505, -73.9934, _at(19)),
        ]

        ordered = order_stops(stops, False, _session())

        assert [stop.stop_number for stop in ordered] == [1, 3, 2]

    def test_timed_events_follow_start_time(self):
        stops = [_event(1, 40.7505, -73.9934, _at(21)), _event(2, 40.7587, -73.9787, _at(18))]

        ordered = order_stops(stops, False, _session())

        assert [stop.stop_number for stop in ordered] == [2, 1]

    def test_stop_without_coordinate_goes_last(self):
        stops = [_venue(1, 40.7580, -73.9855), _event(2, None, None, None), _venue(3, 40.7600, -73.9800)]

        itinerary = assemble_route(stops, False, _session())

        assert [stop.stop_number for stop in itinerary.stops] == [1, 3, 2]
        assert itinerary.stops[-1].distance_from_previous_km == 0.0
        assert itinerary.stops[-1].walk_time_minutes == 0

    def test_local_search_starts_near_origin(self):
        stops = [
            _venue(1, 40.7074, -74.0113),
            _venue(2, 40.7600, -73.9830),
            _venue(3, 40.7630, -73.9800),
        ]

        ordered = order_stops(stops, False, _session(is_local_search=True))

        assert [stop.stop_number for stop in ordered] == [2, 3, 1]

    def test_multi_day_orders_each_day(self):
        stops = [
            _venue(3, 40.7829, -73.9654, category="parks", day=2),
            _venue(1, 40.7794, -73.9632, category="museum", day=1),
            _venue(4, 40.7812, -73.9665, category="parks", day=2),
            _venue(2, 40.7614, -73.9776, category="museum", day=1),
        ]

        ordered = order_stops(stops, False, _session(duration_type=DurationType.MULTI_DAY, day_count=2))

        assert [stop.day_number for stop in ordered] == [1, 1, 2, 2]
        assert [stop.stop_number for stop in ordered][:2] == [1, 2]


class TestAssembleRoute:
    """Itinerary 조립 테스트."""

    def test_orders_are_contiguous_and_legs_add_up(self):
        stops = [
            _venue(1, 40.7580, -73.9855),
            _venue(2, 40.7527, -73.9772),
            _venue(3, 40.7484, -73.9857),
            _venue(4, 40.7411, -73.9897),
        ]

        itinerary = assemble_route(stops, True, _session(), _plan())

        assert [stop.order for stop in itinerary.stops] == [1, 2, 3, 4]
        legs = [
            haversine_km(previous.coordinate, current.coordinate)
            for previous, current in zip(itinerary.stops, itinerary.stops[1:])
        ]
        assert itinerary.total_distance_km == pytest.approx(sum(legs))
        leg_total = sum(stop.distance_from_previous_km for stop in itinerary.stops)
        assert itinerary.total_distance_km == pytest.approx(leg_total)
        assert itinerary.stops[0].distance_from_previous_km == 0.0
        for stop, leg in zip(itinerary.stops[1:], legs):
            assert stop.walk_time_minutes == round(leg * 15)
        assert itinerary.total_walk_minutes == sum(stop.walk_time_minutes for stop in itinerary.stops)
        assert itinerary.title == "Midtown Walk"

    def test_short_legs_are_not_rounded_away(self):
        stops = [_venue(index, 40.7580 + 0.00036 * index, -73.9855) for index in range(1, 6)]

        itinerary = assemble_route(stops, True, _session(), _plan())

        legs = [stop.distance_from_previous_km for stop in itinerary.stops]
        assert legs[1] == pytest.approx(haversine_km(itinerary.stops[0].coordinate, itinerary.stops[1].coordinate))
        assert itinerary.total_distance_km == pytest.approx(sum(legs))
        assert itinerary.total_distance_km == pytest.approx(0.16, abs=0.01)

    def test_local_search_far_stop_adds_warning(self):
        stops = [_venue(1, 40.7074, -74.0113), _venue(2, 40.7600, -73.9830)]

        itinerary = assemble_route(stops, False, _session(is_local_search=True))

        assert len(itinerary.stops) == 2
        assert itinerary.is_local_search is True
        assert itinerary.local_distance_cap_km == 3.0
        assert itinerary.max_distance_from_origin_km > 3.0
        assert len(itinerary.warnings) == 1

    def test_no_events_note(self):
        itinerary = assemble_route([], False, _session(no_events_found=True), _plan())

        assert itinerary.stops == []
        assert itinerary.total_distance_km == 0.0
        assert itinerary.no_events_found is True
        assert itinerary.event_note == NO_EVENTS_NOTE

    def test_multi_day_day_plans(self):
        stops = [
            _venue(1, 40.7794, -73.9632, category="museum", day=1),
            _venue(2, 40.7614, -73.9776, category="museum", day=1),
            _venue(3, 40.7829, -73.9654, category="parks", day=2),
            _venue(4, 40.7812, -73.9665, category="parks", day=2),
        ]
        session = _session(duration_type=DurationType.MULTI_DAY, day_count=2)

        itinerary = assemble_route(stops, True, session)

        assert [(day.day_number, day.theme, day.stop_orders) for day in itinerary.days] == [
            (1, "Culture & Arts", [1, 2]),
            (2, "Nature & Outdoors", [3, 4]),
        ]

    def test_day_theme_default(self):
        assert day_theme([]) == "Mixed Exploration"
        assert day_theme([_venue(1, 40.75, -73.98, category="nightlife")]) == "Mixed Exploration"


class TestPreserveOrder:
    """순서 유지 판단 테스트."""

    def _intent(self, sequence_matters: bool) -> Intent:
        return Intent(
            duration_type=DurationType.FEW_HOURS,
            estimated_hours=3,
            sequence_matters=sequence_matters,
            original_prompt="test",
            origin=TIMES_SQUARE,
        )

    def test_sequence_matters(self):
        session = _session(intent=self._intent(True))

        assert should_preserve_order(session, _plan()) is True

    def test_minimal_strategy_preserves_order_outside_local_search(self):
        session = _session(intent=self._intent(False))

        assert should_preserve_order(session, _plan(SearchStrategyType.MINIMAL)) is True
        assert should_preserve_order(session, _plan()) is False

    def test_local_search_is_reordered(self):
        session = _session(intent=self._intent(False), is_local_search=True)

        assert should_preserve_order(session, _plan(SearchStrategyType.MINIMAL)) is False


def test_assemble_itinerary_node() -> None:
    session = _session()
    state = {
        "session": session,
        "search_plan": _plan(),
        "resolved_stops": [_venue(1, 40.7580, -73.9855), _venue(2, 40.7527, -73.9772)],
    }

    result = asyncio.run(assemble_itinerary(state, {"configurable": {}}))

    itinerary = result["itinerary"]
    assert itinerary.title == "Midtown Walk"
    assert [stop.order for stop in itinerary.stops] == [1, 2]
