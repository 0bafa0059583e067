"""Ticketmaster 이벤트 서비스 테스트."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from app.schemas.place import Coordinate
from app.services.ticketmaster_service import TicketmasterEventsService, build_price_string

TIMES_SQUARE = Coordinate(lat=40.7580, lng=-73.9855)
WINDOW = (
    datetime(2030, 5, 17, 0, 0, tzinfo=timezone.utc),
    datetime(2030, 5, 24, 0, 0, tzinfo=timezone.utc),
)

RAW_EVENT = {
    "id": "tm1",
    "name": "Indie Rock Night",
    "url": "https://www.ticketmaster.com/event/tm1",
    "classifications": [{"segment": {"name": "Music"}, "genre": {"name": "Rock"}}],
    "dates": {"start": {"dateTime": "2030-05-18T00:30:00Z"}, "status": {"code": "onsale"}},
    "priceRanges": [{"currency": "USD", "min": 50, "max": 120}],
    "images": [{"url": "https://img.example.com/tm1.jpg"}],
    "_embedded": {
        "venues": [
            {
                "name": "Bowery Ballroom",
                "address": {"line1": "6 Delancey St"},
                "location": {"latitude": "40.7204", "longitude": "-73.9933"},
            }
        ]
    },
}


class _ScriptedEvents(TicketmasterEventsService):
    def __init__(self, response: dict | None, api_key: str | None = "test-key") -> None:
        super().__init__(api_key=api_key)
        self._response = response
        self.params: list[dict] = []

    async def _request(self, params):
        self.params.append(params)
        return self._response


def test_missing_api_key_returns_empty_without_request() -> None:
    service = _ScriptedEvents({"_embedded": {"events": [RAW_EVENT]}}, api_key=None)

    assert asyncio.run(service.search(TIMES_SQUARE, 5.0, keyword="rock")) == []
    assert service.params == []


def test_event_mapping() -> None:
    service = _ScriptedEvents({"_embedded": {"events": [RAW_EVENT]}})

    events = asyncio.run(service.search(TIMES_SQUARE, 5.0, keyword="rock", time_window=WINDOW))

    event = events[0]
    assert event.id == "tm1"
    assert event.event_type == "Music - Rock"
    assert event.coordinate == Coordinate(lat=40.7204, lng=-73.9933)
    assert event.venue_name == "Bowery Ballroom"
    assert event.address == "6 Delancey St"
    assert event.start_date == datetime(2030, 5, 18, 0, 30, tzinfo=timezone.utc)
    assert event.price == "USD 50-120"
    assert event.is_available is True
    assert event.description == "Music - Rock at Bowery Ballroom"


def test_search_params() -> None:
    service = _ScriptedEvents({})

    asyncio.run(service.search(TIMES_SQUARE, 1.5, keyword=" jazz ", time_window=WINDOW, limit=3))
    asyncio.run(service.search(TIMES_SQUARE, 500, keyword=None, time_window=WINDOW))

    keyword_params, nearby_params = service.params
    assert keyword_params["keyword"] == "jazz"
    assert keyword_params["radius"] == 2
    assert keyword_params["size"] == 3
    assert keyword_params["startDateTime"] == "2030-05-17T00:00:00Z"
    assert keyword_params["endDateTime"] == "2030-05-24T00:00:00Z"
    assert keyword_params["latlong"] == "40.758,-73.9855"
    assert "keyword" not in nearby_params
    assert nearby_params["radius"] == 100


def test_cancelled_event_is_unavailable_and_bad_coordinates_ignored() -> None:
    raw = {
        **RAW_EVENT,
        "dates": {"start": {"localDate": "2030-05-18"}, "status": {"code": "cancelled"}},
        "_embedded": {"venues": [{"name": "Somewhere", "location": {"latitude": "n/a", "longitude": "-73.9"}}]},
    }
    service = _ScriptedEvents({"_embedded": {"events": [raw, {"id": "", "name": "Nameless"}]}})

    events = asyncio.run(service.search(TIMES_SQUARE, 5.0, keyword="rock", time_window=WINDOW))

    assert len(events) == 1
    assert events[0].is_available is False
    assert events[0].coordinate is None
    assert events[0].start_date == datetime(2030, 5, 18, tzinfo=timezone.utc)


def test_build_price_string() -> None:
    assert build_price_string(None) == "Check website"
    assert build_price_string({"currency": "USD", "min": 25, "max": 25}) == "USD 25"
    assert build_price_string({"max": 1200}) == "USD 1,200"
    assert build_price_string({"currency": "EUR"}) == "Check website"
