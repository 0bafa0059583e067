"""Ticketmaster Discovery API 기반 Events 서비스 구현."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

import requests

from app.core.config import get_settings
from app.core.logger import get_logger
from app.core.timeout_policy import get_timeout_policy, to_requests_timeout
from app.schemas.place import Coordinate, Event
from app.services.events_service import EventsServiceProtocol

logger = get_logger(__name__)

_UNAVAILABLE_STATUS_CODES = {"offsale", "cancelled"}


def _format_datetime(value: datetime) -> str:
    """Ticketmaster가 요구하는 YYYY-MM-DDTHH:mm:ssZ 형식으로 변환합니다."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


def build_price_string(price_range: dict[str, Any] | None) -> str:
    """priceRanges 첫 항목을 표시용 문자열로 변환합니다."""
    if not price_range:
        return "Check website"
    currency = price_range.get("currency") or "USD"
    low = price_range.get("min")
    high = price_range.get("max")
    if isinstance(low, (int, float)) and isinstance(high, (int, float)) and low != high:
        return f"{currency} {low:,.0f}-{high:,.0f}"
    if isinstance(low, (int, float)):
        return f"{currency} {low:,.0f}"
    if isinstance(high, (int, float)):
        return f"{currency} {high:,.0f}"
    return "Check website"


class TicketmasterEventsService(EventsServiceProtocol):
    """Ticketmaster Discovery v2 기반 Events 서비스.

    API 키가 없으면 호출 없이 빈 목록을 반환한다.
    """

    _BASE_URL = "https://app.ticketmaster.com/discovery/v2"

    def __init__(
        self,
        api_key: str | None,
        timeout_seconds: int = 10,
        country_code: str = "US",
        window_days: int = 7,
    ) -> None:
        self._api_key = api_key or ""
        self._timeout_seconds = timeout_seconds
        self._country_code = country_code.strip() if country_code else ""
        self._window_days = window_days

    @classmethod
    def from_settings(cls) -> TicketmasterEventsService:
        """애플리케이션 설정으로 서비스 인스턴스를 생성합니다."""
        settings = get_settings()
        if not settings.TICKETMASTER_API_KEY:
            logger.warning("TICKETMASTER_API_KEY is not configured. Event search is disabled.")
        return cls(
            api_key=settings.TICKETMASTER_API_KEY,
            timeout_seconds=get_timeout_policy(settings).ticketmaster_timeout_seconds,
            country_code=settings.TICKETMASTER_COUNTRY_CODE,
            window_days=settings.EVENT_WINDOW_DAYS,
        )

    async def search(
        self,
        location: Coordinate,
        radius_km: float,
        keyword: str | None = None,
        time_window: tuple[datetime, datetime] | None = None,
        limit: int = 10,
    ) -> list[Event]:
        """좌표 주변 이벤트를 검색합니다."""
        if not self._api_key:
            return []

        if time_window is None:
            now = datetime.now(timezone.utc)
            time_window = (now, now + timedelta(days=self._window_days))

        params: dict[str, Any] = {
            "apikey": self._api_key,
            "latlong": f"{location.lat},{location.lng}",
            "radius": max(1, min(int(round(radius_km)), 100)),
            "unit": "km",
            "size": max(1, min(int(limit), 50)),
            "sort": "date,asc",
            "includeSpellcheck": "yes",
            "startDateTime": _format_datetime(time_window[0]),
            "endDateTime": _format_datetime(time_window[1]),
        }
        term = (keyword or "").strip()
        if term:
            params["keyword"] = term
        if self._country_code:
            params["countryCode"] = self._country_code

        data = await self._request(params)
        raw_events = ((data or {}).get("_embedded") or {}).get("events") or []
        events = [event for event in (self._map_event(item) for item in raw_events) if event]
        logger.info(
            "Ticketmaster search completed: keyword=%s radius_km=%s candidate_count=%d",
            term or "-",
            params["radius"],
            len(events),
        )
        return events

    async def _request(self, params: dict[str, Any]) -> dict[str, Any] | None:
        request_timeout = to_requests_timeout(self._timeout_seconds)

        def _send() -> requests.Response:
            return requests.get(f"{self._BASE_URL}/events.json", params=params, timeout=request_timeout)

        try:
            response = await asyncio.to_thread(_send)
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as exc:
            response = exc.response
            status_code = response.status_code if response is not None else None
            body = (response.text or "")[:200] if response is not None else ""
            logger.error("Ticketmaster API error: status=%s body=%s", status_code, body)
            return None
        except requests.RequestException as exc:
            logger.error("Ticketmaster API request failed: %s", exc)
            return None
        except ValueError as exc:
            logger.error("Ticketmaster API response parse failed: %s", exc)
            return None

    def _map_event(self, raw: dict[str, Any]) -> Event | None:
        event_id = raw.get("id")
        name = raw.get("name")
        if not (event_id and name):
            return None

        venue = ((raw.get("_embedded") or {}).get("venues") or [{}])[0] or {}
        classification = (raw.get("classifications") or [{}])[0] or {}
        event_type = (
            " - ".join(
                part
                for part in (
                    (classification.get("segment") or {}).get("name"),
                    (classification.get("genre") or {}).get("name"),
                    (classification.get("subGenre") or {}).get("name"),
                )
                if part
            )
            or "Event"
        )

        coordinate = None
        venue_location = venue.get("location") or {}
        try:
            if venue_location.get("latitude") is not None and venue_location.get("longitude") is not None:
                coordinate = Coordinate(
                    lat=float(venue_location["latitude"]),
                    lng=float(venue_location["longitude"]),
                )
        except ValueError:
            coordinate = None

        dates = raw.get("dates") or {}
        start = dates.get("start") or {}
        status_code = (dates.get("status") or {}).get("code")
        venue_name = venue.get("name") or "Venue TBA"
        images = raw.get("images") or [{}]

        return Event(
            id=event_id,
            name=name,
            event_type=event_type,
            coordinate=coordinate,
            venue_name=venue_name,
            address=(venue.get("address") or {}).get("line1"),
            start_date=_parse_datetime(start.get("dateTime") or start.get("localDate")),
            end_date=_parse_datetime((dates.get("end") or {}).get("dateTime")),
            price=build_price_string((raw.get("priceRanges") or [None])[0]),
            url=raw.get("url"),
            image_url=(images[0] or {}).get("url"),
            is_available=status_code not in _UNAVAILABLE_STATUS_CODES,
            description=raw.get("info") or raw.get("pleaseNote") or f"{event_type} at {venue_name}",
        )


@lru_cache(maxsize=1)
def get_ticketmaster_service() -> TicketmasterEventsService:
    """설정 재사용을 위한 프로세스 단위 싱글톤을 반환합니다."""
    return TicketmasterEventsService.from_settings()
