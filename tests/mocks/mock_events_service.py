"""Events provider Mock 서비스."""

from __future__ import annotations

from datetime import datetime

from app.schemas.place import Coordinate, Event
from app.services.events_service import EventsServiceProtocol


def make_event(
    event_id: str,
    name: str,
    lat: float | None,
    lng: float | None,
    start: datetime | None = None,
    *,
    end: datetime | None = None,
    event_type: str = "Music - Rock",
) -> Event:
    coordinate = Coordinate(lat=lat, lng=lng) if lat is not None and lng is not None else None
    return Event(
        id=event_id,
        name=name,
        event_type=event_type,
        coordinate=coordinate,
        venue_name=f"{name} venue",
        start_date=start,
        end_date=end,
    )


class MockEventsService(EventsServiceProtocol):
    """keyword별로 미리 정한 Event 목록을 반환하는 Mock 서비스.

    keyword가 None인 호출(근처 이벤트 조회)은 nearby 목록을 반환한다.
    """

    def __init__(
        self,
        results: dict[str, list[Event]] | None = None,
        *,
        nearby: list[Event] | None = None,
        fail_nearby: bool = False,
    ) -> None:
        self._results = results or {}
        self._nearby = nearby or []
        self._fail_nearby = fail_nearby
        self.keywords: list[str | None] = []

    async def search(
        self,
        location: Coordinate,
        radius_km: float,
        keyword: str | None = None,
        time_window: tuple[datetime, datetime] | None = None,
        limit: int = 10,
    ) -> list[Event]:
        self.keywords.append(keyword)
        if keyword is None:
            if self._fail_nearby:
                raise TimeoutError("events unavailable")
            return list(self._nearby)[:limit]
        return list(self._results.get(keyword, []))[:limit]

    @property
    def keyword_calls(self) -> list[str]:
        return [keyword for keyword in self.keywords if keyword is not None]
