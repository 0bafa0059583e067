"""Places provider Mock 서비스.

실제 API 호출 없이 검색어에 맞춰 미리 정한 Venue 목록을 반환한다.
"""

from __future__ import annotations

from app.schemas.place import Coordinate, Venue
from app.services.places_service import PlacesServiceProtocol


def make_venue(
    venue_id: str,
    name: str,
    lat: float,
    lng: float,
    *,
    category: str = "food",
    rating: float = 4.5,
    reviews: int = 1000,
    description: str | None = None,
) -> Venue:
    return Venue(
        id=venue_id,
        name=name,
        category=category,
        coordinate=Coordinate(lat=lat, lng=lng),
        address=f"{name} address",
        rating=rating,
        user_ratings_total=reviews,
        description=description,
    )


class MockPlacesService(PlacesServiceProtocol):
    """검색어 부분 문자열로 결과를 고르는 Mock Places 서비스.

    results의 키가 검색어에 포함되면 해당 목록을, 아니면 default를 반환한다.
    min_radius에 키가 있으면 그 반경 이상으로 검색할 때만 결과를 반환한다.
    """

    def __init__(
        self,
        results: dict[str, list[Venue]] | None = None,
        *,
        default: list[Venue] | None = None,
        min_radius: dict[str, int] | None = None,
        failing_queries: tuple[str, ...] = (),
        descriptions: dict[str, str] | None = None,
    ) -> None:
        self._results = results or {}
        self._default = default or []
        self._min_radius = min_radius or {}
        self._failing_queries = failing_queries
        self._descriptions = descriptions or {}
        self.calls: list[tuple[str, int]] = []
        self.detail_calls: list[str] = []

    async def search(
        self,
        query: str,
        location: Coordinate,
        radius_m: int,
        category: str | None = None,
        limit: int = 5,
    ) -> list[Venue]:
        self.calls.append((query, radius_m))
        lowered = query.lower()
        if any(failing.lower() in lowered for failing in self._failing_queries):
            raise ConnectionError(f"places unavailable for {query}")

        for key, venues in self._results.items():
            if key.lower() in lowered:
                if radius_m < self._min_radius.get(key, 0):
                    return []
                return list(venues)[:limit]
        return list(self._default)[:limit]

    async def details(self, place_id: str) -> str | None:
        self.detail_calls.append(place_id)
        return self._descriptions.get(place_id)
