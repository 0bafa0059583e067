"""Google Places API 서비스 구현."""

from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Any

import requests

from app.core.config import get_settings
from app.core.fallback import try_each
from app.core.geo import GeoRectangle, haversine_km, to_google_circle_payload
from app.core.logger import get_logger
from app.core.timeout_policy import get_timeout_policy, to_requests_timeout
from app.schemas.place import Coordinate, Venue
from app.services.places_service import PlacesServiceProtocol

logger = get_logger(__name__)

_CATEGORY_TYPE_MAP = {
    "food": "restaurant",
    "restaurant": "restaurant",
    "dining": "restaurant",
    "coffee": "cafe",
    "cafe": "cafe",
    "park": "park",
    "parks": "park",
    "museum": "museum",
    "shopping": "shopping_mall",
    "nightlife": "bar",
    "bar": "bar",
    "landmark": "tourist_attraction",
    "attraction": "tourist_attraction",
}

_PRICE_LEVEL_MAP = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}

_SEARCH_STAGES = ("restriction", "bias", "unconstrained")
_UNCONSTRAINED_RADIUS_FACTOR = 2.0


class GooglePlacesError(RuntimeError):
    """Google Places 호출 설정 실패 시 발생하는 예외."""


class GooglePlacesService(PlacesServiceProtocol):
    """Google Places API(New) 기반 Places 서비스.

    한 번의 search 호출 안에서 사각형 제한 → 원형 편향 → 제한 없음(2배 반경 필터) 순서로 검색한다.
    """

    _BASE_URL = "https://places.googleapis.com/v1"
    _SEARCH_PATH = "/places:searchText"

    _SEARCH_FIELD_MASK = (
        "places.id,places.displayName,places.formattedAddress,places.location,places.types,"
        "places.rating,places.userRatingCount,places.priceLevel,places.editorialSummary,places.googleMapsUri"
    )
    _DETAILS_FIELD_MASK = "id,displayName,editorialSummary"

    def __init__(
        self,
        api_key: str,
        timeout_seconds: int = 10,
        page_size: int = 10,
        language_code: str = "en",
    ) -> None:
        if not api_key:
            raise GooglePlacesError("GOOGLE_PLACES_API_KEY is not configured.")
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._page_size = page_size
        self._language_code = language_code.strip() if language_code else ""

    @classmethod
    def from_settings(cls) -> GooglePlacesService:
        """애플리케이션 설정으로 서비스 인스턴스를 생성합니다."""
        settings = get_settings()
        timeout_policy = get_timeout_policy(settings)
        if not settings.GOOGLE_PLACES_API_KEY:
            logger.error("GOOGLE_PLACES_API_KEY is not configured.")
        return cls(
            api_key=settings.GOOGLE_PLACES_API_KEY or "",
            timeout_seconds=timeout_policy.google_places_timeout_seconds,
            page_size=settings.GOOGLE_PLACES_PAGE_SIZE,
            language_code=settings.GOOGLE_PLACES_LANGUAGE_CODE,
        )

    async def search(
        self,
        query: str,
        location: Coordinate,
        radius_m: int,
        category: str | None = None,
        limit: int = 5,
    ) -> list[Venue]:
        """텍스트 쿼리로 장소를 검색합니다."""
        if not query.strip():
            return []

        included_type = _CATEGORY_TYPE_MAP.get((category or "").strip().lower())
        radius_km = max(0.1, radius_m / 1000)

        async def _run_stage(stage: str) -> list[Venue]:
            payload: dict[str, Any] = {"textQuery": query, "pageSize": min(20, max(1, limit, self._page_size))}
            if self._language_code:
                payload["languageCode"] = self._language_code
            if stage == "restriction":
                payload["locationRestriction"] = GeoRectangle.around(
                    location, radius_km
                ).to_google_location_restriction_payload()
                if included_type:
                    payload["includedType"] = included_type
            elif stage == "bias":
                payload["locationBias"] = to_google_circle_payload(location, radius_m)

            data = await self._request(
                method="POST",
                url=f"{self._BASE_URL}{self._SEARCH_PATH}",
                payload=payload,
                params=None,
                field_mask=self._SEARCH_FIELD_MASK,
            )
            venues = [
                venue
                for venue in (self._map_place(item, category) for item in (data or {}).get("places", []))
                if venue
            ]
            if stage == "unconstrained":
                max_km = radius_km * _UNCONSTRAINED_RADIUS_FACTOR
                venues = [
                    venue
                    for venue in venues
                    if venue.coordinate is not None and haversine_km(location, venue.coordinate) <= max_km
                ]
            return venues

        result = await try_each(_SEARCH_STAGES, _run_stage, accept=bool)
        venues = (result.value or [])[:limit]
        logger.info(
            "Google Places search completed: query=%s radius_m=%s included_type=%s fallback_stage=%s "
            "attempts=%d candidate_count=%d",
            query,
            radius_m,
            included_type or "none",
            result.strategy or "exhausted",
            result.attempts,
            len(venues),
        )
        return venues

    async def details(self, place_id: str) -> str | None:
        """장소 설명(editorialSummary)을 조회합니다."""
        if not place_id:
            return None

        resource = place_id if place_id.startswith("places/") else f"places/{place_id}"
        params = {"languageCode": self._language_code} if self._language_code else None

        data = await self._request(
            method="GET",
            url=f"{self._BASE_URL}/{resource}",
            payload=None,
            params=params,
            field_mask=self._DETAILS_FIELD_MASK,
        )
        summary = (data or {}).get("editorialSummary") or {}
        text = summary.get("text")
        return text.strip() if isinstance(text, str) and text.strip() else None

    async def _request(
        self,
        method: str,
        url: str,
        payload: dict[str, Any] | None,
        params: dict[str, Any] | None,
        field_mask: str,
    ) -> dict[str, Any] | None:
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self._api_key,
            "X-Goog-FieldMask": field_mask,
        }
        request_timeout = to_requests_timeout(self._timeout_seconds)

        def _send() -> requests.Response:
            with requests.Session() as session:
                return session.request(
                    method=method,
                    url=url,
                    json=payload,
                    params=params,
                    headers=headers,
                    timeout=request_timeout,
                )

        try:
            response = await asyncio.to_thread(_send)
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as exc:
            response = exc.response
            status_code = response.status_code if response is not None else None
            body = (response.text or "")[:200] if response is not None else ""
            logger.error("Google Places API error: status=%s body=%s", status_code, body)
            return None
        except requests.RequestException as exc:
            logger.error("Google Places API request failed: %s", exc)
            return None
        except ValueError as exc:
            logger.error("Google Places API response parse failed: %s", exc)
            return None

    def _map_place(self, raw: dict[str, Any], category: str | None) -> Venue | None:
        display_name = raw.get("displayName") or {}
        name = display_name.get("text")
        location = raw.get("location") or {}
        latitude = location.get("latitude")
        longitude = location.get("longitude")
        place_id = raw.get("id")

        if not (name and place_id and latitude is not None and longitude is not None):
            return None

        types = raw.get("types") or []
        rating = raw.get("rating")
        summary = (raw.get("editorialSummary") or {}).get("text")
        return Venue(
            id=place_id,
            name=name,
            category=category or (types[0] if types else "venue"),
            coordinate=Coordinate(lat=latitude, lng=longitude),
            address=raw.get("formattedAddress"),
            rating=float(rating) if rating is not None else None,
            price_level=_PRICE_LEVEL_MAP.get(raw.get("priceLevel") or ""),
            user_ratings_total=int(raw.get("userRatingCount") or 0),
            description=summary,
            url=raw.get("googleMapsUri"),
            types=types,
        )


@lru_cache(maxsize=1)
def get_google_places_service() -> GooglePlacesService:
    """설정 재사용을 위한 프로세스 단위 싱글톤을 반환합니다."""
    return GooglePlacesService.from_settings()
