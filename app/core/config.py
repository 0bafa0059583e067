"""애플리케이션 전역 설정을 관리하는 모듈."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """환경 변수 기반 설정 모델."""

    OPENAI_API_KEY: str
    LLM_MODEL_NAME: str = "gpt-4o-mini"
    ENABLE_STAGE_LLM_ROUTING: bool = False
    LLM_MODEL_QUALITY: str = ""
    LLM_MODEL_SPEED: str = ""
    LLM_MODEL_COST: str = ""
    REQUEST_TIMEOUT_SECONDS: int = 60
    LLM_TIMEOUT_SECONDS: int = 30
    EXTERNAL_API_TIMEOUT_SECONDS: int = 15
    STOP_RESOLUTION_TIMEOUT_SECONDS: int = 25
    GOOGLE_PLACES_API_KEY: str | None = None
    GOOGLE_PLACES_TIMEOUT_SECONDS: int = 10
    GOOGLE_PLACES_LANGUAGE_CODE: str = "en"
    GOOGLE_PLACES_PAGE_SIZE: int = 10
    TICKETMASTER_API_KEY: str | None = None
    TICKETMASTER_TIMEOUT_SECONDS: int = 10
    TICKETMASTER_COUNTRY_CODE: str = "US"
    DEFAULT_ORIGIN_LAT: float = 40.7580
    DEFAULT_ORIGIN_LNG: float = -73.9855
    WALK_MINUTES_PER_KM: float = 15.0
    LOCAL_SEARCH_MAX_DISTANCE_KM: float = 3.0
    LOCAL_SEARCH_MAX_LEG_KM: float = 1.5
    LOCAL_SEARCH_RADIUS_METERS: int = 1500
    LOCAL_JITTER_METERS: int = 500
    ROUTE_SEARCH_RADIUS_METERS: int = 2000
    DEFAULT_SEARCH_RADIUS_METERS: int = 2000
    EVENT_SEARCH_RADIUS_KM: float = 5.0
    LOCAL_EVENT_SEARCH_RADIUS_KM: float = 1.5
    EVENT_WINDOW_DAYS: int = 7
    VENUE_STAY_MINUTES: int = 60
    EVENT_DURATION_MINUTES: int = 120
    MAX_RESOLUTION_CANDIDATES: int = 5
    EXPOSE_INTERNAL_ERRORS: bool = False
    CORS_ALLOW_ORIGINS: str = ""
    CORS_ALLOW_METHODS: str = "GET,POST,OPTIONS"
    CORS_ALLOW_HEADERS: str = "Content-Type"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("LOCAL_SEARCH_MAX_DISTANCE_KM", mode="before")
    @classmethod
    def _clamp_local_search_distance(cls, value: object) -> float:
        try:
            numeric = float(value) if value is not None else 3.0
        except (TypeError, ValueError):
            numeric = 3.0
        return min(20.0, max(0.1, numeric))

    @field_validator("LOCAL_SEARCH_MAX_LEG_KM", mode="before")
    @classmethod
    def _clamp_local_search_leg(cls, value: object) -> float:
        try:
            numeric = float(value) if value is not None else 1.5
        except (TypeError, ValueError):
            numeric = 1.5
        return min(20.0, max(0.1, numeric))

    @field_validator("WALK_MINUTES_PER_KM", mode="before")
    @classmethod
    def _clamp_walk_minutes_per_km(cls, value: object) -> float:
        try:
            numeric = float(value) if value is not None else 15.0
        except (TypeError, ValueError):
            numeric = 15.0
        return min(60.0, max(1.0, numeric))

    @field_validator("GOOGLE_PLACES_PAGE_SIZE", "MAX_RESOLUTION_CANDIDATES", mode="before")
    @classmethod
    def _clamp_result_limit(cls, value: object) -> int:
        try:
            numeric = int(value) if value is not None else 5
        except (TypeError, ValueError):
            numeric = 5
        return min(20, max(1, numeric))

    @field_validator("EVENT_WINDOW_DAYS", mode="before")
    @classmethod
    def _clamp_event_window_days(cls, value: object) -> int:
        try:
            numeric = int(value) if value is not None else 7
        except (TypeError, ValueError):
            numeric = 7
        return min(30, max(1, numeric))


@lru_cache
def get_settings() -> Settings:
    """Settings 인스턴스를 반환한다. 최초 호출 시에만 생성되고 이후 캐싱된다."""
    return Settings()
