"""일정(Itinerary) 및 API 요청/응답 모델."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from app.schemas.enums import DurationType, IssueSeverity, IssueType
from app.schemas.place import Coordinate, Event, Venue


class _StopFields(BaseModel):
    """Venue/Event 정거장이 공유하는 경로 필드."""

    stop_number: int = Field(..., ge=1, description="원래 SearchPoint 순서")
    order: int = Field(default=0, ge=0, description="최종 방문 순서 (1부터)")
    walk_time_minutes: int = Field(default=0, ge=0, description="이전 정거장에서 도보 시간")
    distance_from_previous_km: float = Field(default=0.0, ge=0.0, description="이전 정거장과의 거리")
    is_explicit_request: bool = Field(default=False, description="사용자 지정 여부")
    is_placeholder: bool = Field(default=False, description="대체 정거장 여부")
    purpose: str = Field(default="", description="방문 목적")
    day_number: int | None = Field(default=None, ge=1, description="multi_day 일차")
    timing_conflict: bool = Field(default=False, description="이전 정거장에서 제시간에 도착할 수 없는지 여부")


class VenueStop(_StopFields, Venue):
    """장소 정거장."""

    kind: Literal["venue"] = "venue"
    estimated_duration_minutes: int | None = Field(default=None, ge=1, description="예상 체류 시간")
    nearby_events: list[Event] = Field(default_factory=list, description="근처 이벤트")


class EventStop(_StopFields, Event):
    """이벤트 정거장."""

    kind: Literal["event"] = "event"


ResolvedStop = Annotated[Union[VenueStop, EventStop], Field(discriminator="kind")]


class QualityIssue(BaseModel):
    """품질 검사 이슈."""

    type: IssueType
    problem: str
    suggestion: str
    severity: IssueSeverity = IssueSeverity.WARNING
    stop_order: int | None = Field(default=None, description="문제가 된 정거장 순서")


class DayPlan(BaseModel):
    """multi_day 일자별 요약."""

    day_number: int = Field(..., ge=1)
    theme: str
    stop_orders: list[int] = Field(default_factory=list)


class Itinerary(BaseModel):
    """최종 일정."""

    title: str | None = None
    description: str | None = None
    duration: str = ""
    duration_type: DurationType = DurationType.FEW_HOURS
    day_count: int = 0
    stops: list[ResolvedStop] = Field(default_factory=list)
    total_distance_km: float | None = Field(default=0.0, ge=0.0)
    total_walk_minutes: int = Field(default=0, ge=0)
    quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    issues: list[QualityIssue] = Field(default_factory=list)
    is_local_search: bool = False
    search_radius_m: int = 1500
    local_distance_cap_km: float | None = None
    max_distance_from_origin_km: float = 0.0
    warnings: list[str] = Field(default_factory=list)
    distance_warning: bool = False
    needs_variety: bool = False
    no_events_found: bool = False
    event_note: str | None = None
    days: list[DayPlan] = Field(default_factory=list)


class ItineraryRequest(BaseModel):
    """일정 생성 요청."""

    prompt: str = Field(..., min_length=1, description="자유 형식 요청")
    origin: Coordinate | None = Field(default=None, description="사용자 위치 (없으면 기본 출발지)")
    max_stops: int | None = Field(default=None, ge=1, le=10, description="quick trip 정거장 상한")
    days: int | None = Field(default=None, ge=1, le=7, description="multi-day 일수")


class ItineraryResponse(BaseModel):
    """일정 생성 응답."""

    success: bool = True
    itinerary: Itinerary
    quality_score: float
    issues: list[QualityIssue] = Field(default_factory=list)
    no_events_found: bool = False
    is_local_search: bool = False


class ItineraryFailure(BaseModel):
    """일정 생성 실패 응답."""

    success: bool = False
    error: str
