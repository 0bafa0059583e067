"""사용자 요청을 정규화한 Intent 모델."""

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.enums import DurationType, Vibe
from app.schemas.place import Coordinate


class LocationContext(BaseModel):
    """요청에 언급된 위치 정보."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(default="unspecified", description="single/multiple/route/unspecified")
    locations: list[str] = Field(default_factory=list, description="언급된 전체 위치")
    meal_locations: list[str] = Field(default_factory=list, description="식사 장소 언급")
    visit_locations: list[str] = Field(default_factory=list, description="방문 장소 언급")


class Intent(BaseModel):
    """요청 해석 결과. 생성 후 변경하지 않는다."""

    model_config = ConfigDict(frozen=True)

    duration_type: DurationType = Field(..., description="일정 길이 분류")
    estimated_hours: int = Field(..., ge=1, description="예상 소요 시간")
    day_count: int = Field(default=0, ge=0, description="multi_day 일수")
    explicit_venues: list[str] = Field(default_factory=list, description="사용자가 지정한 장소명")
    venue_categories: list[str] = Field(default_factory=list, description="장소 카테고리 힌트")
    event_interest: bool = Field(default=False, description="이벤트 관심 여부")
    event_keywords: list[str] = Field(default_factory=list, description="구체적인 순서의 이벤트 검색어 사다리")
    location_context: LocationContext = Field(default_factory=LocationContext)
    time_constraints: list[str] = Field(default_factory=list, description="시간 제약 표현")
    special_requirements: list[str] = Field(default_factory=list, description="특수 요구사항")
    sequence_matters: bool = Field(default=False, description="사용자가 순서를 지정했는지 여부")
    vibe: Vibe = Field(default=Vibe.MIXED, description="분위기 태그")
    local_search: bool = Field(default=False, description="근처/로컬 검색 요청 여부")
    route_activity: str | None = Field(default=None, description="running/cycling 등 경로형 활동")
    area_anchor: str | None = Field(default=None, description="경로형 활동의 기준 지역명")
    original_prompt: str = Field(..., description="원문 요청")
    origin: Coordinate = Field(..., description="해석된 출발 좌표")

    @property
    def meal_locations(self) -> list[str]:
        return self.location_context.meal_locations

    @property
    def visit_locations(self) -> list[str]:
        return self.location_context.visit_locations
