"""검색 플랜(SearchPoint) 모델."""

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.enums import DurationType, SearchStrategyType, StopKind, Vibe
from app.schemas.place import Coordinate


class SearchPoint(BaseModel):
    """해석 전 정거장 서술자.

    좌표 재작성은 model_copy로 새 인스턴스를 만든다.
    """

    model_config = ConfigDict(frozen=True)

    stop_number: int = Field(..., ge=1, description="의도된 방문 순서 (1부터)")
    kind: StopKind = Field(..., description="venue 또는 event")
    query: str = Field(..., min_length=1, description="검색어")
    category: str = Field(default="venue", description="카테고리")
    location: Coordinate = Field(..., description="검색 기준 좌표")
    purpose: str = Field(default="", description="방문 목적")
    explicit_request: bool = Field(default=False, description="사용자가 직접 지정한 장소/이벤트 여부")
    day_number: int | None = Field(default=None, ge=1, description="multi_day 일차")
    search_radius_m: int | None = Field(default=None, ge=100, description="정거장별 검색 반경(m)")
    estimated_duration_minutes: int | None = Field(default=None, ge=1, description="예상 체류 시간")
    event_keywords: list[str] = Field(default_factory=list, description="이벤트 검색어 목록")


class SearchStrategy(BaseModel):
    """플랜 전체 검색 전략."""

    type: SearchStrategyType = Field(default=SearchStrategyType.BALANCED)
    include_events: bool = Field(default=False)
    search_radius_m: int = Field(default=2000, ge=100)
    max_stops: int = Field(default=3, ge=1)


class SearchPlan(BaseModel):
    """PlanAdapter 결과."""

    title: str
    description: str
    duration: str = Field(..., description="표시용 일정 길이")
    duration_type: DurationType
    day_count: int = 0
    vibe: Vibe = Vibe.MIXED
    strategy: SearchStrategy = Field(default_factory=SearchStrategy)
    is_local_search: bool = False
    points: list[SearchPoint] = Field(default_factory=list)


class PlanDraftPoint(BaseModel):
    """LLM 플랜 초안의 정거장.

    파싱 실패를 줄이기 위해 최소 제약으로 먼저 파싱한다.
    """

    model_config = ConfigDict(extra="ignore")

    type: StopKind = StopKind.VENUE
    query: str = Field(..., min_length=1)
    category: str = "venue"
    lat: float | None = Field(default=None, ge=-90.0, le=90.0)
    lng: float | None = Field(default=None, ge=-180.0, le=180.0)
    purpose: str = ""
    estimated_duration_minutes: int | None = Field(default=None, ge=1)
    is_explicit_request: bool = False
    day_number: int | None = Field(default=None, ge=1)


class PlanDraft(BaseModel):
    """LLM 플랜 초안."""

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    description: str = ""
    duration: str = ""
    strategy_type: SearchStrategyType | None = None
    search_points: list[PlanDraftPoint] = Field(default_factory=list)
