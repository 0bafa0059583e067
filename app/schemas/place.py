"""Places/Events provider 응답을 표준화한 Venue/Event 모델."""

from datetime import datetime

from pydantic import BaseModel, Field


class Coordinate(BaseModel):
    """위경도 좌표."""

    lat: float = Field(..., ge=-90.0, le=90.0, description="위도")
    lng: float = Field(..., ge=-180.0, le=180.0, description="경도")


class Venue(BaseModel):
    """Places provider에서 반환하는 장소 정보."""

    id: str = Field(..., description="provider 고유 ID")
    name: str = Field(..., description="장소 이름")
    category: str = Field(default="venue", description="장소 카테고리")
    coordinate: Coordinate | None = Field(default=None, description="장소 좌표")
    address: str | None = Field(default=None, description="장소 주소")
    rating: float | None = Field(default=None, ge=0.0, le=5.0, description="평점")
    price_level: int | None = Field(default=None, ge=0, le=4, description="가격대 (0-4)")
    user_ratings_total: int = Field(default=0, ge=0, description="리뷰 수")
    description: str | None = Field(default=None, description="장소 설명")
    url: str | None = Field(default=None, description="지도 URL")
    types: list[str] = Field(default_factory=list, description="provider 장소 유형 목록")


class Event(BaseModel):
    """Events provider에서 반환하는 이벤트 정보."""

    id: str = Field(..., description="provider 고유 ID")
    name: str = Field(..., description="이벤트 이름")
    event_type: str = Field(default="Event", description="이벤트 유형 (segment - genre)")
    coordinate: Coordinate | None = Field(default=None, description="공연장 좌표 (지오코딩이 없으면 None)")
    venue_name: str | None = Field(default=None, description="공연장 이름")
    address: str | None = Field(default=None, description="공연장 주소")
    start_date: datetime | None = Field(default=None, description="시작 시각")
    end_date: datetime | None = Field(default=None, description="종료 시각")
    price: str = Field(default="Check website", description="가격 표시 문자열")
    url: str | None = Field(default=None, description="티켓 URL")
    image_url: str | None = Field(default=None, description="대표 이미지 URL")
    is_available: bool = Field(default=True, description="예매 가능 여부")
    description: str | None = Field(default=None, description="이벤트 설명")
