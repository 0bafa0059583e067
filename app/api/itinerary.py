"""일정 생성 API."""

from fastapi import APIRouter

from app.core.logger import get_logger
from app.schemas.itinerary import ItineraryFailure, ItineraryRequest, ItineraryResponse
from app.services.itinerary_service import (
    build_itinerary_response,
    plan_itinerary,
    plan_multi_day_trip,
    plan_quick_trip,
)

router = APIRouter(prefix="/api/v1", tags=["itinerary"])
logger = get_logger(__name__)

ITINERARY_ERROR_EXAMPLES = {
    "empty_plan": {
        "summary": "검색 플랜 없음",
        "description": "요청에서 정거장을 하나도 만들 수 없는 경우",
        "value": {"success": False, "error": "검색 플랜에 정거장이 없습니다."},
    },
    "timeout": {
        "summary": "생성 시간 초과",
        "description": "전체 파이프라인이 요청 타임아웃을 넘긴 경우",
        "value": {"success": False, "error": "일정 생성 시간이 초과되었습니다."},
    },
}


@router.post(
    "/itinerary",
    response_model=ItineraryResponse,
    responses={
        422: {
            "model": ItineraryFailure,
            "description": "일정 생성 실패",
            "content": {"application/json": {"examples": ITINERARY_ERROR_EXAMPLES}},
        },
    },
)
async def create_itinerary(request: ItineraryRequest) -> ItineraryResponse:
    """자유 형식 요청으로 일정을 생성합니다."""
    logger.info(
        "Itinerary request received: prompt=%s has_origin=%s max_stops=%s days=%s",
        request.prompt,
        request.origin is not None,
        request.max_stops,
        request.days,
    )
    if request.days:
        itinerary = await plan_multi_day_trip(request.prompt, request.days, request.origin)
    elif request.max_stops:
        itinerary = await plan_quick_trip(request.prompt, request.origin, max_stops=request.max_stops)
    else:
        itinerary = await plan_itinerary(request.prompt, request.origin)
    return build_itinerary_response(itinerary)
