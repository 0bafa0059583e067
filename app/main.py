"""FastAPI 애플리케이션 진입점."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from app.api import itinerary
from app.core.config import get_settings
from app.core.logger import get_logger
from app.core.logging_config import configure_logging
from app.schemas.itinerary import ItineraryFailure
from app.services.itinerary_service import ItineraryPlanningError

configure_logging()
logger = get_logger(__name__)
settings = get_settings()


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _configure_cors(app_: FastAPI) -> None:
    origins = _split_csv(settings.CORS_ALLOW_ORIGINS)
    if not origins:
        return

    app_.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=_split_csv(settings.CORS_ALLOW_METHODS) or ["GET", "POST"],
        allow_headers=_split_csv(settings.CORS_ALLOW_HEADERS) or ["Content-Type"],
    )


app = FastAPI(title="Itinerary Planner AI")

_configure_cors(app)

app.include_router(itinerary.router)


@app.exception_handler(ItineraryPlanningError)
async def itinerary_planning_error_handler(request: Request, exc: ItineraryPlanningError) -> JSONResponse:
    """일정을 만들 수 없는 요청을 422로 응답합니다."""
    logger.warning("Itinerary planning failed on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=422, content=ItineraryFailure(error=str(exc)).model_dump())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """예상하지 못한 예외를 표준 형식으로 처리합니다."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    message = str(exc) if settings.EXPOSE_INTERNAL_ERRORS else "내부 서버 오류가 발생했습니다."
    return JSONResponse(status_code=500, content={"success": False, "error": message})


@app.get("/")
def health_check() -> dict:
    """헬스 체크 엔드포인트."""
    return {"status": "ok", "message": "Itinerary Planner AI Server is running"}
