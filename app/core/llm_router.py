"""Stage 기반 LLM 라우팅 유틸."""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from time import perf_counter
from typing import Any

from langchain_openai import ChatOpenAI

from app.core.config import Settings, get_settings
from app.core.logger import get_logger
from app.core.timeout_policy import get_timeout_policy

logger = get_logger(__name__)


class Tier(StrEnum):
    """Stage 라우팅 tier."""

    QUALITY = "QUALITY"
    SPEED = "SPEED"
    COST = "COST"


class Stage(StrEnum):
    """LLM 호출 stage."""

    INTENT_ANALYSIS = "INTENT_ANALYSIS"
    PLAN_DRAFT = "PLAN_DRAFT"
    EVENT_RANKING = "EVENT_RANKING"


_STAGE_TIER_MAP: dict[Stage, Tier] = {
    Stage.INTENT_ANALYSIS: Tier.SPEED,
    Stage.PLAN_DRAFT: Tier.QUALITY,
    Stage.EVENT_RANKING: Tier.COST,
}


def stage_to_tier(stage: Stage) -> Tier:
    """Stage를 tier로 매핑합니다."""
    return _STAGE_TIER_MAP[stage]


def _tier_model_name(tier: Tier, settings: Settings) -> str:
    names = {
        Tier.QUALITY: settings.LLM_MODEL_QUALITY,
        Tier.SPEED: settings.LLM_MODEL_SPEED,
        Tier.COST: settings.LLM_MODEL_COST,
    }
    return (names.get(tier) or "").strip()


def resolve_model(stage: Stage, settings: Settings | None = None) -> tuple[str, Tier | None, bool]:
    """설정과 stage를 기반으로 최종 모델을 선택합니다."""
    resolved_settings = settings or get_settings()
    fallback_model = resolved_settings.LLM_MODEL_NAME.strip()

    if not resolved_settings.ENABLE_STAGE_LLM_ROUTING:
        return fallback_model, None, False

    tier = stage_to_tier(stage)
    return _tier_model_name(tier, resolved_settings) or fallback_model, tier, True


@lru_cache(maxsize=32)
def _get_chat_openai_client(
    model: str,
    temperature: float,
    timeout_seconds: int,
    api_key: str,
) -> ChatOpenAI:
    return ChatOpenAI(
        model=model,
        temperature=temperature,
        api_key=api_key,
        request_timeout=timeout_seconds,
    )


async def _ainvoke_model(
    *,
    stage: Stage,
    tier: Tier | None,
    model: str,
    payload: Any,
    temperature: float,
    timeout_seconds: int,
    settings: Settings,
    fallback_used: bool,
) -> Any:
    started = perf_counter()
    log_extra = {
        "stage": stage.value,
        "tier": tier.value if tier else None,
        "selected_model": model,
        "fallback_used": fallback_used,
    }
    try:
        client = _get_chat_openai_client(model, temperature, timeout_seconds, settings.OPENAI_API_KEY)
        response = await client.ainvoke(payload)
    except Exception:
        log_extra["latency_ms"] = (perf_counter() - started) * 1000
        logger.warning(
            "LLM call failed: stage=%s model=%s fallback_used=%s",
            stage.value,
            model,
            fallback_used,
            extra=log_extra,
            exc_info=True,
        )
        raise

    log_extra["latency_ms"] = (perf_counter() - started) * 1000
    logger.info(
        "LLM call succeeded: stage=%s model=%s latency_ms=%.0f",
        stage.value,
        model,
        log_extra["latency_ms"],
        extra=log_extra,
    )
    return response


async def ainvoke(
    stage: Stage,
    payload: Any,
    *,
    settings: Settings | None = None,
    timeout_seconds: int | None = None,
    temperature: float | None = None,
) -> Any:
    """Stage 기준으로 모델을 선택해 비동기 LLM 호출을 수행합니다.

    stage 라우팅으로 고른 모델이 실패하면 LLM_MODEL_NAME으로 한 번 더 시도합니다.
    """
    resolved_settings = settings or get_settings()
    resolved_timeout = (
        get_timeout_policy(resolved_settings).llm_timeout_seconds
        if timeout_seconds is None
        else max(1, int(timeout_seconds))
    )
    resolved_temperature = 0.0 if temperature is None else float(temperature)
    selected_model, tier, routing_enabled = resolve_model(stage, resolved_settings)
    fallback_model = resolved_settings.LLM_MODEL_NAME.strip()

    call_kwargs = {
        "stage": stage,
        "tier": tier,
        "payload": payload,
        "temperature": resolved_temperature,
        "timeout_seconds": resolved_timeout,
        "settings": resolved_settings,
    }
    try:
        return await _ainvoke_model(model=selected_model, fallback_used=False, **call_kwargs)
    except Exception:
        if (not routing_enabled) or selected_model == fallback_model:
            raise
        logger.info("Retrying LLM call with fallback model: stage=%s model=%s", stage.value, fallback_model)

    return await _ainvoke_model(model=fallback_model, fallback_used=True, **call_kwargs)
