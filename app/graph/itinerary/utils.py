"""일정 그래프 공통 유틸리티."""

from __future__ import annotations

import json
import re

from app.core.llm_router import Stage
from app.core.logger import get_logger
from app.services.completion_service import CompletionServiceProtocol

logger = get_logger(__name__)

_JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


def strip_code_fence(text: str) -> str:
    """코드 펜스를 제거합니다."""
    content = (text or "").strip()
    if content.startswith("```"):
        parts = content.split("```")
        if len(parts) > 1:
            content = parts[1].strip()
            if content.startswith("json"):
                content = content[4:].strip()
    return content.strip()


def parse_json_object(text: str) -> dict:
    """LLM 응답 문자열에서 JSON 객체를 최대한 복구해 파싱합니다. 실패하면 빈 dict를 반환합니다."""
    content = strip_code_fence(text)
    if not content:
        return {}

    try:
        parsed = json.loads(content)
        return parsed if isinstance(parsed, dict) else {}
    except ValueError:
        pass

    match = _JSON_OBJECT_PATTERN.search(content)
    if not match:
        return {}

    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


async def complete_json(
    completion_service: CompletionServiceProtocol | None,
    stage: Stage,
    system_prompt: str,
    user_prompt: str,
) -> dict:
    """완성 서비스를 호출해 JSON 객체를 반환합니다.

    호출 실패, 타임아웃, 파싱 실패는 모두 빈 dict로 돌려준다.
    """
    if completion_service is None:
        return {}

    try:
        raw = await completion_service.complete(system_prompt, user_prompt, stage=stage)
    except Exception as exc:
        logger.warning("Completion call failed: stage=%s error=%r", stage.value, exc)
        return {}

    if isinstance(raw, dict):
        return raw
    parsed = parse_json_object(raw)
    if not parsed:
        logger.warning("Completion output was not a JSON object: stage=%s length=%d", stage.value, len(raw or ""))
    return parsed


def dedupe_preserving_order(values: list[str]) -> list[str]:
    """대소문자 무시 중복을 제거하고 처음 순서를 유지합니다."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        normalized = (value or "").strip()
        key = normalized.lower()
        if not normalized or key in seen:
            continue
        seen.add(key)
        result.append(normalized)
    return result


def names_overlap(left: str, right: str) -> bool:
    """두 장소명이 같은지(대소문자 무시 동일 또는 부분 문자열) 판별합니다."""
    a = (left or "").strip().lower()
    b = (right or "").strip().lower()
    if not a or not b:
        return False
    return a == b or a in b or b in a
