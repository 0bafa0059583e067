"""LLM 응답 JSON 복구와 완성 서비스 테스트."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from app.core.llm_router import Stage
from app.graph.itinerary.utils import complete_json, dedupe_preserving_order, names_overlap, parse_json_object
from app.services.completion_service import OpenAICompletionService


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"points": []}', {"points": []}),
        ('```json\n{"title": "Trip"}\n```', {"title": "Trip"}),
        ('Here is your plan: {"title": "Trip"} Enjoy!', {"title": "Trip"}),
        ("[1, 2, 3]", {}),
        ("not json at all", {}),
        ("", {}),
        ('{"title": "Trip"', {}),
    ],
)
def test_parse_json_object(raw, expected) -> None:
    assert parse_json_object(raw) == expected


@pytest.mark.asyncio
async def test_complete_json_recovers_prose_wrapped_output() -> None:
    service = AsyncMock()
    service.complete.return_value = 'Sure! {"is_local": true}'

    result = await complete_json(service, Stage.INTENT_ANALYSIS, "system", "user")

    assert result == {"is_local": True}
    service.complete.assert_awaited_once_with("system", "user", stage=Stage.INTENT_ANALYSIS)


@pytest.mark.asyncio
async def test_complete_json_swallows_service_failure() -> None:
    service = AsyncMock()
    service.complete.side_effect = TimeoutError()

    assert await complete_json(service, Stage.PLAN_DRAFT, "system", "user") == {}


@pytest.mark.asyncio
async def test_complete_json_without_service() -> None:
    assert await complete_json(None, Stage.PLAN_DRAFT, "system", "user") == {}


@pytest.mark.asyncio
async def test_openai_completion_service_returns_text() -> None:
    fake_ainvoke = AsyncMock(return_value=SimpleNamespace(content='{"points": []}'))

    with patch("app.services.completion_service.ainvoke", fake_ainvoke):
        result = await OpenAICompletionService(timeout_seconds=5).complete("system", "user", stage=Stage.PLAN_DRAFT)

    assert result == '{"points": []}'
    stage, messages = fake_ainvoke.await_args.args
    assert stage == Stage.PLAN_DRAFT
    assert [message.content for message in messages] == ["system", "user"]
    assert fake_ainvoke.await_args.kwargs == {"timeout_seconds": 5}


def test_dedupe_preserving_order() -> None:
    assert dedupe_preserving_order(["Rock", "rock ", "", "Jazz"]) == ["Rock", "Jazz"]


def test_names_overlap() -> None:
    assert names_overlap("Joe's Pizza", "joe's pizza broadway")
    assert not names_overlap("Joe's Pizza", "")
    assert not names_overlap("Central Park", "Bryant Park")
