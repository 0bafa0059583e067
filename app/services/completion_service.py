"""텍스트 완성(LLM) 서비스 프로토콜과 OpenAI 구현."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from functools import lru_cache

from langchain_core.messages import HumanMessage, SystemMessage

from app.core.llm_router import Stage, ainvoke
from app.core.logger import get_logger
from app.core.timeout_policy import get_timeout_policy

logger = get_logger(__name__)


class CompletionServiceProtocol(ABC):
    """시스템/사용자 프롬프트로 원문 응답을 돌려주는 인터페이스.

    JSON 복구는 호출 측(app.graph.itinerary.utils.complete_json)이 담당한다.
    """

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str, *, stage: Stage) -> str:
        """프롬프트를 보내고 응답 텍스트를 반환합니다."""
        raise NotImplementedError


class OpenAICompletionService(CompletionServiceProtocol):
    """llm_router를 통해 ChatOpenAI를 호출하는 완성 서비스."""

    def __init__(self, timeout_seconds: int | None = None) -> None:
        self._timeout_seconds = timeout_seconds or get_timeout_policy().llm_timeout_seconds

    async def complete(self, system_prompt: str, user_prompt: str, *, stage: Stage) -> str:
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        response = await asyncio.wait_for(
            ainvoke(stage, messages, timeout_seconds=self._timeout_seconds),
            timeout=self._timeout_seconds,
        )
        content = response.content
        return content if isinstance(content, str) else str(content)


@lru_cache(maxsize=1)
def get_completion_service() -> OpenAICompletionService:
    """프로세스 단위 싱글톤을 반환합니다."""
    return OpenAICompletionService()
