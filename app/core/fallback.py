"""전략 목록을 순서대로 시도하는 재시도 조합기."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Iterable, TypeVar

S = TypeVar("S")
R = TypeVar("R")


@dataclass(frozen=True, slots=True)
class LadderResult(Generic[S, R]):
    """사다리 실행 결과.

    value는 마지막으로 시도한 전략의 결과이고, 성공 시 strategy는 성공한 전략이다.
    """

    value: R | None
    strategy: S | None
    attempts: int
    succeeded: bool


async def try_each(
    strategies: Iterable[S],
    attempt: Callable[[S], Awaitable[R]],
    *,
    accept: Callable[[R], bool],
) -> LadderResult[S, R]:
    """전략을 순서대로 실행해 accept를 만족하면 즉시 멈춥니다.

    strategies는 한 번만 순회하므로 호출 횟수는 전략 수를 넘지 않습니다.
    """
    attempts = 0
    value: R | None = None
    for strategy in strategies:
        attempts += 1
        value = await attempt(strategy)
        if accept(value):
            return LadderResult(value=value, strategy=strategy, attempts=attempts, succeeded=True)
    return LadderResult(value=value, strategy=None, attempts=attempts, succeeded=False)
