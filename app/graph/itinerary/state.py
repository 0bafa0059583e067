"""일정 그래프 상태와 요청 단위 세션 정의."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TypedDict

from app.graph.itinerary.utils import names_overlap
from app.schemas.enums import DurationType
from app.schemas.intent import Intent
from app.schemas.itinerary import Itinerary, QualityIssue, ResolvedStop
from app.schemas.place import Coordinate
from app.schemas.plan import SearchPlan


@dataclass(frozen=True, slots=True)
class SelectionSnapshot:
    """해석 작업 시작 시점의 선택 엔티티 복사본."""

    ids: frozenset[str] = frozenset()
    names: tuple[str, ...] = ()

    def is_duplicate(self, entity_id: str, name: str) -> bool:
        """id가 같거나 이름이 겹치면 중복으로 봅니다."""
        if entity_id and entity_id in self.ids:
            return True
        return any(names_overlap(name, selected) for selected in self.names)


@dataclass(slots=True)
class PlanningSession:
    """요청 하나 동안 단계들이 공유하는 세션 상태.

    해석 작업은 snapshot()만 읽고, 선택 기록은 병합 단계에서 record()로 한 번에 반영한다.
    """

    origin: Coordinate
    duration_type: DurationType = DurationType.FEW_HOURS
    day_count: int = 0
    is_local_search: bool = False
    search_radius_m: int = 1500
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    intent: Intent | None = None
    selected_ids: set[str] = field(default_factory=set)
    selected_names: list[str] = field(default_factory=list)
    no_events_found: bool = False

    def snapshot(self) -> SelectionSnapshot:
        """현재 선택 상태의 불변 복사본을 반환합니다."""
        return SelectionSnapshot(ids=frozenset(self.selected_ids), names=tuple(self.selected_names))

    def is_duplicate(self, entity_id: str, name: str) -> bool:
        return self.snapshot().is_duplicate(entity_id, name)

    def record(self, entity_id: str, name: str) -> None:
        """선택한 엔티티를 기록합니다."""
        if entity_id:
            self.selected_ids.add(entity_id)
        if name and name not in self.selected_names:
            self.selected_names.append(name)


class ItineraryState(TypedDict, total=False):
    """일정 생성 그래프 상태.

    Keys:
        prompt: 원문 요청
        origin: 출발 좌표
        session: 요청 단위 세션
        intent: 정규화된 요청
        search_plan: 검색 플랜
        resolved_stops: 해석된 정거장 목록
        itinerary: 조립된 일정
        quality_issues: 품질 검사 이슈
        error: 오류 메시지
    """

    prompt: str
    origin: Coordinate
    session: PlanningSession
    intent: Intent
    search_plan: SearchPlan
    resolved_stops: list[ResolvedStop]
    itinerary: Itinerary | None
    quality_issues: list[QualityIssue]
    error: str | None
