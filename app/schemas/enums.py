"""일정 생성 파이프라인에서 공유하는 열거형."""

from enum import StrEnum


class DurationType(StrEnum):
    """요청 일정 길이 분류."""

    FEW_HOURS = "few_hours"
    FULL_DAY = "full_day"
    MULTI_DAY = "multi_day"


class StopKind(StrEnum):
    """SearchPoint/ResolvedStop 종류."""

    VENUE = "venue"
    EVENT = "event"


class SearchStrategyType(StrEnum):
    """플랜 검색 전략."""

    MINIMAL = "minimal"
    BALANCED = "balanced"
    COMPREHENSIVE = "comprehensive"


class Vibe(StrEnum):
    """요청 분위기 태그."""

    ADVENTURE = "adventure"
    RELAXED = "relaxed"
    CULTURAL = "cultural"
    FOODIE = "foodie"
    ROMANTIC = "romantic"
    MIXED = "mixed"


class IssueType(StrEnum):
    """품질 검사 항목."""

    TIMING = "timing"
    VARIETY = "variety"
    DISTANCE = "distance"
    LOCAL_CONSTRAINTS = "localConstraints"
    FEASIBILITY = "feasibility"
    COMPLETENESS = "completeness"


class IssueSeverity(StrEnum):
    """품질 이슈 심각도."""

    WARNING = "warning"
    ERROR = "error"
