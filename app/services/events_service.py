"""Events 서비스 추상 프로토콜 정의."""

from abc import ABC, abstractmethod
from datetime import datetime

from app.schemas.place import Coordinate, Event


class EventsServiceProtocol(ABC):
    """이벤트 검색 provider 호출을 위한 인터페이스를 정의합니다."""

    @abstractmethod
    async def search(
        self,
        location: Coordinate,
        radius_km: float,
        keyword: str | None = None,
        time_window: tuple[datetime, datetime] | None = None,
        limit: int = 10,
    ) -> list[Event]:
        """좌표 주변 이벤트를 검색합니다.

        Args:
            location: 검색 기준 좌표
            radius_km: 검색 반경(km)
            keyword: 검색어 (None이면 키워드 없이 검색)
            time_window: (시작, 종료) 시각
            limit: 최대 결과 수

        Returns:
            표준 Event 목록
        """
        raise NotImplementedError
