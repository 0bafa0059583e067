"""Places 서비스 추상 프로토콜 정의."""

from abc import ABC, abstractmethod

from app.schemas.place import Coordinate, Venue


class PlacesServiceProtocol(ABC):
    """장소 검색 provider 호출을 위한 인터페이스를 정의합니다.

    구현체는 네트워크/HTTP 오류를 빈 결과로 돌려주고 예외를 전파하지 않는다.
    """

    @abstractmethod
    async def search(
        self,
        query: str,
        location: Coordinate,
        radius_m: int,
        category: str | None = None,
        limit: int = 5,
    ) -> list[Venue]:
        """검색어와 기준 좌표로 장소를 검색합니다.

        Args:
            query: 검색 쿼리
            location: 검색 기준 좌표
            radius_m: 검색 반경(m)
            category: 카테고리 힌트
            limit: 최대 결과 수

        Returns:
            표준 Venue 목록
        """
        raise NotImplementedError

    @abstractmethod
    async def details(self, place_id: str) -> str | None:
        """장소 설명을 조회합니다.

        Args:
            place_id: provider 장소 ID

        Returns:
            장소 설명 또는 None
        """
        raise NotImplementedError
