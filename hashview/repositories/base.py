"""
저장소(Repository) 인터페이스

리뷰 제출/쿠폰 발급 로직은 아래 추상 인터페이스를 통해서만 저장소에 접근합니다.
저장 기술(PostgreSQL, SQLite 등)은 구현체가 결정합니다.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from hashview.models.business import Business
from hashview.models.coupon import Coupon
from hashview.models.review import Review


class ReviewRepository(ABC):
    """리뷰 저장소"""

    @abstractmethod
    async def create(self, review: Review) -> Review:
        """
        리뷰 저장

        Raises:
            DuplicateSubmissionException: (사용자, 매장, 날짜) 유일성 제약 위반
        """

    @abstractmethod
    async def get(self, review_id: UUID) -> Optional[Review]:
        pass

    @abstractmethod
    async def find_by_actor_and_business_since(
        self, actor_id: UUID, business_id: UUID, since: datetime
    ) -> Optional[Review]:
        """since 이후 같은 사용자가 같은 매장에 작성한 리뷰"""

    @abstractmethod
    async def count_by_actor_since(self, actor_id: UUID, since: datetime) -> int:
        """since 이후 사용자가 작성한 리뷰 수"""

    @abstractmethod
    async def count_same_device_since(self, device_id: str, since: datetime) -> int:
        """since 이후 같은 기기에서 작성된 리뷰 수 (모든 사용자 포함)"""

    @abstractmethod
    async def find_all_by_business(self, business_id: UUID) -> List[Review]:
        pass

    @abstractmethod
    async def aggregate_rating(self, business_id: UUID) -> Tuple[float, int]:
        """(승인된 리뷰의 평균 별점, 전체 리뷰 수)"""

    @abstractmethod
    async def update_status(self, review_id: UUID, status: str) -> Optional[Review]:
        pass

    @abstractmethod
    async def mark_coupon_awarded(self, review_id: UUID, coupon_id: UUID) -> None:
        pass

    @abstractmethod
    async def toggle_helpful(self, review_id: UUID, user_id: UUID) -> Optional[int]:
        """도움돼요 투표 토글 후 투표 수 반환 (리뷰 없으면 None)"""

    @abstractmethod
    async def find_flagged(
        self,
        limit: int = 50,
        offset: int = 0,
        accuracy_threshold: float = 50.0,
        anomaly_threshold: int = 3,
    ) -> List[Review]:
        pass

    @abstractmethod
    async def delete(self, review_id: UUID) -> bool:
        pass


class BusinessRepository(ABC):
    """매장 저장소"""

    @abstractmethod
    async def find_by_id(self, business_id: UUID) -> Optional[Business]:
        pass

    @abstractmethod
    async def update_rating(
        self, business_id: UUID, average: float, count: int
    ) -> None:
        pass


class CouponRepository(ABC):
    """
    쿠폰 저장소

    conditional_redeem, bulk_expire, expire_if_active는 모두 상태 조건부
    단일 UPDATE로 구현해야 합니다 (동시 스캔에서도 최대 1회 사용 보장).
    """

    @abstractmethod
    async def find_active_template(self, business_id: UUID) -> Optional[Coupon]:
        """매장의 활성 리워드 템플릿 (type=business)"""

    @abstractmethod
    async def create(self, coupon: Coupon) -> Coupon:
        pass

    @abstractmethod
    async def find_by_id(self, coupon_id: UUID) -> Optional[Coupon]:
        pass

    @abstractmethod
    async def find_by_code(self, code: str) -> Optional[Coupon]:
        pass

    @abstractmethod
    async def code_exists(self, code: str) -> bool:
        pass

    @abstractmethod
    async def conditional_redeem(
        self, coupon_id: UUID, redeemer_id: UUID, now: datetime
    ) -> Optional[Coupon]:
        """
        active 상태이고 유효 기간 안인 경우에만 redeemed로 전환

        Returns:
            전환된 쿠폰, 조건 불충족이면 None
        """

    @abstractmethod
    async def expire_if_active(self, coupon_id: UUID, now: datetime) -> bool:
        """유효 기간이 지난 active 쿠폰 하나를 expired로 전환"""

    @abstractmethod
    async def bulk_expire(self, before: datetime) -> int:
        """valid_until < before 인 active 리뷰 리워드 쿠폰을 모두 expired로 전환"""

    @abstractmethod
    async def increment_template_usage(self, template_id: UUID) -> None:
        pass

    @abstractmethod
    async def increment_template_redemption(self, template_id: UUID) -> None:
        pass

    @abstractmethod
    async def count_redeemed_rewards(self, business_id: UUID) -> int:
        """매장에서 사용 완료된 리뷰 리워드 쿠폰 수"""

    @abstractmethod
    async def count_by_status(self, business_id: UUID) -> Dict[str, int]:
        """매장의 리뷰 리워드 쿠폰 상태별 개수"""
