"""
리뷰 작성 한도 및 중복 검사

하루 작성 한도와 (사용자, 매장, 날짜) 중복 여부를 리뷰 저장소에서 조회만 합니다.
동시 제출 경쟁은 막지 못하며, 실제 보장은 reviews 테이블의 유일성 제약이 담당합니다.
"""

from datetime import datetime
from typing import NamedTuple, Optional
from uuid import UUID

from hashview.repositories.base import ReviewRepository
from hashview.utils.date_utils import start_of_day


class RateCheckResult(NamedTuple):
    """작성 한도 검사 결과"""

    allowed: bool
    count: int


class ReviewGuardService:
    """리뷰 작성 가드"""

    def __init__(self, reviews: ReviewRepository, daily_limit: int = 5):
        self.reviews = reviews
        self.daily_limit = daily_limit

    async def check_rate(
        self, actor_id: UUID, window_start: Optional[datetime] = None
    ) -> RateCheckResult:
        """
        하루 작성 한도 검사

        Args:
            actor_id: 사용자 ID
            window_start: 집계 시작 시각 (기본값: 오늘 UTC 자정)

        Returns:
            RateCheckResult: 이미 daily_limit개 이상이면 allowed=False
        """
        since = window_start or start_of_day()
        count = await self.reviews.count_by_actor_since(actor_id, since)
        return RateCheckResult(allowed=count < self.daily_limit, count=count)

    async def check_duplicate(
        self,
        actor_id: UUID,
        business_id: UUID,
        window_start: Optional[datetime] = None,
    ) -> bool:
        """
        같은 날 같은 매장 리뷰 존재 여부

        Returns:
            bool: 이미 있으면 True
        """
        since = window_start or start_of_day()
        existing = await self.reviews.find_by_actor_and_business_since(
            actor_id, business_id, since
        )
        return existing is not None
