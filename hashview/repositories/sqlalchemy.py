"""
SQLAlchemy 비동기 저장소 구현

모든 저장소는 하나의 AsyncSession을 공유하며 flush까지만 수행합니다.
커밋/롤백은 서비스 계층이 결정합니다.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update, delete, func, or_, and_, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hashview.models.business import Business
from hashview.models.coupon import Coupon, CouponStatus, CouponType
from hashview.models.review import Review, ReviewStatus
from hashview.repositories.base import (
    BusinessRepository,
    CouponRepository,
    ReviewRepository,
)
from hashview.utils.exceptions import DuplicateSubmissionException


def _is_unique_violation(exc: IntegrityError) -> bool:
    """유일성 제약 위반 여부 (PostgreSQL / SQLite 메시지 모두 처리)"""
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate" in message


class SqlAlchemyReviewRepository(ReviewRepository):
    """리뷰 저장소 (SQLAlchemy)"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def create(self, review: Review) -> Review:
        self.db.add(review)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            if _is_unique_violation(e):
                raise DuplicateSubmissionException(business_id=str(review.business_id))
            raise
        return review

    async def get(self, review_id: UUID) -> Optional[Review]:
        return await self.db.get(Review, review_id)

    async def find_by_actor_and_business_since(
        self, actor_id: UUID, business_id: UUID, since: datetime
    ) -> Optional[Review]:
        result = await self.db.execute(
            select(Review)
            .where(
                and_(
                    Review.user_id == actor_id,
                    Review.business_id == business_id,
                    Review.captured_at >= since,
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_by_actor_since(self, actor_id: UUID, since: datetime) -> int:
        result = await self.db.execute(
            select(func.count(Review.id)).where(
                and_(Review.user_id == actor_id, Review.captured_at >= since)
            )
        )
        return result.scalar() or 0

    async def count_same_device_since(self, device_id: str, since: datetime) -> int:
        result = await self.db.execute(
            select(func.count(Review.id)).where(
                and_(Review.device_id == device_id, Review.captured_at >= since)
            )
        )
        return result.scalar() or 0

    async def find_all_by_business(self, business_id: UUID) -> List[Review]:
        result = await self.db.execute(
            select(Review)
            .where(Review.business_id == business_id)
            .order_by(Review.captured_at.desc())
        )
        return list(result.scalars().all())

    async def aggregate_rating(self, business_id: UUID) -> Tuple[float, int]:
        # 평균은 승인된 리뷰만, 리뷰 수는 전체
        approved_rating = case(
            (Review.status == ReviewStatus.APPROVED.value, Review.rating),
            else_=None,
        )
        result = await self.db.execute(
            select(func.avg(approved_rating), func.count(Review.id)).where(
                Review.business_id == business_id
            )
        )
        average, count = result.one()
        return float(average or 0.0), int(count or 0)

    async def update_status(self, review_id: UUID, status: str) -> Optional[Review]:
        review = await self.get(review_id)
        if review is None:
            return None
        review.status = status
        await self.db.flush()
        return review

    async def mark_coupon_awarded(self, review_id: UUID, coupon_id: UUID) -> None:
        await self.db.execute(
            update(Review)
            .where(Review.id == review_id)
            .values(coupon_awarded=True, coupon_id=coupon_id)
            .execution_options(synchronize_session="fetch")
        )

    async def toggle_helpful(self, review_id: UUID, user_id: UUID) -> Optional[int]:
        review = await self.get(review_id)
        if review is None:
            return None

        voter = str(user_id)
        voters = list(review.helpful_user_ids or [])
        if voter in voters:
            voters.remove(voter)
        else:
            voters.append(voter)

        # JSON 컬럼은 재할당해야 변경이 감지됨
        review.helpful_user_ids = voters
        await self.db.flush()
        return len(voters)

    async def find_flagged(
        self,
        limit: int = 50,
        offset: int = 0,
        accuracy_threshold: float = 50.0,
        anomaly_threshold: int = 3,
    ) -> List[Review]:
        result = await self.db.execute(
            select(Review)
            .where(
                or_(
                    Review.status == ReviewStatus.FLAGGED.value,
                    Review.is_mock_location.is_(True),
                    Review.suspicious_activities_count >= anomaly_threshold,
                    Review.location_accuracy > accuracy_threshold,
                )
            )
            .order_by(Review.captured_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete(self, review_id: UUID) -> bool:
        result = await self.db.execute(delete(Review).where(Review.id == review_id))
        return result.rowcount > 0


class SqlAlchemyBusinessRepository(BusinessRepository):
    """매장 저장소 (SQLAlchemy)"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def find_by_id(self, business_id: UUID) -> Optional[Business]:
        return await self.db.get(Business, business_id)

    async def update_rating(
        self, business_id: UUID, average: float, count: int
    ) -> None:
        await self.db.execute(
            update(Business)
            .where(Business.id == business_id)
            .values(rating_average=round(average, 2), rating_count=count)
            .execution_options(synchronize_session="fetch")
        )


class SqlAlchemyCouponRepository(CouponRepository):
    """쿠폰 저장소 (SQLAlchemy)"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _reload(self, coupon_id: UUID) -> Optional[Coupon]:
        # 같은 세션에 먼저 로드된 객체가 있어도 DB 상태로 덮어씀
        result = await self.db.execute(
            select(Coupon)
            .where(Coupon.id == coupon_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_active_template(self, business_id: UUID) -> Optional[Coupon]:
        result = await self.db.execute(
            select(Coupon)
            .where(
                and_(
                    Coupon.business_id == business_id,
                    Coupon.type == CouponType.BUSINESS.value,
                    Coupon.is_active.is_(True),
                )
            )
            .order_by(Coupon.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create(self, coupon: Coupon) -> Coupon:
        self.db.add(coupon)
        await self.db.flush()
        return coupon

    async def find_by_id(self, coupon_id: UUID) -> Optional[Coupon]:
        return await self._reload(coupon_id)

    async def find_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.db.execute(
            select(Coupon).where(Coupon.code == code.strip().upper())
        )
        return result.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        result = await self.db.execute(
            select(func.count(Coupon.id)).where(Coupon.code == code)
        )
        return (result.scalar() or 0) > 0

    async def conditional_redeem(
        self, coupon_id: UUID, redeemer_id: UUID, now: datetime
    ) -> Optional[Coupon]:
        result = await self.db.execute(
            update(Coupon)
            .where(
                and_(
                    Coupon.id == coupon_id,
                    Coupon.type == CouponType.REVIEW_REWARD.value,
                    Coupon.status == CouponStatus.ACTIVE.value,
                    Coupon.valid_from <= now,
                    Coupon.valid_until >= now,
                )
            )
            .values(
                status=CouponStatus.REDEEMED.value,
                redeemed_at=now,
                redeemed_by=redeemer_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await self._reload(coupon_id)

    async def expire_if_active(self, coupon_id: UUID, now: datetime) -> bool:
        result = await self.db.execute(
            update(Coupon)
            .where(
                and_(
                    Coupon.id == coupon_id,
                    Coupon.status == CouponStatus.ACTIVE.value,
                    Coupon.valid_until < now,
                )
            )
            .values(status=CouponStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def bulk_expire(self, before: datetime) -> int:
        result = await self.db.execute(
            update(Coupon)
            .where(
                and_(
                    Coupon.type == CouponType.REVIEW_REWARD.value,
                    Coupon.status == CouponStatus.ACTIVE.value,
                    Coupon.valid_until < before,
                )
            )
            .values(status=CouponStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def increment_template_usage(self, template_id: UUID) -> None:
        await self.db.execute(
            update(Coupon)
            .where(Coupon.id == template_id)
            .values(usage_count=Coupon.usage_count + 1)
            .execution_options(synchronize_session=False)
        )

    async def increment_template_redemption(self, template_id: UUID) -> None:
        await self.db.execute(
            update(Coupon)
            .where(Coupon.id == template_id)
            .values(redemption_count=Coupon.redemption_count + 1)
            .execution_options(synchronize_session=False)
        )

    async def count_redeemed_rewards(self, business_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Coupon.id)).where(
                and_(
                    Coupon.business_id == business_id,
                    Coupon.type == CouponType.REVIEW_REWARD.value,
                    Coupon.status == CouponStatus.REDEEMED.value,
                )
            )
        )
        return result.scalar() or 0

    async def count_by_status(self, business_id: UUID) -> Dict[str, int]:
        result = await self.db.execute(
            select(Coupon.status, func.count(Coupon.id))
            .where(
                and_(
                    Coupon.business_id == business_id,
                    Coupon.type == CouponType.REVIEW_REWARD.value,
                )
            )
            .group_by(Coupon.status)
        )
        return {status: count for status, count in result.all()}
