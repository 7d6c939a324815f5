"""
리뷰 서비스

위치 검증 리뷰 제출(오케스트레이션)과 모더레이션, 삭제, 도움돼요 투표를 처리합니다.

**제출 상태 흐름**:
RECEIVED → RATE_CHECKED → DUPLICATE_CHECKED → GEOFENCE_VERIFIED → FRAUD_EVALUATED
→ PERSISTED → RATING_RECALCULATED → REWARD_EVALUATED → NOTIFIED → COMPLETE

PERSISTED 이전의 모든 검사는 실패 시 REJECTED로 끝나며 리뷰를 저장하지 않습니다.
PERSISTED 이후 단계(평점 재계산, 쿠폰 발급, 알림)는 실패해도 로그만 남기고
저장된 리뷰를 그대로 반환합니다.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID
import logging
import math

from sqlalchemy.ext.asyncio import AsyncSession

from hashview.config import get_settings
from hashview.engines.fraud_signal_engine import (
    EvaluationDecision,
    FraudEvaluation,
    FraudSignalEngine,
    FraudSignalType,
    SubmissionContext,
)
from hashview.models.business import Business
from hashview.models.coupon import Coupon, RewardType
from hashview.models.review import Review, ReviewEmotion, ReviewStatus
from hashview.repositories.base import (
    BusinessRepository,
    CouponRepository,
    ReviewRepository,
)
from hashview.repositories.sqlalchemy import (
    SqlAlchemyBusinessRepository,
    SqlAlchemyCouponRepository,
    SqlAlchemyReviewRepository,
)
from hashview.services.coupon_issuance_service import CouponIssuanceService
from hashview.services.notification_service import NotificationDispatcher
from hashview.services.review_guard_service import ReviewGuardService
from hashview.services.suspicious_activity_service import (
    SuspiciousActivityRecorder,
    get_suspicious_activity_recorder,
)
from hashview.utils.date_utils import day_bucket, start_of_day, utcnow
from hashview.utils.exceptions import (
    AppException,
    BusinessNotFoundException,
    BusinessRuleException,
    DuplicateSubmissionException,
    ForbiddenException,
    FraudRejectedException,
    GeofenceViolationException,
    RateLimitException,
    ReviewNotFoundException,
    ValidationException,
)
from hashview.utils.geolocation import distance_meters, is_within_geofence
from hashview.utils.logging import audit_logger
from hashview.utils.prometheus_metrics import (
    coupon_issuance_skipped_total,
    track_fraud_signal,
    track_review_outcome,
    track_submission_duration,
)


logger = logging.getLogger(__name__)

COMMENT_MIN_LENGTH = 10
COMMENT_MAX_LENGTH = 500


class SubmissionState(str, Enum):
    """리뷰 제출 상태"""

    RECEIVED = "received"
    RATE_CHECKED = "rate_checked"
    DUPLICATE_CHECKED = "duplicate_checked"
    GEOFENCE_VERIFIED = "geofence_verified"
    FRAUD_EVALUATED = "fraud_evaluated"
    PERSISTED = "persisted"
    RATING_RECALCULATED = "rating_recalculated"
    REWARD_EVALUATED = "reward_evaluated"
    NOTIFIED = "notified"
    COMPLETE = "complete"
    REJECTED = "rejected"


class ReviewSubmissionResult:
    """리뷰 제출 결과"""

    def __init__(
        self,
        review: Review,
        coupon: Optional[Coupon],
        state_trail: List[SubmissionState],
        flags: List[str],
    ):
        self.review = review
        self.coupon = coupon
        self.state_trail = state_trail
        self.flags = flags

    @property
    def state(self) -> SubmissionState:
        return self.state_trail[-1]


@asynccontextmanager
async def _no_submission_lock(actor_id):
    yield


def _format_amount(value) -> str:
    """Decimal('10.00') → '10'"""
    normalized = Decimal(str(value)).normalize()
    return f"{normalized:f}"


def coupon_earned_message(coupon: Coupon) -> str:
    """리워드 유형별 쿠폰 획득 알림 문구"""
    value = _format_amount(coupon.reward_value)

    if coupon.reward_type == RewardType.PERCENTAGE.value:
        reward = f"{value}% 할인 쿠폰"
    elif coupon.reward_type == RewardType.FIXED.value:
        reward = f"{value}원 할인 쿠폰"
    elif coupon.reward_type == RewardType.BUY1GET1.value:
        reward = "1+1 쿠폰"
    elif coupon.reward_type == RewardType.FREE_ITEM.value:
        reward = f"{coupon.item_name or '무료 상품'} 쿠폰"
    else:
        reward = "무료 음료 쿠폰"

    return f"{reward}이 발급되었습니다! 2시간 동안 사용할 수 있습니다."


class ReviewService:
    """리뷰 관련 비즈니스 로직을 처리하는 서비스"""

    def __init__(
        self,
        db_session: AsyncSession,
        recorder: Optional[SuspiciousActivityRecorder] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        engine: Optional[FraudSignalEngine] = None,
        lock_factory=None,
        settings=None,
        reviews: Optional[ReviewRepository] = None,
        businesses: Optional[BusinessRepository] = None,
        coupons: Optional[CouponRepository] = None,
    ):
        """
        Args:
            db_session: 데이터베이스 세션
            recorder: 의심 활동 기록기 (기본값: 프로세스 전역 기록기)
            dispatcher: 알림 발송기 (None이면 알림 생략)
            engine: 사기 신호 엔진 (기본값: 설정 임계값 사용)
            lock_factory: actor_id → async context manager (사용자별 제출 락)
            settings: 설정 (기본값: get_settings())
            reviews, businesses, coupons: 저장소 구현 (기본값: SQLAlchemy 구현)
        """
        self.db = db_session
        self.settings = settings or get_settings()

        self.reviews = reviews or SqlAlchemyReviewRepository(db_session)
        self.businesses = businesses or SqlAlchemyBusinessRepository(db_session)
        self.coupons = coupons or SqlAlchemyCouponRepository(db_session)

        self.guard = ReviewGuardService(
            self.reviews, daily_limit=self.settings.DAILY_REVIEW_LIMIT
        )
        self.issuance = CouponIssuanceService.from_settings(self.coupons, self.settings)
        self.engine = engine or FraudSignalEngine.from_settings(self.settings)
        self.recorder = recorder or get_suspicious_activity_recorder()
        self.dispatcher = dispatcher
        self.lock_factory = lock_factory or _no_submission_lock

    # ========================================================================
    # 리뷰 제출
    # ========================================================================

    async def submit_review(
        self,
        user_id: UUID,
        business_id: UUID,
        rating: int,
        comment: str,
        latitude: float,
        longitude: float,
        context: SubmissionContext,
        emotion: Optional[str] = None,
        user_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReviewSubmissionResult:
        """
        위치 검증 리뷰 제출

        Args:
            user_id: 작성자 ID
            business_id: 매장 ID
            rating: 별점 (1-5)
            comment: 리뷰 내용 (10-500자)
            latitude: 제출 위치 위도
            longitude: 제출 위치 경도
            context: 보안 메타데이터
            emotion: 감정 태그 (선택)
            user_name: 작성자 이름 (점주 알림 문구용)
            now: 제출 시각 (기본값: 현재 UTC)

        Returns:
            ReviewSubmissionResult: 저장된 리뷰, 발급된 쿠폰(없으면 None), 상태 기록, 플래그

        Raises:
            ValidationException: 입력값 오류
            BusinessNotFoundException: 매장 없음
            BusinessRuleException: 운영 중이 아닌 매장
            RateLimitException: 하루 작성 한도 초과
            DuplicateSubmissionException: 같은 날 같은 매장 중복
            GeofenceViolationException: 매장 반경 밖
            FraudRejectedException: 강한 사기 신호
        """
        with track_submission_duration():
            now = now or utcnow()
            trail: List[SubmissionState] = [SubmissionState.RECEIVED]

            try:
                comment = self._validate_submission(
                    rating, comment, latitude, longitude, emotion
                )

                business = await self.businesses.find_by_id(business_id)
                if business is None:
                    raise BusinessNotFoundException(str(business_id))
                if not business.is_active:
                    raise BusinessRuleException(
                        "현재 리뷰를 받을 수 없는 매장입니다.", rule="BUSINESS_INACTIVE"
                    )

                async with self.lock_factory(user_id):
                    review, evaluation = await self._verify_and_persist(
                        trail=trail,
                        user_id=user_id,
                        business=business,
                        rating=rating,
                        comment=comment,
                        latitude=latitude,
                        longitude=longitude,
                        context=context,
                        emotion=emotion,
                        now=now,
                    )

            except AppException as e:
                trail.append(SubmissionState.REJECTED)
                track_review_outcome("rejected", e.error_code)
                logger.info(
                    f"[REJECTED] 리뷰 제출 거부: user_id={user_id}, "
                    f"business_id={business_id}, reason={e.error_code}, "
                    f"trail={[s.value for s in trail]}"
                )
                raise

            coupon = await self._complete_submission(
                trail, review, business, evaluation, user_name, now
            )

            flags = [signal.signal_type for signal in evaluation.flags]
            track_review_outcome(
                "flagged" if evaluation.decision == EvaluationDecision.FLAG else "accepted"
            )

            return ReviewSubmissionResult(
                review=review, coupon=coupon, state_trail=trail, flags=flags
            )

    def _validate_submission(
        self,
        rating: int,
        comment: str,
        latitude: float,
        longitude: float,
        emotion: Optional[str],
    ) -> str:
        """입력값 검증 (상태 전이 전에 수행)"""
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationException("별점은 1-5 사이여야 합니다", field="rating")

        comment = (comment or "").strip()
        if len(comment) < COMMENT_MIN_LENGTH:
            raise ValidationException(
                f"리뷰 내용은 최소 {COMMENT_MIN_LENGTH}자 이상이어야 합니다", field="comment"
            )
        if len(comment) > COMMENT_MAX_LENGTH:
            raise ValidationException(
                f"리뷰 내용은 최대 {COMMENT_MAX_LENGTH}자까지 작성할 수 있습니다",
                field="comment",
            )

        for field, value, bound in (
            ("latitude", latitude, 90.0),
            ("longitude", longitude, 180.0),
        ):
            if (
                value is None
                or not math.isfinite(value)
                or not -bound <= value <= bound
            ):
                raise ValidationException("위치 정보가 올바르지 않습니다", field=field)

        if emotion is not None and emotion not in {e.value for e in ReviewEmotion}:
            raise ValidationException("지원하지 않는 감정 태그입니다", field="emotion")

        return comment

    async def _verify_and_persist(
        self,
        trail: List[SubmissionState],
        user_id: UUID,
        business: Business,
        rating: int,
        comment: str,
        latitude: float,
        longitude: float,
        context: SubmissionContext,
        emotion: Optional[str],
        now: datetime,
    ) -> Tuple[Review, FraudEvaluation]:
        """검사 단계 → 리뷰 저장 (PERSISTED까지)"""
        window_start = start_of_day(now)

        # 1. 하루 작성 한도
        rate = await self.guard.check_rate(user_id, window_start)
        if not rate.allowed:
            self.recorder.record(
                user_id,
                FraudSignalType.RATE_LIMIT_EXCEEDED,
                {"review_count": rate.count, "limit": self.guard.daily_limit},
            )
            raise RateLimitException(limit=self.guard.daily_limit, count=rate.count)
        trail.append(SubmissionState.RATE_CHECKED)

        # 2. 같은 날 같은 매장 중복
        if await self.guard.check_duplicate(user_id, business.id, window_start):
            raise DuplicateSubmissionException(business_id=str(business.id))
        trail.append(SubmissionState.DUPLICATE_CHECKED)

        # 3. 지오펜스 (제출 시점의 매장 좌표/반경 기준)
        distance = distance_meters(
            latitude, longitude, business.latitude, business.longitude
        )
        if not is_within_geofence(
            latitude, longitude, business.latitude, business.longitude, business.radius_meters
        ):
            self.recorder.record(
                user_id,
                FraudSignalType.GEOFENCE_VIOLATION,
                {
                    "business_id": str(business.id),
                    "distance_meters": round(distance, 2),
                    "radius_meters": business.radius_meters,
                },
            )
            raise GeofenceViolationException(distance, business.radius_meters)
        trail.append(SubmissionState.GEOFENCE_VERIFIED)

        # 4. 사기 신호 평가
        if context.device_id:
            context.same_device_review_count = await self.reviews.count_same_device_since(
                context.device_id, window_start
            )
        evaluation = self.engine.evaluate(context)
        self._record_signals(user_id, business.id, evaluation)

        if evaluation.rejected:
            raise FraudRejectedException(
                reason=evaluation.rejection.signal_type,
                message=evaluation.rejection.description,
            )
        trail.append(SubmissionState.FRAUD_EVALUATED)

        # 5. 리뷰 저장
        security_metadata = context.to_snapshot()
        security_metadata.update(
            {
                "distance_from_business": round(distance, 2),
                "business_radius": business.radius_meters,
                "fraud_decision": evaluation.decision,
                "signals": [signal.signal_type for signal in evaluation.signals],
            }
        )

        review = Review(
            user_id=user_id,
            business_id=business.id,
            rating=rating,
            comment=comment,
            emotion=emotion,
            latitude=latitude,
            longitude=longitude,
            captured_at=now,
            review_date=day_bucket(now),
            verified=True,
            status=ReviewStatus.APPROVED.value,
            helpful_user_ids=[],
            security_metadata=security_metadata,
            device_id=context.device_id,
            location_accuracy=context.location_accuracy,
            is_mock_location=context.is_mock_location,
            suspicious_activities_count=context.anomaly_count,
        )

        await self.reviews.create(review)
        await self.db.commit()
        trail.append(SubmissionState.PERSISTED)

        audit_logger.log_event(
            event_type="review.created",
            user_id=str(user_id),
            resource_type="review",
            resource_id=str(review.id),
            action="create",
            details={
                "business_id": str(business.id),
                "rating": rating,
                "fraud_decision": evaluation.decision,
            },
        )

        return review, evaluation

    def _record_signals(
        self, user_id: UUID, business_id: UUID, evaluation: FraudEvaluation
    ) -> None:
        """매칭된 신호를 의심 활동으로 기록"""
        for signal in evaluation.signals:
            track_fraud_signal(signal.signal_type, signal.action)
            self.recorder.record(
                user_id,
                signal.signal_type,
                {
                    **signal.metadata,
                    "business_id": str(business_id),
                    "action": signal.action,
                },
            )

    async def _complete_submission(
        self,
        trail: List[SubmissionState],
        review: Review,
        business: Business,
        evaluation: FraudEvaluation,
        user_name: Optional[str],
        now: datetime,
    ) -> Optional[Coupon]:
        """저장 이후 단계 (실패해도 리뷰는 유지)"""
        # 롤백 시 세션 객체가 만료되므로 필요한 값을 먼저 읽어둠
        business_id = business.id
        owner_id = business.owner_id
        business_name = business.name
        review_id = review.id
        reviewer_id = review.user_id
        rating = review.rating

        # 6. 평점 재계산
        try:
            await self.recalculate_rating(business_id)
        except Exception:
            logger.error(
                f"[FAIL] 평점 재계산 실패: business_id={business_id}", exc_info=True
            )
            await self._recover_session(review)
        trail.append(SubmissionState.RATING_RECALCULATED)

        # 7. 리워드 쿠폰
        coupon = None
        try:
            coupon = await self.issuance.evaluate_reward(
                business_id=business_id,
                user_id=reviewer_id,
                review_id=review_id,
                now=now,
            )
            if coupon is not None:
                await self.reviews.mark_coupon_awarded(review_id, coupon.id)
            await self.db.commit()
        except Exception:
            coupon = None
            coupon_issuance_skipped_total.labels(reason="error").inc()
            logger.error(
                f"[FAIL] 리워드 쿠폰 발급 실패: review_id={review_id}", exc_info=True
            )
            await self._recover_session(review)
        trail.append(SubmissionState.REWARD_EVALUATED)

        # 8. 알림 (결과를 기다리지 않음)
        if self.dispatcher is not None:
            try:
                if coupon is not None:
                    self.dispatcher.dispatch(
                        reviewer_id,
                        "쿠폰 획득! 🎉",
                        coupon_earned_message(coupon),
                        {"type": "coupon", "couponId": str(coupon.id)},
                    )
                self.dispatcher.dispatch(
                    owner_id,
                    "새 리뷰",
                    f"{user_name or '고객'}님이 {business_name}에 "
                    f"{rating}점 리뷰를 남겼습니다.",
                    {"type": "review", "reviewId": str(review_id)},
                )
            except Exception:
                logger.error(
                    f"[FAIL] 알림 예약 실패: review_id={review_id}", exc_info=True
                )
        trail.append(SubmissionState.NOTIFIED)

        trail.append(SubmissionState.COMPLETE)
        logger.info(
            f"[OK] 리뷰 제출 완료: review_id={review_id}, "
            f"decision={evaluation.decision}, coupon={coupon.code if coupon else None}"
        )
        return coupon

    async def _recover_session(self, review: Review) -> None:
        """저장 이후 단계 실패 시 세션 정리 후 리뷰 다시 로드"""
        review_id = review.id
        try:
            await self.db.rollback()
            await self.db.refresh(review)
        except Exception:
            logger.error(
                f"[FAIL] 세션 복구 실패: review_id={review_id}", exc_info=True
            )

    # ========================================================================
    # 평점 / 모더레이션
    # ========================================================================

    async def recalculate_rating(self, business_id: UUID) -> Tuple[float, int]:
        """
        매장 평점 전체 재계산 (평균은 승인된 리뷰 기준, 리뷰 수는 전체)

        Returns:
            Tuple[float, int]: (평균 별점, 리뷰 수)
        """
        average, count = await self.reviews.aggregate_rating(business_id)
        await self.businesses.update_rating(business_id, average, count)
        await self.db.commit()
        return average, count

    async def update_status(
        self, review_id: UUID, status: str, moderator_id: UUID
    ) -> Review:
        """
        리뷰 상태 변경 (관리자 모더레이션)

        Raises:
            ValidationException: 지원하지 않는 상태
            ReviewNotFoundException: 리뷰 없음
        """
        if status not in {s.value for s in ReviewStatus}:
            raise ValidationException("지원하지 않는 리뷰 상태입니다", field="status")

        review = await self.reviews.update_status(review_id, status)
        if review is None:
            raise ReviewNotFoundException(str(review_id))
        await self.db.commit()

        await self.recalculate_rating(review.business_id)

        audit_logger.log_event(
            event_type="review.status_changed",
            user_id=str(moderator_id),
            resource_type="review",
            resource_id=str(review_id),
            action="moderate",
            details={"status": status},
        )
        return review

    async def delete_review(
        self, review_id: UUID, actor_id: UUID, is_admin: bool = False
    ) -> None:
        """
        리뷰 삭제 (작성자 또는 관리자)

        Raises:
            ReviewNotFoundException: 리뷰 없음
            ForbiddenException: 작성자/관리자가 아님
        """
        review = await self.reviews.get(review_id)
        if review is None:
            raise ReviewNotFoundException(str(review_id))

        if not is_admin and review.user_id != actor_id:
            raise ForbiddenException("본인이 작성한 리뷰만 삭제할 수 있습니다.")

        business_id = review.business_id
        await self.reviews.delete(review_id)
        await self.db.commit()

        await self.recalculate_rating(business_id)

        audit_logger.log_event(
            event_type="review.deleted",
            user_id=str(actor_id),
            resource_type="review",
            resource_id=str(review_id),
            action="delete",
            details={"business_id": str(business_id), "by_admin": is_admin},
        )

    async def toggle_helpful(self, review_id: UUID, user_id: UUID) -> int:
        """
        도움돼요 투표 토글

        Returns:
            int: 변경 후 투표 수
        """
        count = await self.reviews.toggle_helpful(review_id, user_id)
        if count is None:
            raise ReviewNotFoundException(str(review_id))
        await self.db.commit()
        return count

    async def list_flagged(self, limit: int = 50, offset: int = 0) -> List[Review]:
        """
        검토가 필요한 리뷰 목록 (최신순)

        플래그 상태, 가상 위치, 이상 징후 다수, 낮은 GPS 정확도 중 하나라도 해당하는 리뷰
        """
        return await self.reviews.find_flagged(
            limit=limit,
            offset=offset,
            accuracy_threshold=self.settings.MAX_GPS_ACCURACY_METERS,
            anomaly_threshold=self.settings.ANOMALY_REJECT_THRESHOLD,
        )

    async def get_business_reviews(self, business_id: UUID) -> Dict[str, Any]:
        """매장의 승인된 리뷰 목록과 평점"""
        business = await self.businesses.find_by_id(business_id)
        if business is None:
            raise BusinessNotFoundException(str(business_id))

        reviews = [
            review
            for review in await self.reviews.find_all_by_business(business_id)
            if review.status == ReviewStatus.APPROVED.value
        ]

        return {
            "business_id": str(business_id),
            "rating_average": business.rating_average,
            "rating_count": business.rating_count,
            "reviews": reviews,
        }
