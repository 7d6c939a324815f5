"""
리뷰 제출 통합 테스트

리뷰 제출 전체 흐름을 인메모리 SQLite 위에서 검증합니다:
1. 정상 제출: 검사 통과 → 저장 → 평점 재계산 → 쿠폰 발급 → 알림
2. 거부 경로: 하루 한도, 같은 날 중복, 지오펜스, 강한 사기 신호
3. 약한 신호: 플래그만 남기고 제출은 진행
4. 저장 이후 실패: 쿠폰/알림 실패가 저장된 리뷰를 되돌리지 않음
5. 모더레이션, 삭제, 도움돼요 투표
"""

import re
from contextlib import asynccontextmanager
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from hashview.engines.fraud_signal_engine import FraudSignalType, SubmissionContext
from hashview.models import Business, Coupon, Review
from hashview.models.review import ReviewStatus
from hashview.services.notification_service import NotificationDispatcher
from hashview.services.review_service import ReviewService, SubmissionState
from hashview.utils.date_utils import utcnow
from hashview.utils.exceptions import (
    BusinessNotFoundException,
    BusinessRuleException,
    ConflictException,
    DuplicateSubmissionException,
    ForbiddenException,
    FraudRejectedException,
    GeofenceViolationException,
    RateLimitException,
    ValidationException,
)
from hashview.utils.redis_client import make_submission_lock
from conftest import (
    STORE_LAT,
    STORE_LON,
    InMemoryBusinessRepository,
    RecordingNotifier,
    offset_north,
)

pytestmark = pytest.mark.integration


def context_with(clean_context: SubmissionContext, **overrides) -> SubmissionContext:
    values = dict(
        location_accuracy=clean_context.location_accuracy,
        verification_seconds=clean_context.verification_seconds,
        motion_detected=clean_context.motion_detected,
        is_mock_location=clean_context.is_mock_location,
        location_history_count=clean_context.location_history_count,
        client_anomalies=list(clean_context.client_anomalies),
        device_fingerprint=dict(clean_context.device_fingerprint),
        platform=clean_context.platform,
    )
    values.update(overrides)
    return SubmissionContext(**values)


async def count_reviews(db_session) -> int:
    result = await db_session.execute(select(func.count(Review.id)))
    return result.scalar()


async def add_business(db_session, owner_id, name: str) -> Business:
    store = Business(
        id=uuid4(),
        owner_id=owner_id,
        name=name,
        latitude=STORE_LAT,
        longitude=STORE_LON,
        radius_meters=50,
    )
    db_session.add(store)
    await db_session.commit()
    return store


@pytest.mark.asyncio
class TestSuccessfulSubmission:
    """정상 제출 플로우"""

    async def test_end_to_end_flow(
        self, submit, db_session, business, customer_id, owner_id, dispatcher, notifier
    ):
        """
        시나리오: 매장 안에서 깨끗한 메타데이터로 제출

        예상 결과:
        - 모든 상태를 순서대로 거쳐 COMPLETE
        - 2시간 유효 HASH-XXXXXX 쿠폰 발급
        - 매장 평점 5.0 / 1건
        - 작성자 쿠폰 알림 + 점주 새 리뷰 알림
        """
        # === Act ===
        result = await submit()

        # === Assert ===
        assert result.state_trail == [
            SubmissionState.RECEIVED,
            SubmissionState.RATE_CHECKED,
            SubmissionState.DUPLICATE_CHECKED,
            SubmissionState.GEOFENCE_VERIFIED,
            SubmissionState.FRAUD_EVALUATED,
            SubmissionState.PERSISTED,
            SubmissionState.RATING_RECALCULATED,
            SubmissionState.REWARD_EVALUATED,
            SubmissionState.NOTIFIED,
            SubmissionState.COMPLETE,
        ]
        assert result.state == SubmissionState.COMPLETE
        assert result.flags == []

        review = result.review
        assert review.verified is True
        assert review.status == ReviewStatus.APPROVED.value
        assert review.coupon_awarded is True
        assert review.security_metadata["distance_from_business"] == 0.0
        assert review.security_metadata["business_radius"] == 50
        assert review.security_metadata["fraud_decision"] == "accept"

        coupon = result.coupon
        assert re.fullmatch(r"HASH-[A-Z0-9]{6}", coupon.code)
        assert coupon.valid_until - coupon.valid_from == timedelta(hours=2)
        assert coupon.user_id == customer_id
        assert coupon.review_id == review.id
        assert coupon.reward_type == "percentage"
        assert review.coupon_id == coupon.id

        await db_session.refresh(business)
        assert business.rating_average == 5.0
        assert business.rating_count == 1

        await dispatcher.drain()
        assert len(notifier.sent) == 2

        coupon_message = next(n for n in notifier.sent if n["data"]["type"] == "coupon")
        assert coupon_message["user_id"] == str(customer_id)
        assert coupon_message["title"] == "쿠폰 획득! 🎉"
        assert coupon_message["body"] == (
            "10% 할인 쿠폰이 발급되었습니다! 2시간 동안 사용할 수 있습니다."
        )

        owner_message = next(n for n in notifier.sent if n["data"]["type"] == "review")
        assert owner_message["user_id"] == str(owner_id)
        assert owner_message["body"] == (
            "김해시님이 해시카페 강남점에 5점 리뷰를 남겼습니다."
        )
        assert owner_message["data"]["reviewId"] == str(review.id)

    async def test_comment_is_trimmed(self, submit):
        result = await submit(comment="   분위기가 좋아서 또 오고 싶어요   ")
        assert result.review.comment == "분위기가 좋아서 또 오고 싶어요"

    async def test_template_reward_is_used(
        self, submit, db_session, business, create_template, dispatcher, notifier
    ):
        """Test: Active business template defines the reward"""
        # Given: 1,000원 정액 할인 템플릿
        template = await create_template(business)

        # When
        result = await submit()

        # Then
        assert result.coupon.reward_type == "fixed"
        assert result.coupon.reward_value == Decimal("1000")
        assert result.coupon.description == "아메리카노 1,000원 할인"

        await db_session.refresh(template)
        assert template.usage_count == 1

        await dispatcher.drain()
        bodies = [n["body"] for n in notifier.sent]
        assert "1000원 할인 쿠폰이 발급되었습니다! 2시간 동안 사용할 수 있습니다." in bodies

    async def test_rating_is_mean_of_approved_reviews(
        self, submit, db_session, business, clean_context
    ):
        await submit(user_id=uuid4(), rating=5)
        other_device = context_with(
            clean_context, device_fingerprint={"deviceId": "device-other"}
        )
        await submit(user_id=uuid4(), rating=2, context=other_device)

        await db_session.refresh(business)
        assert business.rating_average == 3.5
        assert business.rating_count == 2


@pytest.mark.asyncio
class TestRateLimitAndDuplicates:
    """하루 한도와 중복 검사"""

    async def test_sixth_review_of_the_day_is_rejected(
        self, submit, db_session, owner_id, clean_context, recorder
    ):
        """
        시나리오: 같은 사용자가 같은 기기로 하루에 여섯 번째 리뷰 시도

        예상 결과:
        - 다섯 번째까지 성공, 네 번째부터 같은 기기 플래그
        - 여섯 번째는 RateLimitException, 리뷰 미저장
        """
        # === Arrange ===
        now = utcnow()
        stores = [
            await add_business(db_session, owner_id, f"해시카페 {i}호점") for i in range(6)
        ]

        # === Act ===
        results = []
        for store in stores[:5]:
            results.append(
                await submit(business_id=store.id, context=clean_context, now=now)
            )

        # === Assert ===
        assert all(r.state == SubmissionState.COMPLETE for r in results)
        assert results[2].flags == []
        assert results[3].flags == [FraudSignalType.MULTIPLE_DEVICE_REVIEWS]
        assert results[4].flags == [FraudSignalType.MULTIPLE_DEVICE_REVIEWS]

        with pytest.raises(RateLimitException) as exc_info:
            await submit(business_id=stores[5].id, context=clean_context, now=now)

        assert exc_info.value.status_code == 429
        assert exc_info.value.details == {"limit": 5, "count": 5}
        assert await count_reviews(db_session) == 5

        entries = recorder.query(event_type=FraudSignalType.RATE_LIMIT_EXCEEDED)
        assert len(entries) == 1
        assert entries[0].metadata == {"review_count": 5, "limit": 5}

    async def test_same_business_same_day_is_duplicate(self, submit, db_session):
        now = utcnow()
        await submit(now=now)

        with pytest.raises(DuplicateSubmissionException) as exc_info:
            await submit(now=now + timedelta(seconds=1))

        assert exc_info.value.error_code == "DUPLICATE_REVIEW"
        assert await count_reviews(db_session) == 1

    async def test_same_business_next_day_is_allowed(self, submit, db_session):
        """Test: Duplicate window resets at the next UTC day"""
        now = utcnow()
        await submit(now=now)

        result = await submit(now=now + timedelta(days=1))

        assert result.state == SubmissionState.COMPLETE
        assert await count_reviews(db_session) == 2

    async def test_other_user_same_business_is_allowed(self, submit, clean_context):
        await submit()
        result = await submit(
            user_id=uuid4(),
            context=context_with(clean_context, device_fingerprint={"deviceId": "d-2"}),
        )
        assert result.state == SubmissionState.COMPLETE


@pytest.mark.asyncio
class TestGeofence:
    """지오펜스 검사"""

    async def test_inside_radius_is_accepted(self, submit):
        latitude, longitude = offset_north(45)

        result = await submit(latitude=latitude, longitude=longitude)

        distance = result.review.security_metadata["distance_from_business"]
        assert 40 < distance < 50

    async def test_outside_radius_is_rejected(self, submit, db_session, recorder, business):
        """
        시나리오: 매장에서 약 60m 떨어진 곳에서 제출

        예상 결과:
        - GeofenceViolationException (403)
        - 메시지에 허용 반경 50m 포함
        - GEOFENCE_VIOLATION 의심 활동 기록
        """
        latitude, longitude = offset_north(60)

        with pytest.raises(GeofenceViolationException) as exc_info:
            await submit(latitude=latitude, longitude=longitude)

        error = exc_info.value
        assert error.status_code == 403
        assert error.details["radius_meters"] == 50
        assert 55 < error.details["distance_meters"] < 65
        assert "50m" in error.message
        assert await count_reviews(db_session) == 0

        entries = recorder.query(event_type=FraudSignalType.GEOFENCE_VIOLATION)
        assert len(entries) == 1
        assert entries[0].metadata["business_id"] == str(business.id)
        assert entries[0].metadata["radius_meters"] == 50


@pytest.mark.asyncio
class TestFraudSignals:
    """사기 신호 평가"""

    async def test_mock_location_is_rejected(self, submit, db_session, clean_context, recorder):
        context = context_with(clean_context, is_mock_location=True)

        with pytest.raises(FraudRejectedException) as exc_info:
            await submit(context=context)

        assert exc_info.value.error_code == FraudSignalType.MOCK_LOCATION_DETECTED
        assert exc_info.value.status_code == 403
        assert await count_reviews(db_session) == 0
        assert recorder.query(event_type=FraudSignalType.MOCK_LOCATION_DETECTED)

    async def test_poor_gps_accuracy_is_rejected(self, submit, db_session, clean_context):
        context = context_with(clean_context, location_accuracy=80.0)

        with pytest.raises(FraudRejectedException) as exc_info:
            await submit(context=context)

        assert exc_info.value.error_code == FraudSignalType.POOR_GPS_ACCURACY
        assert await count_reviews(db_session) == 0

    async def test_three_anomalies_are_rejected(self, submit, clean_context):
        anomalies = [{"type": "rapid_movement"}, {"type": "location_jump"}, {"type": "gps_drift"}]
        context = context_with(clean_context, client_anomalies=anomalies)

        with pytest.raises(FraudRejectedException) as exc_info:
            await submit(context=context)

        assert exc_info.value.error_code == FraudSignalType.MULTIPLE_SECURITY_CONCERNS

    async def test_two_anomalies_flag_but_still_reward(self, submit, clean_context, recorder):
        """
        시나리오: 클라이언트 이상 징후 2건

        예상 결과:
        - 제출 성공, 쿠폰 발급
        - CLIENT_ 접두사 플래그 2건이 결과와 의심 활동 기록에 남음
        """
        anomalies = [{"type": "rapid_movement"}, {"type": "location_jump"}]
        context = context_with(clean_context, client_anomalies=anomalies)

        result = await submit(context=context)

        assert result.state == SubmissionState.COMPLETE
        assert result.coupon is not None
        assert result.flags == ["CLIENT_RAPID_MOVEMENT", "CLIENT_LOCATION_JUMP"]
        assert result.review.security_metadata["fraud_decision"] == "flag"
        assert result.review.suspicious_activities_count == 2
        assert recorder.stats()["by_type"] == {
            "CLIENT_RAPID_MOVEMENT": 1,
            "CLIENT_LOCATION_JUMP": 1,
        }

    async def test_verification_time_mismatch_is_recorded_only(
        self, submit, clean_context, recorder
    ):
        context = context_with(clean_context, verification_seconds=8)

        result = await submit(context=context)

        assert result.flags == []
        assert recorder.query(event_type=FraudSignalType.VERIFICATION_TIME_MISMATCH)


@pytest.mark.asyncio
class TestInputValidation:
    """입력값 및 매장 검사"""

    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"rating": 0}, "rating"),
            ({"rating": 6}, "rating"),
            ({"rating": True}, "rating"),
            ({"comment": "짧은 리뷰"}, "comment"),
            ({"comment": "가" * 501}, "comment"),
            ({"latitude": 91.0}, "latitude"),
            ({"longitude": float("nan")}, "longitude"),
            ({"emotion": "angry"}, "emotion"),
        ],
    )
    async def test_invalid_input(self, submit, db_session, overrides, field):
        with pytest.raises(ValidationException) as exc_info:
            await submit(**overrides)

        assert exc_info.value.details["field"] == field
        assert await count_reviews(db_session) == 0

    async def test_emotion_tag_is_stored(self, submit):
        result = await submit(emotion="loved")
        assert result.review.emotion == "loved"

    async def test_unknown_business(self, submit):
        with pytest.raises(BusinessNotFoundException):
            await submit(business_id=uuid4())

    async def test_inactive_business(self, submit, db_session, business):
        business.is_active = False
        await db_session.commit()

        with pytest.raises(BusinessRuleException) as exc_info:
            await submit()

        assert exc_info.value.details["rule"] == "BUSINESS_INACTIVE"


@pytest.mark.asyncio
class TestPostPersistFailures:
    """저장 이후 단계 실패"""

    async def test_redemption_limit_reached_skips_coupon(
        self, submit, db_session, business, create_template
    ):
        """Test: Reaching the redemption limit completes without a coupon"""
        await create_template(business, redemption_limit=0)

        result = await submit()

        assert result.state == SubmissionState.COMPLETE
        assert result.coupon is None
        assert result.review.coupon_awarded is False

        coupons = await db_session.execute(
            select(func.count(Coupon.id)).where(Coupon.type == "review_reward")
        )
        assert coupons.scalar() == 0

    async def test_failing_notifier_does_not_break_submission(
        self, db_session, business, customer_id, clean_context, recorder
    ):
        dispatcher = NotificationDispatcher(RecordingNotifier(fail=True))
        service = ReviewService(db_session, recorder=recorder, dispatcher=dispatcher)

        result = await service.submit_review(
            user_id=customer_id,
            business_id=business.id,
            rating=4,
            comment="디저트가 맛있어요. 다음에 또 올게요!",
            latitude=STORE_LAT,
            longitude=STORE_LON,
            context=clean_context,
        )
        await dispatcher.drain()

        assert result.state == SubmissionState.COMPLETE
        assert result.coupon is not None

    async def test_coupon_failure_keeps_review(
        self, review_service, submit, db_session, business, dispatcher, notifier, monkeypatch
    ):
        """
        시나리오: 쿠폰 발급 중 예외

        예상 결과:
        - 리뷰는 저장된 상태로 반환, 쿠폰 없음
        - 점주 새 리뷰 알림은 발송
        """
        business_id = business.id

        async def broken_reward(**kwargs):
            raise RuntimeError("coupon storage unavailable")

        monkeypatch.setattr(review_service.issuance, "evaluate_reward", broken_reward)

        result = await submit()

        assert result.state == SubmissionState.COMPLETE
        assert result.coupon is None
        assert result.review.id is not None
        assert result.review.coupon_awarded is False

        stored = await db_session.get(Review, result.review.id)
        assert stored.business_id == business_id

        await dispatcher.drain()
        assert [n["data"]["type"] for n in notifier.sent] == ["review"]


@pytest.mark.asyncio
class TestSubmissionLock:
    """사용자별 제출 락"""

    async def test_lock_factory_wraps_checks(
        self, db_session, business, customer_id, clean_context, recorder
    ):
        entered = []

        @asynccontextmanager
        async def lock_factory(actor_id):
            entered.append(actor_id)
            yield

        service = ReviewService(db_session, recorder=recorder, lock_factory=lock_factory)
        await service.submit_review(
            user_id=customer_id,
            business_id=business.id,
            rating=5,
            comment="커피가 정말 맛있고 직원분들이 친절해요!",
            latitude=STORE_LAT,
            longitude=STORE_LON,
            context=clean_context,
        )

        assert entered == [customer_id]

    async def test_redis_lock_busy_raises_conflict(self):
        """Test: Lock that cannot be acquired rejects the submission"""

        class BusyLock:
            async def acquire(self):
                return False

            async def release(self):
                raise AssertionError("not acquired")

        class FakeRedis:
            def lock(self, name, timeout=None, blocking_timeout=None):
                self.name = name
                return BusyLock()

        redis = FakeRedis()
        lock_factory = make_submission_lock(redis, timeout_seconds=1)

        with pytest.raises(ConflictException):
            async with lock_factory("user-1"):
                pass

        assert redis.name == "review_submission:user-1"

    async def test_redis_lock_released_after_use(self):
        released = []

        class FreeLock:
            async def acquire(self):
                return True

            async def release(self):
                released.append(True)

        class FakeRedis:
            def lock(self, name, timeout=None, blocking_timeout=None):
                return FreeLock()

        lock_factory = make_submission_lock(FakeRedis())
        async with lock_factory("user-1"):
            pass

        assert released == [True]


@pytest.mark.asyncio
class TestModeration:
    """모더레이션, 삭제, 도움돼요"""

    async def test_flagging_review_recalculates_rating(
        self, submit, review_service, db_session, business
    ):
        result = await submit()
        moderator_id = uuid4()

        review = await review_service.update_status(
            result.review.id, ReviewStatus.FLAGGED.value, moderator_id
        )

        assert review.status == ReviewStatus.FLAGGED.value
        await db_session.refresh(business)
        assert business.rating_count == 1
        assert business.rating_average == 0.0

        flagged = await review_service.list_flagged()
        assert [r.id for r in flagged] == [result.review.id]

        listing = await review_service.get_business_reviews(business.id)
        assert listing["reviews"] == []

    async def test_rejected_review_still_counts(
        self, submit, review_service, db_session, business
    ):
        """
        시나리오: 리뷰 2건(5점, 3점) 중 5점 리뷰를 반려

        예상 결과:
        - 평균은 승인된 리뷰(3점)만 반영
        - 리뷰 수는 반려된 리뷰를 포함한 2건
        """
        # === Arrange ===
        first = await submit()
        await submit(user_id=uuid4(), rating=3)

        # === Act ===
        await review_service.update_status(
            first.review.id, ReviewStatus.REJECTED.value, uuid4()
        )

        # === Assert ===
        await db_session.refresh(business)
        assert business.rating_average == 3.0
        assert business.rating_count == 2

    async def test_invalid_status(self, submit, review_service):
        result = await submit()

        with pytest.raises(ValidationException):
            await review_service.update_status(result.review.id, "deleted", uuid4())

    async def test_find_flagged_by_anomaly_count(
        self, submit, review_service, clean_context
    ):
        """Test: Reviews with many anomalies surface for moderation"""
        await submit(
            context=context_with(
                clean_context,
                client_anomalies=[{"type": "a"}, {"type": "b"}],
            )
        )
        assert await review_service.list_flagged() == []
        flagged = await review_service.reviews.find_flagged(anomaly_threshold=2)
        assert len(flagged) == 1

    async def test_only_author_can_delete(self, submit, review_service):
        result = await submit()

        with pytest.raises(ForbiddenException):
            await review_service.delete_review(result.review.id, actor_id=uuid4())

    async def test_author_delete_recalculates_rating(
        self, submit, review_service, db_session, business, customer_id
    ):
        result = await submit()

        await review_service.delete_review(result.review.id, actor_id=customer_id)

        assert await count_reviews(db_session) == 0
        await db_session.refresh(business)
        assert business.rating_count == 0

    async def test_admin_can_delete(self, submit, review_service, db_session):
        result = await submit()

        await review_service.delete_review(result.review.id, actor_id=uuid4(), is_admin=True)

        assert await count_reviews(db_session) == 0

    async def test_toggle_helpful(self, submit, review_service):
        result = await submit()
        voter = uuid4()

        assert await review_service.toggle_helpful(result.review.id, voter) == 1
        assert await review_service.toggle_helpful(result.review.id, uuid4()) == 2
        assert await review_service.toggle_helpful(result.review.id, voter) == 1

    async def test_business_reviews(self, submit, review_service, business):
        result = await submit()

        listing = await review_service.get_business_reviews(business.id)

        assert listing["business_id"] == str(business.id)
        assert listing["rating_count"] == 1
        assert [r.id for r in listing["reviews"]] == [result.review.id]


@pytest.mark.asyncio
class TestRepositoryInjection:
    """저장소 구현 교체"""

    async def test_business_repository_is_replaceable(
        self, db_session, recorder, business, customer_id, clean_context
    ):
        """
        시나리오: 매장 저장소를 메모리 구현으로 교체하고 리뷰 제출

        예상 결과:
        - 매장 조회와 평점 갱신이 교체된 저장소로 전달됨
        - DB의 매장 평점은 변경되지 않음
        """
        # === Arrange ===
        businesses = InMemoryBusinessRepository(business)
        service = ReviewService(db_session, recorder=recorder, businesses=businesses)

        # === Act ===
        result = await service.submit_review(
            user_id=customer_id,
            business_id=business.id,
            rating=4,
            comment="조용하고 디저트가 맛있어요.",
            latitude=STORE_LAT,
            longitude=STORE_LON,
            context=clean_context,
        )

        # === Assert ===
        assert result.review.id is not None
        assert businesses.lookups == [business.id]
        assert businesses.rating_updates == [(business.id, 4.0, 1)]

        await db_session.refresh(business)
        assert business.rating_count == 0
