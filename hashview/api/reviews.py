"""
리뷰 API 엔드포인트

위치 검증 리뷰 제출, 매장 리뷰 조회, 삭제, 도움돼요 투표, 상태 변경을 제공합니다.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from hashview.api.dependencies import get_submission_lock_factory
from hashview.api.schemas.review_schemas import (
    BusinessReviewsResponse,
    HelpfulToggleResponse,
    ReviewDeleteResponse,
    ReviewResponse,
    ReviewStatusUpdateRequest,
    ReviewSubmitRequest,
    ReviewSubmitResponse,
)
from hashview.engines.fraud_signal_engine import SubmissionContext
from hashview.middleware.auth import CurrentUser, get_current_user, require_admin
from hashview.models.base import get_db
from hashview.services.notification_service import (
    NotificationDispatcher,
    get_notification_dispatcher,
)
from hashview.services.review_service import ReviewService
from hashview.services.suspicious_activity_service import (
    SuspiciousActivityRecorder,
    get_suspicious_activity_recorder,
)

router = APIRouter(prefix="/v1/reviews", tags=["reviews"])


@router.post("", response_model=ReviewSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_review(
    request: ReviewSubmitRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    recorder: SuspiciousActivityRecorder = Depends(get_suspicious_activity_recorder),
    lock_factory=Depends(get_submission_lock_factory),
):
    """
    위치 검증 리뷰 제출

    매장 반경 안에서만 작성 가능하며, 검증을 통과하면 2시간 유효 리워드 쿠폰이 발급됩니다.
    """
    service = ReviewService(
        db, recorder=recorder, dispatcher=dispatcher, lock_factory=lock_factory
    )

    metadata = request.security_metadata
    context = SubmissionContext(
        location_accuracy=metadata.location_accuracy,
        verification_seconds=metadata.verification_seconds,
        motion_detected=metadata.motion_detected,
        is_mock_location=metadata.is_mock_location,
        location_history_count=metadata.location_history_count,
        client_anomalies=metadata.client_anomalies,
        device_fingerprint=metadata.device_fingerprint,
        platform=metadata.platform,
    )

    result = await service.submit_review(
        user_id=current_user.id,
        business_id=request.business_id,
        rating=request.rating,
        comment=request.comment,
        latitude=request.location.latitude,
        longitude=request.location.longitude,
        context=context,
        emotion=request.emotion,
        user_name=current_user.name,
    )

    if result.coupon is not None:
        message = "리뷰가 등록되었습니다! 쿠폰이 발급되었습니다."
    else:
        message = "리뷰가 등록되었습니다!"

    return {
        "review": result.review.to_dict(),
        "coupon": result.coupon.to_dict() if result.coupon else None,
        "flags": result.flags,
        "message": message,
    }


@router.get("/business/{business_id}", response_model=BusinessReviewsResponse)
async def get_business_reviews(
    business_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """매장 리뷰 목록 (승인된 리뷰, 최신순)"""
    service = ReviewService(db)

    result = await service.get_business_reviews(business_id)
    result["reviews"] = [review.to_dict() for review in result["reviews"]]
    return result


@router.patch("/{review_id}/status", response_model=ReviewResponse)
async def update_review_status(
    review_id: UUID,
    request: ReviewStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
):
    """리뷰 상태 변경 (관리자 전용, 매장 평점 재계산)"""
    service = ReviewService(db)

    review = await service.update_status(review_id, request.status, current_user.id)
    return review.to_dict()


@router.delete("/{review_id}", response_model=ReviewDeleteResponse)
async def delete_review(
    review_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """리뷰 삭제 (작성자 또는 관리자)"""
    service = ReviewService(db)

    await service.delete_review(
        review_id=review_id,
        actor_id=current_user.id,
        is_admin=current_user.is_admin,
    )
    return ReviewDeleteResponse()


@router.post("/{review_id}/helpful", response_model=HelpfulToggleResponse)
async def toggle_helpful(
    review_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """도움돼요 투표 토글"""
    service = ReviewService(db)

    count = await service.toggle_helpful(review_id, current_user.id)
    return HelpfulToggleResponse(review_id=str(review_id), helpful_count=count)
