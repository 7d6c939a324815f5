"""
관리자 API 엔드포인트

의심 활동 로그 조회/초기화와 검토 대상 리뷰 목록을 제공합니다.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hashview.api.schemas.admin_schemas import (
    FlaggedReviewListResponse,
    SuspiciousActivityClearResponse,
    SuspiciousActivityListResponse,
)
from hashview.middleware.auth import CurrentUser, require_admin
from hashview.models.base import get_db
from hashview.services.review_service import ReviewService
from hashview.services.suspicious_activity_service import (
    SuspiciousActivityRecorder,
    get_suspicious_activity_recorder,
)
from hashview.utils.logging import audit_logger

router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.get("/suspicious-activities", response_model=SuspiciousActivityListResponse)
async def list_suspicious_activities(
    event_type: Optional[str] = Query(None, description="이벤트 유형 필터"),
    limit: int = Query(100, ge=1, le=1000, description="최대 개수"),
    current_user: CurrentUser = Depends(require_admin),
    recorder: SuspiciousActivityRecorder = Depends(get_suspicious_activity_recorder),
):
    """의심 활동 조회 (최신순, 프로세스 메모리 기준)"""
    entries = recorder.query(event_type=event_type, limit=limit)
    stats = recorder.stats()

    return {
        "activities": [entry.to_dict() for entry in entries],
        "total": stats["total"],
        "by_type": stats["by_type"],
    }


@router.delete("/suspicious-activities", response_model=SuspiciousActivityClearResponse)
async def clear_suspicious_activities(
    current_user: CurrentUser = Depends(require_admin),
    recorder: SuspiciousActivityRecorder = Depends(get_suspicious_activity_recorder),
):
    """의심 활동 기록 초기화"""
    cleared = recorder.clear()

    audit_logger.log_event(
        event_type="suspicious_activity.cleared",
        user_id=str(current_user.id),
        resource_type="suspicious_activity",
        action="clear",
        details={"cleared": cleared},
    )

    return SuspiciousActivityClearResponse(cleared=cleared)


@router.get("/reviews/flagged", response_model=FlaggedReviewListResponse)
async def list_flagged_reviews(
    limit: int = Query(50, ge=1, le=200, description="최대 개수"),
    offset: int = Query(0, ge=0, description="건너뛸 개수"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
):
    """검토 대상 리뷰 목록 (최신순)"""
    service = ReviewService(db)

    reviews = await service.list_flagged(limit=limit, offset=offset)
    return {
        "reviews": [review.to_dict() for review in reviews],
        "limit": limit,
        "offset": offset,
    }
