"""
관리자 API Pydantic 스키마
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from hashview.api.schemas.review_schemas import ReviewResponse


class SuspiciousActivityItem(BaseModel):
    """의심 활동 항목"""

    user_id: Optional[str]
    event_type: str
    metadata: Dict[str, Any]
    timestamp: str


class SuspiciousActivityListResponse(BaseModel):
    """의심 활동 조회 응답"""

    activities: List[SuspiciousActivityItem]
    total: int
    by_type: Dict[str, int]


class SuspiciousActivityClearResponse(BaseModel):
    """의심 활동 초기화 응답"""

    cleared: int
    message: str = "의심 활동 기록이 초기화되었습니다"


class FlaggedReviewListResponse(BaseModel):
    """검토 대상 리뷰 목록"""

    reviews: List[ReviewResponse]
    limit: int
    offset: int
