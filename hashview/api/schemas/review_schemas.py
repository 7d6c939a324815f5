"""
리뷰 API Pydantic 스키마

리뷰 제출/모더레이션 요청과 응답 데이터 구조를 정의합니다.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class LocationPayload(BaseModel):
    """제출 위치"""

    latitude: float = Field(..., description="위도")
    longitude: float = Field(..., description="경도")


class SecurityMetadataPayload(BaseModel):
    """클라이언트 보안 메타데이터"""

    location_accuracy: Optional[float] = Field(None, description="GPS 정확도 (미터)")
    verification_seconds: Optional[float] = Field(
        None, description="위치 확인에 걸린 시간 (초)"
    )
    motion_detected: Optional[bool] = Field(None, description="움직임 감지 여부")
    is_mock_location: bool = Field(False, description="가상 위치 사용 여부")
    location_history_count: Optional[int] = Field(
        None, ge=0, description="제출 전 수집한 위치 샘플 수"
    )
    client_anomalies: List[Dict[str, Any]] = Field(
        default_factory=list, description="클라이언트가 감지한 이상 징후 목록"
    )
    device_fingerprint: Dict[str, Any] = Field(
        default_factory=dict, description="기기 식별 정보 (deviceId 포함)"
    )
    platform: Optional[str] = Field(None, max_length=20, description="ios, android")


class ReviewSubmitRequest(BaseModel):
    """리뷰 제출 요청"""

    business_id: UUID = Field(..., description="매장 ID")
    rating: int = Field(..., description="별점 (1-5)")
    comment: str = Field(..., description="리뷰 내용 (10-500자)")
    emotion: Optional[str] = Field(None, description="감정 태그 (선택)")
    location: LocationPayload = Field(..., description="제출 위치")
    security_metadata: SecurityMetadataPayload = Field(
        default_factory=SecurityMetadataPayload, description="보안 메타데이터"
    )


class ReviewResponse(BaseModel):
    """리뷰 응답"""

    id: str
    user_id: str
    business_id: str
    rating: int
    comment: str
    emotion: Optional[str]
    latitude: float
    longitude: float
    captured_at: Optional[str]
    verified: bool
    status: str
    helpful_count: int
    coupon_awarded: bool
    coupon_id: Optional[str]
    security_metadata: Dict[str, Any]


class AwardedCouponResponse(BaseModel):
    """발급된 리워드 쿠폰"""

    id: str
    code: str
    reward_type: str
    reward_value: float
    description: Optional[str]
    valid_from: str
    valid_until: str
    qr_code_data: Optional[str]


class ReviewSubmitResponse(BaseModel):
    """리뷰 제출 응답"""

    review: ReviewResponse
    coupon: Optional[AwardedCouponResponse] = None
    flags: List[str] = Field(default_factory=list, description="기록된 약한 사기 신호")
    message: str


class ReviewStatusUpdateRequest(BaseModel):
    """리뷰 상태 변경 요청 (관리자)"""

    status: str = Field(..., description="pending, approved, rejected, flagged")


class HelpfulToggleResponse(BaseModel):
    """도움돼요 토글 응답"""

    review_id: str
    helpful_count: int


class ReviewDeleteResponse(BaseModel):
    """리뷰 삭제 응답"""

    message: str = "리뷰가 삭제되었습니다"


class BusinessReviewsResponse(BaseModel):
    """매장 리뷰 목록 응답"""

    business_id: str
    rating_average: float
    rating_count: int
    reviews: List[ReviewResponse]
