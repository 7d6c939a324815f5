"""
쿠폰 API Pydantic 스키마
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class CouponResponse(BaseModel):
    """쿠폰 응답"""

    id: str
    type: str
    business_id: str
    user_id: Optional[str]
    review_id: Optional[str]
    code: Optional[str]
    description: Optional[str]
    reward_type: str
    reward_value: float
    min_purchase_amount: Optional[float]
    max_discount_amount: Optional[float]
    valid_from: Optional[str]
    valid_until: Optional[str]
    status: str
    redeemed_at: Optional[str]
    redeemed_by: Optional[str]
    qr_code_data: Optional[str]


class CouponVerifyRequest(BaseModel):
    """쿠폰 확인 요청 (코드 입력 또는 QR 스캔)"""

    code: Optional[str] = Field(None, max_length=50, description="쿠폰 코드")
    qr_data: Optional[str] = Field(None, description="스캔한 QR 문자열")

    @model_validator(mode="after")
    def check_one_of(self):
        if not self.code and not self.qr_data:
            raise ValueError("code 또는 qr_data 중 하나는 필수입니다")
        return self


class CouponVerifyResponse(BaseModel):
    """쿠폰 확인 응답"""

    coupon: CouponResponse
    valid: bool
    reason: Optional[str] = Field(None, description="사용 불가 사유 코드")


class CouponRedeemResponse(BaseModel):
    """쿠폰 사용 처리 응답"""

    coupon: CouponResponse
    message: str = "쿠폰이 사용 처리되었습니다"


class CalculateDiscountRequest(BaseModel):
    """할인 금액 계산 요청"""

    coupon_id: UUID = Field(..., description="쿠폰 ID")
    purchase_amount: Decimal = Field(..., ge=0, description="구매 금액")


class CalculateDiscountResponse(BaseModel):
    """할인 금액 계산 응답"""

    coupon_id: str
    purchase_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal


class CouponTemplateStats(BaseModel):
    """리워드 템플릿 한도 정보"""

    id: str
    reward_type: str
    reward_value: float
    redemption_limit: Optional[int]
    redemption_count: int
    usage_count: int
    remaining: Optional[int]


class CouponStatsResponse(BaseModel):
    """매장 리워드 쿠폰 통계"""

    business_id: str
    issued: int
    redeemed: int
    expired: int
    active: int
    template: Optional[CouponTemplateStats] = None
