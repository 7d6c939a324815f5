"""
쿠폰(Coupon) 모델

매장 점주가 정의한 리워드 템플릿(type=business)과
리뷰 작성 시 자동 발급되는 1회용 리워드 쿠폰(type=review_reward)을 함께 저장합니다.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
import uuid

from sqlalchemy import (
    Column,
    String,
    Text,
    DECIMAL,
    Integer,
    DateTime,
    Boolean,
    ForeignKey,
    Index,
    CheckConstraint,
    Uuid,
)

from hashview.models.base import Base, TimestampMixin


class CouponType(str, Enum):
    """쿠폰 유형"""

    BUSINESS = "business"  # 점주 정의 리워드 템플릿
    REVIEW_REWARD = "review_reward"  # 리뷰 작성 리워드 (1회용)


class RewardType(str, Enum):
    """리워드 유형"""

    PERCENTAGE = "percentage"  # 정률 할인 (예: 10%)
    FIXED = "fixed"  # 정액 할인
    BUY1GET1 = "buy1get1"  # 1+1 (정률 할인과 동일하게 계산)
    FREE_DRINK = "free_drink"  # 음료 무료 (reward_value = 품목 가격)
    FREE_ITEM = "free_item"  # 품목 무료 (reward_value = 품목 가격)


class CouponStatus(str, Enum):
    """쿠폰 상태 (active → redeemed 또는 active → expired, 둘 다 종료 상태)"""

    ACTIVE = "active"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Coupon(Base, TimestampMixin):
    """쿠폰 모델"""

    __tablename__ = "coupons"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    type = Column(String(20), nullable=False, default=CouponType.REVIEW_REWARD.value)
    business_id = Column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )

    # review_reward 전용
    user_id = Column(Uuid, nullable=True)
    review_id = Column(Uuid, nullable=True)

    # 쿠폰 내용
    code = Column(String(20), nullable=True, unique=True)
    title = Column(String(100), nullable=True)
    description = Column(String(500), nullable=True)
    reward_type = Column(String(20), nullable=False)
    reward_value = Column(DECIMAL(10, 2), nullable=False)
    item_name = Column(String(100), nullable=True)
    min_purchase_amount = Column(DECIMAL(10, 2), nullable=False, default=0)
    max_discount_amount = Column(DECIMAL(10, 2), nullable=True)

    # 유효 기간
    valid_from = Column(DateTime, nullable=False)
    valid_until = Column(DateTime, nullable=True)

    # 템플릿 사용 추적 (type=business)
    usage_limit = Column(Integer, nullable=True)  # None = 무제한
    usage_count = Column(Integer, nullable=False, default=0)  # 발급 횟수 (통계용)
    redemption_limit = Column(Integer, nullable=True)  # None = 무제한
    redemption_count = Column(Integer, nullable=False, default=0)

    # 상태
    status = Column(String(20), nullable=False, default=CouponStatus.ACTIVE.value)
    is_active = Column(Boolean, nullable=False, default=True)

    # 사용 처리 (type=review_reward)
    redeemed_at = Column(DateTime, nullable=True)
    redeemed_by = Column(Uuid, nullable=True)

    # QR 코드 페이로드 (JSON 문자열)
    qr_code_data = Column(Text, nullable=True)
    terms = Column(String(1000), nullable=True)

    __table_args__ = (
        CheckConstraint("reward_value >= 0", name="check_reward_value_non_negative"),
        CheckConstraint("usage_count >= 0", name="check_usage_count_non_negative"),
        CheckConstraint(
            "redemption_count >= 0", name="check_redemption_count_non_negative"
        ),
        CheckConstraint(
            "type IN ('business', 'review_reward')", name="check_coupon_type"
        ),
        Index("idx_coupons_user_status", "user_id", "status"),
        Index("idx_coupons_business_type", "business_id", "type"),
        Index("idx_coupons_valid_until", "valid_until"),
        Index("idx_coupons_type_active", "type", "is_active"),
    )

    def __repr__(self):
        return f"<Coupon(id={self.id}, type={self.type}, code={self.code}, status={self.status})>"

    @property
    def is_template(self) -> bool:
        return self.type == CouponType.BUSINESS.value

    def is_expired(self, now: datetime) -> bool:
        """유효 기간이 지났는지 확인"""
        return self.valid_until is not None and now > self.valid_until

    def to_dict(self):
        """딕셔너리로 변환 (API 응답용)"""

        def _amount(value):
            return float(value) if value is not None else None

        return {
            "id": str(self.id),
            "type": self.type,
            "business_id": str(self.business_id),
            "user_id": str(self.user_id) if self.user_id else None,
            "review_id": str(self.review_id) if self.review_id else None,
            "code": self.code,
            "description": self.description,
            "reward_type": self.reward_type,
            "reward_value": _amount(self.reward_value),
            "min_purchase_amount": _amount(self.min_purchase_amount),
            "max_discount_amount": _amount(self.max_discount_amount),
            "valid_from": self.valid_from.isoformat() if self.valid_from else None,
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "status": self.status,
            "redeemed_at": self.redeemed_at.isoformat() if self.redeemed_at else None,
            "redeemed_by": str(self.redeemed_by) if self.redeemed_by else None,
            "qr_code_data": self.qr_code_data,
        }


def to_decimal(value) -> Decimal:
    """금액 값을 Decimal로 정규화"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
