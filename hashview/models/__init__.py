"""
데이터베이스 모델 패키지

이 패키지는 모든 SQLAlchemy 모델을 관리합니다.
새로운 모델을 추가할 때는 이 파일에서 import하여 메타데이터에 등록되도록 합니다.
"""

from .base import Base, TimestampMixin, get_db, init_db, close_db
from .business import Business, BusinessStatus
from .review import Review, ReviewStatus, ReviewEmotion
from .coupon import Coupon, CouponType, CouponStatus, RewardType

__all__ = [
    "Base",
    "TimestampMixin",
    "get_db",
    "init_db",
    "close_db",
    "Business",
    "BusinessStatus",
    "Review",
    "ReviewStatus",
    "ReviewEmotion",
    "Coupon",
    "CouponType",
    "CouponStatus",
    "RewardType",
]
