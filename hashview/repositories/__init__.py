"""
저장소 패키지

추상 인터페이스(base)와 SQLAlchemy 구현(sqlalchemy)을 제공합니다.
"""

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

__all__ = [
    "BusinessRepository",
    "CouponRepository",
    "ReviewRepository",
    "SqlAlchemyBusinessRepository",
    "SqlAlchemyCouponRepository",
    "SqlAlchemyReviewRepository",
]
