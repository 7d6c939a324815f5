"""
매장(Business) 모델

지오펜스 검증 대상이자 리뷰 평점 집계 대상입니다.
"""

import enum
import uuid

from sqlalchemy import (
    Column,
    String,
    Float,
    Integer,
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import relationship, validates

from hashview.models.base import Base, TimestampMixin
from hashview.utils.geolocation import DEFAULT_GEOFENCE_RADIUS, validate_radius


class BusinessStatus(str, enum.Enum):
    """매장 상태"""

    PENDING = "pending"  # 관리자 승인 대기
    ACTIVE = "active"  # 운영 중
    SUSPENDED = "suspended"  # 정지


class Business(Base, TimestampMixin):
    """매장 모델"""

    __tablename__ = "businesses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(200), nullable=False)

    # 지오펜스
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    radius_meters = Column(Integer, nullable=False, default=DEFAULT_GEOFENCE_RADIUS)

    # 평점 집계 (리뷰 변경 시마다 전체 재계산)
    rating_average = Column(Float, nullable=False, default=0.0)
    rating_count = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default=BusinessStatus.ACTIVE.value)

    __table_args__ = (
        CheckConstraint(
            "radius_meters >= 10 AND radius_meters <= 500",
            name="check_radius_range",
        ),
        CheckConstraint("rating_count >= 0", name="check_rating_count_non_negative"),
        Index("idx_businesses_status", "status"),
    )

    reviews = relationship(
        "Review", back_populates="business", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Business(id={self.id}, name={self.name}, radius={self.radius_meters}m)>"

    @validates("radius_meters")
    def _validate_radius(self, key, value):
        return validate_radius(value)

    @property
    def is_active(self) -> bool:
        """운영 중인 매장인지 확인"""
        return self.status == BusinessStatus.ACTIVE.value

    def to_dict(self):
        """딕셔너리로 변환 (API 응답용)"""
        return {
            "id": str(self.id),
            "owner_id": str(self.owner_id),
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "radius_meters": self.radius_meters,
            "rating_average": self.rating_average,
            "rating_count": self.rating_count,
            "status": self.status,
        }
