"""
리뷰 모델

매장 방문 고객의 위치 검증된 리뷰를 관리합니다.
생성 후 내용은 변경되지 않으며, 상태(모더레이션)와 "도움돼요" 투표만 바뀝니다.
"""

import enum
import uuid

from sqlalchemy import (
    Column,
    String,
    Integer,
    Float,
    Text,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
    Uuid,
)
from sqlalchemy import JSON as JSONB
from sqlalchemy.orm import relationship

from hashview.models.base import Base, TimestampMixin


class ReviewStatus(str, enum.Enum):
    """리뷰 모더레이션 상태"""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"


class ReviewEmotion(str, enum.Enum):
    """리뷰 감정 태그 (선택)"""

    LOVED = "loved"
    HAPPY = "happy"
    OKAY = "okay"
    DISAPPOINTED = "disappointed"
    FRUSTRATED = "frustrated"
    AMAZING = "amazing"


class Review(Base, TimestampMixin):
    """
    리뷰 모델

    제출 시점의 보안 메타데이터 전체를 security_metadata에 스냅샷으로 저장합니다.
    조회 조건에 쓰이는 일부 값(기기 ID, GPS 정확도 등)은 별도 컬럼으로 복제합니다.
    """

    __tablename__ = "reviews"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    business_id = Column(
        Uuid,
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 리뷰 내용
    rating = Column(Integer, nullable=False)  # 1-5점
    comment = Column(Text, nullable=False)  # 10-500자
    emotion = Column(String(20), nullable=True)

    # 제출 위치 및 시각
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    captured_at = Column(DateTime, nullable=False, index=True)
    review_date = Column(Date, nullable=False)  # 하루 1회 제약용 날짜 버킷 (UTC)

    # 검증 및 상태
    verified = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=ReviewStatus.APPROVED.value)
    helpful_user_ids = Column(JSONB, nullable=False, default=list)

    # 리워드
    coupon_awarded = Column(Boolean, nullable=False, default=False)
    coupon_id = Column(Uuid, nullable=True)

    # 보안 메타데이터
    security_metadata = Column(JSONB, nullable=False, default=dict)
    device_id = Column(String(255), nullable=True, index=True)
    location_accuracy = Column(Float, nullable=True)
    is_mock_location = Column(Boolean, nullable=False, default=False)
    suspicious_activities_count = Column(Integer, nullable=False, default=0)

    business = relationship("Business", back_populates="reviews")

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="check_rating_range"),
        CheckConstraint(
            "LENGTH(comment) >= 10 AND LENGTH(comment) <= 500",
            name="check_comment_length",
        ),
        # 사용자당 매장당 하루 하나의 리뷰 (애플리케이션 검사와 별개로 저장소에서 보장)
        UniqueConstraint(
            "user_id", "business_id", "review_date", name="uq_reviews_user_business_day"
        ),
        Index("idx_reviews_business_captured", "business_id", "captured_at"),
        Index("idx_reviews_user_captured", "user_id", "captured_at"),
    )

    def __repr__(self):
        return f"<Review(id={self.id}, user_id={self.user_id}, business_id={self.business_id}, rating={self.rating})>"

    @property
    def helpful_count(self) -> int:
        return len(self.helpful_user_ids or [])

    def to_dict(self):
        """딕셔너리로 변환 (API 응답용)"""
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "business_id": str(self.business_id),
            "rating": self.rating,
            "comment": self.comment,
            "emotion": self.emotion,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
            "verified": self.verified,
            "status": self.status,
            "helpful_count": self.helpful_count,
            "coupon_awarded": self.coupon_awarded,
            "coupon_id": str(self.coupon_id) if self.coupon_id else None,
            "security_metadata": self.security_metadata or {},
        }
