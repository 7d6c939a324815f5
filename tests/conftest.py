"""
Pytest configuration and shared fixtures
"""

import os

# 애플리케이션 모듈 임포트 전에 테스트 환경 설정
os.environ["ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SUBMISSION_LOCK_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ.setdefault("SECRET_KEY", "your-secret-key-change-in-production-INSECURE")

from datetime import timedelta
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hashview.engines.fraud_signal_engine import SubmissionContext
from hashview.models import Base, Business, Coupon, CouponType, RewardType
from hashview.repositories.base import BusinessRepository
from hashview.services.notification_service import NotificationDispatcher, Notifier
from hashview.services.review_service import ReviewService
from hashview.services.suspicious_activity_service import SuspiciousActivityRecorder
from hashview.utils.date_utils import utcnow


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# 강남역 근처 테스트 매장 좌표
STORE_LAT = 37.4979
STORE_LON = 127.0276

# 위도 1도 ≈ 111,320m
METERS_PER_LAT_DEGREE = 111_320.0


def offset_north(meters: float):
    """매장에서 북쪽으로 meters 떨어진 좌표"""
    return STORE_LAT + meters / METERS_PER_LAT_DEGREE, STORE_LON


class RecordingNotifier(Notifier):
    """보낸 알림을 메모리에 기록하는 테스트용 Notifier"""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def notify_user(self, user_id, title, body, data=None):
        if self.fail:
            raise RuntimeError("notification service unavailable")
        self.sent.append(
            {"user_id": str(user_id), "title": title, "body": body, "data": data or {}}
        )


class InMemoryBusinessRepository(BusinessRepository):
    """매장 조회와 평점 갱신을 메모리에서 처리하는 테스트용 저장소"""

    def __init__(self, *businesses: Business):
        self.businesses = {b.id: b for b in businesses}
        self.lookups = []
        self.rating_updates = []

    async def find_by_id(self, business_id):
        self.lookups.append(business_id)
        return self.businesses.get(business_id)

    async def update_rating(self, business_id, average, count):
        self.rating_updates.append((business_id, round(average, 2), count))


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Uses in-memory SQLite database for fast test execution.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def customer_id():
    return uuid4()


@pytest_asyncio.fixture(scope="function")
async def business(db_session: AsyncSession, owner_id) -> Business:
    """반경 50m 테스트 매장"""
    store = Business(
        id=uuid4(),
        owner_id=owner_id,
        name="해시카페 강남점",
        latitude=STORE_LAT,
        longitude=STORE_LON,
        radius_meters=50,
    )
    db_session.add(store)
    await db_session.commit()
    return store


@pytest.fixture
def create_template(db_session: AsyncSession):
    """매장 리워드 템플릿 생성 헬퍼"""

    async def _create(business: Business, **overrides) -> Coupon:
        values = dict(
            id=uuid4(),
            type=CouponType.BUSINESS.value,
            business_id=business.id,
            title="리뷰 감사 쿠폰",
            description="아메리카노 1,000원 할인",
            reward_type=RewardType.FIXED.value,
            reward_value=Decimal("1000"),
            min_purchase_amount=Decimal("0"),
            valid_from=utcnow() - timedelta(days=1),
            valid_until=None,
            is_active=True,
        )
        values.update(overrides)
        template = Coupon(**values)
        db_session.add(template)
        await db_session.commit()
        return template

    return _create


@pytest.fixture
def clean_context() -> SubmissionContext:
    """사기 신호가 없는 정상 제출 메타데이터"""
    return SubmissionContext(
        location_accuracy=12.0,
        verification_seconds=30,
        motion_detected=True,
        is_mock_location=False,
        location_history_count=8,
        client_anomalies=[],
        device_fingerprint={"deviceId": f"device-{uuid4()}", "model": "iPhone 15"},
        platform="ios",
    )


@pytest.fixture
def recorder() -> SuspiciousActivityRecorder:
    return SuspiciousActivityRecorder(capacity=100)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier: RecordingNotifier) -> NotificationDispatcher:
    return NotificationDispatcher(notifier)


@pytest.fixture
def review_service(db_session, recorder, dispatcher) -> ReviewService:
    return ReviewService(db_session, recorder=recorder, dispatcher=dispatcher)


@pytest.fixture
def submit(review_service: ReviewService, business: Business, customer_id, clean_context):
    """기본값으로 리뷰를 제출하는 헬퍼 (인자로 덮어쓰기)"""

    async def _submit(**overrides):
        values = dict(
            user_id=customer_id,
            business_id=business.id,
            rating=5,
            comment="커피가 정말 맛있고 직원분들이 친절해요!",
            latitude=STORE_LAT,
            longitude=STORE_LON,
            context=clean_context,
            user_name="김해시",
        )
        values.update(overrides)
        return await review_service.submit_review(**values)

    return _submit


@pytest.fixture
def make_token():
    """JWT access token 생성 헬퍼"""
    from hashview.utils.security import JWTManager

    def _make(user_id, role: str = "customer", name: str = "테스트 사용자") -> dict:
        token = JWTManager.create_access_token(
            {"sub": str(user_id), "role": role, "name": name},
            expires_delta=timedelta(hours=24),
        )
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession, dispatcher: NotificationDispatcher, recorder
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing FastAPI endpoints.
    Override the database dependency to use the test database.
    """
    from hashview.main import app
    from hashview.models.base import get_db
    from hashview.services.notification_service import get_notification_dispatcher
    from hashview.services.suspicious_activity_service import (
        get_suspicious_activity_recorder,
    )

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_suspicious_activity_recorder] = lambda: recorder

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()
