"""
Coupon Expiry Tasks

유효 기간이 지난 리뷰 리워드 쿠폰을 expired 상태로 바꾸는 Celery Beat 작업입니다.
사용 시점에도 만료 여부를 다시 확인하므로, 이 작업은 목록/통계 정합성을 위한 정리 작업입니다.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from hashview.config import get_settings
from hashview.services.coupon_lifecycle_service import CouponLifecycleService
from hashview.tasks import app

logger = logging.getLogger(__name__)


async def sweep_expired_coupons(
    session_factory: Optional[async_sessionmaker] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    만료 쿠폰 정리

    Args:
        session_factory: 세션 팩토리 (없으면 작업 실행마다 NullPool 엔진 생성)
        now: 기준 시각 (기본값: 현재 UTC)

    Returns:
        int: expired로 바뀐 쿠폰 수
    """
    engine = None
    if session_factory is None:
        # asyncio.run()마다 이벤트 루프가 새로 만들어지므로 연결 풀을 공유하지 않음
        settings = get_settings()
        engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
        session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

    try:
        async with session_factory() as session:
            service = CouponLifecycleService(session)
            return await service.sweep_expired(now=now)
    finally:
        if engine is not None:
            await engine.dispose()


@app.task(
    bind=True,
    name="hashview.tasks.coupon_expiry.expire_review_reward_coupons",
    max_retries=1,
)
def expire_review_reward_coupons(self) -> Dict[str, Any]:
    """
    만료 쿠폰 정리

    Celery Beat 스케줄: COUPON_EXPIRY_SWEEP_SECONDS 간격 (기본 5분)

    Returns:
        Dict[str, Any]: 정리 결과
    """
    try:
        logger.info("[Celery Beat] Starting review reward coupon expiry sweep")

        expired_count = asyncio.run(sweep_expired_coupons())

        logger.info(f"[SUCCESS] Expired {expired_count} review reward coupons")

        return {
            "success": True,
            "message": f"Expired {expired_count} coupons",
            "expired_count": expired_count,
        }

    except Exception as exc:
        logger.error(f"[FAIL] Failed to expire review reward coupons: {exc}")

        if self.request.retries < self.max_retries:
            logger.warning("[RETRY] Retrying coupon expiry sweep")
            raise self.retry(exc=exc, countdown=60)

        return {
            "success": False,
            "message": "Failed to expire coupons",
            "error": str(exc),
        }
