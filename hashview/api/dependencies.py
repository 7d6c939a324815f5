"""
API 공통 의존성
"""

from hashview.config import get_settings
from hashview.utils.redis_client import get_redis, make_submission_lock


async def get_submission_lock_factory():
    """
    리뷰 제출 락 팩토리 (SUBMISSION_LOCK_ENABLED=False이면 None)

    None이면 ReviewService가 락 없이 동작하며, 중복은 저장소 유니크 제약이 막습니다.
    """
    settings = get_settings()
    if not settings.SUBMISSION_LOCK_ENABLED:
        return None

    redis = await get_redis()
    return make_submission_lock(redis, settings.SUBMISSION_LOCK_TIMEOUT_SECONDS)
