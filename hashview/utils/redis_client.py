"""
Redis 연결 풀 관리

비동기 Redis 클라이언트 및 연결 풀을 제공합니다.
리뷰 제출 시 사용자별 직렬화 락에 사용됩니다.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

from redis import asyncio as aioredis
from redis.asyncio import ConnectionPool
from redis.exceptions import LockError

from hashview.config import get_settings
from hashview.utils.exceptions import ConflictException
from hashview.utils.logging import get_logger

logger = get_logger(__name__)

# 전역 Redis 연결 풀 및 클라이언트
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """
    Redis 연결 풀 및 클라이언트 초기화

    Returns:
        aioredis.Redis: Redis 클라이언트 인스턴스
    """
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()

    try:
        logger.info("Redis 연결 풀 초기화 중...")

        _redis_pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_POOL_MAX_CONNECTIONS,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=settings.REDIS_SOCKET_CONNECT_TIMEOUT,
            decode_responses=True,
        )
        _redis_client = aioredis.Redis(connection_pool=_redis_pool)

        await _redis_client.ping()
        logger.info("[OK] Redis 연결 성공")

        return _redis_client

    except Exception as e:
        logger.error(f"[FAIL] Redis 연결 실패: {e}")
        raise


async def close_redis() -> None:
    """
    Redis 연결 종료

    애플리케이션 종료 시 호출하여 리소스를 정리합니다.
    """
    global _redis_pool, _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis 클라이언트 종료")

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis 연결 풀 종료")


async def get_redis() -> aioredis.Redis:
    """
    Redis 클라이언트 가져오기

    FastAPI 의존성 주입용 함수입니다.
    """
    if _redis_client is None:
        await init_redis()

    return _redis_client


SubmissionLockFactory = Callable[[Any], Any]


def make_submission_lock(
    redis: aioredis.Redis, timeout_seconds: int = 10
) -> SubmissionLockFactory:
    """
    사용자별 리뷰 제출 락 팩토리 생성

    같은 사용자의 동시 제출을 직렬화하여 한도/중복 검사와 저장 사이의 경쟁을 줄입니다.

    Args:
        redis: Redis 클라이언트
        timeout_seconds: 락 유지 시간이자 획득 대기 시간 (초)

    Returns:
        actor_id를 받아 async context manager를 반환하는 함수

    Example:
        ```python
        lock = make_submission_lock(redis)
        async with lock(user_id):
            ...
        ```
    """

    @asynccontextmanager
    async def submission_lock(actor_id) -> AsyncIterator[None]:
        lock = redis.lock(
            f"review_submission:{actor_id}",
            timeout=timeout_seconds,
            blocking_timeout=timeout_seconds,
        )

        if not await lock.acquire():
            raise ConflictException(
                "이전 리뷰 제출을 처리하고 있습니다. 잠시 후 다시 시도해주세요."
            )

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # 처리 시간이 락 유지 시간을 넘어 이미 해제된 경우
                logger.warning(f"[WARN] 리뷰 제출 락이 먼저 만료됨: actor_id={actor_id}")

    return submission_lock
