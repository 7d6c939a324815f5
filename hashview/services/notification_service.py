"""
알림 발송 서비스

푸시 발송 자체는 외부 알림 서비스가 담당합니다.
리뷰/쿠폰 처리 흐름은 알림 결과를 기다리지 않으며, 발송 실패가 요청을 실패시키지 않습니다.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set
import asyncio
import logging

import httpx

from hashview.config import get_settings
from hashview.utils.prometheus_metrics import notifications_total


logger = logging.getLogger(__name__)


class Notifier(ABC):
    """사용자 알림 인터페이스"""

    @abstractmethod
    async def notify_user(
        self,
        user_id: Any,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        pass


class HttpNotifier(Notifier):
    """
    외부 알림 서비스 HTTP 연동

    POST {base_url}/v1/notifications 로 {user_id, title, body, data}를 전송합니다.
    """

    def __init__(self, base_url: str, timeout: float = 3.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def notify_user(
        self,
        user_id: Any,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        request_data = {
            "user_id": str(user_id),
            "title": title,
            "body": body,
            "data": data or {},
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/v1/notifications", json=request_data
            )
            response.raise_for_status()


class LoggingNotifier(Notifier):
    """알림 서비스가 설정되지 않은 환경용 (로그만 남김)"""

    async def notify_user(
        self,
        user_id: Any,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        logger.info(
            f"[NOTIFY] user={user_id} title={title} body={body}",
            extra={"notification_data": data or {}},
        )


class NotificationDispatcher:
    """
    알림 비동기 발송기

    각 발송을 백그라운드 태스크로 실행하고 실패는 로그로만 남깁니다.
    """

    def __init__(self, notifier: Notifier):
        self.notifier = notifier
        self._pending: Set[asyncio.Task] = set()

    def dispatch(
        self,
        user_id: Any,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> asyncio.Task:
        """
        알림 발송 예약 (즉시 반환)

        Returns:
            asyncio.Task: 발송 태스크
        """
        task = asyncio.create_task(self._deliver(user_id, title, body, data))
        # 태스크가 GC되지 않도록 완료 전까지 참조 유지
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(
        self,
        user_id: Any,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]],
    ) -> None:
        try:
            await self.notifier.notify_user(user_id, title, body, data)
            notifications_total.labels(status="sent").inc()
        except Exception as e:
            notifications_total.labels(status="failed").inc()
            logger.warning(
                f"[FAIL] 알림 발송 실패: user={user_id}, title={title}, error={e}",
                exc_info=True,
            )

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """진행 중인 발송이 모두 끝날 때까지 대기 (종료 시 호출)"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def build_notifier(settings=None) -> Notifier:
    """설정에 따라 알림 구현 선택"""
    settings = settings or get_settings()

    if settings.NOTIFICATION_SERVICE_URL:
        return HttpNotifier(
            base_url=settings.NOTIFICATION_SERVICE_URL,
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
        )

    return LoggingNotifier()


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """프로세스 전역 발송기 반환 (FastAPI 의존성 주입용)"""
    global _dispatcher

    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(build_notifier())

    return _dispatcher
