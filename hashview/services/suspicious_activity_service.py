"""
의심 활동 기록 서비스

사기 신호 이벤트를 프로세스 메모리의 고정 크기 버퍼(FIFO)에 보관합니다.
재시작하면 초기화되며 여러 프로세스 간에 공유되지 않습니다.
모더레이션 판단의 근거가 아니라 운영자용 참고/감사 로그입니다.
"""

from collections import Counter, deque
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional
import logging

from hashview.config import get_settings
from hashview.utils.date_utils import utcnow
from hashview.utils.prometheus_metrics import (
    suspicious_activities_total,
    suspicious_activity_buffer_size,
)


security_logger = logging.getLogger("hashview.security")


class SuspiciousActivityEntry:
    """의심 활동 항목"""

    def __init__(
        self,
        user_id: Optional[str],
        event_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ):
        self.user_id = user_id
        self.event_type = event_type
        self.metadata = metadata or {}
        self.timestamp = timestamp or utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "event_type": self.event_type,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }


class SuspiciousActivityRecorder:
    """
    의심 활동 기록기

    용량을 넘으면 가장 오래된 항목부터 제거됩니다.
    모든 연산은 스레드 안전합니다.
    """

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError("capacity는 1 이상이어야 합니다")

        self.capacity = capacity
        self._entries: deque = deque(maxlen=capacity)
        self._lock = Lock()

    def record(
        self,
        actor_id: Optional[Any],
        event_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SuspiciousActivityEntry:
        """
        의심 활동 기록

        Args:
            actor_id: 행위자(사용자) ID
            event_type: 이벤트 유형 (POOR_GPS_ACCURACY 등)
            metadata: 상세 정보

        Returns:
            SuspiciousActivityEntry: 기록된 항목
        """
        entry = SuspiciousActivityEntry(
            user_id=str(actor_id) if actor_id is not None else None,
            event_type=event_type,
            metadata=metadata,
        )

        with self._lock:
            self._entries.append(entry)
            size = len(self._entries)

        suspicious_activities_total.labels(event_type=event_type).inc()
        suspicious_activity_buffer_size.set(size)
        security_logger.warning(
            f"[SUSPICIOUS] {event_type}",
            extra={
                "event_type": event_type,
                "user_id": entry.user_id,
                "activity_metadata": entry.metadata,
            },
        )

        return entry

    def query(
        self, event_type: Optional[str] = None, limit: int = 100
    ) -> List[SuspiciousActivityEntry]:
        """
        의심 활동 조회 (최신순)

        Args:
            event_type: 이벤트 유형 필터 (None이면 전체)
            limit: 최대 반환 개수

        Returns:
            List[SuspiciousActivityEntry]: 최신 항목부터 정렬된 목록
        """
        if limit <= 0:
            return []

        with self._lock:
            snapshot = list(self._entries)

        results = []
        for entry in reversed(snapshot):
            if event_type and entry.event_type != event_type:
                continue
            results.append(entry)
            if len(results) >= limit:
                break

        return results

    def stats(self) -> Dict[str, Any]:
        """전체 개수 및 유형별 개수"""
        with self._lock:
            snapshot = list(self._entries)

        return {
            "total": len(snapshot),
            "by_type": dict(Counter(entry.event_type for entry in snapshot)),
        }

    def clear(self) -> int:
        """
        버퍼 비우기 (복구 불가)

        Returns:
            int: 삭제된 항목 수
        """
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()

        suspicious_activity_buffer_size.set(0)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_recorder: Optional[SuspiciousActivityRecorder] = None
_recorder_lock = Lock()


def get_suspicious_activity_recorder() -> SuspiciousActivityRecorder:
    """
    프로세스 전역 기록기 반환

    FastAPI 의존성 주입에도 사용합니다.
    """
    global _recorder

    if _recorder is None:
        with _recorder_lock:
            if _recorder is None:
                _recorder = SuspiciousActivityRecorder(
                    capacity=get_settings().SUSPICIOUS_ACTIVITY_CAPACITY
                )

    return _recorder
