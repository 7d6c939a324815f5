"""
날짜/시간 유틸리티

DB에는 타임존 없는 UTC 시각을 저장합니다.
"""

from datetime import datetime, date, timezone


def utcnow() -> datetime:
    """현재 UTC 시각 (naive)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(now: datetime = None) -> datetime:
    """
    하루 집계 창의 시작 시각 (UTC 자정)

    Args:
        now: 기준 시각 (기본값: 현재 UTC 시각)

    Returns:
        datetime: 같은 날 00:00:00
    """
    now = now or utcnow()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def day_bucket(moment: datetime) -> date:
    """리뷰 중복 방지 제약에 사용하는 날짜 버킷"""
    return moment.date()

