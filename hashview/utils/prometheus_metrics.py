"""
Prometheus 메트릭 수집 유틸리티

리뷰 리워드 서비스의 주요 메트릭을 수집하고 Prometheus에 노출합니다.

주요 메트릭:
- 리뷰 제출 결과 (Counter)
- 리뷰 제출 처리 시간 (Histogram)
- 사기 신호 발생 수 (Counter)
- 쿠폰 발급/사용/만료 수 (Counter)
- 의심 활동 버퍼 크기 (Gauge)
"""

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
)
from contextlib import contextmanager
import time


# 커스텀 레지스트리 (기본 메트릭 제외)
registry = CollectorRegistry()

# ===========================
# 애플리케이션 정보
# ===========================
app_info = Info(
    "hashview_app",
    "HashView Review Reward Service Info",
    registry=registry,
)
app_info.info(
    {
        "version": "1.0.0",
        "service": "hashview-review-reward",
    }
)

# ===========================
# 리뷰 제출 메트릭
# ===========================
review_submissions_total = Counter(
    "hashview_review_submissions_total",
    "리뷰 제출 시도 수",
    ["outcome"],  # accepted, flagged, rejected
    registry=registry,
)

review_rejections_total = Counter(
    "hashview_review_rejections_total",
    "리뷰 제출 거부 수 (사유별)",
    ["reason"],
    registry=registry,
)

review_submission_duration_seconds = Histogram(
    "hashview_review_submission_duration_seconds",
    "리뷰 제출 처리 시간 (초)",
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=registry,
)

# ===========================
# 사기 신호 메트릭
# ===========================
fraud_signals_total = Counter(
    "hashview_fraud_signals_total",
    "사기 신호 발생 수",
    ["signal_type", "action"],
    registry=registry,
)

suspicious_activities_total = Counter(
    "hashview_suspicious_activities_total",
    "의심 활동 기록 수",
    ["event_type"],
    registry=registry,
)

suspicious_activity_buffer_size = Gauge(
    "hashview_suspicious_activity_buffer_size",
    "의심 활동 버퍼에 보관 중인 항목 수",
    registry=registry,
)

# ===========================
# 쿠폰 메트릭
# ===========================
coupons_issued_total = Counter(
    "hashview_coupons_issued_total",
    "리뷰 리워드 쿠폰 발급 수",
    ["reward_type"],
    registry=registry,
)

coupon_issuance_skipped_total = Counter(
    "hashview_coupon_issuance_skipped_total",
    "쿠폰 발급 생략 수",
    ["reason"],  # redemption_limit_reached, error
    registry=registry,
)

coupons_redeemed_total = Counter(
    "hashview_coupons_redeemed_total",
    "쿠폰 사용 수",
    registry=registry,
)

coupon_redemption_conflicts_total = Counter(
    "hashview_coupon_redemption_conflicts_total",
    "쿠폰 사용 실패 수 (사유별)",
    ["reason"],
    registry=registry,
)

coupons_expired_total = Counter(
    "hashview_coupons_expired_total",
    "만료 처리된 쿠폰 수",
    registry=registry,
)

# ===========================
# 알림 메트릭
# ===========================
notifications_total = Counter(
    "hashview_notifications_total",
    "알림 발송 수",
    ["status"],  # sent, failed
    registry=registry,
)


# ===========================
# 헬퍼 함수
# ===========================


def track_review_outcome(outcome: str, reason: str = None):
    """
    리뷰 제출 결과 기록

    Args:
        outcome: accepted, flagged, rejected
        reason: 거부 사유 코드 (rejected일 때)
    """
    review_submissions_total.labels(outcome=outcome).inc()
    if reason:
        review_rejections_total.labels(reason=reason).inc()


def track_fraud_signal(signal_type: str, action: str):
    """사기 신호 기록"""
    fraud_signals_total.labels(signal_type=signal_type, action=action).inc()


@contextmanager
def track_submission_duration():
    """
    리뷰 제출 처리 시간 측정

    Example:
        with track_submission_duration():
            await service.submit(...)
    """
    start_time = time.time()
    try:
        yield
    finally:
        review_submission_duration_seconds.observe(time.time() - start_time)


def get_metrics() -> bytes:
    """
    Prometheus 메트릭 반환

    Returns:
        bytes: Prometheus 형식의 메트릭
    """
    return generate_latest(registry)


def get_content_type() -> str:
    """
    Prometheus 메트릭 Content-Type 반환

    Returns:
        str: Content-Type 헤더 값
    """
    return CONTENT_TYPE_LATEST
