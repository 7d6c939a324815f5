"""
Celery Configuration for HashView

이 파일은 Celery 브로커, 결과 백엔드, 작업 라우팅, Beat 스케줄을 설정합니다.
"""

import os

from hashview.config import get_settings

_settings = get_settings()

# =======================
# Broker and Backend
# =======================

broker_url = os.getenv("CELERY_BROKER_URL", _settings.REDIS_URL)

result_backend = os.getenv("CELERY_RESULT_BACKEND", _settings.REDIS_URL)

# =======================
# Task Configuration
# =======================

task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

timezone = "UTC"
enable_utc = True

# 작업 결과 만료 시간 (1일)
result_expires = 60 * 60 * 24

task_acks_late = True  # 작업 완료 후 ACK
task_reject_on_worker_lost = True  # 워커 중단 시 작업 재큐잉
worker_prefetch_multiplier = 1

# =======================
# Task Routing
# =======================

task_routes = {
    "hashview.tasks.coupon_expiry.expire_review_reward_coupons": {
        "queue": "maintenance",
        "priority": 1,
    },
}

# =======================
# Beat Schedule (주기적 작업)
# =======================

beat_schedule = {
    "expire-review-reward-coupons": {
        "task": "hashview.tasks.coupon_expiry.expire_review_reward_coupons",
        "schedule": float(_settings.COUPON_EXPIRY_SWEEP_SECONDS),
    },
}

# =======================
# Worker Configuration
# =======================

worker_log_format = "[%(asctime)s: %(levelname)s/%(processName)s] %(message)s"
worker_task_log_format = (
    "[%(asctime)s: %(levelname)s/%(processName)s] "
    "[%(task_name)s(%(task_id)s)] %(message)s"
)

worker_concurrency = int(os.getenv("CELERY_WORKER_CONCURRENCY", "2"))
