"""
Sentry 에러 트래킹 설정

주요 기능:
- 예외 자동 캡처 및 전송
- 성능 트랜잭션 추적
- 위치 좌표, 기기 식별자, 토큰 자동 마스킹
- 환경별 샘플링 비율 조정
"""

import logging
import re

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration


# 이벤트에서 걸러낼 키워드 (키 이름에 포함되면 값 전체를 가림)
SENSITIVE_KEYS = [
    "password",
    "token",
    "api_key",
    "secret",
    "authorization",
    "latitude",
    "longitude",
    "device_fingerprint",
    "devicefingerprint",
    "device_id",
    "deviceid",
    "qr_data",
]


def init_sentry(
    dsn: str = None,
    environment: str = "development",
    release: str = "1.0.0",
    traces_sample_rate: float = 1.0,
) -> bool:
    """
    Sentry SDK 초기화

    Args:
        dsn: Sentry DSN. 없으면 초기화하지 않음 (로컬 개발, 테스트)
        environment: 환경 이름 (development, staging, production)
        release: 릴리스 버전
        traces_sample_rate: 트랜잭션 샘플링 비율 (0.0 ~ 1.0)

    Returns:
        bool: 초기화 여부

    환경별 샘플링 비율:
    - development: 1.0
    - staging: 0.5
    - production: 0.1
    """
    if not dsn:
        logging.info("Sentry DSN이 설정되지 않았습니다. Sentry 모니터링이 비활성화됩니다.")
        return False

    if environment == "production":
        traces_sample_rate = min(traces_sample_rate, 0.1)
    elif environment == "staging":
        traces_sample_rate = min(traces_sample_rate, 0.5)

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        integrations=[
            FastApiIntegration(
                transaction_style="endpoint",
                failed_request_status_codes={*range(500, 600)},  # 5xx 에러만 캡처
            ),
            SqlalchemyIntegration(),
            RedisIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        before_send=before_send_filter,
        before_breadcrumb=before_breadcrumb_filter,
        max_breadcrumbs=50,
        attach_stacktrace=True,
    )

    logging.info(
        f"Sentry 초기화 완료: environment={environment}, "
        f"traces_sample_rate={traces_sample_rate}"
    )
    return True


def before_send_filter(event, hint):
    """이벤트 전송 전 민감 정보 마스킹"""
    if "request" in event:
        request = event["request"]

        if "data" in request:
            request["data"] = mask_sensitive_data(request["data"])

        if "headers" in request:
            request["headers"] = mask_sensitive_data(request["headers"])

    if "extra" in event:
        event["extra"] = mask_sensitive_data(event["extra"])

    if "contexts" in event:
        event["contexts"] = mask_sensitive_data(event["contexts"])

    return event


def before_breadcrumb_filter(crumb, hint):
    """Breadcrumb 전송 전 SQL 파라미터/헤더 마스킹"""
    if crumb.get("category") == "query" and "message" in crumb:
        crumb["message"] = mask_sql_query(crumb["message"])

    if crumb.get("category") == "httplib" and "data" in crumb:
        crumb["data"] = mask_sensitive_data(crumb["data"])

    return crumb


def mask_sensitive_data(data, sensitive_keys=None):
    """
    민감 데이터 마스킹 (재귀적)

    Args:
        data: 마스킹할 데이터 (dict, list 등)
        sensitive_keys: 민감 키워드 목록 (기본값: SENSITIVE_KEYS)

    Returns:
        마스킹된 데이터
    """
    sensitive_keys = sensitive_keys or SENSITIVE_KEYS

    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if any(sensitive in str(key).lower() for sensitive in sensitive_keys):
                masked[key] = "[Filtered]"
            else:
                masked[key] = mask_sensitive_data(value, sensitive_keys)
        return masked

    if isinstance(data, list):
        return [mask_sensitive_data(item, sensitive_keys) for item in data]

    return data


def mask_sql_query(query: str) -> str:
    """SQL 쿼리의 좌표/기기 식별자 리터럴 마스킹"""
    return re.sub(
        r"(latitude|longitude|device_id)\s*=\s*('[^']*'|[-\d.]+)",
        r"\1='[Filtered]'",
        query,
        flags=re.IGNORECASE,
    )
