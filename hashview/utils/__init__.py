"""
유틸리티 패키지

지오펜스 계산, 로깅, 예외, 메트릭 등 공통 유틸리티를 제공합니다.
"""

from hashview.utils.logging import (
    setup_logging,
    get_logger,
    AuditLogger,
    audit_logger,
)
