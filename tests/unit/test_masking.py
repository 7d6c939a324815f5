"""
로그/에러 추적 민감 데이터 마스킹 유닛 테스트
"""

import json
import logging

from hashview.utils.logging import JSONFormatter, SensitiveDataFilter, audit_logger
from hashview.utils.sentry_config import (
    before_breadcrumb_filter,
    before_send_filter,
    mask_sensitive_data,
    mask_sql_query,
)


class TestSensitiveDataFilter:
    """로그 마스킹 필터"""

    def setup_method(self):
        self.filter = SensitiveDataFilter()

    def test_bearer_token(self):
        masked = self.filter.mask_sensitive_data("Authorization: Bearer eyJhbGciOi.abc.def")
        assert masked == "Authorization: Bearer ***"

    def test_push_token(self):
        masked = self.filter.mask_sensitive_data("push=ExponentPushToken[abcdef123]")
        assert masked == "push=ExponentPushToken[***]"

    def test_email(self):
        assert self.filter.mask_sensitive_data("owner@hashview.kr") == "o***@hashview.kr"

    def test_coordinates_keep_four_decimals(self):
        masked = self.filter.mask_sensitive_data("lat=37.497952, lon=127.027619")
        assert masked == "lat=37.4979, lon=127.0276"

    def test_non_string_args_are_preserved(self):
        record = logging.LogRecord(
            "test", logging.INFO, __file__, 1, "count=%d token=%s", (3, "Bearer abc"), None
        )

        self.filter.filter(record)

        assert record.getMessage() == "count=3 token=Bearer ***"


class TestJSONFormatter:
    def test_extra_fields_are_top_level(self):
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "리뷰 저장", (), None)
        record.review_id = "r-1"

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "리뷰 저장"
        assert data["level"] == "INFO"
        assert data["review_id"] == "r-1"


class TestAuditLogger:
    def test_log_event(self, caplog):
        with caplog.at_level(logging.INFO, logger="hashview.audit"):
            audit_logger.log_event(
                event_type="coupon.redeemed",
                user_id="owner-1",
                resource_type="coupon",
                resource_id="c-1",
                action="redeem",
            )

        record = caplog.records[-1]
        assert record.getMessage() == "[AUDIT] coupon.redeemed"
        assert record.event_type == "coupon.redeemed"
        assert record.details == {}


class TestSentryMasking:
    """Sentry 이벤트 마스킹"""

    def test_nested_keys_are_filtered(self):
        data = {
            "location": {"latitude": 37.4979, "longitude": 127.0276},
            "security_metadata": {"device_fingerprint": {"deviceId": "d-1"}},
            "rating": 5,
            "items": [{"qr_data": "{...}"}],
        }

        masked = mask_sensitive_data(data)

        assert masked["location"] == {"latitude": "[Filtered]", "longitude": "[Filtered]"}
        assert masked["security_metadata"]["device_fingerprint"] == "[Filtered]"
        assert masked["rating"] == 5
        assert masked["items"] == [{"qr_data": "[Filtered]"}]

    def test_before_send_masks_request(self):
        event = {
            "request": {
                "headers": {"Authorization": "Bearer abc"},
                "data": {"comment": "맛있어요", "latitude": 37.5},
            }
        }

        filtered = before_send_filter(event, None)

        assert filtered["request"]["headers"]["Authorization"] == "[Filtered]"
        assert filtered["request"]["data"] == {"comment": "맛있어요", "latitude": "[Filtered]"}

    def test_sql_query(self):
        query = "SELECT * FROM reviews WHERE device_id = 'd-1' AND latitude = 37.4979"
        assert mask_sql_query(query) == (
            "SELECT * FROM reviews WHERE device_id='[Filtered]' AND latitude='[Filtered]'"
        )

    def test_query_breadcrumb(self):
        crumb = {"category": "query", "message": "UPDATE reviews SET longitude=127.0"}
        assert before_breadcrumb_filter(crumb, None)["message"] == (
            "UPDATE reviews SET longitude='[Filtered]'"
        )
