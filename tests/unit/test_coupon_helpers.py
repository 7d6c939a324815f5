"""
쿠폰 코드/할인/유효성/QR 페이로드 유닛 테스트
"""

import json
import re
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from hashview.models.coupon import Coupon, CouponStatus, CouponType, RewardType
from hashview.services.coupon_issuance_service import (
    COUPON_CODE_ALPHABET,
    generate_coupon_code,
)
from hashview.services.coupon_lifecycle_service import (
    RedemptionFailure,
    calculate_discount,
    failure_reason,
    is_valid,
)
from hashview.services.review_service import coupon_earned_message
from hashview.utils.exceptions import ValidationException
from hashview.utils.qr_payload import (
    build_coupon_qr_payload,
    parse_coupon_qr_payload,
    serialize_qr_payload,
)

NOW = datetime(2026, 3, 14, 12, 0, 0)


def make_coupon(**overrides) -> Coupon:
    values = dict(
        id=uuid4(),
        type=CouponType.REVIEW_REWARD.value,
        business_id=uuid4(),
        user_id=uuid4(),
        review_id=uuid4(),
        code="HASH-ABC123",
        reward_type=RewardType.PERCENTAGE.value,
        reward_value=Decimal("10"),
        min_purchase_amount=Decimal("0"),
        max_discount_amount=None,
        valid_from=NOW,
        valid_until=NOW + timedelta(hours=2),
        status=CouponStatus.ACTIVE.value,
        is_active=True,
        usage_count=0,
        redemption_count=0,
    )
    values.update(overrides)
    return Coupon(**values)


class TestCouponCode:
    """쿠폰 코드 생성"""

    def test_format(self):
        code = generate_coupon_code()
        assert re.fullmatch(r"HASH-[A-Z0-9]{6}", code)

    def test_custom_length_and_prefix(self):
        code = generate_coupon_code(length=8, prefix="HV-")
        assert code.startswith("HV-")
        assert len(code) == 11

    def test_alphabet_has_36_symbols(self):
        assert len(set(COUPON_CODE_ALPHABET)) == 36

    def test_consecutive_codes_are_unique(self):
        codes = [generate_coupon_code() for _ in range(200)]
        assert len(set(codes)) == 200


class TestCalculateDiscount:
    """할인 금액 계산"""

    def test_percentage(self):
        coupon = make_coupon(reward_value=Decimal("10"))
        assert calculate_discount(coupon, 4500) == Decimal("450.00")

    def test_percentage_with_cap(self):
        coupon = make_coupon(reward_value=Decimal("50"), max_discount_amount=Decimal("2000"))
        assert calculate_discount(coupon, 10000) == Decimal("2000.00")

    def test_fixed_capped_by_amount(self):
        coupon = make_coupon(reward_type=RewardType.FIXED.value, reward_value=Decimal("3000"))
        assert calculate_discount(coupon, 10000) == Decimal("3000.00")
        assert calculate_discount(coupon, 2500) == Decimal("2500.00")

    def test_buy1get1_behaves_like_percentage(self):
        coupon = make_coupon(reward_type=RewardType.BUY1GET1.value, reward_value=Decimal("50"))
        assert calculate_discount(coupon, 9000) == Decimal("4500.00")

    @pytest.mark.parametrize(
        "reward_type", [RewardType.FREE_DRINK.value, RewardType.FREE_ITEM.value]
    )
    def test_free_item(self, reward_type):
        coupon = make_coupon(reward_type=reward_type, reward_value=Decimal("4500"))
        assert calculate_discount(coupon, 12000) == Decimal("4500.00")
        assert calculate_discount(coupon, 3000) == Decimal("3000.00")

    def test_rounds_half_up(self):
        coupon = make_coupon(reward_value=Decimal("15"))
        # 333 × 0.15 = 49.95
        assert calculate_discount(coupon, Decimal("333")) == Decimal("49.95")
        # 3.3 × 0.15 = 0.495 → 0.50
        assert calculate_discount(coupon, Decimal("3.3")) == Decimal("0.50")


class TestValidity:
    """쿠폰 유효성"""

    def test_valid_inside_window(self):
        coupon = make_coupon()
        assert is_valid(coupon, NOW + timedelta(minutes=30))
        assert failure_reason(coupon, NOW + timedelta(minutes=30)) is None

    def test_window_end_is_inclusive(self):
        coupon = make_coupon()
        assert is_valid(coupon, NOW + timedelta(hours=2))

    def test_expired_after_window(self):
        coupon = make_coupon()
        later = NOW + timedelta(hours=2, seconds=1)

        assert not is_valid(coupon, later)
        assert failure_reason(coupon, later) == RedemptionFailure.EXPIRED

    def test_not_yet_valid(self):
        coupon = make_coupon()
        earlier = NOW - timedelta(seconds=1)
        assert failure_reason(coupon, earlier) == RedemptionFailure.NOT_YET_VALID

    def test_redeemed(self):
        coupon = make_coupon(status=CouponStatus.REDEEMED.value, redeemed_at=NOW)
        assert failure_reason(coupon, NOW) == RedemptionFailure.ALREADY_REDEEMED

    def test_expired_status(self):
        coupon = make_coupon(status=CouponStatus.EXPIRED.value)
        assert failure_reason(coupon, NOW) == RedemptionFailure.EXPIRED

    def test_inactive(self):
        coupon = make_coupon(is_active=False)
        assert failure_reason(coupon, NOW) == RedemptionFailure.NOT_ACTIVE

    def test_template_usage_limit(self):
        template = make_coupon(
            type=CouponType.BUSINESS.value,
            code=None,
            valid_until=None,
            usage_limit=10,
            usage_count=10,
        )
        assert not is_valid(template, NOW)


class TestQrPayload:
    """QR 페이로드 규격"""

    def test_build_has_exact_keys(self):
        coupon = make_coupon()
        payload = build_coupon_qr_payload(coupon, NOW)

        assert set(payload) == {
            "type",
            "couponId",
            "code",
            "businessId",
            "userId",
            "reviewId",
            "timestamp",
        }
        assert payload["type"] == "coupon"
        assert payload["couponId"] == str(coupon.id)
        assert payload["timestamp"] == "2026-03-14T12:00:00.000Z"

    def test_serialize_is_compact(self):
        text = serialize_qr_payload(build_coupon_qr_payload(make_coupon(), NOW))
        assert " " not in text
        assert json.loads(text)["code"] == "HASH-ABC123"

    def test_parse_valid(self):
        coupon = make_coupon()
        text = serialize_qr_payload(build_coupon_qr_payload(coupon, NOW))

        payload = parse_coupon_qr_payload(text)
        assert payload["couponId"] == str(coupon.id)

    @pytest.mark.parametrize(
        "text",
        [
            "not json",
            json.dumps(["coupon"]),
            json.dumps({"type": "review", "couponId": "1", "code": "X", "businessId": "2"}),
            json.dumps({"type": "coupon", "code": "X", "businessId": "2"}),
        ],
    )
    def test_parse_invalid(self, text):
        with pytest.raises(ValidationException) as exc_info:
            parse_coupon_qr_payload(text)
        assert exc_info.value.details["field"] == "qr_data"


class TestCouponEarnedMessage:
    """쿠폰 획득 알림 문구"""

    @pytest.mark.parametrize(
        "overrides,reward",
        [
            ({"reward_type": RewardType.PERCENTAGE.value, "reward_value": Decimal("10.00")}, "10% 할인 쿠폰"),
            ({"reward_type": RewardType.FIXED.value, "reward_value": Decimal("2000")}, "2000원 할인 쿠폰"),
            ({"reward_type": RewardType.BUY1GET1.value}, "1+1 쿠폰"),
            ({"reward_type": RewardType.FREE_ITEM.value, "item_name": "크로플"}, "크로플 쿠폰"),
            ({"reward_type": RewardType.FREE_ITEM.value}, "무료 상품 쿠폰"),
            ({"reward_type": RewardType.FREE_DRINK.value}, "무료 음료 쿠폰"),
        ],
    )
    def test_message_by_reward_type(self, overrides, reward):
        message = coupon_earned_message(make_coupon(**overrides))
        assert message == f"{reward}이 발급되었습니다! 2시간 동안 사용할 수 있습니다."
