"""
리뷰 리워드 쿠폰 발급 서비스

검증된 리뷰 1건당 1회용 쿠폰을 발급합니다.
유효 기간은 발급 시각부터 정확히 2시간으로 고정되어 있습니다 (방문 중 사용 유도).
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4
import logging
import secrets
import string

from hashview.config import get_settings
from hashview.models.coupon import Coupon, CouponStatus, CouponType, RewardType
from hashview.repositories.base import CouponRepository
from hashview.utils.date_utils import utcnow
from hashview.utils.exceptions import ConflictException
from hashview.utils.logging import audit_logger
from hashview.utils.prometheus_metrics import (
    coupons_issued_total,
    coupon_issuance_skipped_total,
)
from hashview.utils.qr_payload import build_coupon_qr_payload, serialize_qr_payload


logger = logging.getLogger(__name__)

# 쿠폰 코드 문자 집합 (대문자 + 숫자, 36자)
COUPON_CODE_ALPHABET = string.ascii_uppercase + string.digits

REVIEW_REWARD_VALIDITY = timedelta(hours=2)

DEFAULT_REWARD_TYPE = RewardType.PERCENTAGE.value
DEFAULT_REWARD_VALUE = Decimal("10")
DEFAULT_DESCRIPTION = "리뷰 작성 감사 쿠폰"


def generate_coupon_code(length: int = 6, prefix: str = "HASH-") -> str:
    """
    쿠폰 코드 생성

    Args:
        length: 접두사 뒤 무작위 문자 수
        prefix: 코드 접두사

    Returns:
        str: 예) HASH-7K2QXA
    """
    suffix = "".join(secrets.choice(COUPON_CODE_ALPHABET) for _ in range(length))
    return f"{prefix}{suffix}"


class CouponIssuanceService:
    """쿠폰 발급 서비스"""

    def __init__(
        self,
        coupons: CouponRepository,
        code_prefix: str = "HASH-",
        code_length: int = 6,
        max_code_attempts: int = 10,
    ):
        self.coupons = coupons
        self.code_prefix = code_prefix
        self.code_length = code_length
        self.max_code_attempts = max_code_attempts

    @classmethod
    def from_settings(cls, coupons: CouponRepository, settings=None):
        settings = settings or get_settings()
        return cls(
            coupons,
            code_prefix=settings.COUPON_CODE_PREFIX,
            code_length=settings.COUPON_CODE_LENGTH,
            max_code_attempts=settings.COUPON_CODE_MAX_ATTEMPTS,
        )

    def generate_code(self, length: Optional[int] = None) -> str:
        return generate_coupon_code(length or self.code_length, self.code_prefix)

    async def generate_unique_code(self) -> str:
        """
        저장소에 없는 쿠폰 코드 생성 (충돌 시 재생성)

        Raises:
            ConflictException: 재시도 한도 안에 고유 코드를 만들지 못한 경우
        """
        for attempt in range(1, self.max_code_attempts + 1):
            code = self.generate_code()
            if not await self.coupons.code_exists(code):
                return code
            logger.warning(f"[RETRY] 쿠폰 코드 충돌: attempt={attempt}")

        raise ConflictException(
            "쿠폰 코드를 생성하지 못했습니다. 잠시 후 다시 시도해주세요.",
            details={"attempts": self.max_code_attempts},
        )

    async def issue(
        self,
        business_id: UUID,
        user_id: UUID,
        review_id: UUID,
        template: Optional[Coupon] = None,
        now: Optional[datetime] = None,
    ) -> Coupon:
        """
        리뷰 리워드 쿠폰 발급

        Args:
            business_id: 매장 ID
            user_id: 리뷰 작성자 ID
            review_id: 리뷰 ID
            template: 매장 리워드 템플릿 (없으면 기본값: 10% 할인, 상한 없음)
            now: 발급 시각 (기본값: 현재 UTC)

        Returns:
            Coupon: 발급된 쿠폰 (flush 완료, 커밋 전)
        """
        now = now or utcnow()
        code = await self.generate_unique_code()

        if template is not None:
            reward_type = template.reward_type
            reward_value = template.reward_value
            item_name = template.item_name
            min_purchase_amount = template.min_purchase_amount or Decimal("0")
            max_discount_amount = template.max_discount_amount
            description = template.description or DEFAULT_DESCRIPTION
            terms = template.terms
        else:
            reward_type = DEFAULT_REWARD_TYPE
            reward_value = DEFAULT_REWARD_VALUE
            item_name = None
            min_purchase_amount = Decimal("0")
            max_discount_amount = None
            description = DEFAULT_DESCRIPTION
            terms = None

        coupon = Coupon(
            id=uuid4(),
            type=CouponType.REVIEW_REWARD.value,
            business_id=business_id,
            user_id=user_id,
            review_id=review_id,
            code=code,
            description=description,
            reward_type=reward_type,
            reward_value=reward_value,
            item_name=item_name,
            min_purchase_amount=min_purchase_amount,
            max_discount_amount=max_discount_amount,
            valid_from=now,
            valid_until=now + REVIEW_REWARD_VALIDITY,
            status=CouponStatus.ACTIVE.value,
            is_active=True,
            terms=terms,
        )
        coupon.qr_code_data = serialize_qr_payload(build_coupon_qr_payload(coupon, now))

        await self.coupons.create(coupon)

        coupons_issued_total.labels(reward_type=reward_type).inc()
        audit_logger.log_event(
            event_type="coupon.issued",
            user_id=str(user_id),
            resource_type="coupon",
            resource_id=str(coupon.id),
            action="issue",
            details={"business_id": str(business_id), "review_id": str(review_id)},
        )

        return coupon

    async def evaluate_reward(
        self,
        business_id: UUID,
        user_id: UUID,
        review_id: UUID,
        now: Optional[datetime] = None,
    ) -> Optional[Coupon]:
        """
        리뷰 리워드 지급 판단 및 발급

        템플릿에 사용 한도가 있으면 발급 전에 매장의 사용 완료 쿠폰 수를 확인합니다.
        한도 확인과 발급 사이의 경쟁으로 한도를 약간 넘을 수 있습니다 (소프트 한도).

        Returns:
            Optional[Coupon]: 발급된 쿠폰, 한도 도달 시 None
        """
        template = await self.coupons.find_active_template(business_id)

        if template is not None and template.redemption_limit is not None:
            redeemed = await self.coupons.count_redeemed_rewards(business_id)
            if redeemed >= template.redemption_limit:
                coupon_issuance_skipped_total.labels(
                    reason="redemption_limit_reached"
                ).inc()
                logger.info(
                    f"[SKIP] 쿠폰 사용 한도 도달: business_id={business_id}, "
                    f"redeemed={redeemed}, limit={template.redemption_limit}"
                )
                return None

        coupon = await self.issue(
            business_id=business_id,
            user_id=user_id,
            review_id=review_id,
            template=template,
            now=now,
        )

        if template is not None:
            await self.coupons.increment_template_usage(template.id)

        return coupon
