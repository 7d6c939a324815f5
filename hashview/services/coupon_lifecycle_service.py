"""
쿠폰 수명 주기 서비스

목적: 쿠폰 유효성 검사, 사용 처리, 만료 처리, 할인 금액 계산

쿠폰 상태 전이는 active → redeemed 또는 active → expired 한 번뿐입니다.
두 전이 모두 상태 조건부 UPDATE로 처리하므로 동시 스캔/만료 배치와 경쟁해도
최대 한 번만 성공합니다.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from hashview.models.business import Business
from hashview.models.coupon import (
    Coupon,
    CouponStatus,
    RewardType,
    to_decimal,
)
from hashview.repositories.base import BusinessRepository, CouponRepository
from hashview.repositories.sqlalchemy import (
    SqlAlchemyBusinessRepository,
    SqlAlchemyCouponRepository,
)
from hashview.services.notification_service import NotificationDispatcher
from hashview.utils.date_utils import utcnow
from hashview.utils.exceptions import (
    BusinessNotFoundException,
    CouponConflictException,
    CouponNotFoundException,
    ForbiddenException,
    ValidationException,
)
from hashview.utils.logging import audit_logger
from hashview.utils.prometheus_metrics import (
    coupon_redemption_conflicts_total,
    coupons_expired_total,
    coupons_redeemed_total,
)
from hashview.utils.qr_payload import parse_coupon_qr_payload


logger = logging.getLogger(__name__)


class RedemptionFailure:
    """쿠폰 사용 실패 사유 코드"""

    ALREADY_REDEEMED = "ALREADY_REDEEMED"
    EXPIRED = "EXPIRED"
    NOT_YET_VALID = "NOT_YET_VALID"
    NOT_ACTIVE = "NOT_ACTIVE"


_FAILURE_MESSAGES = {
    RedemptionFailure.ALREADY_REDEEMED: "이미 사용된 쿠폰입니다.",
    RedemptionFailure.EXPIRED: "만료된 쿠폰입니다.",
    RedemptionFailure.NOT_YET_VALID: "아직 사용할 수 없는 쿠폰입니다.",
    RedemptionFailure.NOT_ACTIVE: "사용할 수 없는 쿠폰입니다.",
}


def is_valid(coupon: Coupon, now: Optional[datetime] = None) -> bool:
    """
    쿠폰 사용 가능 여부

    active 상태, 유효 기간 안, 미사용, (템플릿이면) 발급 한도 미초과
    """
    now = now or utcnow()

    if coupon.status != CouponStatus.ACTIVE.value or not coupon.is_active:
        return False
    if coupon.redeemed_at is not None:
        return False
    if coupon.valid_from and now < coupon.valid_from:
        return False
    if coupon.valid_until and now > coupon.valid_until:
        return False
    if (
        coupon.is_template
        and coupon.usage_limit is not None
        and coupon.usage_count >= coupon.usage_limit
    ):
        return False

    return True


def failure_reason(coupon: Coupon, now: datetime) -> Optional[str]:
    """사용할 수 없는 쿠폰의 사유 코드 (사용 가능하면 None)"""
    if coupon.status == CouponStatus.REDEEMED.value or coupon.redeemed_at is not None:
        return RedemptionFailure.ALREADY_REDEEMED
    if coupon.status == CouponStatus.EXPIRED.value:
        return RedemptionFailure.EXPIRED
    if coupon.status != CouponStatus.ACTIVE.value or not coupon.is_active:
        return RedemptionFailure.NOT_ACTIVE
    if coupon.valid_until and now > coupon.valid_until:
        return RedemptionFailure.EXPIRED
    if coupon.valid_from and now < coupon.valid_from:
        return RedemptionFailure.NOT_YET_VALID
    if not is_valid(coupon, now):
        return RedemptionFailure.NOT_ACTIVE
    return None


def calculate_discount(coupon: Coupon, purchase_amount) -> Decimal:
    """
    할인 금액 계산

    - percentage: 구매 금액 × 비율 (max_discount_amount가 있으면 상한 적용)
    - fixed: min(할인 금액, 구매 금액)
    - buy1get1: 구매 금액 × 비율 (정률 할인과 동일)
    - free_drink / free_item: min(품목 가격, 구매 금액)

    Args:
        coupon: 쿠폰
        purchase_amount: 구매 금액

    Returns:
        Decimal: 할인 금액 (소수점 2자리)
    """
    amount = to_decimal(purchase_amount)
    value = to_decimal(coupon.reward_value)
    reward_type = coupon.reward_type

    if reward_type == RewardType.PERCENTAGE.value:
        discount = amount * value / Decimal("100")
        if coupon.max_discount_amount is not None:
            discount = min(discount, to_decimal(coupon.max_discount_amount))
    elif reward_type == RewardType.BUY1GET1.value:
        discount = amount * value / Decimal("100")
    elif reward_type in (
        RewardType.FIXED.value,
        RewardType.FREE_DRINK.value,
        RewardType.FREE_ITEM.value,
    ):
        discount = min(value, amount)
    else:
        discount = Decimal("0")

    return discount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class CouponLifecycleService:
    """쿠폰 수명 주기 서비스"""

    def __init__(
        self,
        db_session: AsyncSession,
        dispatcher: Optional[NotificationDispatcher] = None,
        coupons: Optional[CouponRepository] = None,
        businesses: Optional[BusinessRepository] = None,
    ):
        self.db = db_session
        self.coupons = coupons or SqlAlchemyCouponRepository(db_session)
        self.businesses = businesses or SqlAlchemyBusinessRepository(db_session)
        self.dispatcher = dispatcher

    async def _get_coupon(self, coupon_id: UUID) -> Coupon:
        coupon = await self.coupons.find_by_id(coupon_id)
        if coupon is None:
            raise CouponNotFoundException(str(coupon_id))
        return coupon

    async def _authorize_business(
        self, business_id: UUID, requester_id: UUID, is_admin: bool
    ) -> Business:
        """매장 점주 또는 관리자만 허용"""
        business = await self.businesses.find_by_id(business_id)
        if business is None:
            raise BusinessNotFoundException(str(business_id))

        if not is_admin and business.owner_id != requester_id:
            raise ForbiddenException("이 매장의 쿠폰을 처리할 권한이 없습니다.")

        return business

    async def redeem(
        self,
        coupon_id: UUID,
        redeemer_id: UUID,
        is_admin: bool = False,
        now: Optional[datetime] = None,
    ) -> Coupon:
        """
        쿠폰 사용 처리 (매장 점주 스캔)

        Args:
            coupon_id: 쿠폰 ID
            redeemer_id: 처리자(점주/관리자) ID
            is_admin: 관리자 여부
            now: 처리 시각 (기본값: 현재 UTC)

        Returns:
            Coupon: redeemed 상태의 쿠폰

        Raises:
            CouponNotFoundException: 쿠폰이 없음
            ForbiddenException: 매장 점주/관리자가 아님
            CouponConflictException: 이미 사용됨, 만료됨 등
        """
        now = now or utcnow()

        coupon = await self._get_coupon(coupon_id)
        if coupon.is_template:
            raise ValidationException("리워드 템플릿은 사용 처리할 수 없습니다.")

        business = await self._authorize_business(
            coupon.business_id, redeemer_id, is_admin
        )

        redeemed = await self.coupons.conditional_redeem(coupon_id, redeemer_id, now)
        if redeemed is None:
            await self._raise_redemption_conflict(coupon_id, now)

        template = await self.coupons.find_active_template(redeemed.business_id)
        if template is not None:
            await self.coupons.increment_template_redemption(template.id)

        await self.db.commit()

        coupons_redeemed_total.inc()
        audit_logger.log_event(
            event_type="coupon.redeemed",
            user_id=str(redeemer_id),
            resource_type="coupon",
            resource_id=str(redeemed.id),
            action="redeem",
            details={"business_id": str(redeemed.business_id), "code": redeemed.code},
        )
        logger.info(f"[OK] 쿠폰 사용 완료: coupon_id={redeemed.id}")

        if self.dispatcher is not None and redeemed.user_id is not None:
            self.dispatcher.dispatch(
                redeemed.user_id,
                "쿠폰 사용 완료 ✅",
                f"{business.name}에서 쿠폰이 사용되었습니다.",
                {"type": "coupon_redeemed", "couponId": str(redeemed.id)},
            )

        return redeemed

    async def _raise_redemption_conflict(self, coupon_id: UUID, now: datetime):
        """조건부 UPDATE 실패 사유를 확인하여 예외 발생"""
        coupon = await self._get_coupon(coupon_id)
        reason = failure_reason(coupon, now) or RedemptionFailure.NOT_ACTIVE
        current_status = coupon.status

        if (
            reason == RedemptionFailure.EXPIRED
            and current_status == CouponStatus.ACTIVE.value
        ):
            # 만료 배치보다 먼저 발견한 경우 즉시 만료 처리
            if await self.coupons.expire_if_active(coupon_id, now):
                coupons_expired_total.inc()
                current_status = CouponStatus.EXPIRED.value
            await self.db.commit()
        else:
            await self.db.rollback()

        coupon_redemption_conflicts_total.labels(reason=reason).inc()
        logger.info(
            f"[FAIL] 쿠폰 사용 실패: coupon_id={coupon_id}, reason={reason}, "
            f"status={current_status}"
        )
        raise CouponConflictException(
            reason=reason,
            message=_FAILURE_MESSAGES[reason],
            current_status=current_status,
            details={"coupon_id": str(coupon_id)},
        )

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        유효 기간이 지난 active 리뷰 리워드 쿠폰 일괄 만료

        사용 처리와 동시에 실행되어도 안전합니다 (status=active 조건).

        Returns:
            int: 만료 처리된 쿠폰 수
        """
        now = now or utcnow()

        expired_count = await self.coupons.bulk_expire(now)
        await self.db.commit()

        if expired_count:
            coupons_expired_total.inc(expired_count)
            audit_logger.log_event(
                event_type="coupon.expired",
                resource_type="coupon",
                action="expire",
                details={"count": expired_count, "before": now.isoformat()},
            )

        return expired_count

    async def quote_discount(
        self,
        coupon_id: UUID,
        user_id: UUID,
        purchase_amount,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        쿠폰 보유자의 할인 금액 조회

        Raises:
            ForbiddenException: 본인 쿠폰이 아님
            CouponConflictException: 사용할 수 없는 쿠폰
            ValidationException: 최소 구매 금액 미달
        """
        now = now or utcnow()
        amount = to_decimal(purchase_amount)
        if amount < 0:
            raise ValidationException("구매 금액은 0 이상이어야 합니다.", field="purchase_amount")

        coupon = await self._get_coupon(coupon_id)
        if coupon.user_id != user_id:
            raise ForbiddenException("본인의 쿠폰만 조회할 수 있습니다.")

        reason = failure_reason(coupon, now)
        if reason is not None:
            raise CouponConflictException(
                reason=reason,
                message=_FAILURE_MESSAGES[reason],
                current_status=coupon.status,
            )

        min_purchase = to_decimal(coupon.min_purchase_amount or 0)
        if amount < min_purchase:
            raise ValidationException(
                f"최소 구매 금액은 {min_purchase}입니다.",
                field="purchase_amount",
                details={"min_purchase_amount": float(min_purchase)},
            )

        discount = calculate_discount(coupon, amount)
        return {
            "coupon_id": str(coupon.id),
            "purchase_amount": amount,
            "discount_amount": discount,
            "final_amount": amount - discount,
        }

    async def verify_code(
        self,
        code: str,
        requester_id: UUID,
        is_admin: bool = False,
        now: Optional[datetime] = None,
    ) -> Tuple[Coupon, bool, Optional[str]]:
        """
        쿠폰 코드 조회 (매장 스캔 화면)

        Returns:
            Tuple[Coupon, bool, Optional[str]]: (쿠폰, 사용 가능 여부, 불가 사유 코드)
        """
        now = now or utcnow()

        coupon = await self.coupons.find_by_code(code)
        if coupon is None:
            raise CouponNotFoundException(code)

        await self._authorize_business(coupon.business_id, requester_id, is_admin)

        reason = failure_reason(coupon, now)
        return coupon, reason is None, reason

    async def verify_qr(
        self,
        qr_data: str,
        requester_id: UUID,
        is_admin: bool = False,
        now: Optional[datetime] = None,
    ) -> Tuple[Coupon, bool, Optional[str]]:
        """스캔한 QR 문자열로 쿠폰 조회"""
        payload = parse_coupon_qr_payload(qr_data)
        coupon, valid, reason = await self.verify_code(
            payload["code"], requester_id, is_admin, now
        )

        if str(coupon.id) != str(payload["couponId"]):
            raise ValidationException("QR 코드 정보가 쿠폰과 일치하지 않습니다.", field="qr_data")

        return coupon, valid, reason

    async def redemption_stats(
        self,
        business_id: UUID,
        requester_id: UUID,
        is_admin: bool = False,
    ) -> Dict[str, Any]:
        """
        매장 리뷰 리워드 쿠폰 통계

        Returns:
            발급/사용/만료/유효 쿠폰 수와 템플릿 한도 정보
        """
        await self._authorize_business(business_id, requester_id, is_admin)

        counts = await self.coupons.count_by_status(business_id)
        template = await self.coupons.find_active_template(business_id)

        redeemed = counts.get(CouponStatus.REDEEMED.value, 0)
        template_info = None
        if template is not None:
            template_info = {
                "id": str(template.id),
                "reward_type": template.reward_type,
                "reward_value": float(template.reward_value),
                "redemption_limit": template.redemption_limit,
                "redemption_count": template.redemption_count,
                "usage_count": template.usage_count,
                "remaining": (
                    max(template.redemption_limit - redeemed, 0)
                    if template.redemption_limit is not None
                    else None
                ),
            }

        return {
            "business_id": str(business_id),
            "issued": sum(counts.values()),
            "redeemed": redeemed,
            "expired": counts.get(CouponStatus.EXPIRED.value, 0),
            "active": counts.get(CouponStatus.ACTIVE.value, 0),
            "template": template_info,
        }
