"""
쿠폰 API 엔드포인트

매장 스캔 화면의 쿠폰 확인/사용 처리, 보유자의 할인 금액 계산, 매장 통계를 제공합니다.
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from hashview.api.schemas.coupon_schemas import (
    CalculateDiscountRequest,
    CalculateDiscountResponse,
    CouponRedeemResponse,
    CouponStatsResponse,
    CouponVerifyRequest,
    CouponVerifyResponse,
)
from hashview.middleware.auth import CurrentUser, get_current_user
from hashview.models.base import get_db
from hashview.services.coupon_lifecycle_service import CouponLifecycleService
from hashview.services.notification_service import (
    NotificationDispatcher,
    get_notification_dispatcher,
)

router = APIRouter(prefix="/v1/coupons", tags=["coupons"])


@router.post("/verify", response_model=CouponVerifyResponse)
async def verify_coupon(
    request: CouponVerifyRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    쿠폰 확인 (매장 점주/관리자)

    QR 문자열이 있으면 QR 내용을, 없으면 코드로 조회합니다.
    """
    service = CouponLifecycleService(db)

    if request.qr_data:
        coupon, valid, reason = await service.verify_qr(
            request.qr_data, current_user.id, current_user.is_admin
        )
    else:
        coupon, valid, reason = await service.verify_code(
            request.code, current_user.id, current_user.is_admin
        )

    return {"coupon": coupon.to_dict(), "valid": valid, "reason": reason}


@router.post("/calculate-discount", response_model=CalculateDiscountResponse)
async def calculate_discount(
    request: CalculateDiscountRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """할인 금액 계산 (쿠폰 보유자)"""
    service = CouponLifecycleService(db)

    return await service.quote_discount(
        coupon_id=request.coupon_id,
        user_id=current_user.id,
        purchase_amount=request.purchase_amount,
    )


@router.post("/{coupon_id}/redeem", response_model=CouponRedeemResponse)
async def redeem_coupon(
    coupon_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """
    쿠폰 사용 처리 (매장 점주/관리자)

    동시에 두 번 스캔해도 한 번만 성공합니다.
    """
    service = CouponLifecycleService(db, dispatcher=dispatcher)

    coupon = await service.redeem(
        coupon_id=coupon_id,
        redeemer_id=current_user.id,
        is_admin=current_user.is_admin,
    )

    return {"coupon": coupon.to_dict(), "message": "쿠폰이 사용 처리되었습니다"}


@router.get("/business/{business_id}/stats", response_model=CouponStatsResponse)
async def get_coupon_stats(
    business_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """매장 리워드 쿠폰 통계 (매장 점주/관리자)"""
    service = CouponLifecycleService(db)

    return await service.redemption_stats(
        business_id, current_user.id, current_user.is_admin
    )
