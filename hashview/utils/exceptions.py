"""
커스텀 예외 클래스 정의

리뷰 제출, 쿠폰 발급/사용 과정에서 발생하는 요청 단위 예외를 정의합니다.
모든 예외는 재제출로 복구 가능한 실패이며, 프로세스를 중단시키지 않습니다.
"""

from typing import Optional, Any
from fastapi import status


class AppException(Exception):
    """
    애플리케이션 기본 예외 클래스

    모든 커스텀 예외는 이 클래스를 상속받습니다.
    error_code는 클라이언트가 분기 처리에 사용하는 기계 판독용 사유 코드입니다.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "app_error",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(AppException):
    """
    입력 검증 실패 예외

    별점 범위 오류, 짧은 리뷰 내용 등 잘못된 입력일 때 발생합니다.
    """

    def __init__(
        self,
        message: str = "입력 데이터가 유효하지 않습니다.",
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        if field:
            details = details or {}
            details["field"] = field

        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="validation_error",
            details=details,
        )


class NotFoundException(AppException):
    """
    리소스를 찾을 수 없을 때 발생하는 예외
    """

    def __init__(
        self,
        resource: str = "리소스",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            if resource_id:
                message = f"{resource}를 찾을 수 없습니다 (ID: {resource_id})"
            else:
                message = f"{resource}를 찾을 수 없습니다."

        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="not_found",
            details={"resource": resource, "resource_id": resource_id},
        )


class ForbiddenException(AppException):
    """
    권한 부족 예외 (403 Forbidden)
    """

    def __init__(self, message: str = "접근 권한이 없습니다."):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="forbidden",
        )


class ConflictException(AppException):
    """
    리소스 충돌 예외 (409 Conflict)

    예: 쿠폰 코드 생성 재시도 한도 초과
    """

    def __init__(
        self,
        message: str = "요청이 현재 서버 상태와 충돌합니다.",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="conflict",
            details=details,
        )


class BusinessRuleException(AppException):
    """
    비즈니스 규칙 위반 예외

    예: 비활성 매장에 리뷰 작성
    """

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        if rule:
            details = details or {}
            details["rule"] = rule

        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="business_rule_violation",
            details=details,
        )


class RateLimitException(AppException):
    """
    일일 리뷰 작성 한도 초과 예외 (429 Too Many Requests)
    """

    def __init__(self, limit: int, count: int):
        super().__init__(
            message=(
                f"하루 최대 {limit}개의 리뷰만 작성할 수 있습니다. "
                "리뷰 품질 유지를 위한 제한입니다."
            ),
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error_code="RATE_LIMIT_EXCEEDED",
            details={"limit": limit, "count": count},
        )


class DuplicateSubmissionException(AppException):
    """
    같은 날 같은 매장에 대한 중복 리뷰 예외
    """

    def __init__(self, business_id: Optional[str] = None):
        super().__init__(
            message="오늘 이미 이 매장에 리뷰를 작성하셨습니다.",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="DUPLICATE_REVIEW",
            details={"business_id": business_id} if business_id else None,
        )


class GeofenceViolationException(AppException):
    """
    지오펜스 반경 밖에서 리뷰를 시도한 경우의 예외

    메시지에 실제 측정 거리와 허용 반경을 모두 포함합니다.
    """

    def __init__(self, distance_meters: float, radius_meters: int):
        super().__init__(
            message=(
                f"리뷰를 작성하려면 매장 {radius_meters}m 이내에 있어야 합니다. "
                f"현재 매장에서 {distance_meters:.0f}m 떨어져 있습니다."
            ),
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="GEOFENCE_VIOLATION",
            details={
                "distance_meters": round(distance_meters, 2),
                "radius_meters": radius_meters,
            },
        )


class FraudRejectedException(AppException):
    """
    강한 사기 신호에 의해 제출이 거부된 예외

    error_code에는 거부 신호 코드(POOR_GPS_ACCURACY 등)가 들어갑니다.
    """

    def __init__(self, reason: str, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code=reason,
            details={"reason": reason},
        )


class CouponConflictException(AppException):
    """
    이미 사용되었거나 만료된 쿠폰 사용 시도 예외

    운영자가 상황을 파악할 수 있도록 현재 쿠폰 상태를 포함합니다.
    """

    def __init__(
        self,
        reason: str,
        message: str,
        current_status: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        details = details or {}
        details["status"] = current_status

        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=reason,
            details=details,
        )


class CouponNotFoundException(NotFoundException):
    """쿠폰을 찾을 수 없을 때"""

    def __init__(self, coupon_id: str):
        super().__init__(resource="쿠폰", resource_id=coupon_id)


class BusinessNotFoundException(NotFoundException):
    """매장을 찾을 수 없을 때"""

    def __init__(self, business_id: str):
        super().__init__(resource="매장", resource_id=business_id)


class ReviewNotFoundException(NotFoundException):
    """리뷰를 찾을 수 없을 때"""

    def __init__(self, review_id: str):
        super().__init__(resource="리뷰", resource_id=review_id)
