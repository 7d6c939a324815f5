"""
쿠폰 QR 페이로드 규격

모바일 앱과 매장 스캔 화면이 주고받는 JSON 형식입니다.
키 이름과 구성은 외부 계약이므로 변경하지 않습니다.

    {"type": "coupon", "couponId": ..., "code": ..., "businessId": ...,
     "userId": ..., "reviewId": ..., "timestamp": ...}
"""

from datetime import datetime
from typing import Any, Dict
import json

from hashview.utils.exceptions import ValidationException

QR_PAYLOAD_TYPE = "coupon"

_REQUIRED_KEYS = ("couponId", "code", "businessId")


def _as_str(value: Any):
    return str(value) if value is not None else None


def build_coupon_qr_payload(coupon, issued_at: datetime) -> Dict[str, Any]:
    """
    쿠폰 QR 페이로드 생성

    Args:
        coupon: 쿠폰 (id, code, business_id, user_id, review_id 필요)
        issued_at: 발급 시각 (UTC)

    Returns:
        Dict[str, Any]: QR 페이로드
    """
    return {
        "type": QR_PAYLOAD_TYPE,
        "couponId": _as_str(coupon.id),
        "code": coupon.code,
        "businessId": _as_str(coupon.business_id),
        "userId": _as_str(coupon.user_id),
        "reviewId": _as_str(coupon.review_id),
        "timestamp": issued_at.isoformat(timespec="milliseconds") + "Z",
    }


def serialize_qr_payload(payload: Dict[str, Any]) -> str:
    """QR 코드에 넣을 JSON 문자열 (공백 없음)"""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def parse_coupon_qr_payload(text: str) -> Dict[str, Any]:
    """
    스캔된 QR 문자열 해석

    Args:
        text: QR 코드 내용

    Returns:
        Dict[str, Any]: 페이로드

    Raises:
        ValidationException: JSON이 아니거나 쿠폰 QR이 아닌 경우
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        raise ValidationException("QR 코드를 읽을 수 없습니다.", field="qr_data")

    if not isinstance(payload, dict) or payload.get("type") != QR_PAYLOAD_TYPE:
        raise ValidationException("쿠폰 QR 코드가 아닙니다.", field="qr_data")

    missing = [key for key in _REQUIRED_KEYS if not payload.get(key)]
    if missing:
        raise ValidationException(
            "쿠폰 QR 코드에 필수 정보가 없습니다.",
            field="qr_data",
            details={"missing": missing},
        )

    return payload
