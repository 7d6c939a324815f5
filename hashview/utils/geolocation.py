"""
지리적 위치 유틸리티

리뷰 제출 위치와 매장 좌표 간 거리 계산 및 지오펜스 포함 여부 판정을 제공합니다.
부수 효과가 없는 순수 함수만 포함합니다.
"""

from typing import Optional
import math

# 지구 반지름 (미터)
EARTH_RADIUS_METERS = 6_371_000.0

# 매장 지오펜스 반경 허용 범위 (미터)
MIN_GEOFENCE_RADIUS = 10
MAX_GEOFENCE_RADIUS = 500
DEFAULT_GEOFENCE_RADIUS = 50


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    두 지점 간의 거리를 계산 (Haversine 공식 사용)

    Args:
        lat1: 첫 번째 지점의 위도
        lon1: 첫 번째 지점의 경도
        lat2: 두 번째 지점의 위도
        lon2: 두 번째 지점의 경도

    Returns:
        float: 거리 (미터). 입력에 NaN이 있으면 NaN

    참고:
        Haversine 공식은 지구를 완전한 구로 가정하므로,
        실제 거리와 약간의 오차가 있을 수 있습니다 (±0.5% 이내).
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)

    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    # 부동소수점 오차로 a가 1을 미세하게 넘는 경우 방지
    a = min(a, 1.0)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def is_within_geofence(
    user_lat: float,
    user_lon: float,
    target_lat: float,
    target_lon: float,
    radius_meters: float,
) -> bool:
    """
    사용자가 매장 지오펜스 안에 있는지 확인 (경계 포함)

    NaN 좌표는 예외 없이 False로 판정됩니다.

    Args:
        user_lat: 사용자 위도
        user_lon: 사용자 경도
        target_lat: 매장 위도
        target_lon: 매장 경도
        radius_meters: 허용 반경 (미터)

    Returns:
        bool: 반경 이내 여부
    """
    distance = distance_meters(user_lat, user_lon, target_lat, target_lon)
    return distance <= radius_meters


def validate_radius(radius: Optional[int]) -> int:
    """
    매장 지오펜스 반경 검증

    Args:
        radius: 반경 (미터). None이면 기본값 50m

    Returns:
        int: 검증된 반경

    Raises:
        ValueError: 10m ~ 500m 범위를 벗어난 경우
    """
    if radius is None:
        return DEFAULT_GEOFENCE_RADIUS

    if not MIN_GEOFENCE_RADIUS <= radius <= MAX_GEOFENCE_RADIUS:
        raise ValueError(
            f"지오펜스 반경은 {MIN_GEOFENCE_RADIUS}m ~ {MAX_GEOFENCE_RADIUS}m 사이여야 합니다: {radius}"
        )

    return int(radius)

