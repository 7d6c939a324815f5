"""
지리적 위치 유틸리티 유닛 테스트
"""

import math

import pytest

from hashview.utils.geolocation import (
    DEFAULT_GEOFENCE_RADIUS,
    distance_meters,
    is_within_geofence,
    validate_radius,
)


class TestDistanceMeters:
    """Haversine 거리 계산 테스트"""

    def test_same_point_is_zero(self):
        """같은 지점은 0m"""
        assert distance_meters(37.4979, 127.0276, 37.4979, 127.0276) == 0.0

    def test_seoul_to_busan(self):
        """서울시청 - 부산시청 약 325km"""
        distance = distance_meters(37.5663, 126.9779, 35.1796, 129.0756)
        assert 320_000 < distance < 330_000

    def test_new_york_to_los_angeles(self):
        """뉴욕 - LA 약 3,936km (오차 2% 이내)"""
        distance = distance_meters(40.7128, -74.0060, 34.0522, -118.2437)
        assert distance == pytest.approx(3_936_000, rel=0.02)

    def test_symmetric(self):
        """거리는 방향과 무관"""
        a = distance_meters(37.4979, 127.0276, 37.5012, 127.0396)
        b = distance_meters(37.5012, 127.0396, 37.4979, 127.0276)
        assert a == pytest.approx(b)

    def test_one_thousandth_degree_latitude(self):
        """위도 0.001도 ≈ 111m"""
        distance = distance_meters(37.0, 127.0, 37.001, 127.0)
        assert distance == pytest.approx(111.2, abs=0.5)

    def test_antipodal_points_do_not_fail(self):
        """정반대 지점도 예외 없이 계산"""
        distance = distance_meters(0.0, 0.0, 0.0, 180.0)
        assert distance == pytest.approx(math.pi * 6_371_000.0, rel=1e-6)

    def test_nan_input_returns_nan(self):
        """NaN 입력은 NaN 반환"""
        assert math.isnan(distance_meters(float("nan"), 127.0, 37.0, 127.0))


class TestIsWithinGeofence:
    """지오펜스 포함 여부 테스트"""

    def test_boundary_is_inside(self):
        """경계 거리는 반경 안으로 판정"""
        distance = distance_meters(37.0, 127.0, 37.0004, 127.0)
        assert is_within_geofence(37.0, 127.0, 37.0004, 127.0, distance) is True

    def test_just_outside(self):
        """반경을 조금이라도 넘으면 밖"""
        distance = distance_meters(37.0, 127.0, 37.0004, 127.0)
        assert is_within_geofence(37.0, 127.0, 37.0004, 127.0, distance - 0.01) is False

    def test_nan_coordinates_are_outside(self):
        """NaN 좌표는 예외 없이 밖으로 판정"""
        assert is_within_geofence(float("nan"), 127.0, 37.0, 127.0, 500) is False


class TestValidateRadius:
    """매장 반경 검증 테스트"""

    def test_default_when_missing(self):
        assert validate_radius(None) == DEFAULT_GEOFENCE_RADIUS

    @pytest.mark.parametrize("radius", [10, 50, 500])
    def test_accepts_range(self, radius):
        assert validate_radius(radius) == radius

    @pytest.mark.parametrize("radius", [0, 9, 501])
    def test_rejects_out_of_range(self, radius):
        with pytest.raises(ValueError):
            validate_radius(radius)
