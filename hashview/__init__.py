"""
HashView 리뷰 리워드 서비스

위치 검증된 매장 리뷰와 리뷰 리워드 쿠폰 발급/사용을 처리합니다.
"""

__version__ = "1.0.0"
