"""
서비스 계층

리뷰 제출 오케스트레이션, 쿠폰 발급/사용, 의심 활동 기록, 알림 발송을 담당합니다.
"""
