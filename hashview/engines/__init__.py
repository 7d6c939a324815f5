"""리뷰 제출 사기 신호 평가 엔진"""
