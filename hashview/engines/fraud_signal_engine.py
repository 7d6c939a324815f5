"""
리뷰 제출 사기 신호 엔진 (Fraud Signal Engine)

클라이언트가 보낸 보안 메타데이터를 고정된 순서의 룰로 평가하여
수락(accept) / 플래그(flag) / 거부(reject)를 결정합니다.

**룰 순서** (거부 룰이 매칭되면 이후 룰은 평가하지 않음):
1. GPS 정확도 > 50m → 거부 (POOR_GPS_ACCURACY)
2. 검증 시간 != 30초 → 참고용 기록만 (VERIFICATION_TIME_MISMATCH)
3. 가상 위치 사용 → 거부 (MOCK_LOCATION_DETECTED)
4. 클라이언트 이상 징후 3건 이상 → 거부 (MULTIPLE_SECURITY_CONCERNS)
5. 클라이언트 이상 징후 1~2건 → 플래그 (CLIENT_<TYPE>)
6. 위치 기록 샘플 5개 미만 → 플래그 (INSUFFICIENT_LOCATION_HISTORY)
7. 오늘 같은 기기 리뷰 3건 이상 → 플래그 (MULTIPLE_DEVICE_REVIEWS)

엔진은 부수 효과가 없습니다. 의심 활동 기록은 호출자(리뷰 서비스)가 담당합니다.
"""

from typing import List, Dict, Any, Optional
import math

from hashview.config import get_settings


class SignalAction:
    """신호 액션 정의"""

    REJECT = "reject"  # 제출 거부
    FLAG = "flag"  # 기록 후 진행
    ADVISORY = "advisory"  # 참고용 기록 (판정에 영향 없음)


class EvaluationDecision:
    """최종 판정"""

    ACCEPT = "accept"
    FLAG = "flag"
    REJECT = "reject"


class FraudSignalType:
    """사기 신호 유형 (의심 활동 이벤트 유형으로도 사용)"""

    POOR_GPS_ACCURACY = "POOR_GPS_ACCURACY"
    VERIFICATION_TIME_MISMATCH = "VERIFICATION_TIME_MISMATCH"
    MOCK_LOCATION_DETECTED = "MOCK_LOCATION_DETECTED"
    MULTIPLE_SECURITY_CONCERNS = "MULTIPLE_SECURITY_CONCERNS"
    INSUFFICIENT_LOCATION_HISTORY = "INSUFFICIENT_LOCATION_HISTORY"
    MULTIPLE_DEVICE_REVIEWS = "MULTIPLE_DEVICE_REVIEWS"

    # 엔진 밖에서 기록되는 이벤트
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    GEOFENCE_VIOLATION = "GEOFENCE_VIOLATION"

    CLIENT_PREFIX = "CLIENT_"

    @classmethod
    def client(cls, anomaly_type: Optional[str]) -> str:
        """클라이언트 보고 이상 징후 유형 → 이벤트 유형 (예: rapid_movement → CLIENT_RAPID_MOVEMENT)"""
        normalized = str(anomaly_type or "unknown").strip().upper().replace(" ", "_")
        return f"{cls.CLIENT_PREFIX}{normalized or 'UNKNOWN'}"


class SignalResult:
    """개별 신호 평가 결과"""

    def __init__(
        self,
        signal_type: str,
        action: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.signal_type = signal_type
        self.action = action
        self.description = description
        self.metadata = metadata or {}

    @property
    def is_rejection(self) -> bool:
        return self.action == SignalAction.REJECT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.signal_type,
            "action": self.action,
            "description": self.description,
            "metadata": self.metadata,
        }


class FraudEvaluation:
    """평가 결과 묶음"""

    def __init__(
        self,
        decision: str,
        signals: List[SignalResult],
        rejection: Optional[SignalResult] = None,
    ):
        self.decision = decision
        self.signals = signals
        self.rejection = rejection

    @property
    def rejected(self) -> bool:
        return self.decision == EvaluationDecision.REJECT

    @property
    def flags(self) -> List[SignalResult]:
        """판정에 영향을 준 플래그 신호 (참고용 신호 제외)"""
        return [s for s in self.signals if s.action == SignalAction.FLAG]


class SubmissionContext:
    """리뷰 제출 보안 메타데이터 (룰 평가용)"""

    def __init__(
        self,
        location_accuracy: Optional[float] = None,
        verification_seconds: Optional[float] = None,
        motion_detected: Optional[bool] = None,
        is_mock_location: bool = False,
        location_history_count: Optional[int] = None,
        client_anomalies: Optional[List[Dict[str, Any]]] = None,
        device_fingerprint: Optional[Dict[str, Any]] = None,
        platform: Optional[str] = None,
        same_device_review_count: int = 0,
    ):
        self.location_accuracy = location_accuracy
        self.verification_seconds = verification_seconds
        self.motion_detected = motion_detected
        self.is_mock_location = bool(is_mock_location)
        self.location_history_count = location_history_count
        self.client_anomalies = client_anomalies or []
        self.device_fingerprint = device_fingerprint or {}
        self.platform = platform
        self.same_device_review_count = same_device_review_count

    @property
    def device_id(self) -> Optional[str]:
        device_id = self.device_fingerprint.get("deviceId") or self.device_fingerprint.get(
            "device_id"
        )
        return str(device_id) if device_id else None

    @property
    def anomaly_count(self) -> int:
        return len(self.client_anomalies)

    def to_snapshot(self) -> Dict[str, Any]:
        """리뷰에 저장할 보안 메타데이터 스냅샷"""
        return {
            "location_accuracy": self.location_accuracy,
            "verification_seconds": self.verification_seconds,
            "motion_detected": self.motion_detected,
            "is_mock_location": self.is_mock_location,
            "location_history_count": self.location_history_count,
            "suspicious_activities_count": self.anomaly_count,
            "device_fingerprint": self.device_fingerprint,
            "platform": self.platform,
        }


class FraudSignalEngine:
    """
    리뷰 제출 사기 신호 엔진

    강한 신호(GPS 정확도, 위치 조작, 다수 이상 징후)는 거부하고
    약한 신호(짧은 위치 기록, 기기 재사용)는 기록만 하고 통과시킵니다.
    """

    def __init__(
        self,
        max_gps_accuracy: float = 50.0,
        anomaly_reject_threshold: int = 3,
        min_location_history: int = 5,
        same_device_threshold: int = 3,
        expected_verification_seconds: int = 30,
    ):
        """
        Args:
            max_gps_accuracy: 허용 GPS 정확도 상한 (미터)
            anomaly_reject_threshold: 거부 기준 이상 징후 수
            min_location_history: 최소 위치 기록 샘플 수
            same_device_threshold: 플래그 기준 같은 기기 하루 리뷰 수
            expected_verification_seconds: 기대 검증 시간 (초, 참고용)
        """
        self.max_gps_accuracy = max_gps_accuracy
        self.anomaly_reject_threshold = anomaly_reject_threshold
        self.min_location_history = min_location_history
        self.same_device_threshold = same_device_threshold
        self.expected_verification_seconds = expected_verification_seconds

    @classmethod
    def from_settings(cls, settings=None) -> "FraudSignalEngine":
        settings = settings or get_settings()
        return cls(
            max_gps_accuracy=settings.MAX_GPS_ACCURACY_METERS,
            anomaly_reject_threshold=settings.ANOMALY_REJECT_THRESHOLD,
            min_location_history=settings.MIN_LOCATION_HISTORY_COUNT,
            same_device_threshold=settings.SAME_DEVICE_FLAG_THRESHOLD,
            expected_verification_seconds=settings.EXPECTED_VERIFICATION_SECONDS,
        )

    def evaluate(self, ctx: SubmissionContext) -> FraudEvaluation:
        """
        제출 컨텍스트 평가

        Args:
            ctx: 제출 보안 메타데이터

        Returns:
            FraudEvaluation: 판정, 매칭된 신호 목록, 거부 사유 신호
        """
        signals: List[SignalResult] = []

        rules = (
            self._rule_gps_accuracy,
            self._rule_verification_time,
            self._rule_mock_location,
            self._rule_client_anomalies,
            self._rule_location_history,
            self._rule_same_device,
        )

        for rule in rules:
            for result in rule(ctx):
                signals.append(result)
                if result.is_rejection:
                    return FraudEvaluation(
                        decision=EvaluationDecision.REJECT,
                        signals=signals,
                        rejection=result,
                    )

        decision = (
            EvaluationDecision.FLAG
            if any(s.action == SignalAction.FLAG for s in signals)
            else EvaluationDecision.ACCEPT
        )
        return FraudEvaluation(decision=decision, signals=signals)

    # ========================================================================
    # 룰
    # ========================================================================

    def _rule_gps_accuracy(self, ctx: SubmissionContext) -> List[SignalResult]:
        """1. GPS 정확도 (값이 없으면 건너뜀, 숫자가 아니면 거부)"""
        accuracy = ctx.location_accuracy
        if accuracy is None:
            return []

        if math.isfinite(accuracy) and accuracy <= self.max_gps_accuracy:
            return []

        shown = f"{accuracy:.0f}m" if math.isfinite(accuracy) else "측정 불가"
        return [
            SignalResult(
                signal_type=FraudSignalType.POOR_GPS_ACCURACY,
                action=SignalAction.REJECT,
                description=(
                    f"GPS 정확도가 낮습니다 (현재 {shown}). "
                    "실외로 이동하거나 위치 서비스를 켠 후 다시 시도해주세요."
                ),
                metadata={
                    "accuracy": accuracy,
                    "max_accuracy": self.max_gps_accuracy,
                },
            )
        ]

    def _rule_verification_time(self, ctx: SubmissionContext) -> List[SignalResult]:
        """2. 검증 시간 불일치 (참고용)"""
        seconds = ctx.verification_seconds
        if seconds is None or seconds == self.expected_verification_seconds:
            return []

        return [
            SignalResult(
                signal_type=FraudSignalType.VERIFICATION_TIME_MISMATCH,
                action=SignalAction.ADVISORY,
                description="검증 시간이 기대값과 다릅니다",
                metadata={
                    "verification_seconds": seconds,
                    "expected_seconds": self.expected_verification_seconds,
                },
            )
        ]

    def _rule_mock_location(self, ctx: SubmissionContext) -> List[SignalResult]:
        """3. 가상 위치 (거리/정확도와 무관하게 거부)"""
        if not ctx.is_mock_location:
            return []

        return [
            SignalResult(
                signal_type=FraudSignalType.MOCK_LOCATION_DETECTED,
                action=SignalAction.REJECT,
                description=(
                    "위치 검증에 실패했습니다 (위치 조작 의심). "
                    "위치 변경 앱을 끄고 다시 시도해주세요."
                ),
                metadata={"platform": ctx.platform},
            )
        ]

    def _rule_client_anomalies(self, ctx: SubmissionContext) -> List[SignalResult]:
        """4~5. 클라이언트 보고 이상 징후 (각 건을 개별 신호로 기록)"""
        if not ctx.client_anomalies:
            return []

        results = [
            SignalResult(
                signal_type=FraudSignalType.client(anomaly.get("type")),
                action=SignalAction.FLAG,
                description="클라이언트가 보고한 이상 징후",
                metadata={
                    "anomaly": anomaly.get("metadata") or {},
                    "reported_at": anomaly.get("timestamp"),
                },
            )
            for anomaly in ctx.client_anomalies
        ]

        if ctx.anomaly_count >= self.anomaly_reject_threshold:
            results.append(
                SignalResult(
                    signal_type=FraudSignalType.MULTIPLE_SECURITY_CONCERNS,
                    action=SignalAction.REJECT,
                    description=(
                        "여러 보안 문제가 감지되어 리뷰를 제출할 수 없습니다. "
                        "잠시 후 다시 시도해주세요."
                    ),
                    metadata={"anomaly_count": ctx.anomaly_count},
                )
            )

        return results

    def _rule_location_history(self, ctx: SubmissionContext) -> List[SignalResult]:
        """6. 위치 기록 부족 (정보성)"""
        count = ctx.location_history_count
        if count is None or count >= self.min_location_history:
            return []

        return [
            SignalResult(
                signal_type=FraudSignalType.INSUFFICIENT_LOCATION_HISTORY,
                action=SignalAction.FLAG,
                description=f"위치 기록 샘플이 부족합니다 ({count}개)",
                metadata={
                    "history_count": count,
                    "min_history_count": self.min_location_history,
                },
            )
        ]

    def _rule_same_device(self, ctx: SubmissionContext) -> List[SignalResult]:
        """7. 같은 기기에서 오늘 여러 리뷰"""
        if not ctx.device_id or ctx.same_device_review_count < self.same_device_threshold:
            return []

        return [
            SignalResult(
                signal_type=FraudSignalType.MULTIPLE_DEVICE_REVIEWS,
                action=SignalAction.FLAG,
                description=f"같은 기기에서 오늘 {ctx.same_device_review_count}개의 리뷰 작성",
                metadata={
                    "device_id": ctx.device_id,
                    "review_count": ctx.same_device_review_count,
                },
            )
        ]
