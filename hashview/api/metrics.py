"""
Prometheus 메트릭 엔드포인트

/metrics 엔드포인트를 통해 Prometheus가 메트릭을 수집할 수 있도록 합니다.
"""

from fastapi import APIRouter, Response

from hashview.utils.prometheus_metrics import get_content_type, get_metrics

router = APIRouter(tags=["Monitoring"])


@router.get("/metrics")
async def metrics():
    """
    Prometheus 메트릭 노출 엔드포인트

    **응답 예시:**
    ```
    # HELP hashview_review_submissions_total 리뷰 제출 결과
    # TYPE hashview_review_submissions_total counter
    hashview_review_submissions_total{outcome="accepted"} 42.0
    hashview_review_submissions_total{outcome="rejected"} 3.0
    ```
    """
    return Response(content=get_metrics(), media_type=get_content_type())
