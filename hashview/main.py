"""
HashView 리뷰 리워드 서비스 FastAPI 메인 애플리케이션

매장 반경 안에서 작성된 리뷰만 받고, 검증된 리뷰에 2시간 유효 쿠폰을 발급합니다.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from hashview.config import get_settings
from hashview.models.base import AsyncSessionLocal, close_db, init_db
from hashview.services.notification_service import get_notification_dispatcher
from hashview.utils.exceptions import AppException
from hashview.utils.logging import get_logger, setup_logging
from hashview.utils.redis_client import close_redis
from hashview.utils.sentry_config import init_sentry

# API 라우터
from hashview.api.admin import router as admin_router
from hashview.api.coupons import router as coupons_router
from hashview.api.metrics import router as metrics_router
from hashview.api.reviews import router as reviews_router

settings = get_settings()

# 로깅 설정
setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    애플리케이션 라이프사이클 관리

    시작 시: Sentry 초기화, 개발/테스트 환경 테이블 생성
    종료 시: 진행 중인 알림 발송 대기, DB/Redis 연결 정리
    """
    logger.info("🚀 HashView 서버 시작 중...")

    init_sentry(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT or settings.ENV,
        release=settings.APP_VERSION,
    )

    if settings.is_development or settings.is_testing:
        logger.info("데이터베이스 테이블 초기화...")
        await init_db()

    logger.info("✅ 서버 시작 완료")
    yield

    logger.info("🛑 HashView 서버 종료 중...")
    await get_notification_dispatcher().drain()
    await close_redis()
    await close_db()
    logger.info("✅ 서버 종료 완료")


# FastAPI 애플리케이션 인스턴스
app = FastAPI(
    title="HashView - 위치 검증 리뷰 리워드 API",
    description="""
## HashView

매장 방문 고객의 위치를 검증한 리뷰만 받고, 리뷰 1건당 2시간 유효 쿠폰을 발급합니다.

### 주요 기능

- [OK] **지오펜스 검증**: 매장 반경(10-500m) 밖 리뷰 거부
- [OK] **사기 신호 탐지**: GPS 정확도, 가상 위치, 클라이언트 이상 징후, 기기 재사용
- [OK] **제출 제한**: 하루 5건, 같은 매장 하루 1건
- [OK] **리워드 쿠폰**: 매장 템플릿 기반 발급, QR 스캔 사용 처리, 5분 주기 만료 정리
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# CORS 미들웨어 설정 (모바일 웹뷰, 점주 대시보드)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 전역 예외 핸들러
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """애플리케이션 정의 예외 처리"""
    logger.warning(
        f"AppException: {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """모든 예외를 캐치하는 최종 핸들러"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "서버 내부 오류가 발생했습니다. 잠시 후 다시 시도해주세요.",
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """헬스 체크 엔드포인트 (로드 밸런서용)"""
    database = "connected"
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"[FAIL] 헬스 체크 DB 연결 실패: {e}")
        database = "disconnected"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "database": database,
    }


# API 라우터 등록
app.include_router(reviews_router)
app.include_router(coupons_router)
app.include_router(admin_router)

if settings.PROMETHEUS_ENABLED:
    app.include_router(metrics_router)


if __name__ == "__main__":
    # 개발 서버 실행
    uvicorn.run(
        "hashview.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        log_level="info",
    )
