"""
SQLAlchemy Base 모델 및 데이터베이스 세션 관리

이 모듈은 모든 데이터베이스 모델의 기본 클래스와 비동기 데이터베이스 세션을 제공합니다.
"""

from datetime import datetime
from typing import AsyncGenerator
from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from hashview.config import get_settings


# 네이밍 컨벤션 정의 (마이그레이션 시 일관된 제약 조건 이름 생성)
convention = {
    "ix": "ix_%(column_0_label)s",  # 인덱스
    "uq": "uq_%(table_name)s_%(column_0_name)s",  # UNIQUE 제약
    "ck": "ck_%(table_name)s_%(constraint_name)s",  # CHECK 제약
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",  # 외래 키
    "pk": "pk_%(table_name)s",  # 기본 키
}

metadata = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """
    모든 데이터베이스 모델의 기본 클래스
    """

    metadata = metadata


class TimestampMixin:
    """
    생성/수정 시간 자동 추적 Mixin

    이 Mixin을 상속받으면 created_at과 updated_at 컬럼이 자동으로 추가됩니다.
    """

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
        comment="생성 일시",
    )

    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        comment="수정 일시",
    )


def _engine_options(database_url: str, echo: bool) -> dict:
    """드라이버별 엔진 옵션 (SQLite는 커넥션 풀 옵션을 받지 않음)"""
    settings = get_settings()
    options = {"echo": echo}

    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,  # 연결 풀 크기
            max_overflow=settings.DB_MAX_OVERFLOW,  # 추가 연결 허용 개수
            pool_pre_ping=True,  # 연결 전 핑 테스트 (연결 끊김 방지)
            pool_recycle=settings.DB_POOL_RECYCLE,
        )

    return options


# 비동기 엔진 생성
_settings = get_settings()
engine = create_async_engine(
    _settings.DATABASE_URL,
    **_engine_options(_settings.DATABASE_URL, _settings.SQL_ECHO),
)

# 비동기 세션 팩토리
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,  # 커밋 후 객체 만료 방지
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 의존성 주입용 데이터베이스 세션 생성기

    Yields:
        AsyncSession: 비동기 데이터베이스 세션
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    데이터베이스 초기화 (테이블 생성)

    주의: 개발 및 테스트 환경에서만 사용합니다.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """
    데이터베이스 연결 종료

    애플리케이션 종료 시 호출하여 모든 연결을 정리합니다.
    """
    await engine.dispose()
