"""
관계형 저장소 (MySQL)

사용자, 채팅방, 메시지, 대화 비우기 기록이 저장됩니다.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy import DateTime, text
from sqlalchemy.dialects.mysql import DATETIME as MYSQL_DATETIME
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from support_chat.core.config import settings
from support_chat.core.logging import get_logger

logger = get_logger(__name__)

# 메시지 순서와 대화 비우기 기준 시각 비교를 위해 마이크로초까지 저장
PreciseDateTime = DateTime().with_variant(MYSQL_DATETIME(fsp=6), "mysql")

Base = declarative_base()


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if url.startswith("mysql"):
        options.update(
            pool_size=settings.mysql_pool_size,
            max_overflow=settings.mysql_max_overflow,
            pool_recycle=settings.mysql_pool_recycle,
        )
    return options


engine = create_async_engine(settings.mysql_url, **_engine_options(settings.mysql_url))

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """요청 단위 세션 (처리되지 않은 저장소 에러는 롤백 후 전파)"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except SQLAlchemyError:
            await session.rollback()
            raise


async def init_mysql_db():
    """테이블 생성 (이미 있으면 건드리지 않음)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Relational store ready ({len(Base.metadata.tables)} tables)")


async def check_mysql_connection() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"MySQL connection check failed: {e}")
        return False
    except OSError as e:
        logger.error(f"MySQL is unreachable: {e}")
        return False


async def close_mysql_db():
    await engine.dispose()
    logger.info("MySQL connections closed")
