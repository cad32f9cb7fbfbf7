from support_chat.core.logging import get_logger

from .mysql import Base, AsyncSessionLocal, init_mysql_db, close_mysql_db, check_mysql_connection, get_async_session
from .redis import close_redis, health_check as redis_health_check

logger = get_logger(__name__)


async def init_databases():
    """시작 시 테이블 생성 (Redis는 첫 사용 시 연결)"""
    # 모델을 메타데이터에 등록
    import support_chat.models  # noqa: F401

    await init_mysql_db()


async def close_databases():
    await close_mysql_db()
    await close_redis()


async def check_database_health() -> dict:
    """
    저장소 상태

    Redis는 선택 사항이므로 "disabled"여도 전체 상태는 MySQL 기준으로 판단합니다.
    """
    mysql_ok = await check_mysql_connection()
    redis_status = (await redis_health_check())["status"]

    return {
        "mysql": mysql_ok,
        "redis": redis_status,
        "overall": mysql_ok and redis_status != "unhealthy",
    }


__all__ = [
    "Base",
    "AsyncSessionLocal",
    "init_databases",
    "close_databases",
    "check_database_health",
    "get_async_session",
]
