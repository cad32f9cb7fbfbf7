"""
Redis 연결 관리

온라인 상태 기록(마지막 접속 시간 등)에만 사용됩니다. 실시간 라우팅은 Redis에 의존하지 않으며,
`settings.redis_url`이 비어 있으면 Redis 연결 자체를 만들지 않습니다.
"""

import asyncio
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from support_chat.core.config import settings
from support_chat.core.logging import get_logger

logger = get_logger(__name__)

_client: Optional[redis.Redis] = None
_client_lock = asyncio.Lock()


def is_redis_enabled() -> bool:
    return bool(settings.redis_url)


async def get_redis() -> redis.Redis:
    """
    공유 Redis 클라이언트 (최초 호출 시 연결 풀 생성 후 ping)

    Raises:
        RuntimeError: redis_url이 설정되지 않은 경우
        RedisError: 연결 실패
    """
    global _client

    if _client is not None:
        return _client

    if not is_redis_enabled():
        raise RuntimeError("Redis is not configured")

    async with _client_lock:
        if _client is None:
            client = redis.Redis.from_url(
                settings.redis_url,
                max_connections=settings.redis_max_connections,
                decode_responses=True,
            )
            await client.ping()
            _client = client
            logger.info(f"Redis connected (max {settings.redis_max_connections} connections)")

    return _client


async def close_redis():
    global _client

    if _client is None:
        return

    try:
        await _client.aclose()
        logger.info("Redis connection closed")
    except RedisError as e:
        logger.error(f"Error closing Redis connection: {e}")
    finally:
        _client = None


async def health_check() -> dict:
    """Redis 상태 ("disabled" / "healthy" / "unhealthy")"""
    if not is_redis_enabled():
        return {"status": "disabled"}

    loop = asyncio.get_running_loop()
    try:
        client = await get_redis()
        started = loop.time()
        await client.ping()
        return {"status": "healthy", "ping_ms": round((loop.time() - started) * 1000, 2)}
    except (RedisError, OSError) as e:
        logger.error(f"Redis health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}
