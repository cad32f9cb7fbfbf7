"""
접속 상태 기록 (Redis)

실시간 라우팅에 쓰이는 접속 정보는 프로세스 메모리의 PresenceRegistry가 기준이고,
여기서는 다른 서비스와 HTTP 조회를 위해 사용자의 마지막 접속 상태를 Redis에 남깁니다.
Redis 장애는 채팅 동작에 영향을 주지 않도록 로그만 남기고 실패 값을 반환합니다.
"""

import json
from datetime import datetime
from typing import Callable, Dict, Optional

from support_chat.core.logging import get_logger
from support_chat.database.redis import get_redis

logger = get_logger(__name__)

USER_ONLINE_KEY = "user:online:{user_id}"
USER_LAST_SEEN_KEY = "user:last_seen:{user_id}"
ONLINE_USERS_SET = "online_users"
USER_CONNECTION_KEY = "user:connection:{user_id}"

ONLINE_STATUS_TTL = 300
LAST_SEEN_TTL = 86400 * 7


async def _run_pipeline(description: str, build: Callable) -> bool:
    try:
        client = await get_redis()
        pipe = client.pipeline()
        build(pipe)
        await pipe.execute()
        return True
    except Exception as e:
        logger.error(f"Failed to {description}: {e}")
        return False


class OnlineStatusService:
    """Redis 접속 상태 기록 (LifecycleManager의 presence_mirror로 사용)"""

    @staticmethod
    async def set_user_online(user_id: str, session_id: Optional[str] = None) -> bool:
        """
        접속 기록

        user:online:<id>는 ONLINE_STATUS_TTL 동안 유지되고, 마지막 접속 시간은 7일간 보관됩니다.
        """
        now = datetime.utcnow().isoformat()
        record = json.dumps({
            "user_id": user_id,
            "status": "online",
            "last_activity": now,
            "session_id": session_id,
        })

        def build(pipe):
            pipe.setex(USER_ONLINE_KEY.format(user_id=user_id), ONLINE_STATUS_TTL, record)
            pipe.sadd(ONLINE_USERS_SET, user_id)
            pipe.setex(USER_LAST_SEEN_KEY.format(user_id=user_id), LAST_SEEN_TTL, now)
            if session_id:
                pipe.setex(USER_CONNECTION_KEY.format(user_id=user_id), ONLINE_STATUS_TTL, session_id)

        saved = await _run_pipeline(f"mark user {user_id} online", build)
        if saved:
            logger.info(f"User {user_id} online", extra={"user_id": user_id, "event_type": "user_online"})
        return saved

    @staticmethod
    async def set_user_offline(user_id: str) -> bool:
        """접속 해제 기록 (마지막 접속 시간 갱신)"""
        now = datetime.utcnow().isoformat()

        def build(pipe):
            pipe.delete(USER_ONLINE_KEY.format(user_id=user_id))
            pipe.delete(USER_CONNECTION_KEY.format(user_id=user_id))
            pipe.srem(ONLINE_USERS_SET, user_id)
            pipe.setex(USER_LAST_SEEN_KEY.format(user_id=user_id), LAST_SEEN_TTL, now)

        saved = await _run_pipeline(f"mark user {user_id} offline", build)
        if saved:
            logger.info(f"User {user_id} offline", extra={"user_id": user_id, "event_type": "user_offline"})
        return saved

    @staticmethod
    async def get_user_status(user_id: str) -> Optional[Dict]:
        """
        기록된 접속 상태

        Returns:
            {"user_id", "status", "is_online", ...} 또는 Redis 에러 시 None
            접속 기록이 없으면 status는 "unknown"
        """
        try:
            client = await get_redis()
            online_record = await client.get(USER_ONLINE_KEY.format(user_id=user_id))
            last_seen = await client.get(USER_LAST_SEEN_KEY.format(user_id=user_id))
        except Exception as e:
            logger.error(f"Failed to read status of user {user_id}: {e}")
            return None

        if online_record:
            return {**json.loads(online_record), "is_online": True}

        return {
            "user_id": user_id,
            "status": "offline" if last_seen else "unknown",
            "is_online": False,
            "last_seen": last_seen,
        }
