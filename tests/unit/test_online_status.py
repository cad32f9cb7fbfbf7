import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from support_chat.services.online_status_service import (
    ONLINE_USERS_SET,
    OnlineStatusService,
)


@pytest.fixture
def redis_client():
    client = MagicMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    client.pipeline.return_value = pipe
    client.get = AsyncMock(return_value=None)

    with patch(
        "support_chat.services.online_status_service.get_redis",
        AsyncMock(return_value=client)
    ):
        yield client


class TestOnlineStatusService:
    """온라인 상태 서비스 테스트"""

    @pytest.mark.asyncio
    async def test_set_user_online(self, redis_client):
        assert await OnlineStatusService.set_user_online("user-1", "sid-1") is True

        pipe = redis_client.pipeline.return_value
        pipe.sadd.assert_called_once_with(ONLINE_USERS_SET, "user-1")
        pipe.execute.assert_awaited_once()

        keys = [call.args[0] for call in pipe.setex.call_args_list]
        assert "user:online:user-1" in keys
        assert "user:connection:user-1" in keys

    @pytest.mark.asyncio
    async def test_set_user_offline(self, redis_client):
        assert await OnlineStatusService.set_user_offline("user-1") is True

        pipe = redis_client.pipeline.return_value
        pipe.srem.assert_called_once_with(ONLINE_USERS_SET, "user-1")
        pipe.delete.assert_any_call("user:online:user-1")

    @pytest.mark.asyncio
    async def test_redis_failure_returns_false(self, redis_client):
        redis_client.pipeline.return_value.execute.side_effect = ConnectionError("redis down")

        assert await OnlineStatusService.set_user_online("user-1") is False

    @pytest.mark.asyncio
    async def test_get_status_online(self, redis_client):
        redis_client.get.side_effect = [
            json.dumps({"user_id": "user-1", "status": "online", "last_activity": "2024-01-01T00:00:00"}),
            "2024-01-01T00:00:00",
        ]

        status = await OnlineStatusService.get_user_status("user-1")

        assert status["is_online"] is True
        assert status["status"] == "online"

    @pytest.mark.asyncio
    async def test_get_status_offline(self, redis_client):
        redis_client.get.side_effect = [None, "2024-01-01T00:00:00"]

        status = await OnlineStatusService.get_user_status("user-1")

        assert status == {
            "user_id": "user-1",
            "status": "offline",
            "is_online": False,
            "last_seen": "2024-01-01T00:00:00",
        }

    @pytest.mark.asyncio
    async def test_get_status_unknown(self, redis_client):
        status = await OnlineStatusService.get_user_status("user-1")

        assert status["status"] == "unknown"
        assert status["last_seen"] is None
