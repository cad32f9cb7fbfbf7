from typing import Any, Optional

import socketio
from pydantic import ValidationError as PydanticValidationError

from support_chat.core.logging import (
    clear_connection_context,
    get_logger,
    set_connection_context,
)
from support_chat.schemas.message import TypingPayload
from support_chat.websockets.auth import authenticate_socket
from support_chat.websockets.runtime import ChatRuntime

logger = get_logger(__name__)


class ChatEventHandler:
    """Socket.IO 이벤트를 실시간 코어 호출로 변환하는 핸들러"""

    def __init__(self, sio: socketio.AsyncServer, runtime: ChatRuntime):
        self.sio = sio
        self.runtime = runtime

    def register(self):
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on("send_message", self.on_send_message)
        self.sio.on("typing", self.on_typing)
        self.sio.on("mark_as_read", self.on_mark_as_read)
        self.sio.on("clear_chat", self.on_clear_chat)
        self.sio.on("join_room", self.on_join_room)

    async def on_connect(self, sid: str, environ: dict, auth: Any = None):
        principal = authenticate_socket(environ, auth)
        set_connection_context(sid, principal.id)
        await self.runtime.lifecycle.on_connect(sid, principal)

    async def on_disconnect(self, sid: str, reason: Any = None):
        await self.runtime.lifecycle.on_disconnect(sid)
        clear_connection_context()

    async def on_send_message(self, sid: str, data: Any = None) -> dict:
        self._bind_context(sid)
        result = await self.runtime.router.route_message(sid, data)
        return result.to_ack()

    async def on_typing(self, sid: str, data: Any = None):
        connection = self._bind_context(sid)
        if connection is None or not isinstance(data, dict):
            return

        try:
            payload = TypingPayload.model_validate(data)
        except PydanticValidationError:
            logger.debug(f"Ignoring malformed typing payload from {sid}")
            return

        if not payload.room_id:
            return

        # 고객은 자신의 채팅방에서만 입력 중 상태를 보낼 수 있음
        if not connection.is_admin and payload.room_id != connection.room_id:
            return

        await self.runtime.typing.set_typing(payload.room_id, connection.user_id, payload.is_typing)

    async def on_mark_as_read(self, sid: str, data: Any = None):
        self._bind_context(sid)
        await self.runtime.router.mark_as_read(sid, data)

    async def on_clear_chat(self, sid: str, data: Any = None):
        self._bind_context(sid)
        await self.runtime.router.clear_chat(sid)

    async def on_join_room(self, sid: str, room_id: Any = None):
        self._bind_context(sid)
        if isinstance(room_id, dict):
            room_id = room_id.get("roomId")
        await self.runtime.lifecycle.join_room(sid, room_id)

    def _bind_context(self, sid: str) -> Optional[Any]:
        connection = self.runtime.presence.get_connection(sid)
        set_connection_context(sid, connection.user_id if connection else None)
        return connection
