"""
프로세스 전역 Socket.IO 서버와 실시간 채팅 구성 요소

접속 상태, 참여자 캐시, 입력 중 타이머는 이 프로세스 메모리에만 존재하며
재시작하면 사라집니다.
"""

import socketio

from support_chat.core.config import settings
from support_chat.database.mysql import AsyncSessionLocal
from support_chat.database.redis import is_redis_enabled
from support_chat.services.online_status_service import OnlineStatusService
from support_chat.websockets.handlers import ChatEventHandler
from support_chat.websockets.runtime import build_chat_runtime
from support_chat.websockets.transport import SocketIOTransport

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.cors_origins,
    always_connect=True,  # connect 핸들러 안에서 chat_history 등을 바로 보낼 수 있도록
    logger=False,
    engineio_logger=False,
)

transport = SocketIOTransport(sio)

runtime = build_chat_runtime(
    AsyncSessionLocal,
    transport,
    presence_mirror=OnlineStatusService if is_redis_enabled() else None,
)

event_handler = ChatEventHandler(sio, runtime)
event_handler.register()
