from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from support_chat.core.config import Settings, settings
from support_chat.models.chat_rooms import ChatRoom
from support_chat.websockets.lifecycle import LifecycleManager
from support_chat.websockets.message_router import MessageRouter
from support_chat.websockets.participants import RoomParticipantCache
from support_chat.websockets.presence import PresenceRegistry
from support_chat.websockets.room_resolver import RoomResolver
from support_chat.websockets.scheduler import AsyncioScheduler, Scheduler
from support_chat.websockets.transport import Transport
from support_chat.websockets.typing_coordinator import TypingCoordinator


@dataclass
class ChatRuntime:
    """실시간 채팅 구성 요소 묶음 (프로세스당 하나)"""
    presence: PresenceRegistry
    participants: RoomParticipantCache
    resolver: RoomResolver
    typing: TypingCoordinator
    router: MessageRouter
    lifecycle: LifecycleManager

    async def close_room(self, room_id: str) -> ChatRoom:
        """채팅방 종료 후 연결/캐시/타이머 정리"""
        room = await self.router.close_room(room_id)
        await self.lifecycle.on_room_closed(room)
        return room


def build_chat_runtime(
    session_factory: Callable[[], AsyncSession],
    transport: Transport,
    scheduler: Optional[Scheduler] = None,
    presence_mirror: Optional[Any] = None,
    config: Settings = settings
) -> ChatRuntime:
    presence = PresenceRegistry()
    participants = RoomParticipantCache()
    resolver = RoomResolver(
        session_factory,
        participants,
        presence,
        default_admin_id=config.default_admin_id
    )
    typing = TypingCoordinator(
        presence,
        participants,
        transport,
        scheduler or AsyncioScheduler(),
        timeout=config.typing_timeout_seconds
    )
    router = MessageRouter(
        session_factory,
        presence,
        participants,
        resolver,
        typing,
        transport,
        max_message_length=config.max_message_length
    )
    lifecycle = LifecycleManager(
        session_factory,
        presence,
        participants,
        resolver,
        typing,
        transport,
        admin_channel=config.admin_channel,
        history_limit=config.history_limit,
        presence_mirror=presence_mirror
    )
    return ChatRuntime(
        presence=presence,
        participants=participants,
        resolver=resolver,
        typing=typing,
        router=router,
        lifecycle=lifecycle
    )
