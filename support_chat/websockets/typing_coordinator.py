from typing import Dict, Optional, Tuple

from support_chat.core.logging import get_logger
from support_chat.websockets.participants import RoomParticipantCache
from support_chat.websockets.presence import PresenceRegistry
from support_chat.websockets.scheduler import ScheduledTask, Scheduler
from support_chat.websockets.transport import Transport

logger = get_logger(__name__)

TypingKey = Tuple[str, str]


class _TypingState:
    """(room, user)별 입력 중 상태. 만료 콜백은 자신이 예약한 상태일 때만 동작합니다."""
    __slots__ = ("handle",)

    def __init__(self):
        self.handle: Optional[ScheduledTask] = None


class TypingCoordinator:
    """
    입력 중 표시 관리

    true 이벤트마다 만료 타이머를 다시 설정하고(누적되지 않음), 타이머가 만료되면
    상대 참여자에게 isTyping=false를 한 번 보냅니다. 상대는 참여자 캐시에서만 찾으며
    캐시에 없으면 아무것도 보내지 않습니다.
    """

    def __init__(
        self,
        presence: PresenceRegistry,
        participants: RoomParticipantCache,
        transport: Transport,
        scheduler: Scheduler,
        timeout: float = 2.0
    ):
        self.presence = presence
        self.participants = participants
        self.transport = transport
        self.scheduler = scheduler
        self.timeout = timeout
        self._states: Dict[TypingKey, _TypingState] = {}

    def is_typing(self, room_id: str, user_id: str) -> bool:
        return (room_id, user_id) in self._states

    async def set_typing(self, room_id: str, user_id: str, is_typing: bool):
        key = (room_id, user_id)
        self._cancel(key)

        if is_typing:
            state = _TypingState()
            self._states[key] = state
            state.handle = self.scheduler.call_later(self.timeout, lambda: self._expire(key, state))

        await self._broadcast(room_id, user_id, is_typing)

    async def clear(self, room_id: str, user_id: str):
        """입력 중 상태였던 경우에만 false를 보냅니다."""
        if self.cancel(room_id, user_id):
            await self.announce_stopped(room_id, user_id)

    def cancel(self, room_id: str, user_id: str) -> bool:
        """타이머만 취소합니다. 입력 중 상태였으면 True"""
        return self._cancel((room_id, user_id))

    async def announce_stopped(self, room_id: str, user_id: str):
        """false 전송 (그 사이 다시 입력 중이 되었으면 보내지 않음)"""
        if (room_id, user_id) in self._states:
            return
        await self._broadcast(room_id, user_id, False)

    async def clear_all_for_user(self, user_id: str):
        """사용자의 모든 타이머를 취소하고 false를 보냅니다 (연결 해제 시)."""
        keys = [key for key in self._states if key[1] == user_id]
        for key in keys:
            self._cancel(key)

        for room_id, _ in keys:
            await self._broadcast(room_id, user_id, False)

    def clear_room(self, room_id: str):
        """종료된 채팅방의 타이머를 이벤트 없이 취소합니다."""
        for key in [key for key in self._states if key[0] == room_id]:
            self._cancel(key)

    def _cancel(self, key: TypingKey) -> bool:
        state = self._states.pop(key, None)
        if state is None:
            return False
        if state.handle is not None:
            state.handle.cancel()
        return True

    async def _expire(self, key: TypingKey, state: _TypingState):
        if self._states.get(key) is not state:
            return
        del self._states[key]
        await self._broadcast(key[0], key[1], False)

    async def _broadcast(self, room_id: str, user_id: str, is_typing: bool):
        participants = self.participants.get(room_id)
        if participants is None:
            return

        other_user_id = participants.other_than(user_id)
        if not other_user_id:
            return

        connection_id = self.presence.resolve_connection_for_user(other_user_id)
        if connection_id is None:
            return

        try:
            await self.transport.emit(
                "user_typing",
                {"roomId": room_id, "userId": user_id, "isTyping": is_typing},
                to=connection_id
            )
        except Exception as e:
            logger.error(f"Failed to emit typing state for user {user_id} in room {room_id}: {e}")
