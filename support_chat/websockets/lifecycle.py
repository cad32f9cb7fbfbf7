"""
연결 생명주기 관리

접속/해제, 관리자 온라인 상태 브로드캐스트, 채팅방 입장, 채팅방 종료 후 정리를 담당합니다.
레지스트리/캐시/타이머 변경은 await 전에 동기적으로 처리합니다.
"""

from typing import Any, Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from support_chat.core.errors import (
    BaseCustomException,
    PersistenceException,
    RoomNotFoundException,
    room_access_denied_error,
)
from support_chat.core.logging import get_logger, log_websocket_event
from support_chat.models.chat_rooms import ChatRoom
from support_chat.schemas.message import ChatHistory, MessageEnvelope
from support_chat.schemas.user import Principal
from support_chat.services import message_service
from support_chat.websockets.participants import RoomParticipantCache
from support_chat.websockets.presence import Connection, PresenceRegistry
from support_chat.websockets.room_resolver import RoomResolver
from support_chat.websockets.transport import Transport
from support_chat.websockets.typing_coordinator import TypingCoordinator

logger = get_logger(__name__)


class LifecycleManager:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        presence: PresenceRegistry,
        participants: RoomParticipantCache,
        resolver: RoomResolver,
        typing: TypingCoordinator,
        transport: Transport,
        admin_channel: str = "admin-room",
        history_limit: int = 100,
        presence_mirror: Optional[Any] = None
    ):
        self.session_factory = session_factory
        self.presence = presence
        self.participants = participants
        self.resolver = resolver
        self.typing = typing
        self.transport = transport
        self.admin_channel = admin_channel
        self.history_limit = history_limit
        # set_user_online / set_user_offline을 제공하는 객체 (예: OnlineStatusService)
        self.presence_mirror = presence_mirror

    # =========================================================================
    # Connect / Disconnect
    # =========================================================================

    async def on_connect(self, connection_id: str, principal: Principal) -> Connection:
        """
        연결 등록 후 역할별 초기화

        - 관리자: admin 채널 입장, 모든 고객에게 admin_online(true)
        - 고객: 채팅방 조회/생성, 채널 입장, chat_history 전송, 관리자 채널에 customer_connected

        고객 초기화에 실패해도 연결은 등록된 상태로 유지되고 error 이벤트만 전송됩니다.
        """
        connection = self.presence.register_connection(
            connection_id, principal.id, principal.role, principal.email
        )
        log_websocket_event(logger, "connect", principal.id, role=principal.role)

        if self.presence_mirror is not None:
            await self.presence_mirror.set_user_online(principal.id, connection_id)

        if connection.is_admin:
            await self.transport.enter_channel(connection_id, self.admin_channel)
            await self.broadcast_to_customers("admin_online", {"isOnline": True})
            return connection

        try:
            room = await self.resolver.get_or_create_room_for_customer(principal.id)
            await self._attach(connection, room)

            history = await self._load_history(room.id, principal.id)
            await self._safe_emit("chat_history", history.to_wire(), connection_id)
            await self._safe_emit(
                "admin_online",
                {"isOnline": self.presence.has_admin_connection()},
                connection_id
            )
            await self._safe_emit(
                "customer_connected",
                {"userId": principal.id, "roomId": room.id, "customerEmail": principal.email},
                self.admin_channel
            )
        except Exception as e:
            logger.error(f"Error handling customer connection for user {principal.id}: {e}", exc_info=True)
            await self._safe_emit("error", {"message": "Failed to initialize chat"}, connection_id)

        return connection

    async def on_disconnect(self, connection_id: str) -> Optional[Connection]:
        """
        연결 해제 (여러 번 호출해도 안전)

        - 사용자의 모든 입력 중 상태 정리
        - 고객의 마지막 연결이면 참여자 캐시에서 채팅방 제거
        - 관리자: 남은 관리자 연결이 없으면 admin_online(false)
        - 고객: 남은 연결이 없으면 관리자 채널에 customer_online(false)
        """
        connection = self.presence.unregister_connection(connection_id)
        if connection is None:
            return None

        user_id = connection.user_id
        still_connected = self.presence.is_user_connected(user_id)

        await self.typing.clear_all_for_user(user_id)

        if connection.room_id and not still_connected:
            participants = self.participants.get(connection.room_id)
            if participants is not None and participants.customer_id == user_id:
                self.participants.evict(connection.room_id)

        if connection.is_admin:
            if not self.presence.has_admin_connection():
                await self.broadcast_to_customers("admin_online", {"isOnline": False})
        elif not still_connected:
            await self._safe_emit(
                "customer_online",
                {"userId": user_id, "isOnline": False},
                self.admin_channel
            )

        if self.presence_mirror is not None and not still_connected:
            await self.presence_mirror.set_user_offline(user_id)

        log_websocket_event(logger, "disconnect", user_id, connection.room_id)
        return connection

    # =========================================================================
    # Rooms
    # =========================================================================

    async def join_room(self, connection_id: str, room_id: Any) -> Optional[ChatRoom]:
        """
        채팅방 입장 (관리자는 모든 채팅방, 고객은 자신의 채팅방만)

        이전 채팅방 채널에서 나간 뒤 새 채널에 입장하고 room_joined를 보냅니다.
        """
        connection = self.presence.get_connection(connection_id)
        if connection is None:
            return None

        try:
            if room_id is None or room_id == "":
                raise RoomNotFoundException()

            room = await self.resolver.get_room(str(room_id))
            if room is None:
                raise RoomNotFoundException(str(room_id))

            if not connection.is_admin and room.customer_id != connection.user_id:
                raise room_access_denied_error(room.id)

            await self._attach(connection, room)
        except (PersistenceException, SQLAlchemyError) as e:
            logger.error(f"Error joining room {room_id} for user {connection.user_id}: {e}")
            await self._safe_emit("error", {"message": "Failed to join room"}, connection_id)
            return None
        except BaseCustomException as e:
            await self._safe_emit("error", {"message": e.message}, connection_id)
            return None

        await self._safe_emit("room_joined", {"roomId": room.id}, connection_id)
        log_websocket_event(logger, "join_room", connection.user_id, room.id)
        return room

    async def on_room_closed(self, room: ChatRoom):
        """
        종료된 채팅방 정리

        채널에 room_closed를 보내고, 참여자 캐시와 입력 중 타이머를 정리한 뒤
        채팅방에 입장해 있던 모든 연결을 채널에서 내보냅니다.
        """
        attached = self.presence.connections_in_room(room.id)
        for connection in attached:
            self.presence.leave_room(connection.connection_id)
        self.participants.evict(room.id)
        self.typing.clear_room(room.id)

        await self._safe_emit("room_closed", {"roomId": room.id}, room.room_name)

        for connection in attached:
            try:
                await self.transport.leave_channel(connection.connection_id, room.room_name)
            except Exception as e:
                logger.error(f"Failed to detach connection {connection.connection_id} from {room.room_name}: {e}")

        log_websocket_event(logger, "room_closed", None, room.id, detached=len(attached))

    async def _attach(self, connection: Connection, room: ChatRoom):
        previous_channel = self.presence.leave_room(connection.connection_id)
        self.presence.join_room(connection.connection_id, room.id, room.room_name)
        self.participants.remember(room)

        if previous_channel and previous_channel != room.room_name:
            await self.transport.leave_channel(connection.connection_id, previous_channel)
        await self.transport.enter_channel(connection.connection_id, room.room_name)

    async def _load_history(self, room_id: str, user_id: str) -> ChatHistory:
        async with self.session_factory() as db:
            messages = await message_service.get_chat_history(
                db, room_id, user_id, limit=self.history_limit
            )
        return ChatHistory(
            room_id=room_id,
            messages=[MessageEnvelope.from_message(message) for message in messages]
        )

    # =========================================================================
    # Broadcasts
    # =========================================================================

    async def broadcast_to_customers(self, event: str, data: Any):
        """접속 중인 모든 고객 연결에 이벤트 전송"""
        targets: List[str] = []
        self.presence.for_each_customer_connection(lambda connection: targets.append(connection.connection_id))

        for connection_id in targets:
            await self._safe_emit(event, data, connection_id)

    async def _safe_emit(self, event: str, data: Any, to: str):
        try:
            await self.transport.emit(event, data, to=to)
        except Exception as e:
            logger.error(f"Failed to emit {event} to {to}: {e}")
