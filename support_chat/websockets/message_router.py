"""
메시지 라우팅

검증 → 저장 → 전달 순서로 처리합니다. 검증에 실패하면 아무것도 저장하지 않고
발신자에게 error 이벤트를 보낸 뒤 실패 결과를 반환합니다.

전달은 두 경로로 이루어집니다.
- 채팅방 채널로 receive_message
- 수신자 연결이 채널에 없으면 수신자에게 직접 receive_message
같은 메시지를 두 번 받을 수 있으므로 클라이언트는 id로 중복을 제거합니다.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from support_chat.core.errors import (
    BaseCustomException,
    InvalidReceiverException,
    PersistenceException,
    RoomNotFoundException,
    SelfSendException,
    ValidationException,
    room_access_denied_error,
)
from support_chat.core.logging import get_logger, log_websocket_event
from support_chat.core.validators import Validator, from_pydantic_error
from support_chat.models.chat_rooms import ChatRoom
from support_chat.models.messages import Message
from support_chat.schemas.message import (
    FileMessagePayload,
    MessageEnvelope,
    SendResult,
    send_message_adapter,
)
from support_chat.services import chat_room_service, message_service
from support_chat.websockets.participants import RoomParticipantCache, RoomParticipants
from support_chat.websockets.presence import Connection, PresenceRegistry
from support_chat.websockets.room_resolver import RoomResolver
from support_chat.websockets.transport import Transport
from support_chat.websockets.typing_coordinator import TypingCoordinator

logger = get_logger(__name__)

SEND_FAILED_MESSAGE = "Failed to send message. Please try again."
SEND_FAILED_ACK = "send failed"


class MessageRouter:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        presence: PresenceRegistry,
        participants: RoomParticipantCache,
        resolver: RoomResolver,
        typing: TypingCoordinator,
        transport: Transport,
        max_message_length: int = 2000
    ):
        self.session_factory = session_factory
        self.presence = presence
        self.participants = participants
        self.resolver = resolver
        self.typing = typing
        self.transport = transport
        self.max_message_length = max_message_length

    # =========================================================================
    # send_message
    # =========================================================================

    async def route_message(self, connection_id: str, data: Any) -> SendResult:
        """
        메시지를 검증, 저장, 전달합니다.

        Returns:
            SendResult: 성공 시 message_id, 실패 시 error 문자열
        """
        connection = self.presence.get_connection(connection_id)
        if connection is None:
            logger.warning(f"send_message from unregistered connection {connection_id}")
            return SendResult.failure("Connection not registered")

        try:
            payload = self._parse_payload(data)
            body = Validator.validate_message_body(
                payload.message,
                payload.message_type,
                self.max_message_length,
                fallback=getattr(payload, "file_name", None)
            )

            room_id = payload.room_id if connection.is_admin and payload.room_id else connection.room_id
            if not room_id:
                raise ValidationException("Invalid message data")

            room = await self.resolver.get_room(room_id)
            if room is None:
                raise RoomNotFoundException(room_id)

            if not connection.is_admin and room.customer_id != connection.user_id:
                raise room_access_denied_error(room_id)

            receiver_id = self.resolve_receiver(room, connection.user_id, payload.receiver_id)

            message = await self._persist(room, connection, receiver_id, body, payload)

        except PersistenceException as e:
            logger.error(f"Failed to send message from user {connection.user_id}: {e.message}")
            await self._emit_error(connection_id, SEND_FAILED_MESSAGE)
            return SendResult.failure(SEND_FAILED_ACK)
        except BaseCustomException as e:
            await self._emit_error(connection_id, e.message)
            return SendResult.failure(e.message)
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist message from user {connection.user_id}: {e}")
            await self._emit_error(connection_id, SEND_FAILED_MESSAGE)
            return SendResult.failure(SEND_FAILED_ACK)

        was_typing = self.typing.cancel(room.id, connection.user_id)

        await self._deliver(connection, room, message)
        await self._touch_room(room.id, message.created_at)
        if was_typing:
            await self.typing.announce_stopped(room.id, connection.user_id)

        log_websocket_event(logger, "send_message", connection.user_id, room.id, message_id=message.id)
        return SendResult.ok(message.id)

    def _parse_payload(self, data: Any):
        if not isinstance(data, dict):
            raise ValidationException("Invalid message data")
        try:
            return send_message_adapter.validate_python(data)
        except PydanticValidationError as e:
            raise from_pydantic_error(e, "Invalid message data")

    def resolve_receiver(self, room: ChatRoom, sender_id: str, requested_receiver_id: Optional[str] = None) -> str:
        """
        수신자 결정

        요청한 수신자가 채팅방 참여자이면 그대로 사용하고, 없으면 상대 참여자를 사용합니다.

        Raises:
            InvalidReceiverException: 참여자가 아니거나 배정된 관리자가 없는 경우
            SelfSendException: 수신자가 발신자 자신인 경우
        """
        participants = RoomParticipants(customer_id=room.customer_id, admin_id=room.admin_id)

        if requested_receiver_id and requested_receiver_id not in participants:
            raise InvalidReceiverException(receiver_id=requested_receiver_id)

        receiver_id = requested_receiver_id or participants.other_than(sender_id)
        if not receiver_id:
            raise InvalidReceiverException()

        if receiver_id == sender_id:
            raise SelfSendException()

        return receiver_id

    async def _persist(
        self,
        room: ChatRoom,
        connection: Connection,
        receiver_id: str,
        body: str,
        payload
    ) -> Message:
        file_fields = {}
        if isinstance(payload, FileMessagePayload):
            file_fields = {
                "file_key": payload.file_key,
                "file_name": payload.file_name,
                "file_size": payload.file_size,
                "file_type": payload.file_type,
            }

        async with self.session_factory() as db:
            return await message_service.create_message(
                db,
                room_id=room.id,
                sender_id=connection.user_id,
                receiver_id=receiver_id,
                content=body,
                message_type=payload.message_type,
                **file_fields
            )

    async def _deliver(self, connection: Connection, room: ChatRoom, message: Message):
        envelope = MessageEnvelope.from_message(message, sender_email=connection.email).to_wire()

        await self._safe_emit("message_sent", envelope, connection.connection_id)
        await self._safe_emit("receive_message", envelope, room.room_name)

        receiver_connection_id = self.presence.resolve_connection_for_user(message.receiver_id)
        if receiver_connection_id and not self.transport.is_in_channel(receiver_connection_id, room.room_name):
            await self._safe_emit("receive_message", envelope, receiver_connection_id)

    async def _touch_room(self, room_id: str, timestamp: Optional[datetime] = None):
        try:
            async with self.session_factory() as db:
                await chat_room_service.update_last_message_at(db, room_id, timestamp)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to update last message time of room {room_id}: {e}")

    # =========================================================================
    # mark_as_read
    # =========================================================================

    async def mark_as_read(self, connection_id: str, data: Any):
        """mark_as_read 이벤트 처리"""
        connection = self.presence.get_connection(connection_id)
        if connection is None:
            return

        try:
            raw_ids = data.get("messageIds") if isinstance(data, dict) else None
            message_ids = Validator.validate_id_list(raw_ids, "messageIds", "Invalid message IDs")
            room_id = data.get("roomId")
            await self.mark_messages_as_read(message_ids, connection.user_id, str(room_id) if room_id else None)
        except BaseCustomException as e:
            await self._emit_error(connection_id, e.message)
        except SQLAlchemyError as e:
            logger.error(f"Failed to mark messages as read for user {connection.user_id}: {e}")

    async def mark_messages_as_read(
        self,
        message_ids: List[str],
        reader_user_id: str,
        room_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        수신자가 reader_user_id인 메시지를 읽음 처리하고, 발신자별로 한 번씩
        message_read를 보냅니다. 이미 읽은 메시지와 알 수 없는 ID는 무시됩니다.

        Returns:
            {"message_ids": [새로 읽음 처리된 ID], "read_at": datetime}
        """
        read_at = datetime.utcnow()

        async with self.session_factory() as db:
            by_sender = await message_service.mark_messages_as_read(db, message_ids, reader_user_id, read_at)

        updated_ids: List[str] = []
        for sender_id, rooms in by_sender.items():
            for ids in rooms.values():
                updated_ids.extend(ids)

            sender_connection_id = self.presence.resolve_connection_for_user(sender_id)
            if sender_connection_id is None:
                continue

            # 채팅방별로 한 번씩 (보통은 채팅방 하나)
            for message_room_id, ids in rooms.items():
                await self._safe_emit(
                    "message_read",
                    {"messageIds": ids, "roomId": message_room_id, "readAt": read_at.isoformat()},
                    sender_connection_id
                )

        log_websocket_event(logger, "mark_as_read", reader_user_id, room_id, updated=len(updated_ids))
        return {"message_ids": updated_ids, "read_at": read_at}

    # =========================================================================
    # clear_chat
    # =========================================================================

    async def clear_chat(self, connection_id: str):
        """clear_chat 이벤트 처리 (현재 입장한 채팅방 기준)"""
        connection = self.presence.get_connection(connection_id)
        if connection is None:
            return

        if not connection.room_id:
            await self._emit_error(connection_id, "No active chat room")
            return

        try:
            await self.clear_room_for_user(
                connection.user_id,
                connection.room_id,
                is_admin=connection.is_admin,
                connection_id=connection_id
            )
        except (PersistenceException, SQLAlchemyError) as e:
            logger.error(f"Failed to clear chat for user {connection.user_id}: {e}")
            await self._emit_error(connection_id, "Failed to clear chat")
        except BaseCustomException as e:
            await self._emit_error(connection_id, e.message)

    async def clear_room_for_user(
        self,
        user_id: str,
        room_id: str,
        is_admin: bool = False,
        connection_id: Optional[str] = None
    ) -> datetime:
        """
        사용자의 대화 비우기 기준 시각을 기록하고 양쪽에 알립니다.

        Raises:
            RoomNotFoundException: 채팅방이 없는 경우
            AccessDeniedException: 고객이 자신의 채팅방이 아닌 곳을 비우려는 경우
        """
        room = await self.resolver.get_room(room_id)
        if room is None:
            raise RoomNotFoundException(room_id)

        if not is_admin and room.customer_id != user_id:
            raise room_access_denied_error(room_id)

        async with self.session_factory() as db:
            cleared_at = await message_service.clear_chat(db, user_id, room_id)

        target = connection_id or self.presence.resolve_connection_for_user(user_id)
        if target:
            await self._safe_emit(
                "chat_cleared",
                {"roomId": room_id, "clearedAt": cleared_at.isoformat()},
                target
            )

        other_user_id = RoomParticipants(room.customer_id, room.admin_id).other_than(user_id)
        other_connection_id = self.presence.resolve_connection_for_user(other_user_id) if other_user_id else None
        if other_connection_id:
            await self._safe_emit(
                "chat_cleared_by_other",
                {"roomId": room_id, "clearedAt": cleared_at.isoformat(), "clearedBy": user_id},
                other_connection_id
            )

        log_websocket_event(logger, "clear_chat", user_id, room_id)
        return cleared_at

    # =========================================================================
    # close_room
    # =========================================================================

    async def close_room(self, room_id: str) -> ChatRoom:
        """
        채팅방과 메시지, 대화 비우기 기록을 하나의 트랜잭션으로 삭제합니다.
        연결 정리는 LifecycleManager.on_room_closed가 담당합니다.
        """
        async with self.session_factory() as db:
            return await chat_room_service.close_chat_room(db, room_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _emit_error(self, connection_id: str, message: str):
        await self._safe_emit("error", {"message": message}, connection_id)

    async def _safe_emit(self, event: str, data: Any, to: str):
        try:
            await self.transport.emit(event, data, to=to)
        except Exception as e:
            logger.error(f"Failed to emit {event} to {to}: {e}")
