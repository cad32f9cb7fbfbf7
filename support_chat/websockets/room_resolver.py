"""
고객 채팅방 조회/생성

고객마다 채팅방은 하나이며 이름은 room_<customerId>로 결정됩니다.
같은 프로세스 안의 동시 요청은 고객별 asyncio.Lock으로 직렬화하고,
프로세스 간 경쟁은 unique 제약 위반 후 재조회로 해결합니다.
"""

import asyncio
from typing import Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from support_chat.core.errors import NoAdminAvailableException, PersistenceException
from support_chat.core.logging import get_logger
from support_chat.models.chat_rooms import ChatRoom
from support_chat.services import chat_room_service
from support_chat.websockets.participants import RoomParticipantCache
from support_chat.websockets.presence import PresenceRegistry

logger = get_logger(__name__)


class RoomResolver:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        participants: RoomParticipantCache,
        presence: PresenceRegistry,
        default_admin_id: Optional[str] = None
    ):
        self.session_factory = session_factory
        self.participants = participants
        self.presence = presence
        self.default_admin_id = default_admin_id
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def get_or_create_room_for_customer(self, customer_id: str) -> ChatRoom:
        """
        고객의 채팅방을 반환하고, 없으면 관리자를 배정해 생성합니다.

        기존 채팅방의 관리자 배정은 변경하지 않습니다.

        Raises:
            NoAdminAvailableException: 배정할 관리자가 없는 경우
            PersistenceException: 저장소 에러
        """
        lock = self._locks.setdefault(customer_id, asyncio.Lock())
        self._lock_users[customer_id] = self._lock_users.get(customer_id, 0) + 1
        try:
            async with lock:
                room = await self._find_or_create(customer_id)
        finally:
            self._release_lock(customer_id)

        self.participants.remember(room)
        return room

    def _release_lock(self, customer_id: str):
        remaining = self._lock_users.get(customer_id, 1) - 1
        if remaining <= 0:
            self._lock_users.pop(customer_id, None)
            self._locks.pop(customer_id, None)
        else:
            self._lock_users[customer_id] = remaining

    async def _find_or_create(self, customer_id: str) -> ChatRoom:
        async with self.session_factory() as db:
            try:
                room = await chat_room_service.find_chat_room_by_customer(db, customer_id)
                if room is not None:
                    return room

                admin_id = await self._pick_admin(db)

                try:
                    room = await chat_room_service.create_chat_room(db, customer_id, admin_id)
                    logger.info(f"Chat room {room.id} created for customer {customer_id} with admin {admin_id}")
                    return room
                except IntegrityError:
                    # 다른 프로세스가 먼저 생성한 경우
                    await db.rollback()
                    room = await chat_room_service.find_chat_room_by_customer(db, customer_id)
                    if room is None:
                        raise PersistenceException(
                            "Failed to create chat room",
                            details={"customer_id": customer_id}
                        )
                    logger.info(f"Chat room for customer {customer_id} was created concurrently, reusing {room.id}")
                    return room

            except SQLAlchemyError as e:
                logger.error(f"Failed to resolve chat room for customer {customer_id}: {e}")
                raise PersistenceException(
                    "Failed to resolve chat room",
                    details={"customer_id": customer_id}
                )

    async def _pick_admin(self, db: AsyncSession) -> str:
        """
        관리자 배정 순서
        1. 현재 접속 중인 활성 관리자
        2. 접속 여부와 무관한 활성 관리자 (가입 순)
        3. 설정된 기본 관리자
        """
        admin_ids = await chat_room_service.find_active_admin_ids(db)

        for admin_id in admin_ids:
            if self.presence.is_user_connected(admin_id):
                return admin_id

        if admin_ids:
            return admin_ids[0]

        if self.default_admin_id:
            return self.default_admin_id

        raise NoAdminAvailableException()

    async def get_room(self, room_id: str) -> Optional[ChatRoom]:
        """채팅방 조회 (조회되면 참여자 캐시 갱신)"""
        async with self.session_factory() as db:
            try:
                room = await chat_room_service.find_chat_room_by_id(db, room_id)
            except SQLAlchemyError as e:
                logger.error(f"Failed to load chat room {room_id}: {e}")
                raise PersistenceException("Failed to load chat room", details={"room_id": room_id})

        if room is not None:
            self.participants.remember(room)
        return room
