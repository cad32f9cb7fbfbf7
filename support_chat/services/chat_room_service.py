"""
Chat room service layer for database operations.

Handles all database queries and data operations related to customer support rooms.
"""

from datetime import datetime
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from support_chat.core.errors import RoomNotFoundException, PersistenceException
from support_chat.core.logging import get_logger, log_database_operation
from support_chat.models.chat_rooms import ChatRoom, room_name_for_customer
from support_chat.models.deleted_chats import DeletedChat
from support_chat.models.messages import Message
from support_chat.models.users import User, USER_ROLE_ADMIN

logger = get_logger(__name__)


# =============================================================================
# Chat Room CRUD Operations
# =============================================================================

async def find_chat_room_by_id(db: AsyncSession, room_id: str) -> Optional[ChatRoom]:
    """채팅방 ID로 조회"""
    result = await db.execute(
        select(ChatRoom).where(ChatRoom.id == room_id)
    )
    return result.scalar_one_or_none()


async def find_chat_room_by_customer(db: AsyncSession, customer_id: str) -> Optional[ChatRoom]:
    """고객 ID로 채팅방 조회 (고객당 채팅방은 하나)"""
    result = await db.execute(
        select(ChatRoom).where(ChatRoom.customer_id == customer_id)
    )
    return result.scalar_one_or_none()


async def find_active_admin_ids(db: AsyncSession) -> List[str]:
    """활성 관리자 ID 목록 (가입 순)"""
    result = await db.execute(
        select(User.id).where(
            User.role == USER_ROLE_ADMIN,
            User.is_active.is_(True)
        ).order_by(User.created_at.asc(), User.id.asc())
    )
    return list(result.scalars().all())


async def create_chat_room(db: AsyncSession, customer_id: str, admin_id: Optional[str]) -> ChatRoom:
    """
    새 채팅방 생성

    채팅방 이름은 고객 ID로 결정되므로 동시에 생성되면 unique 제약 위반
    (IntegrityError)이 그대로 호출자에게 전달됩니다.
    """
    new_room = ChatRoom(
        customer_id=customer_id,
        admin_id=admin_id,
        room_name=room_name_for_customer(customer_id),
        is_active=True,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    db.add(new_room)
    await db.commit()
    await db.refresh(new_room)

    log_database_operation(logger, "insert", "chat_rooms", 1, room_id=new_room.id)
    return new_room


async def update_last_message_at(db: AsyncSession, room_id: str, timestamp: Optional[datetime] = None) -> None:
    """채팅방의 마지막 메시지 시각 갱신"""
    room = await find_chat_room_by_id(db, room_id)
    if room is None:
        return

    now = timestamp or datetime.utcnow()
    room.last_message_at = now
    room.updated_at = now
    await db.commit()


async def get_active_chat_rooms(db: AsyncSession) -> List[ChatRoom]:
    """관리자용 활성 채팅방 목록 (최근 메시지 순)"""
    query = select(ChatRoom).options(
        selectinload(ChatRoom.customer)
    ).where(
        ChatRoom.is_active.is_(True)
    ).order_by(
        ChatRoom.last_message_at.desc(),
        ChatRoom.created_at.desc()
    )

    result = await db.execute(query)
    return list(result.scalars().all())


# =============================================================================
# Room Closure
# =============================================================================

async def _delete_room_messages(db: AsyncSession, room_id: str) -> int:
    result = await db.execute(delete(Message).where(Message.room_id == room_id))
    return result.rowcount


async def _delete_room_markers(db: AsyncSession, room_id: str) -> int:
    result = await db.execute(delete(DeletedChat).where(DeletedChat.room_id == room_id))
    return result.rowcount


async def close_chat_room(db: AsyncSession, room_id: str) -> ChatRoom:
    """
    채팅방 종료 (관리자 전용)

    메시지, 대화 비우기 기록, 채팅방을 하나의 트랜잭션으로 삭제합니다.
    중간에 실패하면 전부 롤백되고 PersistenceException이 발생합니다.

    Raises:
        RoomNotFoundException: 채팅방이 없는 경우
        PersistenceException: 삭제 중 저장소 에러
    """
    room = await find_chat_room_by_id(db, room_id)
    if room is None:
        raise RoomNotFoundException(room_id)

    try:
        deleted_messages = await _delete_room_messages(db, room_id)
        deleted_markers = await _delete_room_markers(db, room_id)
        await db.delete(room)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to close chat room {room_id}: {e}")
        raise PersistenceException("Failed to close chat room", details={"room_id": room_id})

    log_database_operation(
        logger, "delete", "chat_rooms", 1,
        room_id=room_id,
        deleted_messages=deleted_messages,
        deleted_markers=deleted_markers
    )
    return room
