"""
Message service layer for database operations.

Handles all database queries and data operations related to messages,
read receipts and per-user history clearing.
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from support_chat.core.logging import get_logger, log_database_operation
from support_chat.models.deleted_chats import DeletedChat
from support_chat.models.messages import Message, MESSAGE_TYPE_TEXT

logger = get_logger(__name__)


# =============================================================================
# Message CRUD Operations
# =============================================================================

async def create_message(
    db: AsyncSession,
    room_id: str,
    sender_id: str,
    receiver_id: str,
    content: str,
    message_type: str = MESSAGE_TYPE_TEXT,
    file_key: Optional[str] = None,
    file_name: Optional[str] = None,
    file_size: Optional[int] = None,
    file_type: Optional[str] = None
) -> Message:
    """메시지 생성 후 발신자 정보를 포함해 다시 조회"""
    message = Message(
        room_id=room_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        message=content,
        message_type=message_type,
        file_key=file_key,
        file_name=file_name,
        file_size=file_size,
        file_type=file_type,
        is_read=False,
        created_at=datetime.utcnow()
    )

    db.add(message)
    await db.commit()

    saved = await find_message_with_sender(db, message.id)
    return saved if saved is not None else message


async def find_message_with_sender(db: AsyncSession, message_id: str) -> Optional[Message]:
    """메시지 ID로 조회 (발신자 eager loading)"""
    result = await db.execute(
        select(Message).options(
            selectinload(Message.sender)
        ).where(Message.id == message_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# =============================================================================
# History
# =============================================================================

async def get_deletion_marker(db: AsyncSession, user_id: str, room_id: str) -> Optional[DeletedChat]:
    """사용자의 대화 비우기 기록 조회"""
    result = await db.execute(
        select(DeletedChat).where(
            DeletedChat.user_id == user_id,
            DeletedChat.room_id == room_id
        )
    )
    return result.scalar_one_or_none()


async def get_chat_history(
    db: AsyncSession,
    room_id: str,
    user_id: str,
    limit: int = 100,
    offset: int = 0
) -> List[Message]:
    """
    채팅방 대화 기록 조회 (오래된 것부터)

    사용자가 대화를 비운 적이 있으면 그 시각 이후(초과)의 메시지만 반환합니다.
    """
    marker = await get_deletion_marker(db, user_id, room_id)

    query = select(Message).options(
        selectinload(Message.sender)
    ).where(Message.room_id == room_id)

    if marker is not None:
        query = query.where(Message.created_at > marker.deleted_at)

    query = query.order_by(
        Message.created_at.asc(),
        Message.id.asc()
    ).offset(offset).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


# =============================================================================
# Read Receipts
# =============================================================================

async def mark_messages_as_read(
    db: AsyncSession,
    message_ids: List[str],
    reader_id: str,
    read_at: Optional[datetime] = None
) -> Dict[str, Dict[str, List[str]]]:
    """
    읽음 처리

    수신자가 reader_id인 메시지 중 아직 읽지 않은 것만 갱신합니다.
    이미 읽은 메시지는 기존 read_at을 유지하며, 존재하지 않는 ID는 무시합니다.

    Returns:
        {sender_id: {room_id: [새로 읽음 처리된 message_id, ...]}}
    """
    if not message_ids:
        return {}

    now = read_at or datetime.utcnow()

    result = await db.execute(
        select(Message.id, Message.sender_id, Message.room_id).where(
            Message.id.in_(message_ids),
            Message.receiver_id == reader_id,
            Message.is_read.is_(False)
        )
    )
    rows = result.all()
    if not rows:
        return {}

    await db.execute(
        update(Message).where(
            Message.id.in_([row.id for row in rows]),
            Message.is_read.is_(False)
        ).values(is_read=True, read_at=now)
    )
    await db.commit()

    by_sender: Dict[str, Dict[str, List[str]]] = defaultdict(lambda: defaultdict(list))
    for row in rows:
        by_sender[row.sender_id][row.room_id].append(row.id)

    log_database_operation(logger, "update", "messages", len(rows), reader_id=reader_id)
    return {sender: dict(rooms) for sender, rooms in by_sender.items()}


async def get_unread_count(db: AsyncSession, user_id: str) -> int:
    """사용자가 받은 메시지 중 읽지 않은 메시지 수"""
    result = await db.execute(
        select(func.count(Message.id)).where(
            Message.receiver_id == user_id,
            Message.is_read.is_(False)
        )
    )
    return result.scalar_one()


# =============================================================================
# Clear History
# =============================================================================

async def clear_chat(db: AsyncSession, user_id: str, room_id: str) -> datetime:
    """
    사용자의 대화 비우기 기준 시각을 기록 (이미 있으면 갱신)

    동시에 같은 기록을 만들다 unique 제약에 걸리면 한 번 더 갱신을 시도합니다.
    """
    cleared_at = datetime.utcnow()

    for attempt in range(2):
        marker = await get_deletion_marker(db, user_id, room_id)
        if marker is None:
            db.add(DeletedChat(user_id=user_id, room_id=room_id, deleted_at=cleared_at))
        else:
            marker.deleted_at = cleared_at

        try:
            await db.commit()
            break
        except IntegrityError:
            await db.rollback()
            if attempt == 1:
                raise

    log_database_operation(logger, "upsert", "deleted_chats", 1, user_id=user_id, room_id=room_id)
    return cleared_at
