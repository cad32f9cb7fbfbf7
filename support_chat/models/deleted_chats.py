import uuid
from datetime import datetime
from sqlalchemy import Column, String, ForeignKey, UniqueConstraint
from support_chat.database.mysql import Base, PreciseDateTime


class DeletedChat(Base):
    """사용자별 대화 비우기 기준 시각 (이 시각 이후의 메시지만 조회됨)"""
    __tablename__ = "deleted_chats"
    __table_args__ = (
        UniqueConstraint("user_id", "room_id", name="uq_deleted_chats_user_room"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(String(36), ForeignKey("chat_rooms.id"), nullable=False, index=True)
    deleted_at = Column(PreciseDateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<DeletedChat(user_id={self.user_id}, room_id={self.room_id}, deleted_at={self.deleted_at})>"
