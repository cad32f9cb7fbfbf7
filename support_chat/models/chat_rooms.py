import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from support_chat.database.mysql import Base


def room_name_for_customer(customer_id: str) -> str:
    """고객 ID로부터 결정되는 채팅방 이름 (동시 생성 시 unique 제약으로 중복 방지)"""
    return f"room_{customer_id}"


class ChatRoom(Base):
    __tablename__ = "chat_rooms"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True, index=True)
    admin_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    room_name = Column(String(64), nullable=False, unique=True)
    is_active = Column(Boolean, default=True)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    customer = relationship("User", foreign_keys=[customer_id])
    admin = relationship("User", foreign_keys=[admin_id])

    def __repr__(self):
        return f"<ChatRoom(id={self.id}, customer_id={self.customer_id}, admin_id={self.admin_id})>"
