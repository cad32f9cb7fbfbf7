import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, Integer, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from support_chat.database.mysql import Base, PreciseDateTime

MESSAGE_TYPE_TEXT = "text"
MESSAGE_TYPE_FILE = "file"


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_room_created", "room_id", "created_at"),  # For room message history
        Index("ix_messages_receiver_read", "receiver_id", "is_read"),  # For unread counts
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    room_id = Column(String(36), ForeignKey("chat_rooms.id"), nullable=False)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    receiver_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    message = Column(Text, nullable=False)
    message_type = Column(String(10), nullable=False, default=MESSAGE_TYPE_TEXT)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(PreciseDateTime, nullable=True)
    file_key = Column(String(512), nullable=True)
    file_name = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=True)
    file_type = Column(String(127), nullable=True)
    created_at = Column(PreciseDateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    sender = relationship("User", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])

    def __repr__(self):
        return f"<Message(id={self.id}, room_id={self.room_id}, sender_id={self.sender_id}, type={self.message_type})>"
