import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean
from support_chat.database.mysql import Base

USER_ROLE_CUSTOMER = "customer"
USER_ROLE_ADMIN = "admin"


class User(Base):
    """외부 인증 서비스 사용자 정보의 로컬 사본 (관리자 배정, 발신자 표시용)"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, default=USER_ROLE_CUSTOMER, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == USER_ROLE_ADMIN

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
