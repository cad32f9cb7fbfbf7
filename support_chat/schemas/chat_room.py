from datetime import datetime
from typing import Optional, List
from pydantic import Field

from .message import WireModel


class ChatRoomResponse(WireModel):
    """고객 채팅방 응답 스키마"""
    id: str = Field(..., description="채팅방 ID")
    customer_id: str = Field(..., description="고객 ID")
    admin_id: Optional[str] = Field(None, description="배정된 관리자 ID")
    room_name: str = Field(..., description="채팅방 이름 (room_<customerId>)")
    is_active: bool = Field(True, description="활성화 상태")
    last_message_at: Optional[datetime] = Field(None, description="마지막 메시지 시각")
    created_at: Optional[datetime] = Field(None, description="생성일시")
    updated_at: Optional[datetime] = Field(None, description="수정일시")
    customer_email: Optional[str] = Field(None, description="고객 이메일 (관리자 목록 조회 시)")

    @classmethod
    def from_room(cls, room, include_customer: bool = False) -> "ChatRoomResponse":
        response = cls.model_validate(room)
        customer = room.__dict__.get("customer") if include_customer else None
        if customer is not None:
            response.customer_email = customer.email
        return response


class RoomEnvelope(WireModel):
    """단일 채팅방 응답"""
    success: bool = True
    room: ChatRoomResponse


class RoomListResponse(WireModel):
    """관리자용 활성 채팅방 목록"""
    success: bool = True
    rooms: List[ChatRoomResponse]
