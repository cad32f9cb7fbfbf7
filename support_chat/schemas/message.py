from datetime import datetime
from typing import Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
)
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated


class WireModel(BaseModel):
    """실시간 채널/HTTP 응답 공통 스키마 (camelCase 필드명)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def _coerce_id(value: Any) -> Any:
    # 클라이언트가 숫자 ID를 보내는 경우도 허용
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


# =============================================================================
# Inbound payloads
# =============================================================================

class _SendMessageBase(WireModel):
    """send_message 이벤트 공통 필드"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    room_id: Optional[str] = Field(None, description="대상 채팅방 ID (관리자 전용)")
    message: Optional[str] = Field(None, description="메시지 본문")
    receiver_id: Optional[str] = Field(None, description="수신자 ID (생략 시 상대 참여자)")

    _coerce_ids = field_validator("room_id", "receiver_id", mode="before")(_coerce_id)


class TextMessagePayload(_SendMessageBase):
    """텍스트 메시지"""
    message_type: Literal["text"] = "text"


class FileMessagePayload(_SendMessageBase):
    """파일 메시지 (파일 자체는 오브젝트 스토리지의 불투명 키로만 다룸)"""
    message_type: Literal["file"]
    file_key: str = Field(..., min_length=1, description="오브젝트 스토리지 키")
    file_name: str = Field(..., min_length=1, description="원본 파일명")
    file_size: Optional[int] = Field(None, ge=0, description="파일 크기 (bytes)")
    file_type: Optional[str] = Field(None, description="MIME 타입")


def _message_kind(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("messageType", value.get("message_type", "text"))
    return getattr(value, "message_type", None)


SendMessagePayload = Annotated[
    Union[
        Annotated[TextMessagePayload, Tag("text")],
        Annotated[FileMessagePayload, Tag("file")],
    ],
    Discriminator(_message_kind),
]

send_message_adapter = TypeAdapter(SendMessagePayload)


class TypingPayload(WireModel):
    """typing 이벤트"""
    room_id: Optional[str] = None
    is_typing: bool = False

    _coerce_room_id = field_validator("room_id", mode="before")(_coerce_id)


class MarkAsReadPayload(WireModel):
    """mark_as_read 이벤트 / 읽음 처리 요청"""
    message_ids: List[str] = Field(..., description="읽음 처리할 메시지 ID 목록")
    room_id: Optional[str] = None

    _coerce_room_id = field_validator("room_id", mode="before")(_coerce_id)

    @field_validator("message_ids", mode="before")
    @classmethod
    def _coerce_message_ids(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_coerce_id(item) for item in value]
        return value


# =============================================================================
# Outbound payloads
# =============================================================================

class MessageEnvelope(WireModel):
    """receive_message / message_sent / chat_history 메시지 형식"""
    id: str
    room_id: str
    sender_id: str
    sender_email: Optional[str] = None
    receiver_id: str
    message: str
    message_type: str
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime
    file_key: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None

    @classmethod
    def from_message(cls, message, sender_email: Optional[str] = None) -> "MessageEnvelope":
        sender = message.__dict__.get("sender")  # 로드되지 않은 relationship은 건드리지 않음
        return cls(
            id=message.id,
            room_id=message.room_id,
            sender_id=message.sender_id,
            sender_email=sender.email if sender is not None else sender_email,
            receiver_id=message.receiver_id,
            message=message.message,
            message_type=message.message_type,
            is_read=bool(message.is_read),
            read_at=message.read_at,
            created_at=message.created_at,
            file_key=message.file_key,
            file_name=message.file_name,
            file_size=message.file_size,
            file_type=message.file_type,
        )


class ChatHistory(WireModel):
    """chat_history 이벤트"""
    room_id: str
    messages: List[MessageEnvelope]


class SendResult(BaseModel):
    """메시지 전송 결과 (전송 계층에서 ack로 변환)"""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, message_id: str) -> "SendResult":
        return cls(success=True, message_id=message_id)

    @classmethod
    def failure(cls, error: str) -> "SendResult":
        return cls(success=False, error=error)

    def to_ack(self) -> dict:
        if self.success:
            return {"success": True, "messageId": self.message_id}
        return {"success": False, "error": self.error}


class MessageListResponse(WireModel):
    """대화 기록 조회 응답"""
    success: bool = True
    messages: List[MessageEnvelope]
    limit: int
    offset: int


class UnreadCountResponse(WireModel):
    """읽지 않은 메시지 수 응답"""
    success: bool = True
    count: int


class MarkAsReadResponse(WireModel):
    """읽음 처리 응답"""
    success: bool = True
    message_ids: List[str] = Field(default_factory=list, description="새로 읽음 처리된 메시지 ID")
    read_at: Optional[datetime] = None


class ClearChatResponse(WireModel):
    """대화 비우기 응답"""
    success: bool = True
    room_id: str
    cleared_at: datetime


class SuccessResponse(WireModel):
    success: bool = True
    message: Optional[str] = None


class FileUploadResponse(WireModel):
    """파일 업로드 응답 (send_message의 파일 필드로 그대로 사용)"""
    success: bool = True
    file_key: str
    file_name: str
    file_size: int
    file_type: Optional[str] = None


class FileUrlResponse(WireModel):
    success: bool = True
    url: str
    expires_in: int
