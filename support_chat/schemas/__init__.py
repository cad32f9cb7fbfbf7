# User schemas
from .user import Principal

# Chat Room schemas
from .chat_room import (
    ChatRoomResponse,
    RoomEnvelope,
    RoomListResponse
)

# Message schemas
from .message import (
    WireModel,
    TextMessagePayload,
    FileMessagePayload,
    SendMessagePayload,
    send_message_adapter,
    TypingPayload,
    MarkAsReadPayload,
    MessageEnvelope,
    ChatHistory,
    SendResult,
    MessageListResponse,
    UnreadCountResponse,
    SuccessResponse,
    ClearChatResponse,
    MarkAsReadResponse,
    FileUploadResponse,
    FileUrlResponse
)

__all__ = [
    # User
    "Principal",

    # Chat Room
    "ChatRoomResponse",
    "RoomEnvelope",
    "RoomListResponse",

    # Message
    "WireModel",
    "TextMessagePayload",
    "FileMessagePayload",
    "SendMessagePayload",
    "send_message_adapter",
    "TypingPayload",
    "MarkAsReadPayload",
    "MessageEnvelope",
    "ChatHistory",
    "SendResult",
    "MessageListResponse",
    "UnreadCountResponse",
    "SuccessResponse",
    "ClearChatResponse",
    "MarkAsReadResponse",
    "FileUploadResponse",
    "FileUrlResponse",
]
