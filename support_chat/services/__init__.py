"""
Services layer for data access and external communications.

This layer handles:
- Database queries and operations
- Online status mirroring (Redis)
- Object storage operations
"""

from . import chat_room_service
from . import message_service
from . import online_status_service
from . import file_service

__all__ = [
    "chat_room_service",
    "message_service",
    "online_status_service",
    "file_service"
]
