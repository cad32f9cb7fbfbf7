from .users import User
from .chat_rooms import ChatRoom
from .messages import Message
from .deleted_chats import DeletedChat

__all__ = [
    "User",
    "ChatRoom",
    "Message",
    "DeletedChat",
]
