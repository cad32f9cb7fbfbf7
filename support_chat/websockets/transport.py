from typing import Any, Optional, Protocol

import socketio


class Transport(Protocol):
    """실시간 코어가 사용하는 전송 계층 인터페이스"""

    async def emit(self, event: str, data: Any, to: str) -> None: ...

    async def enter_channel(self, connection_id: str, channel: str) -> None: ...

    async def leave_channel(self, connection_id: str, channel: str) -> None: ...

    def is_in_channel(self, connection_id: str, channel: str) -> bool: ...


class SocketIOTransport:
    """python-socketio AsyncServer 어댑터 (채널 = Socket.IO room)"""

    def __init__(self, sio: socketio.AsyncServer, namespace: Optional[str] = None):
        self.sio = sio
        self.namespace = namespace or "/"

    async def emit(self, event: str, data: Any, to: str) -> None:
        await self.sio.emit(event, data, to=to, namespace=self.namespace)

    async def enter_channel(self, connection_id: str, channel: str) -> None:
        await self.sio.enter_room(connection_id, channel, namespace=self.namespace)

    async def leave_channel(self, connection_id: str, channel: str) -> None:
        await self.sio.leave_room(connection_id, channel, namespace=self.namespace)

    def is_in_channel(self, connection_id: str, channel: str) -> bool:
        try:
            return channel in self.sio.rooms(connection_id, namespace=self.namespace)
        except KeyError:
            return False
