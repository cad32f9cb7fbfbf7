from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """실시간 연결 정보 (프로세스 메모리에만 존재)"""
    connection_id: str
    user_id: str
    role: str
    email: Optional[str] = None
    room_id: Optional[str] = None
    channel: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class PresenceRegistry:
    """
    연결 ↔ 사용자 양방향 인덱스

    한 사용자가 여러 기기로 접속하면 살아 있는 연결을 모두 접속 순서대로 보관하고,
    사용자 → 연결 방향은 그중 마지막 연결을 가리킵니다.
    모든 변경은 동기적으로 처리되므로 await 사이에 부분적으로 갱신된 상태가 보이지 않습니다.
    """

    def __init__(self):
        # 연결별 정보: {connection_id: Connection}
        self.connections: Dict[str, Connection] = {}
        # 사용자별 살아 있는 연결 (오래된 순): {user_id: [connection_id, ...]}
        self.user_connections: Dict[str, List[str]] = {}

    def register_connection(
        self,
        connection_id: str,
        user_id: str,
        role: str,
        email: Optional[str] = None
    ) -> Connection:
        """새 연결을 등록합니다. 같은 connection_id로 다시 호출하면 기존 정보를 갱신합니다."""
        connection = self.connections.get(connection_id)
        if connection is not None and connection.user_id != user_id:
            self._drop_user_mapping(connection)
            connection = None

        if connection is None:
            connection = Connection(connection_id=connection_id, user_id=user_id, role=role, email=email)
            self.connections[connection_id] = connection
        else:
            connection.role = role
            connection.email = email or connection.email

        live = self.user_connections.setdefault(user_id, [])
        if connection_id in live:
            live.remove(connection_id)
        live.append(connection_id)

        logger.info(f"Connection {connection_id} registered for user {user_id} ({role})")
        return connection

    def resolve_connection_for_user(self, user_id: str) -> Optional[str]:
        """사용자의 최근 연결 ID를 반환합니다."""
        live = self.user_connections.get(user_id)
        return live[-1] if live else None

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    def is_admin_connection(self, connection_id: str) -> bool:
        connection = self.connections.get(connection_id)
        return connection is not None and connection.is_admin

    def is_user_connected(self, user_id: str) -> bool:
        return bool(self.user_connections.get(user_id))

    def join_room(self, connection_id: str, room_id: str, channel: Optional[str] = None) -> Optional[Connection]:
        """연결이 입장한 채팅방을 기록합니다."""
        connection = self.connections.get(connection_id)
        if connection is None:
            return None

        connection.room_id = room_id
        connection.channel = channel
        return connection

    def leave_room(self, connection_id: str) -> Optional[str]:
        """연결의 채팅방 기록을 지우고 이전 채널 이름을 반환합니다."""
        connection = self.connections.get(connection_id)
        if connection is None:
            return None

        channel = connection.channel
        connection.room_id = None
        connection.channel = None
        return channel

    def unregister_connection(self, connection_id: str) -> Optional[Connection]:
        """
        연결을 해제합니다.

        사용자의 다른 연결이 남아 있으면 사용자 → 연결 매핑은 남은 연결 중 가장 최근 것을 가리킵니다.
        두 번째 호출부터는 None을 반환합니다.
        """
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return None

        self._drop_user_mapping(connection)

        logger.info(f"Connection {connection_id} unregistered for user {connection.user_id}")
        return connection

    def _drop_user_mapping(self, connection: Connection):
        live = self.user_connections.get(connection.user_id)
        if live is None:
            return
        if connection.connection_id in live:
            live.remove(connection.connection_id)
        if not live:
            del self.user_connections[connection.user_id]

    def customer_connections(self) -> List[Connection]:
        return [connection for connection in self.connections.values() if not connection.is_admin]

    def for_each_customer_connection(self, fn: Callable[[Connection], None]):
        """관리자가 아닌 모든 연결에 대해 fn을 호출합니다."""
        for connection in self.customer_connections():
            fn(connection)

    def has_admin_connection(self) -> bool:
        return any(connection.is_admin for connection in self.connections.values())

    def connections_in_room(self, room_id: str) -> List[Connection]:
        return [connection for connection in self.connections.values() if connection.room_id == room_id]

