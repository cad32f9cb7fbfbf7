from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class RoomParticipants:
    """채팅방 참여자 쌍 (관리자는 미배정일 수 있음)"""
    customer_id: str
    admin_id: Optional[str] = None

    def other_than(self, user_id: str) -> Optional[str]:
        """user_id가 아닌 상대 참여자. 고객이 아니면 관리자 쪽으로 간주합니다."""
        if user_id == self.customer_id:
            return self.admin_id
        return self.customer_id

    def __contains__(self, user_id: object) -> bool:
        return user_id is not None and user_id in (self.customer_id, self.admin_id)


class RoomParticipantCache:
    """{room_id: RoomParticipants} 메모리 캐시"""

    def __init__(self):
        self._entries: Dict[str, RoomParticipants] = {}

    def get(self, room_id: Optional[str]) -> Optional[RoomParticipants]:
        if room_id is None:
            return None
        return self._entries.get(room_id)

    def put(self, room_id: str, participants: RoomParticipants) -> RoomParticipants:
        self._entries[room_id] = participants
        return participants

    def remember(self, room) -> RoomParticipants:
        """ChatRoom 모델로부터 참여자 정보를 캐시합니다."""
        return self.put(room.id, RoomParticipants(customer_id=room.customer_id, admin_id=room.admin_id))

    def evict(self, room_id: str) -> Optional[RoomParticipants]:
        return self._entries.pop(room_id, None)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
