"""
실시간 채팅 모듈

python-socketio 서버 위에서 고객 지원 채팅의 실시간 기능을 제공합니다.

주요 구성 요소:
- presence: 연결 ↔ 사용자 인덱스
- room_resolver: 고객 채팅방 조회/생성
- message_router: 메시지 검증, 저장, 전달
- typing_coordinator: 입력 중 표시
- lifecycle: 접속/해제 처리
- handlers: Socket.IO 이벤트 핸들러
"""

from .presence import PresenceRegistry, Connection
from .participants import RoomParticipantCache, RoomParticipants
from .runtime import ChatRuntime, build_chat_runtime

__all__ = [
    "PresenceRegistry",
    "Connection",
    "RoomParticipantCache",
    "RoomParticipants",
    "ChatRuntime",
    "build_chat_runtime"
]
