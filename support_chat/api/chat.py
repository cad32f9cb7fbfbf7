from typing import Annotated

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from support_chat.core.config import settings
from support_chat.core.errors import (
    AccessDeniedException,
    RoomNotFoundException,
    room_access_denied_error,
)
from support_chat.database.mysql import get_async_session
from support_chat.database.redis import is_redis_enabled
from support_chat.schemas.chat_room import ChatRoomResponse, RoomEnvelope, RoomListResponse
from support_chat.schemas.message import (
    ClearChatResponse,
    FileUploadResponse,
    FileUrlResponse,
    MarkAsReadPayload,
    MarkAsReadResponse,
    MessageEnvelope,
    MessageListResponse,
    SuccessResponse,
    UnreadCountResponse,
)
from support_chat.schemas.user import Principal
from support_chat.services import chat_room_service, file_service, message_service
from support_chat.services.online_status_service import OnlineStatusService
from support_chat.utils.auth import get_current_principal, require_admin
from support_chat.websockets.runtime import ChatRuntime

router = APIRouter(prefix="/chat", tags=["Chat"])


def get_chat_runtime() -> ChatRuntime:
    """프로세스 전역 실시간 채팅 구성 요소"""
    from support_chat.websockets.server import runtime
    return runtime


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
AdminPrincipal = Annotated[Principal, Depends(require_admin)]
Runtime = Annotated[ChatRuntime, Depends(get_chat_runtime)]
Session = Annotated[AsyncSession, Depends(get_async_session)]


@router.get("/my-room", response_model=RoomEnvelope)
async def get_my_room(principal: CurrentPrincipal, runtime: Runtime) -> RoomEnvelope:
    """
    고객의 채팅방 조회 (없으면 관리자를 배정해 생성)
    """
    if principal.is_admin:
        raise AccessDeniedException("Access denied. Customer only.")

    room = await runtime.resolver.get_or_create_room_for_customer(principal.id)
    return RoomEnvelope(room=ChatRoomResponse.from_room(room))


@router.get("/history/{room_id}", response_model=MessageListResponse)
async def get_chat_history(
    room_id: str,
    principal: CurrentPrincipal,
    db: Session,
    limit: int = Query(settings.history_limit, ge=1, le=500),
    offset: int = Query(0, ge=0)
) -> MessageListResponse:
    """
    채팅방 대화 기록 조회

    - 관리자는 모든 채팅방, 고객은 자신의 채팅방만 조회할 수 있습니다.
    - 대화를 비운 적이 있으면 그 이후의 메시지만 반환됩니다.
    """
    room = await chat_room_service.find_chat_room_by_id(db, room_id)
    if room is None:
        raise RoomNotFoundException(room_id)

    if not principal.is_admin and room.customer_id != principal.id:
        raise room_access_denied_error(room_id)

    messages = await message_service.get_chat_history(db, room_id, principal.id, limit=limit, offset=offset)

    return MessageListResponse(
        messages=[MessageEnvelope.from_message(message) for message in messages],
        limit=limit,
        offset=offset
    )


@router.post("/messages/read", response_model=MarkAsReadResponse)
async def mark_messages_as_read(
    payload: MarkAsReadPayload,
    principal: CurrentPrincipal,
    runtime: Runtime
) -> MarkAsReadResponse:
    """
    메시지 읽음 처리 (받은 메시지만 처리되며 발신자에게 message_read 전송)
    """
    result = await runtime.router.mark_messages_as_read(payload.message_ids, principal.id, payload.room_id)
    return MarkAsReadResponse(message_ids=result["message_ids"], read_at=result["read_at"])


@router.post("/clear/{room_id}", response_model=ClearChatResponse)
async def clear_chat(room_id: str, principal: CurrentPrincipal, runtime: Runtime) -> ClearChatResponse:
    """
    대화 비우기 (본인 화면에서만, 이후 메시지는 계속 보임)
    """
    cleared_at = await runtime.router.clear_room_for_user(principal.id, room_id, is_admin=principal.is_admin)
    return ClearChatResponse(room_id=room_id, cleared_at=cleared_at)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(principal: CurrentPrincipal, db: Session) -> UnreadCountResponse:
    count = await message_service.get_unread_count(db, principal.id)
    return UnreadCountResponse(count=count)


@router.get("/admin/rooms", response_model=RoomListResponse)
async def get_active_rooms(admin: AdminPrincipal, db: Session) -> RoomListResponse:
    """
    활성 채팅방 목록 (관리자 전용, 최근 메시지 순)
    """
    rooms = await chat_room_service.get_active_chat_rooms(db)
    return RoomListResponse(
        rooms=[ChatRoomResponse.from_room(room, include_customer=True) for room in rooms]
    )


@router.delete("/admin/close/{room_id}", response_model=SuccessResponse)
async def close_room(room_id: str, admin: AdminPrincipal, runtime: Runtime) -> SuccessResponse:
    """
    채팅방 종료 (관리자 전용)

    채팅방과 모든 메시지, 대화 비우기 기록이 함께 삭제되고
    입장해 있던 연결에는 room_closed가 전송됩니다.
    """
    await runtime.close_room(room_id)
    return SuccessResponse(message="Chat room and history deleted successfully")


@router.post("/upload", response_model=FileUploadResponse)
async def upload_file(
    principal: CurrentPrincipal,
    file: UploadFile = File(...)
) -> FileUploadResponse:
    """
    첨부 파일 업로드

    응답의 fileKey/fileName/fileSize/fileType을 send_message(messageType="file")에 그대로 사용합니다.
    """
    uploaded = await file_service.upload_chat_file(file, principal.id)
    return FileUploadResponse(**uploaded)


@router.get("/file-url", response_model=FileUrlResponse)
async def get_file_url(principal: CurrentPrincipal, key: str = Query(..., min_length=1)) -> FileUrlResponse:
    url = await file_service.generate_signed_url(key)
    return FileUrlResponse(url=url, expires_in=settings.signed_url_expires_seconds)


@router.get("/presence/{user_id}")
async def get_presence(user_id: str, principal: CurrentPrincipal, runtime: Runtime):
    """
    사용자 접속 상태 조회

    실시간 접속 여부는 프로세스 메모리 기준이며, Redis가 설정된 경우 마지막 접속 시간도 함께 반환합니다.
    """
    is_online = runtime.presence.is_user_connected(user_id)
    last_seen = None

    if is_redis_enabled():
        status_data = await OnlineStatusService.get_user_status(user_id)
        if status_data:
            last_seen = status_data.get("last_seen") or status_data.get("last_activity")

    return {
        "success": True,
        "userId": user_id,
        "isOnline": is_online,
        "lastSeen": last_seen
    }
