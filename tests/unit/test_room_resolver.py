import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from support_chat.core.errors import NoAdminAvailableException, PersistenceException
from support_chat.models.chat_rooms import ChatRoom
from support_chat.models.users import User, USER_ROLE_ADMIN
from support_chat.services import chat_room_service
from support_chat.websockets.participants import RoomParticipantCache
from support_chat.websockets.presence import PresenceRegistry
from support_chat.websockets.room_resolver import RoomResolver


@pytest.fixture
def resolver(session_factory):
    return RoomResolver(session_factory, RoomParticipantCache(), PresenceRegistry())


async def count_rooms(session_factory) -> int:
    async with session_factory() as db:
        result = await db.execute(select(func.count()).select_from(ChatRoom))
        return result.scalar_one()


class TestRoomResolution:
    """고객 채팅방 조회/생성 테스트"""

    @pytest.mark.asyncio
    async def test_creates_room_with_deterministic_name(self, resolver, admin_user, customer_user):
        room = await resolver.get_or_create_room_for_customer(customer_user.id)

        assert room.customer_id == customer_user.id
        assert room.admin_id == admin_user.id
        assert room.room_name == f"room_{customer_user.id}"
        assert resolver.participants.get(room.id).customer_id == customer_user.id

    @pytest.mark.asyncio
    async def test_returns_existing_room(self, resolver, session_factory, admin_user, customer_user):
        first = await resolver.get_or_create_room_for_customer(customer_user.id)
        second = await resolver.get_or_create_room_for_customer(customer_user.id)

        assert first.id == second.id
        assert await count_rooms(session_factory) == 1

    @pytest.mark.asyncio
    async def test_concurrent_resolution_creates_one_room(self, resolver, session_factory, admin_user, customer_user):
        rooms = await asyncio.gather(
            *[resolver.get_or_create_room_for_customer(customer_user.id) for _ in range(5)]
        )

        assert len({room.id for room in rooms}) == 1
        assert await count_rooms(session_factory) == 1
        # 고객별 lock은 사용 후 정리됨
        assert resolver._locks == {}

    @pytest.mark.asyncio
    async def test_existing_room_keeps_its_admin(
        self, resolver, test_session, admin_user, second_admin, customer_user
    ):
        await chat_room_service.create_chat_room(test_session, customer_user.id, second_admin.id)

        room = await resolver.get_or_create_room_for_customer(customer_user.id)

        assert room.admin_id == second_admin.id

    @pytest.mark.asyncio
    async def test_concurrent_creation_in_other_process_is_reused(
        self, resolver, test_session, admin_user, customer_user
    ):
        """unique 제약 위반 시 이미 생성된 채팅방을 재조회"""
        existing = await chat_room_service.create_chat_room(test_session, customer_user.id, admin_user.id)
        real_find = chat_room_service.find_chat_room_by_customer
        calls = []

        async def find_after_first_miss(db, customer_id):
            calls.append(customer_id)
            if len(calls) == 1:
                return None
            return await real_find(db, customer_id)

        with patch.object(chat_room_service, "find_chat_room_by_customer", side_effect=find_after_first_miss):
            room = await resolver.get_or_create_room_for_customer(customer_user.id)

        assert room.id == existing.id
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_store_error_becomes_persistence_error(self, resolver, customer_user):
        failing = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))

        with patch.object(chat_room_service, "find_chat_room_by_customer", failing):
            with pytest.raises(PersistenceException):
                await resolver.get_or_create_room_for_customer(customer_user.id)

        assert resolver._locks == {}


class TestAdminAssignment:
    """관리자 배정 정책 테스트"""

    @pytest.mark.asyncio
    async def test_prefers_connected_admin(self, resolver, admin_user, second_admin, customer_user):
        resolver.presence.register_connection("sid-admin-2", second_admin.id, "admin")

        room = await resolver.get_or_create_room_for_customer(customer_user.id)

        assert room.admin_id == second_admin.id

    @pytest.mark.asyncio
    async def test_falls_back_to_oldest_admin(self, resolver, admin_user, second_admin, customer_user):
        room = await resolver.get_or_create_room_for_customer(customer_user.id)

        assert room.admin_id == admin_user.id

    @pytest.mark.asyncio
    async def test_inactive_admin_is_skipped(self, resolver, test_session, admin_user, second_admin, customer_user):
        admin_user.is_active = False
        test_session.add(admin_user)
        await test_session.commit()

        room = await resolver.get_or_create_room_for_customer(customer_user.id)

        assert room.admin_id == second_admin.id

    @pytest.mark.asyncio
    async def test_configured_default_admin(self, session_factory, test_session, customer_user):
        # 비활성 관리자만 있는 경우 설정된 기본 관리자 사용
        fallback = User(email="fallback@example.com", role=USER_ROLE_ADMIN, is_active=False)
        test_session.add(fallback)
        await test_session.commit()

        resolver = RoomResolver(
            session_factory, RoomParticipantCache(), PresenceRegistry(), default_admin_id=fallback.id
        )
        room = await resolver.get_or_create_room_for_customer(customer_user.id)

        assert room.admin_id == fallback.id

    @pytest.mark.asyncio
    async def test_no_admin_available(self, resolver, session_factory, customer_user):
        with pytest.raises(NoAdminAvailableException):
            await resolver.get_or_create_room_for_customer(customer_user.id)

        assert await count_rooms(session_factory) == 0


class TestGetRoom:

    @pytest.mark.asyncio
    async def test_found_room_is_cached(self, resolver, test_session, admin_user, customer_user):
        room = await chat_room_service.create_chat_room(test_session, customer_user.id, admin_user.id)

        loaded = await resolver.get_room(room.id)

        assert loaded.id == room.id
        assert room.id in resolver.participants

    @pytest.mark.asyncio
    async def test_missing_room(self, resolver):
        assert await resolver.get_room("missing") is None
        assert len(resolver.participants) == 0
