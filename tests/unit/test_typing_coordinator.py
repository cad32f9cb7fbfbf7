import pytest

from support_chat.websockets.participants import RoomParticipantCache, RoomParticipants
from support_chat.websockets.presence import PresenceRegistry
from support_chat.websockets.typing_coordinator import TypingCoordinator


@pytest.fixture
def typing_setup(transport, scheduler):
    presence = PresenceRegistry()
    presence.register_connection("sid-customer", "customer-1", "customer")
    presence.register_connection("sid-admin", "admin-1", "admin")

    participants = RoomParticipantCache()
    participants.put("room-1", RoomParticipants(customer_id="customer-1", admin_id="admin-1"))

    coordinator = TypingCoordinator(presence, participants, transport, scheduler, timeout=2.0)
    return coordinator, participants


def typing_events(transport, connection_id):
    return transport.events_for(connection_id, "user_typing")


class TestTypingCoordinator:
    """입력 중 표시 테스트"""

    @pytest.mark.asyncio
    async def test_typing_is_sent_to_other_participant_only(self, typing_setup, transport):
        coordinator, _ = typing_setup

        await coordinator.set_typing("room-1", "customer-1", True)

        assert typing_events(transport, "sid-admin") == [
            {"roomId": "room-1", "userId": "customer-1", "isTyping": True}
        ]
        assert typing_events(transport, "sid-customer") == []

    @pytest.mark.asyncio
    async def test_auto_expiry_emits_exactly_one_false(self, typing_setup, transport, scheduler):
        coordinator, _ = typing_setup

        await coordinator.set_typing("room-1", "customer-1", True)
        await scheduler.advance(2.0)
        await scheduler.advance(5.0)

        events = typing_events(transport, "sid-admin")
        assert [event["isTyping"] for event in events] == [True, False]
        assert coordinator.is_typing("room-1", "customer-1") is False

    @pytest.mark.asyncio
    async def test_repeated_true_rearms_timer(self, typing_setup, transport, scheduler):
        coordinator, _ = typing_setup

        await coordinator.set_typing("room-1", "customer-1", True)
        await scheduler.advance(1.5)
        await coordinator.set_typing("room-1", "customer-1", True)
        await scheduler.advance(1.5)

        assert [e["isTyping"] for e in typing_events(transport, "sid-admin")] == [True, True]
        assert scheduler.pending == 1

        await scheduler.advance(0.5)
        assert [e["isTyping"] for e in typing_events(transport, "sid-admin")] == [True, True, False]
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_explicit_false_cancels_timer(self, typing_setup, transport, scheduler):
        coordinator, _ = typing_setup

        await coordinator.set_typing("room-1", "customer-1", True)
        await coordinator.set_typing("room-1", "customer-1", False)
        await scheduler.advance(3.0)

        assert [e["isTyping"] for e in typing_events(transport, "sid-admin")] == [True, False]

    @pytest.mark.asyncio
    async def test_clear_only_emits_when_typing(self, typing_setup, transport):
        coordinator, _ = typing_setup

        await coordinator.clear("room-1", "customer-1")
        assert typing_events(transport, "sid-admin") == []

        await coordinator.set_typing("room-1", "customer-1", True)
        await coordinator.clear("room-1", "customer-1")
        assert [e["isTyping"] for e in typing_events(transport, "sid-admin")] == [True, False]

    @pytest.mark.asyncio
    async def test_cache_miss_is_silent(self, typing_setup, transport, scheduler):
        coordinator, participants = typing_setup
        participants.evict("room-1")

        await coordinator.set_typing("room-1", "customer-1", True)
        await scheduler.advance(2.0)

        assert transport.emitted == []

    @pytest.mark.asyncio
    async def test_clear_all_for_user(self, typing_setup, transport, scheduler):
        coordinator, participants = typing_setup
        participants.put("room-2", RoomParticipants(customer_id="customer-2", admin_id="admin-1"))

        await coordinator.set_typing("room-1", "admin-1", True)
        await coordinator.set_typing("room-2", "admin-1", True)
        transport.clear()

        await coordinator.clear_all_for_user("admin-1")
        await scheduler.advance(2.0)

        assert typing_events(transport, "sid-customer") == [
            {"roomId": "room-1", "userId": "admin-1", "isTyping": False}
        ]
        assert coordinator.is_typing("room-1", "admin-1") is False
        assert coordinator.is_typing("room-2", "admin-1") is False

    @pytest.mark.asyncio
    async def test_clear_room_cancels_without_emitting(self, typing_setup, transport, scheduler):
        coordinator, _ = typing_setup

        await coordinator.set_typing("room-1", "customer-1", True)
        transport.clear()

        coordinator.clear_room("room-1")
        await scheduler.advance(2.0)

        assert transport.emitted == []
        assert scheduler.pending == 0
