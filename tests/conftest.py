import pytest
import pytest_asyncio
from collections import defaultdict
from datetime import datetime
from types import SimpleNamespace
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from support_chat.main import app
from support_chat.api.chat import get_chat_runtime
from support_chat.core.config import settings
from support_chat.database.mysql import Base, get_async_session
from support_chat.models.users import User, USER_ROLE_ADMIN, USER_ROLE_CUSTOMER
from support_chat.schemas.user import Principal
from support_chat.websockets.runtime import build_chat_runtime


# 테스트용 인메모리 SQLite 데이터베이스 설정
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeTransport:
    """
    전송 계층 테스트 더블

    채널로 보낸 이벤트는 전송 시점의 채널 구성원에게 전달된 것으로 기록합니다.
    """

    def __init__(self):
        self.emitted = []  # (event, data, to)
        self.deliveries = []  # (connection_id, event, data)
        self.channels = defaultdict(set)

    async def emit(self, event, data, to):
        self.emitted.append((event, data, to))
        members = self.channels.get(to)
        if members:
            for connection_id in sorted(members):
                self.deliveries.append((connection_id, event, data))
        elif to not in self.channels:
            self.deliveries.append((to, event, data))

    async def enter_channel(self, connection_id, channel):
        self.channels[channel].add(connection_id)

    async def leave_channel(self, connection_id, channel):
        self.channels[channel].discard(connection_id)

    def is_in_channel(self, connection_id, channel):
        return connection_id in self.channels.get(channel, ())

    def events_for(self, connection_id, event=None):
        """연결이 받은 이벤트 payload 목록"""
        return [
            data for target, name, data in self.deliveries
            if target == connection_id and (event is None or name == event)
        ]

    def sent_to(self, to, event=None):
        """to(연결 또는 채널)로 직접 보낸 이벤트 payload 목록"""
        return [
            data for name, data, target in self.emitted
            if target == to and (event is None or name == event)
        ]

    def clear(self):
        self.emitted.clear()
        self.deliveries.clear()


class _ManualHandle:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """시간을 직접 진행시키는 스케줄러"""

    def __init__(self):
        self.now = 0.0
        self._handles = []

    def call_later(self, delay, callback):
        handle = _ManualHandle(self.now + delay, callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self):
        return len([handle for handle in self._handles if not handle.cancelled])

    async def advance(self, seconds):
        self.now += seconds
        due = sorted(
            [handle for handle in self._handles if not handle.cancelled and handle.when <= self.now],
            key=lambda handle: handle.when
        )
        self._handles = [handle for handle in self._handles if handle not in due and not handle.cancelled]
        for handle in due:
            await handle.callback()


def make_token(user_id: str, email: str = None, role: str = USER_ROLE_CUSTOMER) -> str:
    return jwt.encode(
        {"sub": user_id, "email": email, "role": role},
        settings.secret_key,
        algorithm=settings.algorithm
    )


@pytest_asyncio.fixture
async def test_engine():
    """테스트용 비동기 데이터베이스 엔진 생성"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """테스트용 데이터베이스 세션"""
    async with session_factory() as session:
        yield session


async def _create_user(session: AsyncSession, email: str, role: str, created_at: datetime, is_active: bool = True) -> User:
    user = User(email=email, role=role, is_active=is_active, created_at=created_at)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(test_session) -> User:
    """가장 먼저 가입한 관리자"""
    return await _create_user(test_session, "admin@example.com", USER_ROLE_ADMIN, datetime(2024, 1, 1))


@pytest_asyncio.fixture
async def second_admin(test_session) -> User:
    return await _create_user(test_session, "admin2@example.com", USER_ROLE_ADMIN, datetime(2024, 1, 2))


@pytest_asyncio.fixture
async def customer_user(test_session) -> User:
    return await _create_user(test_session, "customer@example.com", USER_ROLE_CUSTOMER, datetime(2024, 2, 1))


@pytest_asyncio.fixture
async def other_customer(test_session) -> User:
    return await _create_user(test_session, "other@example.com", USER_ROLE_CUSTOMER, datetime(2024, 2, 2))


@pytest.fixture
def principal_of():
    def _principal(user: User) -> Principal:
        return Principal(id=user.id, email=user.email, role=user.role)
    return _principal


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest_asyncio.fixture
async def runtime(session_factory, transport, scheduler):
    return build_chat_runtime(session_factory, transport, scheduler=scheduler)


@pytest_asyncio.fixture
async def client(session_factory, runtime) -> AsyncGenerator[AsyncClient, None]:
    """테스트용 비동기 HTTP 클라이언트"""
    async def get_test_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = get_test_session
    app.dependency_overrides[get_chat_runtime] = lambda: runtime

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def token_for():
    def _token(user: User) -> str:
        return make_token(user.id, user.email, user.role)
    return _token


@pytest.fixture
def auth_headers(token_for):
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {token_for(user)}"}
    return _headers


@pytest_asyncio.fixture
async def connected_chat(runtime, transport, admin_user, customer_user, principal_of):
    """관리자와 고객이 각각 한 번씩 접속한 상태 (관리자는 채팅방에 입장하지 않음)"""
    await runtime.lifecycle.on_connect("sid-admin", principal_of(admin_user))
    await runtime.lifecycle.on_connect("sid-customer", principal_of(customer_user))

    room_id = runtime.presence.get_connection("sid-customer").room_id
    room = await runtime.resolver.get_room(room_id)
    transport.clear()

    return SimpleNamespace(
        room=room,
        admin=admin_user,
        customer=customer_user,
        admin_sid="sid-admin",
        customer_sid="sid-customer"
    )
