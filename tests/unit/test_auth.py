import pytest
from jose import jwt
from socketio.exceptions import ConnectionRefusedError

from support_chat.core.config import settings
from support_chat.core.errors import AccessDeniedException, AuthenticationException
from support_chat.utils.auth import (
    decode_access_token,
    get_current_principal,
    principal_from_payload,
    require_admin,
)
from support_chat.schemas.user import Principal
from support_chat.websockets.auth import authenticate_socket, extract_token


def make_token(user_id, email=None, role="customer"):
    return jwt.encode({"sub": user_id, "email": email, "role": role}, settings.secret_key, algorithm=settings.algorithm)


class TestAuthUtils:
    """인증 유틸리티 테스트"""

    def test_decode_token(self):
        token = make_token("user-1", "user@example.com", "customer")

        decoded = decode_access_token(token)

        assert decoded["sub"] == "user-1"
        assert decoded["email"] == "user@example.com"

    def test_decode_bearer_prefixed_token(self):
        token = make_token("user-1")

        assert decode_access_token(f"Bearer {token}")["sub"] == "user-1"

    def test_invalid_token_decode(self):
        """잘못된 토큰 디코딩 테스트"""
        assert decode_access_token("invalid.token.here") is None
        assert decode_access_token(None) is None

    def test_principal_from_role_claim(self):
        principal = principal_from_payload({"sub": "1", "email": "a@example.com", "role": "admin"})

        assert principal == Principal(id="1", email="a@example.com", role="admin")
        assert principal.is_admin

    def test_principal_from_legacy_claims(self):
        assert principal_from_payload({"id": 7, "userType": "admin"}).role == "admin"
        assert principal_from_payload({"userId": "7", "isAdmin": True}).role == "admin"
        assert principal_from_payload({"sub": "7"}).role == "customer"
        assert principal_from_payload({"id": 7}).id == "7"

    def test_principal_without_subject(self):
        assert principal_from_payload({"email": "a@example.com"}) is None
        assert principal_from_payload(None) is None

    @pytest.mark.asyncio
    async def test_get_current_principal(self):
        principal = await get_current_principal(make_token("user-1", role="admin"))

        assert principal.id == "user-1"

    @pytest.mark.asyncio
    async def test_get_current_principal_rejects_missing_token(self):
        with pytest.raises(AuthenticationException):
            await get_current_principal(None)

        with pytest.raises(AuthenticationException):
            await get_current_principal("garbage")

    @pytest.mark.asyncio
    async def test_require_admin(self):
        customer = Principal(id="1", role="customer")

        with pytest.raises(AccessDeniedException):
            await require_admin(customer)


class TestSocketAuth:
    """실시간 연결 인증 테스트"""

    def test_token_from_auth_payload(self):
        assert extract_token({}, {"token": "abc"}) == "abc"

    def test_token_from_query_string(self):
        assert extract_token({"QUERY_STRING": "EIO=4&token=abc"}) == "abc"
        assert extract_token({"asgi.scope": {"query_string": b"token=xyz"}}) == "xyz"

    def test_token_from_authorization_header(self):
        assert extract_token({"HTTP_AUTHORIZATION": "Bearer abc"}) == "Bearer abc"

    def test_auth_payload_takes_precedence(self):
        environ = {"QUERY_STRING": "token=from-query"}

        assert extract_token(environ, {"token": "from-auth"}) == "from-auth"

    def test_no_token(self):
        assert extract_token({}) is None
        assert extract_token({"HTTP_AUTHORIZATION": "Basic abc"}) is None

    def test_authenticate_socket(self):
        token = make_token("user-1", "user@example.com", "admin")

        principal = authenticate_socket({}, {"token": token})

        assert principal.id == "user-1"
        assert principal.is_admin

    def test_authenticate_socket_rejects(self):
        with pytest.raises(ConnectionRefusedError):
            authenticate_socket({}, None)

        with pytest.raises(ConnectionRefusedError):
            authenticate_socket({}, {"token": "invalid"})
