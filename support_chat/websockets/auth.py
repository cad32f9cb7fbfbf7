from typing import Any, Optional
from urllib.parse import parse_qs
import logging

from socketio.exceptions import ConnectionRefusedError

from support_chat.schemas.user import Principal
from support_chat.utils.auth import principal_from_token

logger = logging.getLogger(__name__)


def extract_token(environ: Any, auth: Any = None) -> Optional[str]:
    """
    Socket.IO 연결에서 JWT 토큰 추출

    auth.token을 우선 사용하고, 없으면 ?token= 쿼리스트링, Authorization 헤더 순으로 찾습니다.
    """
    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token

    scope: Any = environ
    if isinstance(environ, dict) and isinstance(environ.get("asgi.scope"), dict):
        scope = environ["asgi.scope"]

    if not isinstance(scope, dict):
        return None

    query_string = scope.get("query_string", scope.get("QUERY_STRING", ""))
    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    token = parse_qs(str(query_string)).get("token", [None])[0]
    if isinstance(token, str) and token:
        return token

    header = environ.get("HTTP_AUTHORIZATION") if isinstance(environ, dict) else None
    if isinstance(header, str) and header.startswith("Bearer "):
        return header

    return None


def authenticate_socket(environ: Any, auth: Any = None) -> Principal:
    """
    Socket.IO 연결 인증

    Raises:
        ConnectionRefusedError: 토큰이 없거나 유효하지 않은 경우 ("unauthorized")
    """
    token = extract_token(environ, auth)
    if not token:
        logger.warning("No token provided for socket connection")
        raise ConnectionRefusedError("unauthorized")

    principal = principal_from_token(token)
    if principal is None:
        logger.warning("Invalid token provided for socket connection")
        raise ConnectionRefusedError("unauthorized")

    logger.info(f"Socket authentication successful for user: {principal.id}")
    return principal
