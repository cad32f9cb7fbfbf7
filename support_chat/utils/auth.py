from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from support_chat.core.config import settings
from support_chat.core.errors import AuthenticationException, admin_only_error
from support_chat.schemas.user import Principal

# 토큰 발급은 외부 인증 서비스가 담당하므로 tokenUrl은 문서용
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


def decode_access_token(token: Optional[str]) -> Optional[dict]:
    """JWT 액세스 토큰 디코드 (실패 시 None)"""
    if not token:
        return None

    if token.startswith("Bearer "):
        token = token[len("Bearer "):]

    try:
        return jwt.decode(token.strip(), settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def principal_from_payload(payload: Optional[dict]) -> Optional[Principal]:
    """
    토큰 payload에서 인증 주체 추출

    role 클레임이 없으면 userType / isAdmin 클레임으로 역할을 판단합니다.
    """
    if not payload:
        return None

    user_id = payload.get("sub") or payload.get("id") or payload.get("userId")
    if user_id is None:
        return None

    role = payload.get("role") or payload.get("userType")
    if role not in ("customer", "admin"):
        role = "admin" if payload.get("isAdmin") else "customer"

    return Principal(id=str(user_id), email=payload.get("email"), role=role)


def principal_from_token(token: Optional[str]) -> Optional[Principal]:
    return principal_from_payload(decode_access_token(token))


async def get_current_principal(token: Annotated[Optional[str], Depends(oauth2_scheme)]) -> Principal:
    if token is None:
        raise AuthenticationException("Does not have token")

    principal = principal_from_token(token)
    if principal is None:
        raise AuthenticationException()

    return principal


async def require_admin(principal: Annotated[Principal, Depends(get_current_principal)]) -> Principal:
    """관리자 전용 엔드포인트 의존성"""
    if not principal.is_admin:
        raise admin_only_error()
    return principal
