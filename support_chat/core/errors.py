from typing import Optional, Dict, Any, List
from fastapi import HTTPException, status
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """HTTP 에러 응답 본문"""
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
    status_code: int


class ValidationError(BaseModel):
    """필드별 검증 실패 정보"""
    field: str
    message: str
    value: Optional[Any] = None


# =============================================================================
# 도메인 예외
# =============================================================================

class BaseCustomException(HTTPException):
    """기본 커스텀 예외 클래스

    HTTP 라우터에서는 그대로 응답으로 변환되고, 실시간 채널에서는
    `message`가 `error` 이벤트와 ack의 에러 문자열로 사용됩니다.
    """
    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error = error
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(status_code=status_code, detail=self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        """HTTP 응답 본문 형식"""
        return {
            "error": self.error,
            "message": self.message,
            "details": self.details,
            "status_code": self.status_code
        }

    def __str__(self) -> str:
        return self.message


class ValidationException(BaseCustomException):
    """요청/이벤트 payload 검증 실패"""
    def __init__(
        self,
        message: str = "Validation failed",
        validation_errors: Optional[List[ValidationError]] = None,
        details: Optional[Dict[str, Any]] = None,
        error: str = "validation_error"
    ):
        self.validation_errors = validation_errors or []
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error=error,
            message=message,
            details=details
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error,
            "message": self.message,
            "details": self.details,
            "validation_errors": [error.model_dump() for error in self.validation_errors],
            "status_code": self.status_code
        }


class EmptyMessageException(ValidationException):
    """빈 메시지 예외"""
    def __init__(self, message: str = "Message cannot be empty"):
        super().__init__(message=message, error="empty_message")


class MessageTooLongException(ValidationException):
    """메시지 길이 초과 예외"""
    def __init__(self, max_length: int, length: int):
        super().__init__(
            message=f"Message too long (max {max_length} characters)",
            error="message_too_long",
            details={"max_length": max_length, "length": length}
        )


class InvalidReceiverException(ValidationException):
    """수신자가 채팅방 참여자가 아닌 경우의 예외"""
    def __init__(self, message: str = "Invalid receiver", receiver_id: Optional[str] = None):
        super().__init__(
            message=message,
            error="invalid_receiver",
            details={"receiver_id": receiver_id} if receiver_id else None
        )


class SelfSendException(ValidationException):
    """자기 자신에게 보내는 메시지 예외"""
    def __init__(self):
        super().__init__(message="Cannot send message to yourself", error="self_send")


class AccessDeniedException(BaseCustomException):
    """채팅방 또는 관리자 기능 접근 거부"""
    def __init__(
        self,
        message: str = "Access denied",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error="access_denied",
            message=message,
            details=details
        )


class AuthenticationException(BaseCustomException):
    """토큰 없음 또는 유효하지 않은 토큰"""
    def __init__(
        self,
        message: str = "Could not validate credentials",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="authentication_error",
            message=message,
            details=details
        )


class ResourceNotFoundException(BaseCustomException):
    """조회 대상 없음"""
    def __init__(
        self,
        resource: str = "Resource",
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if message is None:
            message = f"{resource} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="resource_not_found",
            message=message,
            details=details or {"resource": resource}
        )


class RoomNotFoundException(ResourceNotFoundException):
    """채팅방을 찾을 수 없음 예외"""
    def __init__(self, room_id: Optional[str] = None):
        super().__init__(
            "Chat room",
            message="Chat room not found",
            details={"room_id": room_id} if room_id else None
        )


class PersistenceException(BaseCustomException):
    """저장소 사용 불가 또는 쓰기 실패 예외"""
    def __init__(
        self,
        message: str = "Database operation failed",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error="persistence_error",
            message=message,
            details=details
        )


class NoAdminAvailableException(BaseCustomException):
    """채팅방에 배정할 관리자가 없는 경우의 예외"""
    def __init__(self, message: str = "No admin available"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error="no_admin_available",
            message=message
        )


class ExternalServiceException(BaseCustomException):
    """오브젝트 스토리지 등 외부 서비스 실패"""
    def __init__(
        self,
        service: str,
        message: str = "External service error",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            error="external_service_error",
            message=f"{service}: {message}",
            details=details or {"service": service}
        )


# =============================================================================
# 에러 헬퍼 함수들
# =============================================================================

def create_error_response(
    error: str,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None
) -> ErrorResponse:
    return ErrorResponse(
        error=error,
        message=message,
        status_code=status_code,
        details=details
    )


def admin_only_error():
    """관리자 전용 기능 접근 에러"""
    return AccessDeniedException("Access denied. Admin only.")


def room_access_denied_error(room_id: Optional[str] = None):
    """채팅방 접근 권한 없음 에러"""
    details = {"room_id": room_id} if room_id else None
    return AccessDeniedException("Access denied to this chat room", details=details)
