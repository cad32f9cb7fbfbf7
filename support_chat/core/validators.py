from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError

from .errors import (
    ValidationException,
    ValidationError,
    EmptyMessageException,
    MessageTooLongException,
)


class Validator:
    """입력 검증을 위한 유틸리티 클래스"""

    @staticmethod
    def validate_message_body(
        body: Optional[str],
        message_type: str,
        max_length: int,
        fallback: Optional[str] = None
    ) -> str:
        """
        메시지 본문 검증 후 앞뒤 공백을 제거한 본문을 반환합니다.

        Args:
            body: 클라이언트가 보낸 본문
            message_type: "text" 또는 "file"
            max_length: text 메시지의 최대 길이
            fallback: 본문이 비어 있을 때 사용할 값 (파일 메시지는 파일명)

        Raises:
            EmptyMessageException: 공백 제거 후 본문이 비어 있는 경우
            MessageTooLongException: text 메시지가 max_length를 넘는 경우
        """
        trimmed = (body or "").strip()
        if not trimmed and message_type == "file" and fallback:
            trimmed = fallback.strip()

        if not trimmed:
            raise EmptyMessageException()

        if message_type == "text" and len(trimmed) > max_length:
            raise MessageTooLongException(max_length=max_length, length=len(trimmed))

        return trimmed

    @staticmethod
    def validate_id_list(values: Any, field_name: str, message: Optional[str] = None) -> List[str]:
        """ID 목록 검증 (문자열/숫자 ID 목록만 허용)"""
        if not isinstance(values, list) or not all(isinstance(v, (str, int)) for v in values):
            raise ValidationException(
                message or f"Invalid {field_name}",
                validation_errors=[
                    ValidationError(field=field_name, message="Must be a list of IDs", value=values)
                ]
            )
        return [str(v) for v in values]


def from_pydantic_error(exc: PydanticValidationError, message: str) -> ValidationException:
    """Pydantic 검증 에러를 ValidationException으로 변환"""
    validation_errors = []
    for error in exc.errors():
        field_name = ".".join(str(loc) for loc in error["loc"]) or "payload"
        validation_errors.append(
            ValidationError(field=field_name, message=error["msg"], value=error.get("input"))
        )
    return ValidationException(message, validation_errors=validation_errors)
