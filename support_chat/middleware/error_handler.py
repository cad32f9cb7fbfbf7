import traceback
from typing import Any, Callable, Dict, Optional

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DatabaseError, IntegrityError, OperationalError
from starlette.middleware.base import BaseHTTPMiddleware

from support_chat.core.config import settings
from support_chat.core.errors import BaseCustomException, create_error_response
from support_chat.core.logging import get_logger
from support_chat.core.validators import from_pydantic_error

logger = get_logger(__name__)


def _error_json(error: str, message: str, status_code: int, details: Optional[Dict[str, Any]] = None,
                headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    body = create_error_response(error, message, status_code, details)
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def _db_detail(exc: Exception) -> Optional[Dict[str, Any]]:
    if not settings.debug:
        return None
    return {"detail": str(getattr(exc, "orig", None) or exc)}


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    HTTP 요청 처리 중 빠져나온 예외를 표준 에러 응답으로 변환

    - BaseCustomException: 예외에 담긴 status/error/message 그대로
    - Pydantic 검증 실패: 422 validation_error
    - unique 제약 위반: 409 database_constraint
    - 저장소 연결/작업 실패: 503 persistence_error
    - 그 외: 500 internal_server_error
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except BaseCustomException as e:
            return JSONResponse(status_code=e.status_code, content=e.to_dict())

        except PydanticValidationError as e:
            converted = from_pydantic_error(e, "Request validation failed")
            return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=converted.to_dict())

        except IntegrityError as e:
            logger.warning(f"Constraint violation on {request.method} {request.url.path}: {e.orig}")
            return _error_json(
                "database_constraint", "Database constraint violation",
                status.HTTP_409_CONFLICT, _db_detail(e)
            )

        except (OperationalError, DatabaseError) as e:
            logger.error(f"Store unavailable on {request.method} {request.url.path}: {type(e).__name__}")
            return _error_json(
                "persistence_error", "Database connection or operation failed",
                status.HTTP_503_SERVICE_UNAVAILABLE, _db_detail(e)
            )

        except Exception as e:
            logger.error(f"Unhandled exception on {request.method} {request.url.path}: {e}", exc_info=True)
            details = None
            if settings.debug:
                details = {"type": type(e).__name__, "exception": str(e), "traceback": traceback.format_exc()}
            return _error_json(
                "internal_server_error", "An unexpected error occurred",
                status.HTTP_500_INTERNAL_SERVER_ERROR, details
            )


def create_http_exception_handler():
    """HTTPException 핸들러 (커스텀 예외는 to_dict 형식 유지)"""
    async def http_exception_handler(request: Request, exc):
        headers = getattr(exc, "headers", None)

        if isinstance(exc, BaseCustomException):
            return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

        if isinstance(exc.detail, str):
            return _error_json("http_error", exc.detail, exc.status_code, headers=headers)
        return _error_json("http_error", "HTTP error occurred", exc.status_code, {"detail": exc.detail}, headers)

    return http_exception_handler
