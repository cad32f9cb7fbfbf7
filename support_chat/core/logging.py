"""
구조화된 로깅

운영 환경에서는 한 줄에 하나의 JSON 객체로 로그를 남깁니다.
실시간 이벤트를 처리하는 동안에는 연결 ID와 사용자 ID가 contextvars로 전달되어
같은 연결에서 남긴 로그를 묶어 볼 수 있습니다.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Optional

from support_chat.core.config import settings

connection_id_var: ContextVar[Optional[str]] = ContextVar("connection_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

# LogRecord 기본 속성 (extra로 취급하지 않음)
_STANDARD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "connection_id", "user_id"}

_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "socketio", "engineio", "botocore")


class ConnectionContextFilter(logging.Filter):
    """현재 처리 중인 실시간 연결 정보를 레코드에 붙입니다."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.connection_id = connection_id_var.get()
        if not hasattr(record, "user_id") or record.user_id is None:
            record.user_id = user_id_var.get()
        return True


class StructuredFormatter(logging.Formatter):
    """JSON 로그 포매터"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for key in ("connection_id", "user_id"):
            value = getattr(record, key, None)
            if value:
                entry[key] = value

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        extra = {
            key: value for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, ensure_ascii=False, default=str)


def _handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ConnectionContextFilter())
    return handler


def setup_logging():
    """
    루트 로거 구성

    - debug: 사람이 읽는 텍스트 형식
    - 그 외: JSON 형식
    - log_to_file: log_dir 아래 chat.log (INFO 이상), chat-error.log (ERROR 이상)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    root_logger.handlers.clear()

    if settings.debug:
        console_formatter = logging.Formatter("%(asctime)s %(levelname)-7s [%(connection_id)s] %(name)s: %(message)s")
    else:
        console_formatter = StructuredFormatter()
    root_logger.addHandler(_handler(logging.StreamHandler(sys.stdout), logging.DEBUG, console_formatter))

    if settings.log_to_file:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(_handler(
            logging.FileHandler(log_dir / "chat.log", encoding="utf-8"), logging.INFO, StructuredFormatter()
        ))
        root_logger.addHandler(_handler(
            logging.FileHandler(log_dir / "chat-error.log", encoding="utf-8"), logging.ERROR, StructuredFormatter()
        ))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_connection_context(connection_id: str, user_id: Optional[str] = None):
    """이후 로그에 연결 ID와 사용자 ID를 함께 기록"""
    connection_id_var.set(connection_id)
    user_id_var.set(user_id)


def clear_connection_context():
    connection_id_var.set(None)
    user_id_var.set(None)


def log_websocket_event(
    logger: logging.Logger,
    event: str,
    user_id: Optional[str],
    room_id: Optional[str] = None,
    **extra
):
    """실시간 채팅 이벤트 로그 (send_message, join_room, room_closed 등)"""
    logger.info(
        f"{event}: user={user_id} room={room_id}",
        extra={"event_type": "chat_event", "event": event, "user_id": user_id, "room_id": room_id, **extra}
    )


def log_database_operation(
    logger: logging.Logger,
    operation: str,
    table: str,
    affected_rows: Optional[int] = None,
    **extra
):
    """저장소 변경 로그"""
    logger.info(
        f"{table} {operation} ({affected_rows} rows)",
        extra={
            "event_type": "database_operation",
            "operation": operation,
            "table": table,
            "affected_rows": affected_rows,
            **extra
        }
    )
