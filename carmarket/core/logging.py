"""
구조화된 로깅

요청 단위 컨텍스트(request_id, user_id)를 붙인 JSON 로그를 출력합니다.
채팅 코어의 주요 이벤트는 아래 log_* 헬퍼로 event_type 별로 남깁니다.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from carmarket.core.config import settings

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)

# LogRecord 기본 속성 (extra 로 취급하지 않음)
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "redis", "aiosqlite")


def _context_fields() -> Dict[str, str]:
    fields = {}
    request_id = request_id_var.get()
    if request_id:
        fields["request_id"] = request_id
    user_id = user_id_var.get()
    if user_id:
        fields["user_id"] = user_id
    return fields


class StructuredFormatter(logging.Formatter):
    """JSON 한 줄 포매터"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": settings.app_name,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "at": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_context_fields())

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        extra = {
            key: value for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith('_')
        }
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(log_to_files: bool = True, level: int = logging.INFO):
    """
    로깅 초기화

    debug 모드에서는 콘솔에 사람이 읽는 형식을, 그 외에는 JSON 을 출력합니다.
    log_to_files 가 True 이면 settings.log_dir 아래에 chat.log / chat-error.log 를 남깁니다.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    if settings.debug:
        console.setFormatter(logging.Formatter('%(asctime)s %(levelname)-7s [%(name)s] %(message)s'))
    else:
        console.setFormatter(StructuredFormatter())
    root_logger.addHandler(console)

    if log_to_files:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        for filename, file_level in (("chat.log", level), ("chat-error.log", logging.ERROR)):
            file_handler = logging.FileHandler(log_dir / filename, encoding='utf-8')
            file_handler.setLevel(file_level)
            file_handler.setFormatter(StructuredFormatter())
            root_logger.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_request_context(request_id: str, user_id: Optional[str] = None):
    request_id_var.set(request_id)
    if user_id:
        user_id_var.set(user_id)


def clear_request_context():
    request_id_var.set(None)
    user_id_var.set(None)


def _emit(logger: logging.Logger, level: int, message: str, event_type: str, **fields):
    # None 값은 로그에서 제외
    payload = {key: value for key, value in fields.items() if value is not None}
    payload["event_type"] = event_type
    logger.log(level, message, extra=payload)


def log_api_call(logger, method: str, path: str, status_code: int, duration_ms: float,
                 user_id: Optional[str] = None, **extra):
    level = logging.WARNING if status_code >= 500 else logging.INFO
    _emit(logger, level, f"{method} {path} -> {status_code} ({duration_ms}ms)", "api_call",
          method=method, path=path, status_code=status_code, duration_ms=duration_ms,
          user_id=user_id, **extra)


def log_database_operation(logger, operation: str, table: str, affected_rows: Optional[int] = None, **extra):
    """관계형 저장소 쓰기 로그"""
    _emit(logger, logging.INFO, f"{table}: {operation} ({affected_rows} rows)", "database_operation",
          operation=operation, table=table, affected_rows=affected_rows, **extra)


def log_chat_event(logger, event: str, user_id: Optional[str], room_id: Optional[str], **extra):
    """채팅방 단위 이벤트 로그 (방 생성, 메시지 전송, 세션 열기/닫기 등)"""
    _emit(logger, logging.INFO, f"room {room_id}: {event} by {user_id}", "chat",
          event=event, user_id=user_id, room_id=room_id, **extra)


def log_realtime_event(logger, event: str, channel: str, **extra):
    """변경 피드 구독 상태 로그"""
    _emit(logger, logging.INFO, f"feed {channel}: {event}", "realtime",
          event=event, channel=channel, **extra)


def log_security_event(logger, event: str, severity: str = "medium", user_id: Optional[str] = None, **extra):
    """권한 거부 등 보안 관련 로그"""
    _emit(logger, logging.WARNING, f"security {event} [{severity}]", "security",
          event=event, severity=severity, user_id=user_id, **extra)
