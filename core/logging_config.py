"""
Structlog 日志配置

应用日志与标准库日志（uvicorn、sqlalchemy）共用同一条处理链：
request_id 等上下文由 contextvars 合并进每一条记录。
"""
import json
import logging
from typing import Any

import structlog
from structlog.contextvars import merge_contextvars
from structlog.stdlib import ProcessorFormatter

from core.config import settings


# 这些库在 DEBUG 级别过于啰嗦
_NOISY_LOGGERS = ("aiosqlite", "asyncio", "httpcore", "httpx")


def _json_default(obj: Any) -> Any:
    # Enum 取值，Decimal/date 等转字符串
    value = getattr(obj, "value", None)
    if value is not None and not callable(value):
        return value
    return str(obj)


def _dumps(obj, **kwargs) -> str:
    kwargs.pop("default", None)
    return json.dumps(obj, ensure_ascii=False, default=_json_default, **kwargs)


def _use_json() -> bool:
    return settings.LOG_JSON if settings.LOG_JSON is not None else not settings.DEBUG


def _level() -> int:
    if settings.LOG_LEVEL:
        return logging.getLevelName(settings.LOG_LEVEL.upper())
    return logging.DEBUG if settings.DEBUG else logging.INFO


def configure_logging() -> None:
    pre_chain = [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer = (
        structlog.processors.JSONRenderer(serializer=_dumps)
        if _use_json()
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(_level())
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(_level(), logging.INFO))


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()
