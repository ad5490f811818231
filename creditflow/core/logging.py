"""
Structured Logging

JSON log lines in production, a readable single-line format in DEBUG.
Every record carries the correlation id of the request that produced it.
"""
import json
import logging
import re
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

_EMAIL_RE = re.compile(r"([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*(@[A-Za-z0-9.-]+)")

_app_name = "creditflow"


def mask_email(value: str) -> str:
    """Keep the first character and domain of every email address in ``value``"""
    return _EMAIL_RE.sub(r"\1***\2", value)


class JSONFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "app": _app_name,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_entry["extra"] = extra_data

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class CorrelationIdFilter(logging.Filter):
    """Expose the correlation id to plain-text format strings"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        return True


class StructuredLogger(logging.Logger):
    """Logger accepting ``extra_data={...}`` on every level method"""

    def _log(  # type: ignore[override]
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra_data: dict[str, Any] | None = None,
    ) -> None:
        if extra_data:
            extra = dict(extra or {})
            extra["extra_data"] = extra_data
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    app_name: str = "creditflow"
) -> None:
    """
    Configure the root logger.

    Args:
        level: Logging level name
        json_format: JSON lines (production) or human-readable (development)
        app_name: Value of the ``app`` field in JSON lines
    """
    global _app_name
    _app_name = app_name

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | [%(correlation_id)s] | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        handler.addFilter(CorrelationIdFilter())

    root_logger.addHandler(handler)

    for noisy in ("httpx", "httpcore", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set correlation ID for the current context, generating one if missing"""
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    """Current correlation ID; one is generated and stored if none is set"""
    cid = correlation_id_var.get()
    if not cid:
        cid = set_correlation_id()
    return cid


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore[return-value]


def log_async_operation(operation_name: str):
    """Log start, completion and failure of a coroutine with its duration"""
    def decorator(func):
        logger = get_logger(func.__module__)

        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.perf_counter()
            logger.debug(
                f"Starting {operation_name}",
                extra_data={"operation": operation_name, "status": "started"}
            )
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"Failed {operation_name}: {e}",
                    extra_data={
                        "operation": operation_name,
                        "status": "failed",
                        "duration_seconds": round(time.perf_counter() - started, 4),
                        "error_type": type(e).__name__,
                    },
                )
                raise
            logger.info(
                f"Completed {operation_name}",
                extra_data={
                    "operation": operation_name,
                    "status": "completed",
                    "duration_seconds": round(time.perf_counter() - started, 4),
                },
            )
            return result

        return wrapper
    return decorator
