"""Logging setup: one stdout handler, JSON or compact text, correlation ids on every line.

Requests get their correlation id from RequestLoggingMiddleware, background jobs from
job_correlation(). Everything logged while handling either carries that id, so a whole
producer fetch or Apple Music sync can be pulled out of the logs with one grep.
"""

import logging
import logging.config
import traceback
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from types import TracebackType
from typing import Any

from pythonjsonlogger import jsonlogger

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite", "uvicorn.access")


def get_correlation_id() -> str:
    """Correlation id of the current request/job, "" outside of both."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation id to the current context, a fresh UUID when none is given."""
    value = correlation_id or str(uuid.uuid4())
    _correlation_id.set(value)
    return value


# Hey future me - jobs run as their own asyncio tasks, which copy the context of whoever
# created them. Without this, a job dispatched from a request would keep logging under
# that request's id long after the response went out.
@contextmanager
def job_correlation(job_key: str) -> Iterator[str]:
    """Give a background job its own correlation id ("job:<key>:<8 hex>")."""
    token = _correlation_id.set(f"job:{job_key}:{uuid.uuid4().hex[:8]}")
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


class ContextFilter(logging.Filter):
    """Stamp correlation id and app name onto each record."""

    def __init__(self, app_name: str = "trackcer") -> None:
        super().__init__()
        self.app_name = app_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.app = self.app_name
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """One JSON object per line, source location included."""

    LOCATION_FIELDS = {
        "level": "levelname",
        "logger": "name",
        "module": "module",
        "function": "funcName",
        "line": "lineno",
    }

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        for field, attribute in self.LOCATION_FIELDS.items():
            log_record[field] = getattr(record, attribute)

        for optional in ("app", "correlation_id"):
            value = getattr(record, optional, "")
            if value:
                log_record[optional] = value
            else:
                log_record.pop(optional, None)


def _exception_chain(exc: BaseException) -> list[BaseException]:
    """Root cause first, the exception actually raised last."""
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain[::-1]


def _own_frames(tb: TracebackType | None, package: str) -> Iterator[str]:
    for frame in traceback.extract_tb(tb):
        if "site-packages" in frame.filename or package not in frame.filename:
            continue
        yield f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
        if frame.line:
            yield f"      {frame.line.strip()}"


class CompactExceptionFormatter(logging.Formatter):
    """Text formatter for terminals.

    Exceptions are rendered as a short chain with only trackcer frames, for example:

        12:03:11 │ ERROR   │ trackcer.application.workers.scheduler:130 │ Scheduled job failed
        ╰─► ConnectError: All connection attempts failed
            File "apple_music_client.py", line 123, in get_recently_played
              response = await client.get(
    """

    package = "trackcer"

    def formatException(self, ei: Any) -> str:
        exc = ei[1]
        if exc is None:
            return ""
        lines: list[str] = []
        for link in _exception_chain(exc):
            lines.append(f"╰─► {type(link).__name__}: {link}")
            lines.extend(_own_frames(link.__traceback__, self.package))
        return "\n".join(lines)


# Listen future me, call this ONCE per process (lifespan or CLI main). dictConfig throws
# away whatever handlers the root logger had, so calling it again never double-logs.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "trackcer",
) -> None:
    """Install the stdout handler.

    Args:
        log_level: Level name, unknown names fall back to INFO
        json_format: JSON lines (production) instead of compact text
        app_name: Added to every JSON record as "app"
    """
    level = log_level.upper()
    if level not in logging.getLevelNamesMapping():
        level = "INFO"

    if json_format:
        formatter: dict[str, Any] = {
            "()": CustomJsonFormatter,
            "fmt": "%(timestamp)s %(level)s %(name)s %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S%z",
        }
    else:
        formatter = {
            "()": CompactExceptionFormatter,
            "fmt": "%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s",
            "datefmt": "%H:%M:%S",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"context": {"()": ContextFilter, "app_name": app_name}},
            "formatters": {"default": formatter},
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "level": level,
                    "filters": ["context"],
                    "formatter": "default",
                }
            },
            "root": {"level": level, "handlers": ["stdout"]},
            "loggers": {name: {"level": "WARNING"} for name in NOISY_LOGGERS},
        }
    )

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={"log_level": level, "json_format": json_format},
    )
