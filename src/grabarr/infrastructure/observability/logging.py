"""Logging setup for grabarr: one stdout handler, text or JSON, with acquisition context.

Hey future me - two context variables travel with every log record:

    correlation_id   one per acquisition cycle / manual search
    media            "<media_id>/<episode_id>" while a single title is being acquired

Both live in contextvars, so the indexer searches that a cycle fans out with
asyncio.create_task() log the same values as the cycle itself.
"""

import contextvars
import logging
import sys
import traceback
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pythonjsonlogger.json import JsonFormatter

_correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "grabarr_correlation_id", default=""
)
_media: contextvars.ContextVar[str] = contextvars.ContextVar("grabarr_media", default="")

# Libraries that are chatty at INFO/DEBUG
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite", "sqlalchemy.engine")

# LogRecord attribute → JSON key
_JSON_FIELDS = {
    "levelname": "level",
    "name": "logger",
    "module": "module",
    "funcName": "function",
    "lineno": "line",
}


def get_correlation_id() -> str:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Start a new correlation scope. A fresh UUID is generated when none is given."""
    value = correlation_id if correlation_id is not None else str(uuid.uuid4())
    _correlation_id.set(value)
    return value


@contextmanager
def media_context(media_id: int, episode_id: int | None = None) -> Iterator[str]:
    """Tag log records emitted inside the block with the media/episode being acquired."""
    label = f"{media_id}/{episode_id if episode_id is not None else '-'}"
    token = _media.set(label)
    try:
        yield label
    finally:
        _media.reset(token)


class AcquisitionContextFilter(logging.Filter):
    """Copies correlation id and media label onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get()
        record.media = _media.get()
        return True


class CompactTextFormatter(logging.Formatter):
    """Human-readable lines. Exceptions print their chain root cause first.

    Only grabarr frames are shown, library frames are noise when an indexer
    times out for the hundredth time:

    12:00:01 │ ERROR   │ grabarr.application.workers.acquisition_worker:88 │ Cycle failed
    ╰─► ConnectError: All connection attempts failed
        File "newznab_indexer.py", line 97, in search
    """

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        media = getattr(record, "media", "")
        if media:
            first, sep, rest = text.partition("\n")
            text = f"{first} [media {media}]{sep}{rest}"
        return text

    def formatException(self, ei: Any) -> str:
        exc_value = ei[1]
        if exc_value is None:
            return ""

        chain = _exception_chain(exc_value)
        lines: list[str] = []
        for exc in chain:
            lines.append(f"╰─► {type(exc).__name__}: {exc}")
            lines.extend(_own_frames(exc))
        return "\n".join(lines)


def _exception_chain(exc: BaseException) -> list[BaseException]:
    """Causes/contexts of an exception, innermost first."""
    seen: list[BaseException] = []
    node: BaseException | None = exc
    while node is not None and node not in seen:
        seen.append(node)
        node = node.__cause__ or node.__context__
    return seen[::-1]


def _own_frames(exc: BaseException) -> list[str]:
    if exc.__traceback__ is None:
        return []
    lines = []
    for frame in traceback.extract_tb(exc.__traceback__):
        if "grabarr" not in frame.filename or "site-packages" in frame.filename:
            continue
        name = Path(frame.filename).name
        lines.append(f'    File "{name}", line {frame.lineno}, in {frame.name}')
        if frame.line:
            lines.append(f"      {frame.line.strip()}")
    return lines


class AcquisitionJsonFormatter(JsonFormatter):
    """One JSON object per record, with source location and acquisition context."""

    def add_fields(
        self,
        log_data: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_data, record, message_dict)
        log_data["timestamp"] = self.formatTime(record, self.datefmt)
        for attribute, key in _JSON_FIELDS.items():
            log_data[key] = getattr(record, attribute)

        # Empty context is left out instead of logged as ""
        for key in ("correlation_id", "media"):
            value = getattr(record, key, "")
            if value:
                log_data[key] = value
            else:
                log_data.pop(key, None)

        if record.exc_info:
            log_data["exc_info"] = self.formatException(record.exc_info)


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "grabarr",
) -> None:
    """Install grabarr's stdout handler on the root logger.

    Existing root handlers are removed first, so calling this twice leaves a
    single handler behind.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL. Anything else means INFO.
        json_format: JSON lines (for log shippers) instead of compact text
        app_name: Reported once in the "Logging configured" line
    """
    level = _resolve_level(log_level)
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(level)

    formatter: logging.Formatter
    if json_format:
        formatter = AcquisitionJsonFormatter("%(message)s", datefmt="%Y-%m-%dT%H:%M:%S")
    else:
        formatter = CompactTextFormatter(
            fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s",
            datefmt="%H:%M:%S",
        )

    stdout = logging.StreamHandler(sys.stdout)
    stdout.setLevel(level)
    stdout.addFilter(AcquisitionContextFilter())
    stdout.setFormatter(formatter)
    root.addHandler(stdout)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured for %s (level=%s, json=%s)",
        app_name,
        logging.getLevelName(level),
        json_format,
    )
