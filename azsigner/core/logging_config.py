"""
Logging setup for azsigner.

Records are written as JSON lines or plain text. Every handler installed by
setup_logging redacts account keys and SharedKey signatures, and records
emitted while the relay handles a request carry that request's id.
"""

import json
import logging
import logging.handlers
import re
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

REDACTED = "***REDACTED***"

# Id of the relayed request being handled in the current context
request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_SIZE_PATTERN = re.compile(r"([0-9]*\.?[0-9]+)\s*([KMG]?B)?")
_SIZE_UNITS = {None: 1, "B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}


@contextmanager
def request_context(rid: Optional[str] = None) -> Iterator[str]:
    """
    Tag log records emitted inside the block with a request id.

    A fresh uuid4 is used when rid is empty. The previous id is restored on
    exit, so contexts nest.
    """
    token = request_id.set(rid or str(uuid.uuid4()))
    try:
        yield request_id.get()
    finally:
        request_id.reset(token)


class SensitiveDataFilter(logging.Filter):
    """Redacts account keys and signatures before a record is formatted."""

    PATTERNS = [
        re.compile(r"(SharedKey\s+[^:\s]+:)\S+", re.IGNORECASE),
        re.compile(r"(AccountKey=)[^;]+", re.IGNORECASE),
        re.compile(r"(shared_key[\"']?\s*[:=]\s*[\"']?)[^\"'\s,}]+", re.IGNORECASE),
        re.compile(r"(sig=)[^;&\s]+", re.IGNORECASE),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = message
        for pattern in self.PATTERNS:
            redacted = pattern.sub(r"\1" + REDACTED, redacted)
        if redacted != message:
            # Secrets may arrive through %-style args, so freeze the merged text
            record.msg = redacted
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }

        rid = request_id.get()
        if rid:
            entry["request_id"] = rid
        if getattr(record, "context", None):
            entry["context"] = record.context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Plain text, with the request id in brackets ("-" outside a request)."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] [%(request_id)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = request_id.get() or "-"
        return super().format(record)


def _build_handlers(
    format_type: str,
    log_file: Optional[str],
    rotation_size: str,
    rotation_count: int,
) -> List[logging.Handler]:
    formatter = JSONFormatter() if format_type == "json" else TextFormatter()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=_parse_size(rotation_size),
            backupCount=rotation_count,
            encoding="utf-8",
        ))

    for handler in handlers:
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(formatter)
        handler.addFilter(SensitiveDataFilter())
    return handlers


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_file: Optional[str] = None,
    rotation_size: str = "10MB",
    rotation_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None
) -> None:
    """
    Replace the root logger's handlers with azsigner's.

    Args:
        level: Root log level name
        format_type: "json" or "text"
        log_file: Also write to this file, rotated at rotation_size
        rotation_size: Size such as "10MB" or "512KB"
        rotation_count: Rotated files to keep
        module_levels: Per-logger levels, e.g. {"azsigner.relay": "DEBUG"}
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    root_logger.handlers.clear()

    for handler in _build_handlers(format_type, log_file, rotation_size, rotation_count):
        root_logger.addHandler(handler)

    for module_name, module_level in (module_levels or {}).items():
        logging.getLogger(module_name).setLevel(module_level.upper())

    root_logger.info(
        f"Logging configured: level={level}, format={format_type}, file={log_file or '-'}"
    )


def _parse_size(size_str: str) -> int:
    """Convert "10MB", "1.5 GB", "512" and the like to a byte count."""
    match = _SIZE_PATTERN.fullmatch(size_str.strip().upper())
    if not match:
        raise ValueError(f"Invalid size: {size_str!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit])


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Log message with context fields attached to the record."""
    logger.log(level, message, extra={"context": context} if context else {})
