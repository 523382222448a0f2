"""
In-memory log buffer backing the /logs endpoint.

A logging.Handler appends formatted records to a bounded deque, so the relay
can show its recent activity without any log shipping.
"""
import logging
import threading
from collections import deque
from typing import Optional


LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"
_formatter = logging.Formatter(LOG_FORMAT)

_buffer: Optional[deque] = None
_lock = threading.Lock()
_handler: Optional["LogBufferHandler"] = None


class LogBufferHandler(logging.Handler):
    """Appends log records to a bounded deque as structured dicts."""

    def __init__(self, buffer: deque):
        super().__init__()
        self._buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "ts": record.created,
                "name": record.name,
                "level": record.levelname,
                "levelno": record.levelno,
                "message": self.format(record),
            }
            with _lock:
                self._buffer.append(entry)
        except Exception:
            self.handleError(record)


def install_log_handler(capacity: int = 1000) -> None:
    """Create the buffer and handler once and attach them to the root logger."""
    global _buffer, _handler
    with _lock:
        if _handler is not None:
            return
        _buffer = deque(maxlen=capacity)
        _handler = LogBufferHandler(_buffer)
        _handler.setFormatter(_formatter)
    logging.getLogger().addHandler(_handler)


def get_recent_logs(limit: int = 200, min_level: str | None = None) -> list[dict]:
    """Last `limit` entries, oldest first, optionally at or above `min_level`."""
    threshold = logging.getLevelName(min_level) if min_level else logging.NOTSET
    with _lock:
        if _buffer is None:
            return []
        entries = [e for e in _buffer if e["levelno"] >= threshold]
    if limit <= 0:
        return []
    return [{k: v for k, v in e.items() if k != "levelno"} for e in entries[-limit:]]


def clear() -> None:
    with _lock:
        if _buffer is not None:
            _buffer.clear()
