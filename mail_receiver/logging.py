"""Structured logging setup and the protocol debug trace sink."""

from __future__ import annotations

import io
import logging
import sys
import threading
from collections.abc import Callable

import structlog


def setup_logging(*, json: bool = True, level: str = "INFO") -> None:
    """Configure structlog for the receiver process.

    Parameters
    ----------
    json:
        If *True* (the default), output JSON lines.  If *False*, use a
        human-friendly console renderer.
    level:
        Root log level name (e.g. ``"DEBUG"``, ``"INFO"``).
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


class DebugTraceSink(io.TextIOBase):
    """Line-buffered text sink that forwards protocol trace records.

    Writes accumulate until :meth:`flush`, which emits the trimmed buffer
    as one record (empty records are dropped) and resets it.  Buffer
    access is serialized, so several threads may write concurrently.
    """

    def __init__(self, consumer: Callable[[str], None] | None = None) -> None:
        super().__init__()
        self._consumer = consumer or _log_trace
        self._buffer = io.StringIO()
        self._lock = threading.Lock()

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        with self._lock:
            return self._buffer.write(text)

    def flush(self) -> None:
        with self._lock:
            record = self._buffer.getvalue().strip()
            self._buffer.seek(0)
            self._buffer.truncate()
            if record:
                self._consumer(record)

    def trace(self, line: str) -> None:
        """Write one line and flush it as a record."""
        self.write(line)
        self.flush()


def _log_trace(record: str) -> None:
    structlog.get_logger("mail_receiver.trace").debug("protocol_trace", record=record)
