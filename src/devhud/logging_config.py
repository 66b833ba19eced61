"""Structured logging configuration for dev-hud.

Every pipeline stage logs under ``devhud.<namespace>``. Besides the
console, records go to a ring buffer that the API serves as history and
streams to WebSocket subscribers. Records logged with
``extra={'session_id': ...}`` keep that id so a client can follow one
session's logs.
"""

import logging
import os
import sys
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional


# Log namespaces for filtering
NAMESPACES = {
    'parser': 'Line Parser',
    'scanner': 'File Scanner',
    'watcher': 'Multi-Session Watcher',
    'session': 'Session Aggregator',
    'api': 'API Routes',
    'ws': 'WebSocket',
}

LOGGER_PREFIX = 'devhud'
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class LogEntry:
    """One buffered record, as sent to WebSocket subscribers."""
    timestamp: str
    level: str
    namespace: str
    message: str
    session_id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            'timestamp': self.timestamp,
            'level': self.level,
            'namespace': self.namespace,
            'message': self.message,
        }
        if self.session_id is not None:
            data['sessionId'] = self.session_id
        return data


def namespace_of(logger_name: str) -> str:
    """'devhud.scanner' -> 'scanner'; anything else is 'general'."""
    prefix, _, rest = logger_name.partition('.')
    namespace = rest.split('.', 1)[0]
    if prefix == LOGGER_PREFIX and namespace in NAMESPACES:
        return namespace
    return 'general'


class BufferedLogHandler(logging.Handler):
    """Keeps the last ``buffer_size`` records and forwards each to a broadcaster.

    emit() runs on whichever thread logged, the watcher thread included;
    the broadcaster is responsible for getting back onto the event loop.
    """

    def __init__(self, buffer_size: int = 500):
        super().__init__()
        self.buffer: deque[LogEntry] = deque(maxlen=buffer_size)
        self.broadcast_callback: Optional[Callable[[LogEntry], None]] = None
        self.enabled = True

    def emit(self, record: logging.LogRecord):
        if not self.enabled:
            return
        try:
            entry = LogEntry(
                timestamp=datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                level=record.levelname,
                namespace=namespace_of(record.name),
                message=self.format(record),
                session_id=getattr(record, 'session_id', None),
            )
            self.buffer.append(entry)
            if self.broadcast_callback is not None:
                self.broadcast_callback(entry)
        except Exception:
            self.handleError(record)

    def get_history(self, count: int = 100) -> list[dict]:
        """The most recent ``count`` entries, oldest first."""
        if count <= 0:
            return []
        return [e.to_dict() for e in list(self.buffer)[-count:]]

    def set_broadcast_callback(self, callback: Optional[Callable[[LogEntry], None]]):
        self.broadcast_callback = callback

    def clear_buffer(self):
        self.buffer.clear()


_log_handler: Optional[BufferedLogHandler] = None


def get_log_handler() -> BufferedLogHandler:
    """Process-wide buffered handler, created on first use."""
    global _log_handler
    if _log_handler is None:
        _log_handler = BufferedLogHandler(
            buffer_size=int(os.environ.get('DEVHUD_LOG_BUFFER_SIZE', '500'))
        )
        _log_handler.setFormatter(logging.Formatter('%(message)s'))
    return _log_handler


def parse_log_level(level: str | int) -> int:
    """Resolve a level name or number, raising ValueError for unknown names."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def _level_from_env() -> int:
    try:
        return parse_log_level(os.environ.get('DEVHUD_LOG_LEVEL', 'INFO'))
    except ValueError:
        return logging.INFO


def _streaming_enabled() -> bool:
    return os.environ.get('DEVHUD_LOG_STREAM', 'true').lower() == 'true'


def setup_logging(
    level: Optional[int] = None,
    log_format: Optional[str] = None,
) -> None:
    """
    Configure logging for the server process.

    Args:
        level: Logging level (default: from DEVHUD_LOG_LEVEL env var or INFO)
        log_format: Console format string (default: DEFAULT_FORMAT)
    """
    log_level = level if level is not None else _level_from_env()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    # stdout belongs to whoever embeds us; log to stderr
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(log_format or DEFAULT_FORMAT))
    root_logger.addHandler(console)

    if _streaming_enabled():
        root_logger.addHandler(get_log_handler())

    set_log_level(log_level)

    # uvicorn logs every request at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def set_log_level(level: str | int):
    """
    Set log level at runtime, for the root logger, every namespace
    logger and every installed handler.

    Args:
        level: Level name ('DEBUG', 'info', ...) or logging constant

    Raises:
        ValueError: for an unknown level name
    """
    level = parse_log_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)
    for namespace in NAMESPACES:
        logging.getLogger(f'{LOGGER_PREFIX}.{namespace}').setLevel(level)


def get_logger(name: str, namespace: Optional[str] = None) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)
        namespace: Optional namespace (parser, scanner, watcher, ...)

    Returns:
        The ``devhud.<namespace>`` logger when namespace is known,
        otherwise the logger called ``name``
    """
    if namespace and namespace in NAMESPACES:
        return logging.getLogger(f'{LOGGER_PREFIX}.{namespace}')
    return logging.getLogger(name)
