"""Logging infrastructure with structured JSON logging."""

import logging
import json
import sys
from datetime import datetime, timezone
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Dict, Optional


# Extra record attributes carried into both console and JSON output
CONTEXT_FIELDS = ('component', 'backend', 'operation', 'duration')

_context: ContextVar[Dict[str, Any]] = ContextVar("astra_stack_log_context", default={})


class JSONFormatter(logging.Formatter):
    """Writes one JSON object per record for the stack log file."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'ts': datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'thread': record.threadName,
            'msg': record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name)) for name in CONTEXT_FIELDS if hasattr(record, name)
        )
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Records tagged with a component are prefixed with its name, and with
    the operation when one is set, e.g. ``[agent:deploy]``. Untagged
    records are prefixed with ``[stack]``.
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, '')
        tag = getattr(record, 'component', 'stack')
        operation = getattr(record, 'operation', None)
        if operation:
            tag = f"{tag}:{operation}"

        line = (
            f"{datetime.fromtimestamp(record.created):%H:%M:%S} "
            f"{color}{record.levelname:8}{self.RESET} [{tag}] {record.getMessage()}"
        )
        if hasattr(record, 'duration'):
            line += f" ({record.duration:.1f}s)"
        return line


def setup_logging(log_level: str = 'info', log_dir: Optional[str] = 'logs') -> None:
    """Setup logging infrastructure.

    Args:
        log_level: Logging level (debug, info, warning, error)
        log_dir: Directory for the JSON-lines stack log; None disables it
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    # Console goes to stderr so command output on stdout stays clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(ConsoleFormatter())
    console_handler.addFilter(ContextFilter())
    root_logger.addHandler(console_handler)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        log_file = path / f"astra-stack-{datetime.now().strftime('%Y%m%d')}.jsonl"
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)  # Always log debug to file
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(ContextFilter())
        root_logger.addHandler(file_handler)

    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('watchdog').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Name of the logger (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


class ContextFilter(logging.Filter):
    """Copies the active LogContext fields onto each record.

    Fields passed explicitly with ``extra=`` take precedence.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class LogContext:
    """Context manager for adding structured fields to logs.

    Fields are bound to the current thread (and asyncio task), so parallel
    deploys each log under their own component. Contexts nest; inner fields
    override outer ones.

    Example:
        with LogContext(component='astron-agent', operation='deploy'):
            logger.info("Starting deployment...")
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._token = None

    def __enter__(self) -> "LogContext":
        self._token = _context.set({**_context.get(), **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _context.reset(self._token)
