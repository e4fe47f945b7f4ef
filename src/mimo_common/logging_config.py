"""
Logging configuration for the MIMO installer.

The console shows short, operator-facing lines (coloured on a terminal,
tagged with the current update step). The optional log file keeps every
DEBUG record, as JSON if requested, so a failed run on a customer machine
can be reconstructed afterwards.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import MimoError

CONTEXT_ATTR = "mimo_context"


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, CONTEXT_ATTR, None) or {}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    LogContext fields go under ``context``; a logged MimoError adds its
    ``to_dict()`` form under ``error``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        context = _record_context(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
            error = record.exc_info[1]
            if isinstance(error, MimoError):
                entry["error"] = error.to_dict()
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Operator-facing console lines.

    The update mode from LogContext (``sys-update``, ``target-update``) is
    shown in brackets; on a terminal the level name is coloured.
    """

    COLORS = {
        logging.DEBUG: "\033[36m",    # Cyan
        logging.INFO: "\033[32m",     # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",    # Red
        logging.CRITICAL: "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, verbose: bool = False, color: bool = False):
        fmt = "%(levelname)s %(name)s: %(message)s" if verbose else "%(levelname)s: %(message)s"
        super().__init__(fmt)
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self.color:
            record.levelname = f"{self.COLORS.get(record.levelno, '')}{levelname}{self.RESET}"
        try:
            line = super().format(record)
        finally:
            record.levelname = levelname

        mode = _record_context(record).get("mode")
        return f"[{mode}] {line}" if mode else line


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    json_logs: bool = False,
) -> logging.Logger:
    """
    Configure logging for one installer run.

    Args:
        level: Console logging level (default: INFO)
        log_file: Also log everything at DEBUG to this file (rotated at 10MB)
        json_logs: Write the log file as JSON lines

    Returns:
        The configured root logger.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if log_file else level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(ConsoleFormatter(
        verbose=level <= logging.DEBUG,
        color=sys.stderr.isatty(),
    ))
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        if json_logs:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s [%(filename)s:%(lineno)d] %(message)s"
            ))
        root_logger.addHandler(file_handler)

    # Template compilation chatter is never useful to an operator.
    logging.getLogger("jinja2").setLevel(logging.WARNING)
    return root_logger


class LogContext:
    """
    Attach fields to every record logged inside the block.

    Contexts nest; inner fields are merged over outer ones.

    Example:
        with LogContext(mode="sys-update", bundle="/usr/share/mimo/resources.tar.gz"):
            with LogContext(step="extract"):
                logger.info("Extracting")  # carries mode, bundle and step
    """

    def __init__(self, **fields):
        self.fields = fields
        self._previous_factory = None

    def __enter__(self):
        previous = logging.getLogRecordFactory()
        self._previous_factory = previous
        fields = self.fields

        def record_factory(*args, **kwargs):
            record = previous(*args, **kwargs)
            setattr(record, CONTEXT_ATTR, {**_record_context(record), **fields})
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, *args):
        logging.setLogRecordFactory(self._previous_factory)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the ``mimo`` namespace.

    Args:
        name: Short component name, e.g. ``"cli"``

    Returns:
        Logger named ``mimo.<name>``
    """
    return logging.getLogger(f"mimo.{name}")
