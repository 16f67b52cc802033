"""
Logging utilities for the knowledge module.

Provides structured logging with context fields for tracing ingestion runs
across workers (run -> worker -> data source).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union


# Fields passed through ``extra=`` that formatters surface when present
CONTEXT_FIELDS = ("run_id", "worker_id", "data_source")

PACKAGE_LOGGER = "knowledge"


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.

    Each log line includes:
    - Standard log fields (timestamp, level, message, logger)
    - Context fields if present (run_id, worker_id, data_source)
    - Exception text if present
    """

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable log lines with context.

    Format: TIMESTAMP - LOGGER - LEVEL - MESSAGE [run_id=X worker_id=Y]
    """

    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            fmt = "%(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with context suffix."""
        base = super().format(record)

        context_parts = []
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                context_parts.append(f"{field}={value}")

        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Get a logger instance for the knowledge module.

    Args:
        name: Logger name (typically __name__ of the calling module)
        level: Optional logging level override

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)

    if level is not None:
        logger.setLevel(level)

    return logger


def parse_level(level: Union[int, str]) -> int:
    """
    Resolve a level given as a name ("Warn", "info") or number.

    Unknown names fall back to WARNING.
    """
    if isinstance(level, int):
        return level
    name = str(level).strip().upper()
    if name == "WARN":
        name = "WARNING"
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.WARNING


def configure_logging(
    level: Union[int, str] = logging.WARNING,
    structured: bool = False,
    include_timestamp: bool = True,
    log_file: Optional[Path] = None,
    file_level: Union[int, str] = logging.INFO,
) -> None:
    """
    Configure logging for the knowledge package.

    Console output goes to stderr at ``level``. When ``log_file`` is given a
    second handler writes to it at ``file_level``.

    Args:
        level: Console logging level
        structured: If True, output JSON-structured logs; if False, human-readable
        include_timestamp: Whether to include timestamp in log messages
        log_file: Optional path of a log file
        file_level: Logging level of the file handler

    Example:
        >>> from knowledge.core.logging import configure_logging
        >>> configure_logging(level="info", structured=True)
    """
    console_level = parse_level(level)
    file_log_level = parse_level(file_level)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(min(console_level, file_log_level) if log_file else console_level)

    # Only add handlers if none exist (avoid duplicate handlers)
    if package_logger.handlers:
        return

    if structured:
        formatter = StructuredFormatter(include_timestamp=include_timestamp)
    else:
        formatter = HumanReadableFormatter(include_timestamp=include_timestamp)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(formatter)
    package_logger.addHandler(console)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(file_log_level)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)
