"""Logging for column exports.

Console output goes to stderr so the CLI can print its JSON result on
stdout. ``--json-log`` switches to one JSON object per record, with the
export context (table, column, offset) as top-level keys so log
aggregators can filter on the column being exported.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

__all__ = [
    "CONTEXT_FIELDS",
    "ExportLogger",
    "JSONFormatter",
    "get_export_logger",
    "setup_logging",
]

# Promoted to top-level keys in JSON output
CONTEXT_FIELDS = ("table", "column", "offset", "output_path")

_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Example output:
        {"timestamp": "2025-01-15T10:30:00.123Z", "level": "INFO",
         "logger": "chunkexport.lib.export", "message": "Resuming export at offset 257",
         "table": "wp_posts", "column": "post_content", "offset": 257}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra: Dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            if key in CONTEXT_FIELDS:
                log_data[key] = value
            else:
                extra[key] = value
        if extra:
            log_data["extra"] = extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ExportLogger:
    """Logger that tags every record with the column being exported.

    Example:
        logger = ExportLogger(__name__)
        with logger.context(table="wp_posts", column="post_content"):
            logger.info("Starting export")  # carries table and column
    """

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)
        self._context: Dict[str, Any] = {}

    @property
    def fields(self) -> Dict[str, Any]:
        return dict(self._context)

    @contextmanager
    def context(self, **fields: Any) -> Iterator["ExportLogger"]:
        """Add fields for the duration of the block; earlier fields are restored after."""
        previous = self._context
        self._context = {**previous, **fields}
        try:
            yield self
        finally:
            self._context = previous

    def _log(self, level: int, msg: str, *args: Any, **fields: Any) -> None:
        self._logger.log(level, msg, *args, extra={**self._context, **fields})

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.INFO, msg, *args, **fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.WARNING, msg, *args, **fields)

    def metric(self, name: str, value: Any, unit: Optional[str] = None) -> None:
        """Log ``METRIC name=value`` with the current export context."""
        fields: Dict[str, Any] = {"metric_name": name, "metric_value": value}
        if unit:
            fields["metric_unit"] = unit
        self._log(logging.INFO, "METRIC %s=%s", name, value, **fields)


def get_export_logger(name: str) -> ExportLogger:
    return ExportLogger(name)


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure root logging for an export run.

    Args:
        verbose: DEBUG level, which logs every delivered chunk
        json_format: JSON lines instead of plain text
        log_file: Also write records to this file
    """
    level = logging.DEBUG if verbose else logging.INFO

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handlers: list = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
