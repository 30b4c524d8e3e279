"""
Structured logging for the results persister.

Entries are written as JSONL to a rotating file and, optionally, to stdout
as JSON or plain text. Persister operations bind the job id and operation
name for the duration of the call, so every entry they produce can be
filtered per job.

Usage:
    setup_logging(level="DEBUG", log_dir="/var/log/results")
    logger = get_logger(__name__)

    with with_context(job_id="farequote"):
        logger.warning("nothing_to_persist", kind="quantiles")
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from anomaly_results.config import LoggingConfig, get_config

if TYPE_CHECKING:
    from structlog.types import Processor

SERVICE_NAME = "anomaly-results"
DEFAULT_LOG_DIR = "logs"
DEFAULT_LOG_FILE = "anomaly-results.jsonl"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

# Store client libraries are chatty at INFO
QUIET_LOGGERS = ("urllib3", "elasticsearch", "elastic_transport", "concurrent")


def _add_service(
    _logger: logging.Logger, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    event_dict["service"] = SERVICE_NAME
    event_dict["pid"] = os.getpid()
    return event_dict


def _pre_chain(timestamp_key: str) -> list[Processor]:
    """Processors shared by structlog and foreign (stdlib) log records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key=timestamp_key),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _formatter(pre_chain: list[Processor], renderer: Processor) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )


def _file_handler(
    path: Path, max_bytes: int, backup_count: int, pre_chain: list[Processor]
) -> logging.Handler:
    """Rotating JSONL handler; exceptions are rendered as structured tracebacks."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path), maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.dict_tracebacks,
                structlog.processors.JSONRenderer(),
            ],
        )
    )
    return handler


def _console_handler(format: str, pre_chain: list[Processor]) -> logging.Handler:
    if format.lower() == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=False, exception_formatter=structlog.dev.plain_traceback
        )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_formatter(pre_chain, renderer))
    return handler


def get_log_file_path(log_dir: str | None = None, log_file: str | None = None) -> Path:
    """Full path of the JSONL log file for a directory and file name."""
    return Path(log_dir or DEFAULT_LOG_DIR) / (log_file or DEFAULT_LOG_FILE)


def _configured_path(settings: LoggingConfig, log_dir: str | None, log_file: str | None) -> Path:
    """
    Resolve the log file path, explicit arguments first.

    A configured ``logging.file`` supplies both the directory and the
    file name when they are not given.
    """
    if log_file is None and settings.file:
        configured = Path(settings.file)
        log_file = configured.name
        if log_dir is None and configured.parent != Path():
            log_dir = str(configured.parent)
    return get_log_file_path(log_dir, log_file)


def setup_logging(
    level: str | None = None,
    format: str | None = None,
    log_file: str | None = None,
    log_dir: str | None = None,
    max_bytes: int | None = None,
    backup_count: int | None = None,
    enable_console: bool = True,
    enable_file: bool = True,
) -> None:
    """
    Configure structlog and the root logger's handlers.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to config value.
        format: Console format (json, plain). Defaults to config value.
        log_file: Log file name. Defaults to the configured file, then
            anomaly-results.jsonl.
        log_dir: Directory for log files. Defaults to the configured
            file's directory, then ./logs.
        max_bytes: Size of a log file before rotation. Default 10MB.
        backup_count: Rotated files to keep. Default 5.
        enable_console: Whether to log to stdout. Default True.
        enable_file: Whether to log to the JSONL file. Default True.
    """
    settings = get_config().logging
    log_level = getattr(logging, (level or settings.level).upper(), logging.INFO)

    file_chain = [*_pre_chain("timestamp"), _add_service]
    structlog.configure(
        processors=[*file_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = []
    if enable_file:
        handlers.append(
            _file_handler(
                _configured_path(settings, log_dir, log_file),
                max_bytes or DEFAULT_MAX_BYTES,
                backup_count or DEFAULT_BACKUP_COUNT,
                file_chain,
            )
        )
    if enable_console:
        handlers.append(_console_handler(format or settings.format, _pre_chain("timestamp")))

    for handler in handlers:
        handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> Any:
    """
    Get a structured logger instance.

    Example:
        logger = get_logger(__name__)
        logger.error("bulk_index_failed", kind="record", failure_message="...")
    """
    return structlog.get_logger(name)


@contextmanager
def with_context(**kwargs: Any) -> Iterator[None]:
    """
    Bind context variables to every entry logged inside the block.

    Bindings made by an outer block are restored on exit.
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


_initialized = False


def ensure_logging() -> None:
    """Ensure logging is initialized (idempotent)."""
    global _initialized
    if not _initialized:
        setup_logging()
        _initialized = True
