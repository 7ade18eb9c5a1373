"""Structured logging with per-task context.

Context bound with ``structlog.contextvars`` is merged into every event: the
request middleware binds ``request_id`` and ``user_id``, and a running
deployment binds ``store_id``, ``deployment_id`` and ``version``. Worker
threads started with ``asyncio.to_thread`` inherit that context, so the
writer, domain manager and notifier only log what is specific to them.

Standard library records (uvicorn, sqlite warnings) go through the same
processors. The console renders as configured; the log file is always JSON.
"""

import logging
import sys
from pathlib import Path
from typing import Any

import structlog
from structlog.contextvars import merge_contextvars

from buildcart.config import Settings, settings as default_settings

# Handlers installed by configure_logging, replaced on reconfiguration
_installed_handlers: list[logging.Handler] = []


def _shared_processors() -> list[Any]:
    return [
        merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _formatter(json: bool) -> structlog.stdlib.ProcessorFormatter:
    if json:
        renderers: list[Any] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
    )


def log_file_path(config: Settings) -> Path:
    """Where the JSON log file lives; relative directories resolve from cwd."""
    log_dir = Path(config.log_directory)
    if not log_dir.is_absolute():
        log_dir = Path.cwd() / log_dir
    return log_dir / config.log_file_name


def configure_logging(config: Settings | None = None) -> None:
    """Route structlog and stdlib logging to stdout and the JSON log file.

    Safe to call more than once; earlier handlers are closed and replaced.
    """
    config = config or default_settings

    log_file = log_file_path(config)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_formatter(json=config.log_format == "json"))
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(_formatter(json=True))

    root = logging.getLogger()
    for handler in _installed_handlers:
        root.removeHandler(handler)
        handler.close()
    _installed_handlers[:] = [console, file_handler]
    for handler in _installed_handlers:
        root.addHandler(handler)
    root.setLevel(config.log_level)

    # Request lines come from our middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
