"""Structured logging configuration — structlog + stdlib logging."""

from __future__ import annotations

import logging
import logging.config

import structlog

from pkgtrail.core.config import Settings

_FORMATS = ("console", "json")

# Third-party loggers that only matter when debugging pkgtrail itself
_QUIET_LOGGERS = ("aiosqlite", "asyncpg", "httpx", "httpcore")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    # No colors: output is often piped or captured by CI
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(settings: Settings) -> None:
    """Configure structlog and stdlib logging from *settings*.

    Logs go to stderr so command output on stdout stays machine-readable.
    At DEBUG the SQL statements issued by the walk are logged as well.

    Raises ``ValueError`` for an unknown level or format.
    """
    log_level = settings.log_level.upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"unknown log level {settings.log_level!r}")
    log_format = settings.log_format.lower()
    if log_format not in _FORMATS:
        raise ValueError(f"log format must be one of {', '.join(_FORMATS)}")

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers: dict[str, dict[str, str]] = {
        "pkgtrail": {"level": log_level},
        "sqlalchemy.engine": {"level": "INFO" if log_level == "DEBUG" else "WARNING"},
    }
    loggers.update({name: {"level": "WARNING"} for name in _QUIET_LOGGERS})

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        _renderer(log_format),
                    ],
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            "root": {
                "handlers": ["stderr"],
                "level": log_level,
            },
            "loggers": loggers,
        }
    )
