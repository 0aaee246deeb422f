"""Structured logging setup."""

from __future__ import annotations

import logging
import logging.handlers
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

    from bridgebus.core.models.config import LogConfig


def _file_handler(path: Path, cfg: LogConfig, level: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=cfg.max_size_mb * 1024 * 1024,
        backupCount=cfg.backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def configure_logging(cfg: LogConfig) -> None:
    """Route structlog through the stdlib root logger.

    Console rendering by default, JSON lines when ``cfg.structured`` is set.
    A rotating file handler is added when ``cfg.file`` is configured.
    """
    level = getattr(logging, cfg.level, logging.INFO)

    renderer: structlog.typing.Processor
    if cfg.structured:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = logging.Formatter("%(message)s")
    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if cfg.file is not None:
        file_handler = _file_handler(cfg.file, cfg, level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
