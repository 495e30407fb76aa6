"""structlog events forwarded to stdlib handlers writing JSON lines."""

from __future__ import annotations

import logging
import logging.config
from collections import deque
from pathlib import Path
from typing import Any

import structlog

ROOT_LOGGER = "maker_radar"

# Log name -> minimum level written to ``<log_dir>/<name>.log``.
LOG_FILES = {"pipeline": "INFO", "error": "ERROR"}

# Third-party loggers capped at WARNING.
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler")

MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

_active: tuple[Path, bool] | None = None


def _default_log_dir() -> Path:
    return Path(__file__).resolve().parents[1] / "logs"


def log_path(log_dir: Path, name: str) -> Path:
    if name not in LOG_FILES:
        raise ValueError(f"Unknown log `{name}`; expected one of: {', '.join(LOG_FILES)}")
    return log_dir / f"{name}.log"


def _handlers(log_dir: Path, level: str) -> dict[str, dict[str, Any]]:
    handlers: dict[str, dict[str, Any]] = {
        "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
    }
    for name, file_level in LOG_FILES.items():
        handlers[f"{name}_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": file_level,
            "filename": str(log_path(log_dir, name)),
            "maxBytes": MAX_LOG_BYTES,
            "backupCount": LOG_BACKUPS,
            "encoding": "utf-8",
            "formatter": "json",
        }
    return handlers


def configure_logging(verbose: bool = False, log_dir: Path | None = None) -> structlog.BoundLogger:
    """Route every ``maker_radar.*`` structlog event to console and rotating JSON files.

    Calling again with the same arguments is a no-op; a different ``log_dir`` or
    verbosity rebuilds the handlers.
    """

    global _active
    log_dir = log_dir or _default_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    if _active == (log_dir, verbose):
        return structlog.get_logger(ROOT_LOGGER)

    level = "DEBUG" if verbose else "INFO"
    handlers = _handlers(log_dir, level)
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                    "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": handlers,
            "loggers": {
                ROOT_LOGGER: {"handlers": list(handlers), "level": level, "propagate": False},
                **{name: {"level": "WARNING"} for name in QUIET_LOGGERS},
            },
        }
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _active = (log_dir, verbose)
    return structlog.get_logger(ROOT_LOGGER)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists() or line_count <= 0:
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return list(deque(stream, maxlen=line_count))


__all__ = ["LOG_FILES", "configure_logging", "log_path", "tail_log"]
