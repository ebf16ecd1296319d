"""Logging setup with rich console output and persistent file logging."""

from __future__ import annotations

import logging
import os
import uuid
from contextvars import ContextVar
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

custom_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow bold",
        "error": "red bold",
        "success": "green bold",
        "highlight": "magenta bold",
        "dim": "dim white",
    }
)

console = Console(theme=custom_theme)
err_console = Console(stderr=True, theme=custom_theme)

# ── Correlation IDs ──────────────────────────────────────────────────────────

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")
_operation_id_var: ContextVar[str] = ContextVar("operation_id", default="")


def set_request_id(rid: str = "") -> str:
    """Set the current request correlation ID. Returns the ID (generates one if empty)."""
    rid = rid or uuid.uuid4().hex[:12]
    _request_id_var.set(rid)
    return rid


def set_operation_id(oid: str = "") -> str:
    """Tag log lines with the pipeline operation currently running in this context."""
    oid = oid or uuid.uuid4().hex[:8]
    _operation_id_var.set(oid)
    return oid


def _ctx_prefix() -> str:
    parts = []
    rid = _request_id_var.get()
    oid = _operation_id_var.get()
    if rid:
        parts.append(f"req={rid}")
    if oid:
        parts.append(f"op={oid}")
    return f"[{' '.join(parts)}] " if parts else ""


# ── File logging configuration ───────────────────────────────────────────────

LOG_DIR = Path("data/logs")
_file_logger: logging.Logger | None = None
_pipeline_logger: logging.Logger | None = None


class _ContextFormatter(logging.Formatter):
    """Formatter that prepends request_id/operation_id to every message.

    The prefix goes into ``%(ctx)s``; ``record.msg`` is never rewritten, so
    several handlers can format the same record.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.ctx = _ctx_prefix()
        return super().format(record)


def _setup_file_handler(
    logger: logging.Logger,
    filepath: Path,
    max_bytes: int = 20 * 1024 * 1024,
    backup_count: int = 5,
    level: int = logging.DEBUG,
) -> None:
    filepath.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filepath, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    fmt = _ContextFormatter(
        "%(asctime)s %(levelname)-8s %(name)-20s %(ctx)s%(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(fmt)
    logger.addHandler(handler)


class Verbosity(str, Enum):
    SILENT = "silent"
    NORMAL = "normal"
    VERBOSE = "verbose"


_current_verbosity = Verbosity.NORMAL


def setup_logging(verbosity: Verbosity = Verbosity.NORMAL, log_dir: Path | None = None) -> None:
    global _current_verbosity, _file_logger, _pipeline_logger
    _current_verbosity = verbosity

    env_level = os.environ.get("LOG_LEVEL", "").upper()
    level_map = {"DEBUG": logging.DEBUG, "INFO": logging.INFO, "WARNING": logging.WARNING,
                 "ERROR": logging.ERROR, "CRITICAL": logging.CRITICAL}

    if env_level in level_map:
        level = level_map[env_level]
    else:
        level = {
            Verbosity.SILENT: logging.ERROR,
            Verbosity.NORMAL: logging.INFO,
            Verbosity.VERBOSE: logging.DEBUG,
        }[verbosity]

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, markup=True)],
        force=True,
    )

    target = log_dir or LOG_DIR

    _file_logger = logging.getLogger("clipshare.app")
    _file_logger.setLevel(logging.DEBUG)
    _file_logger.propagate = False
    _file_logger.handlers.clear()
    _setup_file_handler(_file_logger, target / "app.log")

    # Pipeline log: phases, staged files, engine commands
    _pipeline_logger = logging.getLogger("clipshare.pipeline")
    _pipeline_logger.setLevel(logging.DEBUG)
    _pipeline_logger.propagate = False
    _pipeline_logger.handlers.clear()
    _setup_file_handler(_pipeline_logger, target / "pipeline.log")


def get_pipeline_logger() -> logging.Logger:
    return _pipeline_logger or logging.getLogger("clipshare.pipeline")


def info(msg: str, **kwargs: Any) -> None:
    if _current_verbosity != Verbosity.SILENT:
        console.print(f"[info]ℹ {msg}[/info]", **kwargs)
    if _file_logger:
        _file_logger.info(msg)


def success(msg: str, **kwargs: Any) -> None:
    if _current_verbosity != Verbosity.SILENT:
        console.print(f"[success]✓ {msg}[/success]", **kwargs)
    if _file_logger:
        _file_logger.info(msg)


def warn(msg: str, **kwargs: Any) -> None:
    if _current_verbosity != Verbosity.SILENT:
        console.print(f"[warning]⚠ {msg}[/warning]", **kwargs)
    if _file_logger:
        _file_logger.warning(msg)


def error(msg: str, **kwargs: Any) -> None:
    err_console.print(f"[error]✗ {msg}[/error]", **kwargs)
    if _file_logger:
        _file_logger.error(msg)


def debug(msg: str, **kwargs: Any) -> None:
    if _current_verbosity == Verbosity.VERBOSE:
        console.print(f"[dim]  {msg}[/dim]", **kwargs)
    if _file_logger:
        _file_logger.debug(msg)


def pipeline_log(msg: str, level: str = "info") -> None:
    """Write to the pipeline log file (always, regardless of verbosity)."""
    pl = get_pipeline_logger()
    getattr(pl, level, pl.info)(msg)
