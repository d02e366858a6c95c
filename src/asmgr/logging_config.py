"""
Centralized logging configuration for asmgr.

Every module logs through a child of the "asmgr" logger:

    from .logging_config import get_logger
    logger = get_logger(__name__)
"""

import logging
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler

from .settings import get_log_file


ROOT_LOGGER_NAME = "asmgr"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the asmgr namespace.

    Args:
        name: Component name or a module __name__ ("asmgr.x" is not doubled)

    Returns:
        Logger named "asmgr.<name>"
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True,
    rich_console: bool = True,
) -> logging.Logger:
    """Configure the asmgr logger.

    Existing handlers are removed so repeated calls don't duplicate output.

    Args:
        level: Logging level
        log_file: Optional file to also write to (parent dirs are created)
        console: Whether to log to stderr
        rich_console: Use a RichHandler instead of a plain StreamHandler

    Returns:
        The configured root asmgr logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(level)
    logger.propagate = False

    if console:
        if rich_console:
            handler: logging.Handler = RichHandler(
                console=Console(stderr=True),
                show_path=False,
                rich_tracebacks=True,
            )
            handler.setFormatter(logging.Formatter("%(message)s"))
        else:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(level)
        logger.addHandler(handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    return logger


def setup_cli_logging(verbose: bool = False) -> logging.Logger:
    """Console logging for one-shot CLI commands (warnings only by default)."""
    return setup_logging(
        level=logging.DEBUG if verbose else logging.WARNING,
        console=True,
    )


def setup_file_logging(log_file: Optional[Path] = None) -> logging.Logger:
    """File-only logging for when a full-screen UI owns the terminal."""
    return setup_logging(
        level=logging.DEBUG,
        log_file=log_file or get_log_file(),
        console=False,
    )


class StructuredLogger:
    """Logger wrapper that appends key=value context to every message.

    Example:
        log = get_structured_logger("launcher").with_context(instance_id="01H...")
        log.info("started")  # "started instance_id=01H..."
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        self._logger = logger
        self._context = context

    def with_context(self, **context: Any) -> "StructuredLogger":
        merged = dict(self._context)
        merged.update(context)
        return StructuredLogger(self._logger, **merged)

    def _format(self, msg: str, extra: dict) -> str:
        fields = dict(self._context)
        fields.update(extra)
        if not fields:
            return msg
        suffix = " ".join(f"{k}={v}" for k, v in fields.items())
        return f"{msg} {suffix}"

    def debug(self, msg: str, **kw: Any) -> None:
        self._logger.debug(self._format(msg, kw))

    def info(self, msg: str, **kw: Any) -> None:
        self._logger.info(self._format(msg, kw))

    def warning(self, msg: str, **kw: Any) -> None:
        self._logger.warning(self._format(msg, kw))

    def error(self, msg: str, **kw: Any) -> None:
        self._logger.error(self._format(msg, kw))

    def exception(self, msg: str, **kw: Any) -> None:
        self._logger.exception(self._format(msg, kw))


def get_structured_logger(name: str, **context: Any) -> StructuredLogger:
    """Get a StructuredLogger under the asmgr namespace."""
    return StructuredLogger(get_logger(name), **context)
