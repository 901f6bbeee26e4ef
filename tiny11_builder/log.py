"""Logging setup for tiny11_builder.

Modules log through ``logging.getLogger(__name__)``; components accept an
injected logger so a build session can route everything it does into its
own log file.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "tiny11_builder"
SESSION_LOGGER = f"{PACKAGE_LOGGER}.build"

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str = "INFO", console: Console | None = None) -> logging.Logger:
    """Install a Rich console handler on the package logger.

    Calling this more than once replaces the previous console handler.

    Args:
        level: Logging level name.
        console: Optional Rich console to write to.

    Returns:
        The package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(
        console=console,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setLevel(level)
    logger.addHandler(handler)
    return logger


def session_logger(
    build_id: str,
    logs_dir: Path | None = None,
    level: str | int = logging.INFO,
) -> logging.Logger:
    """Create the logger for one build session.

    The level is set on the session logger itself so the log file is
    complete even when no console handler was configured.

    Args:
        build_id: Identifier of the build session.
        logs_dir: Directory for the session log file; no file when None.
        level: Level of the session logger.

    Returns:
        Child logger of the package logger.
    """
    logger = logging.getLogger(f"{SESSION_LOGGER}.{build_id}")
    logger.setLevel(level)
    if logs_dir is not None:
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(logs_dir / f"{build_id}.log", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)
    return logger


def session_log_path(logger: logging.Logger) -> Path | None:
    """Return the file a session logger writes to, if any."""
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)
    return None


def close_session_logger(logger: logging.Logger) -> None:
    """Detach and close the handlers of a session logger and forget it."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    # Loggers are never released by the logging module; session ids are unique
    if logger.name.startswith(f"{SESSION_LOGGER}."):
        logging.Logger.manager.loggerDict.pop(logger.name, None)


__all__ = [
    "PACKAGE_LOGGER",
    "SESSION_LOGGER",
    "close_session_logger",
    "session_log_path",
    "session_logger",
    "setup_logging",
]
