# Area: Shared
"""
epyc_engine._shared.logging_config — Structured logging setup
=============================================================

Configures dual logging: terminal (colored) + file (JSON lines).
Quiet mode suppresses terminal output for scripted CLI runs while the
file log keeps everything.
"""

from __future__ import annotations
import logging
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..errors import EpycEngineError

# Package logger
logger = logging.getLogger("epyc_engine")

_quiet_mode_enabled = False


class QuietFilter(logging.Filter):
    """Filter that drops terminal records while quiet mode is on."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not _quiet_mode_enabled


# Record attributes that identify what a log line is about
CONTEXT_KEYS = ("season_id", "game_id", "turn_id", "player_id", "error_type")

# ANSI color per level; anything unlisted prints uncolored
LEVEL_COLORS = {
    logging.DEBUG: "\033[2m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
RESET = "\033[0m"


def record_context(record: logging.LogRecord) -> dict:
    """Engine ids attached to a record through ``extra=``."""
    return {
        key: getattr(record, key)
        for key in CONTEXT_KEYS
        if getattr(record, key, None) is not None
    }


def _short_tag(key: str, value) -> str:
    if key.endswith("_id"):
        return f"{key[:-3]}={str(value)[:8]}"
    return f"{key}={value}"


class TerminalFormatter(logging.Formatter):
    """
    One colored line per record, with any engine ids appended in short
    form (``game=1a2b3c4d``) so a turn can be followed by eye.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if context:
            tags = " ".join(_short_tag(key, value) for key, value in context.items())
            line = f"{line} [{tags}]"
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{RESET}" if color else line


class JSONFormatter(logging.Formatter):
    """One JSON object per line for the file log."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    log_file_path: str = "epyc_engine.log",
    level: int = logging.INFO,
) -> None:
    """
    Configure logging for the package.

    Parameters
    ----------
    log_file_path : str
        Path to the log file. Defaults to 'epyc_engine.log' in current dir.
    level : int
        Logging level. Defaults to INFO.
    """
    pkg_logger = logging.getLogger("epyc_engine")
    pkg_logger.setLevel(level)
    pkg_logger.handlers.clear()

    terminal_handler = logging.StreamHandler(sys.stdout)
    terminal_handler.setLevel(level)
    terminal_handler.setFormatter(TerminalFormatter(
        fmt="%(asctime)s │ %(levelname)s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    ))
    terminal_handler.addFilter(QuietFilter())
    pkg_logger.addHandler(terminal_handler)

    try:
        log_path = Path(log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter())
        pkg_logger.addHandler(file_handler)
    except OSError as e:
        pkg_logger.warning("Could not create log file: %s", e)

    pkg_logger.propagate = False


def log_engine_error(error: "EpycEngineError") -> None:
    """Print the structured block for an engine error and log it to file."""
    print(error.format_error_log(), file=sys.stderr)
    logger.error(
        "Engine error: %s", error.__class__.__name__,
        extra={"error_type": error.error_type},
    )


def enable_quiet_mode() -> None:
    """Suppress terminal logging (file logging is unaffected)."""
    global _quiet_mode_enabled
    _quiet_mode_enabled = True


def disable_quiet_mode() -> None:
    """Restore terminal logging."""
    global _quiet_mode_enabled
    _quiet_mode_enabled = False


def is_quiet_mode_enabled() -> bool:
    return _quiet_mode_enabled
