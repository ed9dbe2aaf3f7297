"""
epyc_engine.settings — Process settings
=======================================

Settings for running the engine in a process: database location,
logging and retry budget. Game rules are not here; they live in
``SeasonConfig`` / ``GameConfig`` and are stored per season or game.

Precedence: built-in defaults, then a JSON config file, then
environment variables (a ``.env`` file in the working directory is
loaded first).
"""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .errors import ConfigValidationError

logger = logging.getLogger("epyc_engine.settings")

# Environment variable -> settings field
ENV_MAPPINGS = {
    "EPYC_DB_PATH": "database_path",
    "EPYC_LOG_FILE": "log_file",
    "EPYC_LOG_LEVEL": "log_level",
    "EPYC_RETRY_MAX_ATTEMPTS": "retry_max_attempts",
    "EPYC_RETRY_BASE_DELAY": "retry_base_delay",
}


@dataclass(frozen=True)
class EngineSettings:
    database_path: str = "epyc.db"
    log_file: str = "epyc_engine.log"
    log_level: str = "INFO"
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0

    def __post_init__(self) -> None:
        # Reject unknown level names at load time
        self.log_level_value

    @property
    def log_level_value(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        if not isinstance(level, int):
            raise ConfigValidationError("log_level", f"unknown level {self.log_level!r}")
        return level


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw file/env value to the type of settings field ``name``."""
    kind = {f.name: f.type for f in fields(EngineSettings)}[name]
    try:
        if kind in (int, "int"):
            value = int(value)
            if value < 1:
                raise ValueError("must be at least 1")
        elif kind in (float, "float"):
            value = float(value)
            if value < 0:
                raise ValueError("must not be negative")
        else:
            value = str(value)
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(name, str(e)) from e
    return value


def load_settings(
    config_path: Optional[str] = None,
    environ: Optional[Dict[str, str]] = None,
    use_dotenv: bool = True,
) -> EngineSettings:
    """
    Load settings from file and environment.

    Raises:
        ConfigValidationError: On unknown keys or values of the wrong type
    """
    if use_dotenv and environ is None:
        load_dotenv()
    env = os.environ if environ is None else environ

    updates: Dict[str, Any] = {}
    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            known = {f.name for f in fields(EngineSettings)}
            unknown = set(data) - known
            if unknown:
                raise ConfigValidationError("config", f"unknown keys {sorted(unknown)}")
            updates.update({k: _coerce(k, v) for k, v in data.items()})
        else:
            logger.warning("Config file %s not found, using defaults", config_path)

    for env_key, field_name in ENV_MAPPINGS.items():
        if env_key in env:
            updates[field_name] = _coerce(field_name, env[env_key])

    return replace(EngineSettings(), **updates)
