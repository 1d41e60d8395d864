"""
Configuration for pipemagic.

Settings are resolved from environment variables with fallbacks:
- Log level: PIPEMAGIC_LOG_LEVEL (default: WARNING)
- Pipeline directory: PIPEMAGIC_PIPELINE_DIR (default: current directory),
  used by the CLI to resolve relative pipeline paths
"""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV_VAR = "PIPEMAGIC_LOG_LEVEL"
PIPELINE_DIR_ENV_VAR = "PIPEMAGIC_PIPELINE_DIR"

DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_log_level(override: Optional[str] = None) -> str:
    """
    Get the configured log level name.

    Priority order:
    1. Explicit override (e.g. CLI --log-level)
    2. PIPEMAGIC_LOG_LEVEL environment variable
    3. Default: WARNING

    Unknown names fall back to the default.
    """
    level = override or os.environ.get(LOG_LEVEL_ENV_VAR) or DEFAULT_LOG_LEVEL
    level = level.upper()
    if level not in LOG_LEVELS:
        logger.warning("Unknown log level %r, using %s", level, DEFAULT_LOG_LEVEL)
        return DEFAULT_LOG_LEVEL
    return level


def get_pipeline_dir() -> Path:
    """
    Get the directory relative pipeline paths are resolved against.

    Priority order:
    1. PIPEMAGIC_PIPELINE_DIR environment variable
    2. Default: current working directory
    """
    env_dir = os.environ.get(PIPELINE_DIR_ENV_VAR)
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    return Path.cwd()


def resolve_pipeline_path(path: Path) -> Path:
    """Resolve a pipeline path, treating relative paths as relative to the pipeline dir."""
    path = Path(path).expanduser()
    if path.is_absolute():
        return path
    return (get_pipeline_dir() / path).resolve()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for command-line use."""
    numeric_level = getattr(logging, get_log_level(level))
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    logging.getLogger("pipemagic").setLevel(numeric_level)
