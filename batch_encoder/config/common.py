"""
Common configuration settings used throughout the application.

This module contains globally shared constants: the logging format, the names
of the per-directory ledger files, the prefixes of temporary files written
next to the sources, and the helper that reads the optional user YAML file.
User values never mutate these constants; they are merged into an immutable
`EncoderSettings` instance once at startup (see `settings.py`).
"""
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger

# --- User-Defined Configuration ---
# An optional 'config.user.yaml' at the project root can override tool paths
# and encoding defaults. Another file can be passed with `--config`.

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
USER_CONFIG_PATH = PROJECT_ROOT / "config.user.yaml"


# --- Logging Configuration ---

# The format string for the Loguru logger.
LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "WARNING", "ERROR")


# --- Ledger Files ---
# One plain text file per directory and per kind. Each line is an exact basename.

ENCODED_LEDGER_NAME = "encoded.list"
FAILED_LEDGER_NAME = "failed.list"


# --- Temporary Files ---
# Temporary outputs live in the source directory so the final replacement is
# an atomic rename on the same filesystem. Files with this prefix are never
# picked up as candidates.

TEMP_FILE_PREFIX = ".tmp_encode_"
TEMP_SAMPLE_PREFIX = ".tmp_encode_test_"

# The filename of the plain text log that collects ffmpeg diagnostics of
# failed encodes when an error log directory is configured.
ERROR_LOG_FILE_NAME = "error.txt"


def load_user_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Loads the user YAML configuration file.

    Args:
        config_path: Path of the YAML file. Defaults to `USER_CONFIG_PATH`.

    Returns:
        The parsed mapping, or an empty dict when the file is missing, empty
        or unreadable. A broken file is reported but never stops the run.
    """
    path = config_path or USER_CONFIG_PATH
    if not path.is_file():
        logger.debug(f"User config '{path}' not found. Using built-in defaults.")
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            user_config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load or parse '{path}': {e}")
        return {}
    if not isinstance(user_config, dict):
        logger.warning(f"Ignoring '{path}': top level must be a mapping.")
        return {}
    logger.debug(f"Loaded user config from '{path}'.")
    return user_config
