"""Environment variable validation and management."""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS_PATH = Path(__file__).resolve().parent / "derivation_weights.json"
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass


def validate_environment() -> None:
    """Validate the compiler's environment variables.

    Raises EnvironmentError if validation fails.
    """
    configured = os.getenv("PROFILE_WEIGHTS_PATH")
    if configured and not Path(configured).is_file():
        raise EnvironmentError(f"PROFILE_WEIGHTS_PATH does not point to a file: {configured}")

    level = os.getenv("PROFILE_LOG_LEVEL")
    if level and level.upper() not in _LOG_LEVELS:
        raise EnvironmentError(f"Invalid PROFILE_LOG_LEVEL: {level}")

    optional_vars = {
        "PROFILE_WEIGHTS_PATH": "Alternate derivation weight table",
        "PROFILE_DERIVATION_SELF_CHECK": "Repeat tag derivation to detect non-determinism",
    }
    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning("Optional environment variable not set: %s (%s)", var, description)


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}


def weights_path() -> Path:
    """Return the weight table location, honouring ``PROFILE_WEIGHTS_PATH``."""
    configured = os.getenv("PROFILE_WEIGHTS_PATH")
    if configured:
        return Path(configured)
    return DEFAULT_WEIGHTS_PATH


def self_check_enabled() -> bool:
    return get_env_bool("PROFILE_DERIVATION_SELF_CHECK", default=True)


def log_level() -> str:
    return (os.getenv("PROFILE_LOG_LEVEL") or "INFO").upper()
