"""
Centralized Constants Module for Sync Autoreboot.

This module consolidates the defaults, thresholds and timeouts used by the
watchdog so that every module agrees on them and operators can audit them
in one place.

Usage:
    from autoreboot.constants import Defaults, Timeouts, Permissions

    subprocess.run(cmd, timeout=Timeouts.REBOOT_COMMAND)
    os.chmod(path, Permissions.SECURE_FILE)
"""

import logging
import math
import os
import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Mapping, Optional, TypeVar

from .utils.error_handling import ConfigError, log_config_error

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == 'win32'

ENV_PREFIX = "SYNC_"


# =============================================================================
# ENVIRONMENT VARIABLE OVERRIDE UTILITIES
# =============================================================================

T = TypeVar('T')


def _reject(full_env_var: str, env_value: str, reason: str, default) -> None:
    log_config_error(
        ConfigError(f"{full_env_var}={env_value!r} {reason}, using default {default}"),
        f"settings.{full_env_var}",
    )


def _env_override(
    env_var: str,
    default: T,
    converter: Callable[[str], T] = str,
    validator: Optional[Callable[[T], bool]] = None,
    min_value: Optional[T] = None,
    max_value: Optional[T] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> T:
    """Get a configuration value with environment variable override.

    Args:
        env_var: Environment variable name (will be prefixed with SYNC_)
        default: Default value if env var not set
        converter: Function to convert string to target type
        validator: Optional validation function
        min_value: Optional minimum allowed value
        max_value: Optional maximum allowed value
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Configured value (from env var if valid, otherwise default)
    """
    full_env_var = f"{ENV_PREFIX}{env_var}"
    source = os.environ if environ is None else environ
    env_value = source.get(full_env_var)

    if env_value is None or env_value.strip() == "":
        return default

    try:
        converted = converter(env_value.strip())

        if min_value is not None and converted < min_value:
            _reject(full_env_var, env_value, f"below minimum {min_value}", default)
            return default
        if max_value is not None and converted > max_value:
            _reject(full_env_var, env_value, f"above maximum {max_value}", default)
            return default

        if validator is not None and not validator(converted):
            _reject(full_env_var, env_value, "failed validation", default)
            return default

        logger.debug(f"Using {full_env_var}={converted} (override)")
        return converted

    except (ValueError, TypeError) as e:
        _reject(full_env_var, env_value, f"is invalid ({e})", default)
        return default


def _is_valid_duration(value: float) -> bool:
    """Durations must be finite and non-negative."""
    return math.isfinite(value) and value >= 0


def env_duration(
    env_var: str,
    default: float,
    environ: Optional[Mapping[str, str]] = None,
) -> float:
    """Read a duration in seconds; invalid, negative or non-finite values fall back."""
    return _env_override(
        env_var,
        default,
        converter=float,
        validator=_is_valid_duration,
        environ=environ,
    )


# =============================================================================
# WATCHDOG DEFAULTS
# =============================================================================

@dataclass(frozen=True)
class Defaults:
    """
    Default watchdog thresholds, all in seconds.

    These apply whenever the corresponding SYNC_* variable is missing or
    invalid.
    """
    CHECK_INTERVAL: float = 60.0          # 1 minute between cycles
    ALLOWED_DIFFERENCE: float = 300.0     # 5 minutes of tolerated drift
    TIMEOUT_DURATION: float = 180.0       # 3 minutes armed before reboot
    MIN_REBOOT_INTERVAL: float = 1800.0   # 30 minutes between reboots


@dataclass(frozen=True)
class NetworkConstants:
    """Reference endpoint wiring."""
    DEFAULT_PORT: int = 51823
    DEFAULT_DOMAIN: str = "localhost"
    DEFAULT_BIND_HOST: str = "0.0.0.0"
    TIMESTAMP_PATH: str = "/api/timestamp"
    HEALTH_PATH: str = "/health"
    MAX_RESPONSE_BYTES: int = 64 * 1024
    MIN_PORT: int = 1
    MAX_PORT: int = 65535


class Timeouts:
    """
    Centralized timeout values in seconds.

    Too short = false failures. Too long = a hung collaborator stalls the
    supervisor loop.
    """
    # Reference time request (connect + read)
    HTTP_REQUEST: float = 10.0

    # Reboot command execution
    REBOOT_COMMAND: float = 30.0

    # Thread join timeouts
    THREAD_JOIN_SHORT: float = 2.0
    THREAD_JOIN_DEFAULT: float = 5.0


# =============================================================================
# FILE PERMISSION CONSTANTS
# =============================================================================

class Permissions(IntEnum):
    """File permission modes for the guard record."""
    SECURE_FILE = 0o600                 # rw-------
    SECURE_DIR = 0o700                  # rwx------


# =============================================================================
# PATH CONSTANTS
# =============================================================================

@dataclass(frozen=True)
class Paths:
    """Filesystem locations."""
    GUARD_FILE_NAME: str = "last_reboot.txt"
    DEFAULT_ENV_FILE: str = ".env"


@dataclass(frozen=True)
class Version:
    """Version and metadata constants."""
    PACKAGE_VERSION: str = "1.0.0"
    RECORD_FORMAT_VERSION: int = 1


__all__ = [
    'ENV_PREFIX',
    'IS_WINDOWS',
    'Defaults',
    'NetworkConstants',
    'Timeouts',
    'Permissions',
    'Paths',
    'Version',
    'env_duration',
]
