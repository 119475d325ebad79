"""
Configuration Module for Sync Autoreboot.

Loads the watchdog settings from SYNC_* environment variables and an
optional .env file, validating every value against safe defaults.
"""

from .settings import (
    OperatingMode,
    WatchdogConfig,
    load_config,
    parse_env_file,
    read_environment,
)

__all__ = [
    'OperatingMode',
    'WatchdogConfig',
    'load_config',
    'parse_env_file',
    'read_environment',
]
