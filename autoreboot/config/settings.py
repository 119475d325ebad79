"""
Watchdog settings.

Settings come from SYNC_* environment variables, optionally layered over a
.env file. Every value is validated on load; anything missing, malformed or
negative falls back to the documented default and is logged, so the daemon
always starts with a usable configuration.

Recognized variables:
    SYNC_CHECK_INTERVAL       seconds between supervisor cycles (60)
    SYNC_ALLOWED_DIFFERENCE   tolerated drift in seconds (300)
    SYNC_TIMEOUT_DURATION     seconds an alarm must stay armed (180)
    SYNC_MIN_REBOOT_INTERVAL  cooldown between reboots in seconds (1800)
    SYNC_DOMAIN / SYNC_PORT   reference endpoint host and port
    SYNC_API_URL              full endpoint URL (overrides domain/port)
    SYNC_ENV                  "development" (simulated) or "production"
    SYNC_GUARD_FILE           path of the persisted reboot record
    SYNC_REQUEST_TIMEOUT      reference request timeout in seconds
    SYNC_REBOOT_TIMEOUT       reboot command timeout in seconds
    SYNC_REBOOT_COMMAND       custom reboot command line (production only)
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..constants import (
    ENV_PREFIX,
    Defaults,
    NetworkConstants,
    Paths,
    Timeouts,
    _env_override,
    env_duration,
)
from ..utils.error_handling import ConfigError, log_config_error

logger = logging.getLogger(__name__)


class OperatingMode(Enum):
    """Selects simulated or real reboot execution."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: Optional[str]) -> 'OperatingMode':
        if not value:
            return cls.PRODUCTION
        try:
            return cls(value.strip().lower())
        except ValueError:
            log_config_error(
                ConfigError(f"unknown mode '{value}', assuming production mode"),
                f"settings.{ENV_PREFIX}ENV",
            )
            return cls.PRODUCTION

    @property
    def simulated(self) -> bool:
        return self is OperatingMode.DEVELOPMENT


def _default_guard_file() -> str:
    return str(Path.cwd() / Paths.GUARD_FILE_NAME)


@dataclass
class WatchdogConfig:
    """Read-only settings for the lifetime of the process. Durations are seconds."""
    check_interval: float = Defaults.CHECK_INTERVAL
    allowed_difference: float = Defaults.ALLOWED_DIFFERENCE
    timeout_duration: float = Defaults.TIMEOUT_DURATION
    min_reboot_interval: float = Defaults.MIN_REBOOT_INTERVAL
    domain: str = NetworkConstants.DEFAULT_DOMAIN
    port: int = NetworkConstants.DEFAULT_PORT
    api_url_override: Optional[str] = None
    mode: OperatingMode = OperatingMode.PRODUCTION
    guard_file: str = field(default_factory=_default_guard_file)
    request_timeout: float = Timeouts.HTTP_REQUEST
    reboot_timeout: float = Timeouts.REBOOT_COMMAND
    reboot_command: Optional[str] = None

    @property
    def api_url(self) -> str:
        if self.api_url_override:
            return self.api_url_override
        return f"http://{self.domain}:{self.port}{NetworkConstants.TIMESTAMP_PATH}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'check_interval': self.check_interval,
            'allowed_difference': self.allowed_difference,
            'timeout_duration': self.timeout_duration,
            'min_reboot_interval': self.min_reboot_interval,
            'domain': self.domain,
            'port': self.port,
            'api_url': self.api_url,
            'mode': self.mode.value,
            'guard_file': self.guard_file,
            'request_timeout': self.request_timeout,
            'reboot_timeout': self.reboot_timeout,
            'reboot_command': self.reboot_command,
        }


def parse_env_file(path: Path) -> Dict[str, str]:
    """Parse KEY=VALUE lines; blank lines and # comments are skipped."""
    data: Dict[str, str] = {}
    if not path.exists() or not path.is_file():
        return data
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        data[key] = value
    return data


def read_environment(
    env_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Merge a .env file under the process environment.

    Args:
        env_file: Optional .env file; values already present in environ win
        environ: Mapping to read from (defaults to os.environ)
    """
    merged: Dict[str, str] = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.exists():
            merged.update(parse_env_file(env_path))
            logger.info(f"Loaded settings file {env_path}")
        else:
            logger.warning(f"Settings file {env_path} not found, using environment only")
    merged.update(os.environ if environ is None else environ)
    return merged


def _is_valid_port(port: int) -> bool:
    return NetworkConstants.MIN_PORT <= port <= NetworkConstants.MAX_PORT


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    env_file: Optional[str] = None,
) -> WatchdogConfig:
    """
    Build a WatchdogConfig from the environment.

    Args:
        environ: Mapping to read from (defaults to os.environ)
        env_file: Optional .env file; values already present in environ win

    Returns:
        A fully validated WatchdogConfig
    """
    merged = read_environment(env_file, environ)

    def text(name: str) -> Optional[str]:
        value = merged.get(f"{ENV_PREFIX}{name}")
        if value is None or not value.strip():
            return None
        return value.strip()

    config = WatchdogConfig(
        check_interval=env_duration('CHECK_INTERVAL', Defaults.CHECK_INTERVAL, merged),
        allowed_difference=env_duration('ALLOWED_DIFFERENCE', Defaults.ALLOWED_DIFFERENCE, merged),
        timeout_duration=env_duration('TIMEOUT_DURATION', Defaults.TIMEOUT_DURATION, merged),
        min_reboot_interval=env_duration('MIN_REBOOT_INTERVAL', Defaults.MIN_REBOOT_INTERVAL, merged),
        domain=text('DOMAIN') or NetworkConstants.DEFAULT_DOMAIN,
        port=_env_override('PORT', NetworkConstants.DEFAULT_PORT, converter=int,
                           validator=_is_valid_port, environ=merged),
        api_url_override=text('API_URL'),
        mode=OperatingMode.from_string(text('ENV')),
        guard_file=text('GUARD_FILE') or _default_guard_file(),
        request_timeout=env_duration('REQUEST_TIMEOUT', Timeouts.HTTP_REQUEST, merged),
        reboot_timeout=env_duration('REBOOT_TIMEOUT', Timeouts.REBOOT_COMMAND, merged),
        reboot_command=text('REBOOT_COMMAND'),
    )

    # A zero timeout would make every request fail immediately
    if config.request_timeout == 0:
        log_config_error(ConfigError("SYNC_REQUEST_TIMEOUT=0 is not usable, using default"),
                         "settings.SYNC_REQUEST_TIMEOUT")
        config.request_timeout = Timeouts.HTTP_REQUEST
    if config.reboot_timeout == 0:
        log_config_error(ConfigError("SYNC_REBOOT_TIMEOUT=0 is not usable, using default"),
                         "settings.SYNC_REBOOT_TIMEOUT")
        config.reboot_timeout = Timeouts.REBOOT_COMMAND

    return config
