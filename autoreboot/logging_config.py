"""
Logging Configuration for Sync Autoreboot.

Provides centralized logging setup with a verbose toggle and either
human-readable or JSON line output.

Usage:
    from autoreboot.logging_config import setup_logging

    # Setup at daemon startup
    setup_logging(verbose=True)

    logger = logging.getLogger('autoreboot.supervisor')
    logger.info("Cycle complete", extra={'extra_data': {'diff_ms': 12}})
"""

import json
import logging
import os
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .constants import ENV_PREFIX

APP_TAG = "sync-autoreboot"


# =============================================================================
# CONFIGURATION STATE
# =============================================================================

@dataclass
class LoggingState:
    """Thread-safe logging configuration state."""
    verbose: bool = False
    log_file: Optional[str] = None
    console_enabled: bool = True
    json_format: bool = False
    initialized: bool = False
    _lock: threading.RLock = field(default_factory=threading.RLock)


_state = LoggingState()


# =============================================================================
# CUSTOM FORMATTER
# =============================================================================

class SyncFormatter(logging.Formatter):
    """Formatter with optional color support and structured output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33;1m',  # Bold yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[31;1m', # Bold red
        'RESET': '\033[0m',
    }

    def __init__(self, use_colors: bool = True, json_format: bool = False):
        self.use_colors = use_colors and sys.stdout.isatty()
        self.json_format = json_format
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        if self.json_format:
            return self._format_json(record)
        return self._format_text(record)

    def _format_text(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
        level_name = record.levelname

        if self.use_colors:
            color = self.COLORS.get(level_name, '')
            reset = self.COLORS['RESET']
            level_str = f"{color}{level_name:8}{reset}"
        else:
            level_str = f"{level_name:8}"

        component = self._extract_component(record.name)
        msg = record.getMessage()

        extra_str = ""
        extra_data = getattr(record, 'extra_data', None)
        if extra_data:
            extra_items = [f"{k}={v}" for k, v in extra_data.items()]
            extra_str = f" | {', '.join(extra_items)}"

        line = f"[{APP_TAG}] {timestamp} {level_str} [{component}] {msg}{extra_str}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    def _format_json(self, record: logging.LogRecord) -> str:
        data: Dict[str, Any] = {
            'app': APP_TAG,
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'component': self._extract_component(record.name),
            'message': record.getMessage(),
        }

        extra_data = getattr(record, 'extra_data', None)
        if extra_data:
            data['extra'] = extra_data

        if record.exc_info:
            data['exception'] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)

    @staticmethod
    def _extract_component(logger_name: str) -> str:
        """autoreboot.api.time_server -> time_server"""
        parts = logger_name.split('.')
        if parts and parts[0] == 'autoreboot' and len(parts) >= 2:
            return parts[-1]
        return parts[-1] if parts else 'core'


# =============================================================================
# SETUP AND CONFIGURATION
# =============================================================================

def setup_logging(
    verbose: bool = False,
    log_file: Optional[str] = None,
    console: bool = True,
    json_format: bool = False,
) -> None:
    """
    Initialize the logging system.

    Args:
        verbose: Enable DEBUG output
        log_file: Optional file path for log output
        console: Enable console output
        json_format: Use JSON format for logs
    """
    with _state._lock:
        _state.verbose = verbose
        _state.log_file = log_file
        _state.console_enabled = console
        _state.json_format = json_format

        base_level = logging.DEBUG if verbose else logging.INFO

        root = logging.getLogger()
        root.setLevel(base_level)

        for handler in root.handlers[:]:
            root.removeHandler(handler)

        if console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(base_level)
            console_handler.setFormatter(SyncFormatter(
                use_colors=True,
                json_format=json_format,
            ))
            root.addHandler(console_handler)

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(base_level)
            file_handler.setFormatter(SyncFormatter(
                use_colors=False,
                json_format=json_format,
            ))
            root.addHandler(file_handler)

        # urllib3 logs every connection attempt at DEBUG
        logging.getLogger('urllib3').setLevel(logging.WARNING)

        _state.initialized = True


def set_verbose(enabled: bool) -> None:
    """Toggle verbose mode at runtime."""
    with _state._lock:
        _state.verbose = enabled
        level = logging.DEBUG if enabled else logging.INFO

        root = logging.getLogger()
        root.setLevel(level)

        for handler in root.handlers:
            handler.setLevel(level)


def is_verbose() -> bool:
    """Check if verbose mode is enabled."""
    return _state.verbose


def get_logging_state() -> Dict[str, Any]:
    """Get current logging configuration state."""
    with _state._lock:
        return {
            'verbose': _state.verbose,
            'log_file': _state.log_file,
            'console_enabled': _state.console_enabled,
            'json_format': _state.json_format,
            'initialized': _state.initialized,
        }


# =============================================================================
# ENVIRONMENT VARIABLE CONFIGURATION
# =============================================================================

def _flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(f"{ENV_PREFIX}{name}", '').lower() in ('1', 'true', 'yes')


def configure_from_environment(environ: Optional[Mapping[str, str]] = None) -> None:
    """Configure logging from SYNC_* environment variables."""
    environ = os.environ if environ is None else environ

    setup_logging(
        verbose=_flag(environ, 'VERBOSE'),
        log_file=environ.get(f"{ENV_PREFIX}LOG_FILE") or None,
        console=not _flag(environ, 'LOG_NO_CONSOLE'),
        json_format=_flag(environ, 'LOG_JSON'),
    )


__all__ = [
    'APP_TAG',
    'SyncFormatter',
    'setup_logging',
    'configure_from_environment',
    'set_verbose',
    'is_verbose',
    'get_logging_state',
]
