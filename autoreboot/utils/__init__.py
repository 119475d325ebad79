"""
Utility modules for Sync Autoreboot.

Provides common utilities including:
- Domain exceptions
- Error handling with verbose logging
"""

from .error_handling import (
    WatchdogError,
    SampleError,
    PersistenceError,
    RebootActionError,
    ConfigError,
    ErrorCategory,
    ErrorSeverity,
    ErrorKind,
    ErrorContext,
    ErrorTally,
    ErrorAggregator,
    classify,
    get_error_aggregator,
    handle_error,
    safe_execute,
    determine_severity,
    log_network_error,
    log_filesystem_error,
    log_system_error,
    log_config_error,
)

__all__ = [
    'WatchdogError',
    'SampleError',
    'PersistenceError',
    'RebootActionError',
    'ConfigError',
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorKind',
    'ErrorContext',
    'ErrorTally',
    'ErrorAggregator',
    'classify',
    'get_error_aggregator',
    'handle_error',
    'safe_execute',
    'determine_severity',
    'log_network_error',
    'log_filesystem_error',
    'log_system_error',
    'log_config_error',
]
