"""
Error Handling Utilities for Sync Autoreboot

Provides consistent error handling across the watchdog with:
1. Domain exceptions for the three failure families (sample, persistence,
   reboot action)
2. Detailed error logging with context
3. Error categorization and severity levels
4. Error kinds (sample, persistence, reboot, config) with per-kind repeat
   counting, so a reference endpoint that is down for hours logs one full
   entry per window and a recovery line when it answers again

None of these errors is fatal: callers log them and keep the supervisor
loop ticking.

USAGE:
    from autoreboot.utils.error_handling import (
        handle_error,
        ErrorCategory,
        safe_execute,
    )

    # Context manager usage
    with safe_execute("writing reboot record", ErrorCategory.FILESYSTEM):
        ...

    # Direct error handling
    try:
        risky_operation()
    except Exception as e:
        handle_error(e, "operation_name", ErrorCategory.SYSTEM)
"""

import logging
import threading
import time
import traceback
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# DOMAIN EXCEPTIONS
# =============================================================================

class WatchdogError(Exception):
    """Base class for every error raised by the watchdog."""


class SampleError(WatchdogError):
    """The reference time could not be obtained (unreachable, bad status,
    malformed payload or timeout)."""


class PersistenceError(WatchdogError):
    """The reboot record could not be read or written."""


class RebootActionError(WatchdogError):
    """The reboot command could not be started, failed or hung."""


class ConfigError(WatchdogError):
    """A SYNC_* setting could not be used; the default applies."""


# =============================================================================
# CATEGORIES AND SEVERITY
# =============================================================================

class ErrorCategory(Enum):
    """Categories of errors for proper handling and reporting."""
    # Reference endpoint unreachable, timeouts, bad payloads
    NETWORK = "network"

    # Guard record read/write
    FILESYSTEM = "filesystem"

    # Reboot command and other process errors
    SYSTEM = "system"

    # Configuration errors
    CONFIG = "configuration"

    # Unknown/uncategorized
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorKind(Enum):
    """What went wrong, in watchdog terms. Repeats are counted per kind and operation."""
    # No usable reference time this cycle
    SAMPLE = "sample"

    # Guard record unreadable or unwritable
    PERSISTENCE = "persistence"

    # Reboot command could not run or failed
    REBOOT = "reboot"

    # A setting was rejected and its default used
    CONFIG = "config"

    OTHER = "other"


_KIND_BY_EXCEPTION = (
    (SampleError, ErrorKind.SAMPLE),
    (PersistenceError, ErrorKind.PERSISTENCE),
    (RebootActionError, ErrorKind.REBOOT),
    (ConfigError, ErrorKind.CONFIG),
)

_KIND_BY_CATEGORY = {
    ErrorCategory.NETWORK: ErrorKind.SAMPLE,
    ErrorCategory.FILESYSTEM: ErrorKind.PERSISTENCE,
    ErrorCategory.CONFIG: ErrorKind.CONFIG,
}

# Failures the watchdog expects and recovers from on its own. They are
# logged on one line without a stack trace.
_EXPECTED_KINDS = frozenset({ErrorKind.SAMPLE, ErrorKind.CONFIG})


def classify(error: Exception, category: ErrorCategory) -> ErrorKind:
    """Map an exception to an ErrorKind, by type first and category second."""
    for exc_type, kind in _KIND_BY_EXCEPTION:
        if isinstance(error, exc_type):
            return kind
    return _KIND_BY_CATEGORY.get(category, ErrorKind.OTHER)


@dataclass
class ErrorContext:
    """One handled error with its classification and surroundings."""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    operation: str
    kind: Optional[ErrorKind] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    thread_name: str = field(default_factory=lambda: threading.current_thread().name)
    stack_trace: str = ""
    additional_context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.kind is None:
            self.kind = classify(self.error, self.category)
        if (not self.stack_trace and not self.expected
                and self.error.__traceback__ is not None):
            self.stack_trace = ''.join(
                traceback.format_exception(type(self.error), self.error, self.error.__traceback__)
            )

    @property
    def expected(self) -> bool:
        return self.kind in _EXPECTED_KINDS

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.operation}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            'kind': self.kind.value,
            'error_type': type(self.error).__name__,
            'error_message': str(self.error),
            'category': self.category.value,
            'severity': self.severity.value,
            'operation': self.operation,
            'timestamp': self.timestamp,
            'thread_name': self.thread_name,
            'stack_trace': self.stack_trace,
            'additional_context': self.additional_context,
        }

    def format_log_message(self) -> str:
        """Format the log message: one line for expected kinds, a block otherwise."""
        context = ', '.join(f"{k}={v}" for k, v in self.additional_context.items())
        if self.expected:
            message = f"{self.kind.value} error in {self.operation}: {self.error}"
            return f"{message} ({context})" if context else message

        lines = [
            f"ERROR [{self.severity.value.upper()}] {self.kind.value} error in {self.operation}",
            f"  Type: {type(self.error).__name__}",
            f"  Message: {self.error}",
            f"  Thread: {self.thread_name}",
            f"  Timestamp: {self.timestamp}",
        ]
        if context:
            lines.append(f"  Context: {context}")
        if self.stack_trace:
            lines.append("  Stack Trace:")
            for line in self.stack_trace.split('\n'):
                if line.strip():
                    lines.append(f"    {line}")
        return '\n'.join(lines)


@dataclass
class ErrorTally:
    """Occurrences of one kind of error in one operation."""
    kind: ErrorKind
    operation: str
    count: int = 0
    streak: int = 0
    first_seen: float = 0.0
    last_seen: float = 0.0
    last_message: str = ""
    last_logged: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'operation': self.operation,
            'count': self.count,
            'streak': self.streak,
            'first_seen': self.first_seen,
            'last_seen': self.last_seen,
            'last_message': self.last_message,
        }


class ErrorAggregator:
    """
    Counts errors per kind and operation and keeps recent ones for status.

    An unreachable reference fails every cycle, possibly for hours. Within
    `dedup_window_seconds` of the last full log entry for the same kind and
    operation, a repeat is only counted. `resolve()` ends a streak so the
    next failure is logged in full again.
    """

    def __init__(self, max_errors: int = 500, dedup_window_seconds: float = 60,
                 clock=time.time, monotonic=time.monotonic):
        self._errors: Deque[ErrorContext] = deque(maxlen=max_errors)
        self._tallies: Dict[str, ErrorTally] = {}
        self._lock = threading.Lock()
        self._dedup_window = dedup_window_seconds
        self._clock = clock
        self._monotonic = monotonic

    def add_error(self, context: ErrorContext) -> bool:
        """
        Record an error.

        Returns True if it should be logged in full, False if it only
        extends a streak already logged inside the window.
        """
        now = self._clock()
        mono = self._monotonic()

        with self._lock:
            tally = self._tallies.get(context.key)
            if tally is None:
                tally = ErrorTally(context.kind, context.operation, first_seen=now)
                self._tallies[context.key] = tally
            tally.count += 1
            tally.streak += 1
            tally.last_seen = now
            tally.last_message = str(context.error)

            if tally.last_logged is not None and mono - tally.last_logged < self._dedup_window:
                return False

            tally.last_logged = mono
            self._errors.append(context)
            return True

    def streak(self, kind: ErrorKind, operation: str) -> int:
        """Consecutive occurrences since the last resolve()."""
        with self._lock:
            tally = self._tallies.get(f"{kind.value}:{operation}")
            return tally.streak if tally else 0

    def resolve(self, kind: ErrorKind, operation: str) -> int:
        """
        Mark an operation healthy again.

        Returns the length of the streak that just ended (0 if none).
        """
        with self._lock:
            tally = self._tallies.get(f"{kind.value}:{operation}")
            if tally is None or tally.streak == 0:
                return 0
            ended = tally.streak
            tally.streak = 0
            tally.last_logged = None
            return ended

    def get_error_summary(self) -> Dict[str, Any]:
        """Get a summary of aggregated errors."""
        with self._lock:
            by_kind: Dict[str, int] = {}
            for tally in self._tallies.values():
                by_kind[tally.kind.value] = by_kind.get(tally.kind.value, 0) + tally.count

            by_severity: Dict[str, int] = {}
            for ctx in self._errors:
                by_severity[ctx.severity.value] = by_severity.get(ctx.severity.value, 0) + 1

            return {
                'total_errors': sum(t.count for t in self._tallies.values()),
                'by_kind': by_kind,
                'by_severity': by_severity,
                'occurrence_counts': {k: t.count for k, t in self._tallies.items()},
                'ongoing': [t.to_dict() for t in self._tallies.values() if t.streak],
            }

    def get_recent_errors(self, count: int = 10) -> List[Dict[str, Any]]:
        """Get the most recent fully logged errors."""
        with self._lock:
            return [e.to_dict() for e in list(self._errors)[-count:]]

    def clear(self):
        """Clear all aggregated errors."""
        with self._lock:
            self._errors.clear()
            self._tallies.clear()


# Global error aggregator
_global_aggregator = ErrorAggregator()


def get_error_aggregator() -> ErrorAggregator:
    """Get the global error aggregator instance."""
    return _global_aggregator


def determine_severity(
    error: Exception,
    category: ErrorCategory,
) -> ErrorSeverity:
    """
    Determine the severity level for an error based on type and category.
    """
    # Connectivity loss is expected noise; the alarm path handles it
    if isinstance(error, SampleError) or category == ErrorCategory.NETWORK:
        return ErrorSeverity.WARNING

    # A rejected setting falls back to its default
    if isinstance(error, ConfigError) or category == ErrorCategory.CONFIG:
        return ErrorSeverity.WARNING

    # A reboot that cannot be issued leaves a drifted host running
    if isinstance(error, RebootActionError):
        return ErrorSeverity.CRITICAL

    if isinstance(error, PersistenceError) or category == ErrorCategory.FILESYSTEM:
        return ErrorSeverity.ERROR

    if 'timeout' in type(error).__name__.lower() or 'timed out' in str(error).lower():
        return ErrorSeverity.WARNING

    return ErrorSeverity.ERROR


_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def handle_error(
    error: Exception,
    operation: str,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    severity: Optional[ErrorSeverity] = None,
    additional_context: Optional[Dict[str, Any]] = None,
    reraise: bool = False,
) -> ErrorContext:
    """
    Handle an error with logging and tracking.

    Args:
        error: The exception that occurred
        operation: Name of the operation that failed
        category: Category of the error
        severity: Severity level (auto-determined if not provided)
        additional_context: Additional context information
        reraise: Whether to re-raise the exception after handling

    Returns:
        ErrorContext with full error details
    """
    if severity is None:
        severity = determine_severity(error, category)

    context = ErrorContext(
        error=error,
        category=category,
        severity=severity,
        operation=operation,
        additional_context=additional_context or {},
    )

    was_added = _global_aggregator.add_error(context)
    log_level = _LOG_LEVELS.get(severity, logging.ERROR)

    if was_added:
        logger.log(log_level, context.format_log_message())
    else:
        streak = _global_aggregator.streak(context.kind, operation)
        logger.log(
            log_level,
            f"[REPEAT {streak}] {context.kind.value} error in {operation}: {error}"
        )

    if reraise:
        raise error

    return context


@contextmanager
def safe_execute(
    operation: str,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    default_return: Any = None,
    reraise: bool = False,
    additional_context: Optional[Dict[str, Any]] = None,
):
    """
    Context manager for safe execution with error handling.

    Usage:
        with safe_execute("loading record", ErrorCategory.FILESYSTEM) as result:
            result.value = store.load()

    Args:
        operation: Name of the operation
        category: Error category
        default_return: Default value to return on error
        reraise: Whether to re-raise exceptions
        additional_context: Additional context information
    """
    class Result:
        def __init__(self):
            self.value = default_return
            self.error: Optional[ErrorContext] = None
            self.success = True

    result = Result()

    try:
        yield result
    except Exception as e:
        result.success = False
        result.value = default_return
        result.error = handle_error(
            e,
            operation,
            category=category,
            additional_context=additional_context,
            reraise=reraise,
        )


# Convenience functions for common error types
def log_network_error(
    error: Exception,
    operation: str,
    **context,
) -> ErrorContext:
    """Log a network-related error."""
    return handle_error(
        error,
        operation,
        category=ErrorCategory.NETWORK,
        additional_context=context,
    )


def log_filesystem_error(
    error: Exception,
    operation: str,
    **context,
) -> ErrorContext:
    """Log a filesystem error."""
    return handle_error(
        error,
        operation,
        category=ErrorCategory.FILESYSTEM,
        additional_context=context,
    )


def log_system_error(
    error: Exception,
    operation: str,
    **context,
) -> ErrorContext:
    """Log a process/system error."""
    return handle_error(
        error,
        operation,
        category=ErrorCategory.SYSTEM,
        additional_context=context,
    )


def log_config_error(
    error: Exception,
    operation: str,
    **context,
) -> ErrorContext:
    """Log a rejected setting."""
    return handle_error(
        error,
        operation,
        category=ErrorCategory.CONFIG,
        additional_context=context,
    )

# Export all public symbols
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
