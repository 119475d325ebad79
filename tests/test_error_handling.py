"""
Tests for the error handling utilities.
"""

import logging
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from autoreboot.utils.error_handling import (
    ConfigError,
    ErrorAggregator,
    ErrorCategory,
    ErrorContext,
    ErrorKind,
    ErrorSeverity,
    PersistenceError,
    RebootActionError,
    SampleError,
    WatchdogError,
    classify,
    determine_severity,
    get_error_aggregator,
    handle_error,
    log_config_error,
    log_filesystem_error,
    log_network_error,
    log_system_error,
    safe_execute,
)


@pytest.fixture(autouse=True)
def clean_aggregator():
    get_error_aggregator().clear()
    yield
    get_error_aggregator().clear()


class TestExceptions:
    """Domain exception hierarchy."""

    @pytest.mark.parametrize("cls", [SampleError, PersistenceError, RebootActionError, ConfigError])
    def test_subclasses(self, cls):
        assert issubclass(cls, WatchdogError)


class TestSeverity:
    """Tests for determine_severity()."""

    def test_sample_error_is_warning(self):
        assert determine_severity(SampleError("down"), ErrorCategory.UNKNOWN) is ErrorSeverity.WARNING

    def test_network_category_is_warning(self):
        assert determine_severity(ValueError("x"), ErrorCategory.NETWORK) is ErrorSeverity.WARNING

    def test_reboot_failure_is_critical(self):
        assert determine_severity(RebootActionError("x"), ErrorCategory.SYSTEM) is ErrorSeverity.CRITICAL

    def test_persistence_is_error(self):
        assert determine_severity(PersistenceError("x"), ErrorCategory.FILESYSTEM) is ErrorSeverity.ERROR

    def test_timeout_is_warning(self):
        assert determine_severity(TimeoutError("slow"), ErrorCategory.SYSTEM) is ErrorSeverity.WARNING

    def test_default_is_error(self):
        assert determine_severity(KeyError("x"), ErrorCategory.UNKNOWN) is ErrorSeverity.ERROR


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize("error, kind", [
        (SampleError("down"), ErrorKind.SAMPLE),
        (PersistenceError("ro"), ErrorKind.PERSISTENCE),
        (RebootActionError("exit 1"), ErrorKind.REBOOT),
        (ConfigError("bad port"), ErrorKind.CONFIG),
    ])
    def test_by_exception_type(self, error, kind):
        assert classify(error, ErrorCategory.UNKNOWN) is kind

    def test_by_category(self):
        assert classify(OSError("x"), ErrorCategory.FILESYSTEM) is ErrorKind.PERSISTENCE
        assert classify(ValueError("x"), ErrorCategory.CONFIG) is ErrorKind.CONFIG
        assert classify(OSError("x"), ErrorCategory.SYSTEM) is ErrorKind.OTHER

    def test_context_key(self):
        context = ErrorContext(error=SampleError("down"), category=ErrorCategory.NETWORK,
                               severity=ErrorSeverity.WARNING, operation="time_source.sample")
        assert context.kind is ErrorKind.SAMPLE
        assert context.key == "sample:time_source.sample"


class TestErrorAggregator:
    """Tests for per-kind counting in ErrorAggregator."""

    def _context(self, error, operation="time_source.sample"):
        return ErrorContext(error=error, category=ErrorCategory.NETWORK,
                            severity=ErrorSeverity.WARNING, operation=operation)

    def test_outage_counts_without_relogging(self):
        """A timeout then a refused connection are one sample streak."""
        aggregator = ErrorAggregator(dedup_window_seconds=60)
        assert aggregator.add_error(self._context(SampleError("timed out"))) is True
        assert aggregator.add_error(self._context(SampleError("connection refused"))) is False

        summary = aggregator.get_error_summary()
        assert summary['total_errors'] == 2
        assert summary['by_kind'] == {'sample': 2}
        assert summary['occurrence_counts'] == {'sample:time_source.sample': 2}
        assert summary['ongoing'][0]['streak'] == 2
        assert summary['ongoing'][0]['last_message'] == "connection refused"
        assert len(aggregator.get_recent_errors()) == 1

    def test_different_operations_are_distinct(self):
        aggregator = ErrorAggregator()
        assert aggregator.add_error(self._context(SampleError("a"), "one")) is True
        assert aggregator.add_error(self._context(SampleError("a"), "two")) is True

    def test_window_expiry_logs_again(self):
        now = [0.0]
        aggregator = ErrorAggregator(dedup_window_seconds=60, monotonic=lambda: now[0])
        aggregator.add_error(self._context(SampleError("a")))
        now[0] = 59.0
        assert aggregator.add_error(self._context(SampleError("a"))) is False
        now[0] = 61.0
        assert aggregator.add_error(self._context(SampleError("a"))) is True

    def test_resolve_ends_streak(self):
        aggregator = ErrorAggregator(dedup_window_seconds=60)
        for _ in range(3):
            aggregator.add_error(self._context(SampleError("down")))

        assert aggregator.resolve(ErrorKind.SAMPLE, "time_source.sample") == 3
        assert aggregator.resolve(ErrorKind.SAMPLE, "time_source.sample") == 0
        assert aggregator.streak(ErrorKind.SAMPLE, "time_source.sample") == 0
        assert aggregator.get_error_summary()['ongoing'] == []

        # The next outage is logged in full
        assert aggregator.add_error(self._context(SampleError("down"))) is True
        assert aggregator.get_error_summary()['occurrence_counts'] == {'sample:time_source.sample': 4}

    def test_first_and_last_seen(self):
        wall = [1000.0]
        aggregator = ErrorAggregator(clock=lambda: wall[0])
        aggregator.add_error(self._context(SampleError("a")))
        wall[0] = 1030.0
        aggregator.add_error(self._context(SampleError("a")))
        ongoing = aggregator.get_error_summary()['ongoing'][0]
        assert ongoing['first_seen'] == 1000.0
        assert ongoing['last_seen'] == 1030.0

    def test_bounded(self):
        aggregator = ErrorAggregator(max_errors=3, dedup_window_seconds=0)
        for i in range(10):
            aggregator.add_error(self._context(SampleError(str(i))))
        recent = aggregator.get_recent_errors(count=10)
        assert [e['error_message'] for e in recent] == ['7', '8', '9']
        assert all(e['kind'] == 'sample' for e in recent)


class TestHandleError:
    """Tests for handle_error() and the convenience loggers."""

    def test_expected_error_is_one_line(self, caplog):
        with caplog.at_level(logging.WARNING):
            context = handle_error(SampleError("connection refused"), "time_source.sample",
                                   ErrorCategory.NETWORK, additional_context={'url': 'http://x'})
        assert context.severity is ErrorSeverity.WARNING
        assert context.stack_trace == ""
        assert "sample error in time_source.sample: connection refused (url=http://x)" in caplog.text

    def test_unexpected_error_has_stack_trace(self, caplog):
        try:
            raise PersistenceError("read-only file system")
        except PersistenceError as e:
            with caplog.at_level(logging.ERROR):
                context = log_filesystem_error(e, "reboot_guard.commit", path="/x")
        assert "Traceback" in context.stack_trace
        assert "persistence error in reboot_guard.commit" in caplog.text
        assert "Context: path=/x" in caplog.text

    def test_repeat_is_counted_in_log(self, caplog):
        with caplog.at_level(logging.WARNING):
            log_network_error(SampleError("down"), "reference.fetch")
            log_network_error(SampleError("still down"), "reference.fetch")
        assert "[REPEAT 2] sample error in reference.fetch: still down" in caplog.text

    def test_reraise(self):
        with pytest.raises(PersistenceError):
            handle_error(PersistenceError("ro"), "save", ErrorCategory.FILESYSTEM, reraise=True)

    def test_convenience_categories(self):
        assert log_filesystem_error(PersistenceError("x"), "a").category is ErrorCategory.FILESYSTEM
        assert log_system_error(RebootActionError("x"), "b").category is ErrorCategory.SYSTEM
        assert log_network_error(SampleError("x"), "c").category is ErrorCategory.NETWORK
        config = log_config_error(ConfigError("x"), "d")
        assert config.category is ErrorCategory.CONFIG
        assert config.severity is ErrorSeverity.WARNING


class TestSafeExecute:
    """Tests for the safe_execute() context manager."""

    def test_success(self):
        with safe_execute("compute") as result:
            result.value = 42
        assert result.success
        assert result.value == 42

    def test_failure_is_contained(self):
        with safe_execute("load record", ErrorCategory.FILESYSTEM, default_return="fallback") as result:
            raise PersistenceError("unreadable")
        assert not result.success
        assert result.value == "fallback"
        assert result.error.category is ErrorCategory.FILESYSTEM

    def test_reraise(self):
        with pytest.raises(SampleError):
            with safe_execute("reference.fetch", ErrorCategory.NETWORK, reraise=True):
                raise SampleError("down")
