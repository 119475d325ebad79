"""
Pytest configuration and shared fixtures for Sync Autoreboot tests.

This module provides a controllable clock, a scripted time source and a
recording reboot executor so the watchdog can be driven cycle by cycle
without network access, real reboots or real waiting.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, List, Optional, Union

import pytest

# Add the parent directory to the path for imports
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from autoreboot.config import OperatingMode, WatchdogConfig
from autoreboot.reboot_executor import RebootExecutor, RebootResult
from autoreboot.reboot_guard import RebootGuard, RebootRecordStore
from autoreboot.supervisor import Supervisor
from autoreboot.time_source import TimeSample


# ===========================================================================
# Test Doubles
# ===========================================================================

class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


# A scripted step is a reference offset in seconds (reference - local) or
# an error message string.
Step = Union[float, str]


class ScriptedTimeSource:
    """Time source that replays offsets/errors; the last step repeats."""

    def __init__(self, clock: FakeClock, steps: Optional[List[Step]] = None):
        self.clock = clock
        self.steps: List[Step] = list(steps) if steps else [0.0]
        self.calls = 0

    def set_steps(self, steps: List[Step]) -> None:
        self.steps = list(steps)
        self.calls = 0

    def sample(self) -> TimeSample:
        step = self.steps[min(self.calls, len(self.steps) - 1)]
        self.calls += 1
        now = self.clock()
        if isinstance(step, str):
            return TimeSample(local_time=now, error=step)
        return TimeSample(local_time=now, reference_time=now + step)

    def close(self) -> None:
        pass


class RecordingExecutor(RebootExecutor):
    """Reboot executor that records invocations instead of running commands."""

    name = "recording"
    simulated = True

    def __init__(self, success: bool = True, on_execute: Optional[Callable[[], None]] = None):
        super().__init__(timeout=1.0)
        self.success = success
        self.on_execute = on_execute
        self.calls: List[Optional[float]] = []

    def build_command(self) -> List[str]:
        return ['true']

    def execute(self, timeout: Optional[float] = None) -> RebootResult:
        self.calls.append(timeout)
        if self.on_execute:
            self.on_execute()
        if self.success:
            return RebootResult(success=True, command=self.build_command(), returncode=0)
        return RebootResult(
            success=False,
            command=self.build_command(),
            returncode=1,
            stderr="permission denied",
            error="reboot command exited with status 1",
        )


# ===========================================================================
# Temporary Directory Fixtures
# ===========================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    tmpdir = tempfile.mkdtemp(prefix="autoreboot_test_")
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def guard_file(temp_dir: Path) -> Path:
    """Provide a path for the persisted reboot record."""
    return temp_dir / "last_reboot.txt"


# ===========================================================================
# Watchdog Fixtures
# ===========================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def watchdog_config(guard_file: Path) -> WatchdogConfig:
    """Config with short, round thresholds."""
    return WatchdogConfig(
        check_interval=10.0,
        allowed_difference=5.0,
        timeout_duration=60.0,
        min_reboot_interval=3600.0,
        mode=OperatingMode.DEVELOPMENT,
        guard_file=str(guard_file),
        request_timeout=1.0,
        reboot_timeout=2.0,
    )


@pytest.fixture
def time_source(clock: FakeClock) -> ScriptedTimeSource:
    return ScriptedTimeSource(clock)


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def record_store(guard_file: Path) -> RebootRecordStore:
    return RebootRecordStore(str(guard_file))


@pytest.fixture
def guard(record_store: RebootRecordStore, watchdog_config: WatchdogConfig) -> RebootGuard:
    return RebootGuard(record_store, watchdog_config.min_reboot_interval)


@pytest.fixture
def supervisor(
    watchdog_config: WatchdogConfig,
    time_source: ScriptedTimeSource,
    executor: RecordingExecutor,
    guard: RebootGuard,
    clock: FakeClock,
) -> Supervisor:
    """Supervisor wired to the fake clock, scripted source and recording executor."""
    return Supervisor(watchdog_config, time_source, executor, guard, clock=clock)
