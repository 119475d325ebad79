"""
Reboot Executor - Platform Reboot Commands

One capability interface with a variant per platform/mode, selected once
at startup:

- SimulatedRebootExecutor: echoes a marker instead of rebooting
- UnixRebootExecutor: `sudo shutdown -r +1`
- WindowsRebootExecutor: `shutdown /r /t 60`
- CommandRebootExecutor: operator-supplied command line

Every execution is bounded by a timeout. A command that cannot be started,
exits non-zero, writes to stderr or hangs counts as a failure.
"""

import logging
import shlex
import subprocess
import sys
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import OperatingMode
from .constants import Timeouts
from .utils.error_handling import RebootActionError

logger = logging.getLogger(__name__)


@dataclass
class RebootResult:
    """Outcome of one reboot command."""
    success: bool
    command: List[str] = field(default_factory=list)
    returncode: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None
    duration: float = 0.0

    def to_dict(self) -> Dict:
        return {
            'success': self.success,
            'command': ' '.join(self.command),
            'returncode': self.returncode,
            'stdout': self.stdout,
            'stderr': self.stderr,
            'error': self.error,
            'duration': round(self.duration, 3),
        }

    def raise_for_failure(self) -> None:
        if not self.success:
            raise RebootActionError(self.error or "reboot command failed")


class RebootExecutor:
    """Base class. Subclasses provide the command line."""

    name = "base"
    simulated = False

    def __init__(self, timeout: float = Timeouts.REBOOT_COMMAND):
        self.timeout = timeout

    def build_command(self) -> List[str]:
        raise NotImplementedError

    def execute(self, timeout: Optional[float] = None) -> RebootResult:
        """Run the reboot command and report the outcome. Never raises."""
        command = self.build_command()
        limit = self.timeout if timeout is None else timeout
        started = time.monotonic()

        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=limit,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return RebootResult(
                success=False,
                command=command,
                error=f"reboot command timed out after {limit}s",
                duration=time.monotonic() - started,
            )
        except OSError as e:
            return RebootResult(
                success=False,
                command=command,
                error=f"cannot start reboot command: {e}",
                duration=time.monotonic() - started,
            )

        duration = time.monotonic() - started
        stdout = (completed.stdout or "").strip()
        stderr = (completed.stderr or "").strip()

        if completed.returncode != 0:
            error = f"reboot command exited with status {completed.returncode}"
        elif stderr:
            error = f"reboot command reported an error: {stderr}"
        else:
            error = None

        return RebootResult(
            success=error is None,
            command=command,
            returncode=completed.returncode,
            stdout=stdout,
            stderr=stderr,
            error=error,
            duration=duration,
        )

    def describe(self) -> str:
        return f"{self.name} ({' '.join(self.build_command())})"


class SimulatedRebootExecutor(RebootExecutor):
    """Development mode: prints a marker instead of restarting."""

    name = "simulated"
    simulated = True

    def __init__(self, timeout: float = Timeouts.REBOOT_COMMAND, platform: str = sys.platform):
        super().__init__(timeout)
        self.platform = platform

    def build_command(self) -> List[str]:
        if self.platform == 'win32':
            return ['cmd', '/c', 'echo Win Shutdown']
        return ['echo', 'Unix Shutdown']


class UnixRebootExecutor(RebootExecutor):
    """Schedules a restart one minute out, which also works where `reboot` is missing."""

    name = "unix"

    def build_command(self) -> List[str]:
        return ['sudo', 'shutdown', '-r', '+1']


class WindowsRebootExecutor(RebootExecutor):
    name = "windows"

    def build_command(self) -> List[str]:
        return ['shutdown', '/r', '/t', '60']


class CommandRebootExecutor(RebootExecutor):
    """Runs an operator-supplied command line."""

    name = "command"

    def __init__(self, command: str, timeout: float = Timeouts.REBOOT_COMMAND):
        super().__init__(timeout)
        self._command = shlex.split(command)
        if not self._command:
            raise ValueError("reboot command is empty")

    def build_command(self) -> List[str]:
        return list(self._command)


def create_reboot_executor(
    mode: OperatingMode,
    platform: str = sys.platform,
    command: Optional[str] = None,
    timeout: float = Timeouts.REBOOT_COMMAND,
) -> RebootExecutor:
    """
    Select the executor for this process.

    Development mode always simulates, even when a custom command is set.
    """
    if mode.simulated:
        return SimulatedRebootExecutor(timeout=timeout, platform=platform)
    if command:
        return CommandRebootExecutor(command, timeout=timeout)
    if platform == 'win32':
        return WindowsRebootExecutor(timeout=timeout)
    return UnixRebootExecutor(timeout=timeout)
