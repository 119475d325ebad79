"""
Tests for the Reboot Executor.

subprocess.run is mocked throughout; nothing here restarts the machine.
"""

import os
import subprocess
import sys
from unittest.mock import patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from autoreboot.config import OperatingMode
from autoreboot.reboot_executor import (
    CommandRebootExecutor,
    RebootResult,
    SimulatedRebootExecutor,
    UnixRebootExecutor,
    WindowsRebootExecutor,
    create_reboot_executor,
)
from autoreboot.utils.error_handling import RebootActionError


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestCommands:
    """Each variant builds the expected command line."""

    def test_simulated_unix(self):
        assert SimulatedRebootExecutor(platform='linux').build_command() == ['echo', 'Unix Shutdown']

    def test_simulated_windows(self):
        assert SimulatedRebootExecutor(platform='win32').build_command() == [
            'cmd', '/c', 'echo Win Shutdown'
        ]

    def test_unix(self):
        assert UnixRebootExecutor().build_command() == ['sudo', 'shutdown', '-r', '+1']

    def test_windows(self):
        assert WindowsRebootExecutor().build_command() == ['shutdown', '/r', '/t', '60']

    def test_custom_command_split(self):
        executor = CommandRebootExecutor('systemctl reboot --message "sync drift"')
        assert executor.build_command() == ['systemctl', 'reboot', '--message', 'sync drift']

    def test_empty_custom_command_rejected(self):
        with pytest.raises(ValueError):
            CommandRebootExecutor('   ')


class TestExecute:
    """Tests for RebootExecutor.execute()."""

    @patch('autoreboot.reboot_executor.subprocess.run')
    def test_success(self, mock_run):
        mock_run.return_value = _completed(stdout="Unix Shutdown\n")
        result = SimulatedRebootExecutor(timeout=5, platform='linux').execute()

        assert result.success is True
        assert result.returncode == 0
        assert result.stdout == "Unix Shutdown"
        assert result.error is None

        args, kwargs = mock_run.call_args
        assert args[0] == ['echo', 'Unix Shutdown']
        assert kwargs['timeout'] == 5
        assert kwargs['capture_output'] is True

    @patch('autoreboot.reboot_executor.subprocess.run')
    def test_timeout_override(self, mock_run):
        mock_run.return_value = _completed()
        UnixRebootExecutor(timeout=30).execute(timeout=3)
        assert mock_run.call_args[1]['timeout'] == 3

    @patch('autoreboot.reboot_executor.subprocess.run')
    def test_nonzero_exit_is_failure(self, mock_run):
        mock_run.return_value = _completed(returncode=1)
        result = UnixRebootExecutor().execute()
        assert result.success is False
        assert result.returncode == 1
        assert "status 1" in result.error

    @patch('autoreboot.reboot_executor.subprocess.run')
    def test_stderr_is_failure(self, mock_run):
        """Output on stderr counts as a failed reboot even with exit status 0."""
        mock_run.return_value = _completed(stderr="sudo: a password is required\n")
        result = UnixRebootExecutor().execute()
        assert result.success is False
        assert result.stderr == "sudo: a password is required"
        assert "password is required" in result.error

    @patch('autoreboot.reboot_executor.subprocess.run')
    def test_hang_is_bounded(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd='shutdown', timeout=2)
        result = UnixRebootExecutor(timeout=2).execute()
        assert result.success is False
        assert "timed out" in result.error
        assert result.returncode is None

    @patch('autoreboot.reboot_executor.subprocess.run')
    def test_missing_binary(self, mock_run):
        mock_run.side_effect = FileNotFoundError("No such file or directory: 'sudo'")
        result = UnixRebootExecutor().execute()
        assert result.success is False
        assert result.error.startswith("cannot start reboot command")

    def test_raise_for_failure(self):
        RebootResult(success=True).raise_for_failure()
        with pytest.raises(RebootActionError):
            RebootResult(success=False, error="boom").raise_for_failure()

    def test_to_dict(self):
        d = RebootResult(success=True, command=['echo', 'x'], returncode=0, duration=0.12345).to_dict()
        assert d['command'] == 'echo x'
        assert d['duration'] == 0.123


class TestCreateRebootExecutor:
    """Tests for create_reboot_executor()."""

    def test_development_simulates(self):
        executor = create_reboot_executor(OperatingMode.DEVELOPMENT, platform='linux')
        assert isinstance(executor, SimulatedRebootExecutor)
        assert executor.simulated is True

    def test_development_ignores_custom_command(self):
        executor = create_reboot_executor(
            OperatingMode.DEVELOPMENT, platform='linux', command='systemctl reboot'
        )
        assert isinstance(executor, SimulatedRebootExecutor)

    def test_production_unix(self):
        executor = create_reboot_executor(OperatingMode.PRODUCTION, platform='linux')
        assert isinstance(executor, UnixRebootExecutor)
        assert executor.simulated is False

    def test_production_darwin(self):
        executor = create_reboot_executor(OperatingMode.PRODUCTION, platform='darwin')
        assert isinstance(executor, UnixRebootExecutor)

    def test_production_windows(self):
        executor = create_reboot_executor(OperatingMode.PRODUCTION, platform='win32')
        assert isinstance(executor, WindowsRebootExecutor)

    def test_production_custom_command(self):
        executor = create_reboot_executor(
            OperatingMode.PRODUCTION, platform='win32', command='reboot now', timeout=7
        )
        assert isinstance(executor, CommandRebootExecutor)
        assert executor.timeout == 7

    def test_describe(self):
        executor = create_reboot_executor(OperatingMode.PRODUCTION, platform='linux')
        assert executor.describe() == "unix (sudo shutdown -r +1)"
