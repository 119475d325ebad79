"""
Sync Autoreboot - Core Components
"""

from .constants import (
    Defaults,
    NetworkConstants,
    Timeouts,
    Permissions,
    Paths,
    Version,
)

from .config import OperatingMode, WatchdogConfig, load_config
from .time_source import TimeSample, TimeSource
from .drift import DriftResult, evaluate, evaluate_sample
from .alarm import CLEAR, AlarmState, AlarmTransition
from .reboot_guard import GuardDecision, RebootGuard, RebootRecord, RebootRecordStore, permit
from .reboot_executor import (
    RebootExecutor,
    RebootResult,
    SimulatedRebootExecutor,
    UnixRebootExecutor,
    WindowsRebootExecutor,
    CommandRebootExecutor,
    create_reboot_executor,
)
from .supervisor import CycleReport, Supervisor
from .utils.error_handling import (
    WatchdogError,
    SampleError,
    PersistenceError,
    RebootActionError,
    ConfigError,
)

__version__ = Version.PACKAGE_VERSION

__all__ = [
    'Defaults',
    'NetworkConstants',
    'Timeouts',
    'Permissions',
    'Paths',
    'Version',
    'OperatingMode',
    'WatchdogConfig',
    'load_config',
    'TimeSample',
    'TimeSource',
    'DriftResult',
    'evaluate',
    'evaluate_sample',
    'CLEAR',
    'AlarmState',
    'AlarmTransition',
    'GuardDecision',
    'RebootGuard',
    'RebootRecord',
    'RebootRecordStore',
    'permit',
    'RebootExecutor',
    'RebootResult',
    'SimulatedRebootExecutor',
    'UnixRebootExecutor',
    'WindowsRebootExecutor',
    'CommandRebootExecutor',
    'create_reboot_executor',
    'CycleReport',
    'Supervisor',
    'WatchdogError',
    'SampleError',
    'PersistenceError',
    'RebootActionError',
    'ConfigError',
]
