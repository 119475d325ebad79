"""
Supervisor - Watchdog Scheduler Loop

Ties the watchdog together on a fixed period:

    sample -> evaluate drift -> update alarm -> [matured] guard check
           -> [permitted] commit record -> reboot command

Features:
- Immediate first cycle at startup
- Strictly serialized cycles; a slow cycle delays the next tick, never
  overlaps it
- Every single-cycle failure is logged and the loop keeps ticking
- Alarm state is an immutable value threaded through run_cycle(), so the
  state machine can be driven without a running clock
- Status summary for the daemon and the health endpoint
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Tuple

import psutil

from .alarm import CLEAR, AlarmState, AlarmTransition
from .config import WatchdogConfig
from .constants import Timeouts
from .drift import DriftResult, evaluate_sample
from .reboot_executor import RebootExecutor, RebootResult
from .reboot_guard import GuardDecision, RebootGuard
from .time_source import TimeSample, TimeSource
from .timestamps import format_timestamp
from .utils.error_handling import (
    ErrorCategory,
    RebootActionError,
    get_error_aggregator,
    handle_error,
    log_system_error,
)

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Everything one supervisor cycle observed and did."""
    cycle: int
    started_at: float
    sample: Optional[TimeSample] = None
    drift: Optional[DriftResult] = None
    transition: Optional[AlarmTransition] = None
    alarm: AlarmState = CLEAR
    matured: bool = False
    decision: Optional[GuardDecision] = None
    record_committed: Optional[bool] = None
    reboot_result: Optional[RebootResult] = None
    error: Optional[str] = None

    @property
    def reboot_attempted(self) -> bool:
        return self.reboot_result is not None

    def to_dict(self) -> Dict:
        return {
            'cycle': self.cycle,
            'started_at': self.started_at,
            'started_at_iso': format_timestamp(self.started_at),
            'sample': self.sample.to_dict() if self.sample else None,
            'in_sync': self.drift.in_sync if self.drift else None,
            'diff_ms': self.drift.diff_ms if self.drift else None,
            'transition': self.transition.value if self.transition else None,
            'alarm': self.alarm.to_dict(),
            'matured': self.matured,
            'reboot_allowed': self.decision.allowed if self.decision else None,
            'guard_reason': self.decision.reason if self.decision else None,
            'record_committed': self.record_committed,
            'reboot': self.reboot_result.to_dict() if self.reboot_result else None,
            'error': self.error,
        }


class Supervisor:
    """
    Runs watchdog cycles on a fixed interval.

    Example:
        supervisor = Supervisor(config, TimeSource(config.api_url), executor, guard)
        supervisor.start()
        ...
        supervisor.stop()
    """

    def __init__(
        self,
        config: WatchdogConfig,
        time_source: TimeSource,
        executor: RebootExecutor,
        guard: RebootGuard,
        clock: Callable[[], float] = time.time,
        on_report: Optional[Callable[[CycleReport], None]] = None,
        history_size: int = 50,
    ):
        self.config = config
        self.time_source = time_source
        self.executor = executor
        self.guard = guard
        self._clock = clock
        self._on_report = on_report

        # State
        self._alarm: AlarmState = CLEAR
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._shutdown_event = threading.Event()
        self._cycle_lock = threading.Lock()

        # Tracking
        self._started_at: Optional[float] = None
        self._cycle_count = 0
        self._reboots_attempted = 0
        self._reboots_failed = 0
        self._reboots_denied = 0
        self._cycle_failures = 0
        self._last_report: Optional[CycleReport] = None
        self._history: Deque[CycleReport] = deque(maxlen=history_size)

    @property
    def alarm(self) -> AlarmState:
        return self._alarm

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run_cycle(self, alarm: AlarmState, now: Optional[float] = None) -> Tuple[AlarmState, CycleReport]:
        """
        Run one full cycle starting from `alarm`.

        Args:
            alarm: Alarm state going into the cycle
            now: Decision time; defaults to the clock read after sampling

        Returns:
            (alarm state after the cycle, report)
        """
        self._cycle_count += 1
        report = CycleReport(cycle=self._cycle_count, started_at=self._clock())

        sample = self.time_source.sample()
        if now is None:
            now = self._clock()
        drift = evaluate_sample(sample, self.config.allowed_difference)
        report.sample = sample
        report.drift = drift

        if drift.is_failure:
            logger.warning(f"Reference time unavailable ({drift.error}), treating as out of sync")
        elif drift.in_sync:
            logger.info(f"Timestamp OK ({drift.diff_ms} ms)")
        else:
            logger.warning(f"Timestamp out of sync ({drift.diff_ms} ms)")

        new_alarm, transition = alarm.observe(drift.in_sync, now)
        report.transition = transition
        report.alarm = new_alarm

        if transition is AlarmTransition.RAISED:
            logger.warning(
                f"Alarm timer activated, reboot eligible at "
                f"{format_timestamp(new_alarm.matures_at(self.config.timeout_duration))}"
            )
        elif transition is AlarmTransition.CLEARED:
            logger.info(f"Alarm deactivated after {now - alarm.raised_at:.0f}s")

        report.matured = new_alarm.is_matured(now, self.config.timeout_duration)
        if report.matured:
            self._attempt_reboot(now, report)

        return new_alarm, report

    def _attempt_reboot(self, now: float, report: CycleReport) -> None:
        """Consult the guard, commit the record, then issue the reboot."""
        decision = self.guard.check(now)
        report.decision = decision

        if not decision.allowed:
            self._reboots_denied += 1
            logger.info(f"Restart skipped: {decision.reason} ({decision.remaining:.0f}s remaining)")
            return

        # Write before act: the cooldown must survive a crash during the command
        report.record_committed = self.guard.commit(now, decision.record)
        if not report.record_committed:
            logger.error("Reboot record not persisted, cooldown tracking degraded; rebooting anyway")

        logger.warning(f"Restarting system via {self.executor.describe()}...")
        self._reboots_attempted += 1
        result = self.executor.execute(self.config.reboot_timeout)
        report.reboot_result = result

        try:
            result.raise_for_failure()
        except RebootActionError as e:
            self._reboots_failed += 1
            log_system_error(
                e,
                "supervisor.reboot",
                command=' '.join(result.command),
                returncode=result.returncode,
                stderr=result.stderr,
            )
            return

        logger.warning("Restart command executed.")
        if result.stdout:
            logger.info(result.stdout)

    def tick(self) -> CycleReport:
        """
        Run one cycle against the supervisor's own alarm state.

        Never raises; a failed cycle keeps the previous alarm state.
        """
        with self._cycle_lock:
            try:
                self._alarm, report = self.run_cycle(self._alarm)
            except Exception as e:
                self._cycle_failures += 1
                handle_error(e, "supervisor.cycle", ErrorCategory.SYSTEM,
                             additional_context={'cycle': self._cycle_count})
                report = CycleReport(
                    cycle=self._cycle_count,
                    started_at=self._clock(),
                    alarm=self._alarm,
                    error=f"{type(e).__name__}: {e}",
                )

            self._last_report = report
            self._history.append(report)

        if self._on_report:
            try:
                self._on_report(report)
            except Exception as e:
                logger.error(f"Error in cycle report callback: {e}")

        return report

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    def _loop(self) -> None:
        """Fixed-period loop; the first cycle runs immediately."""
        interval = self.config.check_interval
        next_tick = time.monotonic()

        while not self._shutdown_event.is_set():
            self.tick()

            next_tick += interval
            now = time.monotonic()
            if next_tick < now:
                # Overran the period: start the next cycle now, without catch-up bursts
                logger.debug(f"Cycle overran check interval by {now - next_tick:.1f}s")
                next_tick = now
            self._shutdown_event.wait(next_tick - now)

        self._running = False

    def start(self) -> None:
        """Start the loop in a background thread."""
        if self._running:
            return

        self._running = True
        self._started_at = self._clock()
        self._shutdown_event.clear()
        self._thread = threading.Thread(target=self._loop, name="supervisor", daemon=True)
        self._thread.start()

        logger.info(f"Supervisor started (check interval: {self.config.check_interval}s)")

    def run_forever(self) -> None:
        """Run the loop in the calling thread until stop() is called."""
        self._running = True
        self._started_at = self._clock()
        self._shutdown_event.clear()
        logger.info(f"Supervisor running (check interval: {self.config.check_interval}s)")
        self._loop()

    def stop(self, timeout: float = Timeouts.THREAD_JOIN_DEFAULT) -> None:
        """Stop the loop. An in-flight cycle is allowed to finish."""
        self._shutdown_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._running = False
        logger.info("Supervisor stopped")

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_history(self, limit: Optional[int] = None) -> List[CycleReport]:
        with self._cycle_lock:
            if limit:
                return list(self._history)[-limit:]
            return list(self._history)

    def get_status(self) -> Dict:
        """Summary of the supervisor state."""
        now = self._clock()
        alarm = self._alarm

        try:
            boot_time: Optional[float] = psutil.boot_time()
        except Exception as e:
            logger.debug(f"Could not read system boot time: {e}")
            boot_time = None

        return {
            'running': self._running,
            'started_at': self._started_at,
            'cycles': self._cycle_count,
            'cycle_failures': self._cycle_failures,
            'alarm': alarm.to_dict(),
            'alarm_matures_at': alarm.matures_at(self.config.timeout_duration),
            'alarm_matured': alarm.is_matured(now, self.config.timeout_duration),
            'reboots_attempted': self._reboots_attempted,
            'reboots_failed': self._reboots_failed,
            'reboots_denied': self._reboots_denied,
            'executor': self.executor.name,
            'simulated': self.executor.simulated,
            'system_boot_time': boot_time,
            'system_boot_time_iso': format_timestamp(boot_time) if boot_time else None,
            'last_report': self._last_report.to_dict() if self._last_report else None,
            'errors': get_error_aggregator().get_error_summary(),
            'config': self.config.to_dict(),
        }
