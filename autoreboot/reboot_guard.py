"""
Reboot Guard - Cooldown Enforcement Across Restarts

Prevents reboot storms by persisting the time of the last committed reboot
and refusing a new one until the minimum interval has elapsed.

ORDERING:
- The record is written *before* the reboot command is issued. If the
  process crashes or the host goes down mid-command, the cooldown still
  holds after restart.

FAILURE POLICY:
- Read failure (unreadable/corrupt record) is treated as "no prior reboot".
- Write failure is logged and the reboot still proceeds; cooldown tracking
  is degraded, but the host is never prevented from rebooting.

STORAGE FORMAT:
- JSON document: {"version": 1, "last_reboot_at": <epoch seconds>,
  "last_reboot_iso": "...", "updated_at": "..."}
- A bare integer of epoch milliseconds (legacy guard file) is also read.
- File protected with restrictive permissions (0o600), written atomically
  via temp file + rename.
"""

import json
import logging
import math
import os
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional

from .constants import IS_WINDOWS, Permissions, Version
from .timestamps import format_timestamp
from .utils.error_handling import PersistenceError, log_filesystem_error

if not IS_WINDOWS:
    import fcntl

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RebootRecord:
    """Time of the last committed reboot; None when no reboot was ever recorded."""
    last_reboot_at: Optional[float] = None

    def advanced_to(self, now: float) -> 'RebootRecord':
        """Never regresses: a clock that went backwards keeps the old value."""
        if self.last_reboot_at is not None and self.last_reboot_at > now:
            return self
        return RebootRecord(last_reboot_at=now)

    def to_dict(self) -> Dict:
        return {
            'version': Version.RECORD_FORMAT_VERSION,
            'last_reboot_at': self.last_reboot_at,
            'last_reboot_iso': (
                format_timestamp(self.last_reboot_at) if self.last_reboot_at is not None else None
            ),
        }


@dataclass(frozen=True)
class GuardDecision:
    """Result of a cooldown check. `record` is the record the decision was made on."""
    allowed: bool
    reason: str
    remaining: float = 0.0
    record: RebootRecord = RebootRecord()


def permit(now: float, last_reboot_at: Optional[float], min_interval: float) -> GuardDecision:
    """
    Decide whether a reboot is allowed at `now`.

    Allowed iff no reboot was ever recorded or now - last_reboot_at >= min_interval.
    """
    if last_reboot_at is None:
        return GuardDecision(allowed=True, reason="no prior reboot recorded")

    elapsed = now - last_reboot_at
    if elapsed >= min_interval:
        return GuardDecision(
            allowed=True,
            reason=f"{elapsed:.0f}s since last reboot (minimum {min_interval:.0f}s)",
        )
    return GuardDecision(
        allowed=False,
        reason=f"protection interval not met: {elapsed:.0f}s since last reboot "
               f"(minimum {min_interval:.0f}s)",
        remaining=min_interval - elapsed,
    )


class RebootRecordStore:
    """Durable single-value store for the RebootRecord."""

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> RebootRecord:
        """
        Read the record.

        Returns:
            RebootRecord (empty when the file does not exist)

        Raises:
            PersistenceError: the file exists but cannot be read or parsed
        """
        if not self.path.exists():
            logger.debug(f"No reboot record at {self.path}")
            return RebootRecord()

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                if not IS_WINDOWS:
                    fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    raw = f.read()
                finally:
                    if not IS_WINDOWS:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            raise PersistenceError(f"cannot read reboot record {self.path}: {e}") from e

        try:
            return self._parse(raw)
        except (ValueError, OverflowError) as e:
            self._backup_corrupt_file()
            raise PersistenceError(f"corrupt reboot record {self.path}: {e}") from e

    @staticmethod
    def _parse(raw: str) -> RebootRecord:
        text = raw.strip()
        if not text:
            return RebootRecord()

        # Legacy format: epoch milliseconds as a bare integer
        if text.isdigit():
            millis = int(text)
            return RebootRecord(last_reboot_at=millis / 1000.0 if millis > 0 else None)

        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("record is not a JSON object")
        value = data.get('last_reboot_at')
        if value is None:
            return RebootRecord()
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"last_reboot_at is not a number: {value!r}")
        if not math.isfinite(value):
            raise ValueError(f"last_reboot_at is not finite: {value!r}")
        return RebootRecord(last_reboot_at=float(value))

    def _backup_corrupt_file(self) -> None:
        backup_path = self.path.with_suffix(self.path.suffix + '.corrupt')
        try:
            os.replace(self.path, backup_path)
            logger.warning(f"Backed up corrupt reboot record to {backup_path}")
        except OSError as e:
            logger.error(f"Failed to backup corrupt reboot record: {e}")

    def save(self, record: RebootRecord) -> None:
        """
        Atomically write the record.

        Raises:
            PersistenceError: the record could not be written
        """
        data = record.to_dict()
        data['updated_at'] = format_timestamp(time.time())
        temp_path = self.path.with_suffix(self.path.suffix + '.tmp')

        try:
            self.path.parent.mkdir(mode=Permissions.SECURE_DIR, parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                if not IS_WINDOWS:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    json.dump(data, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    if not IS_WINDOWS:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)

            if not IS_WINDOWS:
                os.chmod(temp_path, Permissions.SECURE_FILE)

            os.replace(temp_path, self.path)
        except OSError as e:
            try:
                if temp_path.exists():
                    temp_path.unlink()
            except OSError:
                logger.debug(f"Could not remove temp file {temp_path}")
            raise PersistenceError(f"cannot write reboot record {self.path}: {e}") from e

        logger.debug(f"Persisted reboot record ({data['last_reboot_iso']})")


class RebootGuard:
    """
    Cooldown policy on top of a RebootRecordStore.

    The record is read once per check and written once per committed
    reboot, reusing the record the check was made on. A single supervisor
    loop is the only writer.
    """

    def __init__(self, store: RebootRecordStore, min_interval: float):
        self.store = store
        self.min_interval = min_interval
        self._lock = threading.Lock()

    def read_record(self) -> RebootRecord:
        """Load the record; read failures are logged and treated as no prior reboot."""
        try:
            return self.store.load()
        except PersistenceError as e:
            log_filesystem_error(e, "reboot_guard.read", path=str(self.store.path))
            return RebootRecord()

    def check(self, now: float) -> GuardDecision:
        with self._lock:
            record = self.read_record()
            return replace(permit(now, record.last_reboot_at, self.min_interval), record=record)

    def commit(self, now: float, record: Optional[RebootRecord] = None) -> bool:
        """
        Record a reboot at `now` ahead of issuing the command.

        Args:
            now: Reboot time
            record: Record returned with the permitting GuardDecision; read
                from the store when omitted

        Returns:
            True if the record was persisted, False if the write failed
        """
        with self._lock:
            if record is None:
                record = self.read_record()
            try:
                self.store.save(record.advanced_to(now))
            except PersistenceError as e:
                log_filesystem_error(e, "reboot_guard.commit", path=str(self.store.path))
                return False
            return True
