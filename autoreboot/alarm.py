"""
Alarm State Machine

Two states:

    Clear --out_of_sync--> Armed(now)
    Armed(raised_at) --out_of_sync--> Armed(raised_at)   (timer not reset)
    Armed --in_sync--> Clear                              (no hysteresis)

An armed alarm is *matured* (reboot-eligible) once
now >= raised_at + timeout. Maturity is derived, never stored.

AlarmState is an immutable value; the supervisor threads it through each
cycle instead of mutating shared state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from .timestamps import format_timestamp


class AlarmTransition(Enum):
    """What a single observation did to the alarm."""
    RAISED = "raised"
    CLEARED = "cleared"
    STILL_ARMED = "still_armed"
    STILL_CLEAR = "still_clear"


@dataclass(frozen=True)
class AlarmState:
    """raised_at is set if and only if active is True."""
    active: bool = False
    raised_at: Optional[float] = None

    def __post_init__(self):
        if self.active and self.raised_at is None:
            raise ValueError("an active alarm requires raised_at")
        if not self.active and self.raised_at is not None:
            raise ValueError("a clear alarm cannot carry raised_at")

    @classmethod
    def armed(cls, raised_at: float) -> 'AlarmState':
        return cls(active=True, raised_at=raised_at)

    def observe(self, in_sync: bool, now: float) -> Tuple['AlarmState', AlarmTransition]:
        """Apply one in-sync/out-of-sync observation taken at `now`."""
        if in_sync:
            if self.active:
                return CLEAR, AlarmTransition.CLEARED
            return self, AlarmTransition.STILL_CLEAR

        if self.active:
            return self, AlarmTransition.STILL_ARMED
        return AlarmState.armed(now), AlarmTransition.RAISED

    def matures_at(self, timeout: float) -> Optional[float]:
        if not self.active:
            return None
        return self.raised_at + timeout

    def is_matured(self, now: float, timeout: float) -> bool:
        """True when the alarm is armed and its timeout has elapsed."""
        if not self.active:
            return False
        return now >= self.raised_at + timeout

    def to_dict(self) -> Dict:
        return {
            'active': self.active,
            'raised_at': self.raised_at,
            'raised_at_iso': format_timestamp(self.raised_at) if self.raised_at is not None else None,
        }


CLEAR = AlarmState()
