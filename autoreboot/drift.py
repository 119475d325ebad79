"""
Drift Evaluator - classifies one sample as in-sync or out-of-sync.

Pure functions, no side effects. Comparisons are done on whole
milliseconds; a drift exactly equal to the allowed difference is in sync.
A failed reference call is out-of-sync with no diff value.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .time_source import TimeSample


@dataclass(frozen=True)
class DriftResult:
    """Outcome of comparing the local clock against the reference."""
    in_sync: bool
    diff_ms: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        """True when the sample failed rather than drifted."""
        return self.error is not None


def _to_ms(seconds: float) -> int:
    return int(round(seconds * 1000))


def evaluate(
    local_time: float,
    reference: Union[float, BaseException, None],
    allowed_difference: float,
) -> DriftResult:
    """
    Compare local_time against reference.

    Args:
        local_time: Local clock reading, epoch seconds
        reference: Reference time in epoch seconds, or the error / None
            that the reference call produced
        allowed_difference: Tolerated drift in seconds

    Returns:
        DriftResult
    """
    if reference is None:
        return DriftResult(in_sync=False, error="no reference time")
    if isinstance(reference, BaseException):
        return DriftResult(in_sync=False, error=str(reference) or type(reference).__name__)

    diff_ms = abs(_to_ms(local_time) - _to_ms(reference))
    return DriftResult(in_sync=diff_ms <= _to_ms(allowed_difference), diff_ms=diff_ms)


def evaluate_sample(sample: TimeSample, allowed_difference: float) -> DriftResult:
    """Evaluate a TimeSample produced by the time source."""
    if sample.error is not None:
        return DriftResult(in_sync=False, error=sample.error)
    return evaluate(sample.local_time, sample.reference_time, allowed_difference)
