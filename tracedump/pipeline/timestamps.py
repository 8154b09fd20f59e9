"""
Timestamp Normalizer

Makes exported timestamps strictly increasing with a minimum gap, so that
they stay unique once converted to a float by downstream consumers
(two integer nanosecond timestamps 1ns apart can round to the same f64).
"""

from typing import Optional

from tracedump.core.errors import TimestampOrderError

DEFAULT_TIMESTAMP_GAP = 2


class TimestampNormalizer:
    """
    Stateful timestamp transform: t' = max(t, prev + gap).

    The first timestamp passes through unchanged. When disabled the
    transform is the identity and keeps no state.

    Input must be non-decreasing; a timestamp lower than the previous input
    raises TimestampOrderError and leaves the state untouched.
    """

    def __init__(self, enabled: bool = True, gap: int = DEFAULT_TIMESTAMP_GAP):
        if gap < 1:
            raise ValueError(f"gap must be positive, got {gap}")
        self.enabled = enabled
        self.gap = gap
        self._prev_input: Optional[int] = None
        self._prev_output: Optional[int] = None

    @property
    def last(self) -> Optional[int]:
        """Last emitted timestamp, None before the first call."""
        return self._prev_output

    def __call__(self, ts: int) -> int:
        if not self.enabled:
            return ts

        if self._prev_input is not None and ts < self._prev_input:
            raise TimestampOrderError(ts, self._prev_input)

        if self._prev_output is not None:
            ts_out = max(ts, self._prev_output + self.gap)
        else:
            ts_out = ts

        self._prev_input = ts
        self._prev_output = ts_out
        return ts_out
