"""
Rspamd Monitor - Counters.

============================================================
RAW VALUE -> DERIVED VALUE
============================================================

A Counter turns the absolute value reported by the endpoint
into the value that is plotted:

- RATE:  (raw - previous raw) / elapsed ms
- GAUGE: raw, unchanged

The very first RATE update has nothing to subtract from and
returns UNAVAILABLE (NaN); callers must not store it.

============================================================
"""

import logging
import math
from typing import Optional

from .exceptions import DivisionByZeroError
from .models import CounterKind


logger = logging.getLogger(__name__)


# Result of a rate update that has no previous value yet
UNAVAILABLE = math.nan


def is_unavailable(value: float) -> bool:
    """Check whether a derived value is the UNAVAILABLE sentinel."""
    return math.isnan(value)


class Counter:
    """
    Stateful scalar transform for one metric.

    The previous value always holds the latest raw input,
    whatever the kind and whether or not the update failed.
    """

    def __init__(
        self,
        label: str,
        kind: CounterKind = CounterKind.RATE,
        key: Optional[str] = None,
    ) -> None:
        self._label = label
        self._kind = CounterKind(kind)
        self._key = key
        self._previous: Optional[float] = None

    @property
    def label(self) -> str:
        """Display label."""
        return self._label

    @property
    def kind(self) -> CounterKind:
        return self._kind

    @property
    def previous_value(self) -> Optional[float]:
        return self._previous

    def update(self, raw_value: float, elapsed_ms: int) -> float:
        """
        Feed a new raw value.

        Args:
            raw_value: Absolute value reported by the endpoint
            elapsed_ms: Milliseconds since the previous update

        Returns:
            Derived value, or UNAVAILABLE on the first rate update

        Raises:
            DivisionByZeroError: Rate update with elapsed_ms == 0
        """
        previous = self._previous
        self._previous = raw_value

        match self._kind:
            case CounterKind.GAUGE:
                return raw_value
            case CounterKind.RATE:
                if elapsed_ms == 0:
                    raise DivisionByZeroError(self._key or self._label)
                if previous is None:
                    return UNAVAILABLE
                diff = raw_value - previous
                if diff < 0:
                    # Upstream restarted and reset its counters; not clamped
                    logger.debug(
                        f"[{self._label}] counter went backwards: {previous} -> {raw_value}"
                    )
                return diff / elapsed_ms

    def __repr__(self) -> str:
        return f"Counter(label={self._label!r}, kind={self._kind.value}, previous={self._previous})"
