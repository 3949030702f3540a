"""
Rspamd Monitor - Series.

============================================================
ROLLING HISTORY
============================================================

A Series owns one Counter and a fixed-capacity history of
derived values (oldest first). Once full, each append
expires the oldest value.

UNAVAILABLE results (first rate sample) are never stored,
so the first polling cycle never produces a plottable point.

============================================================
"""

from collections import deque
from datetime import timedelta
from typing import Deque, Optional, Tuple

from .counters import Counter, is_unavailable
from .models import CounterKind, MetricDefinition, SeriesSummary, SeriesView


class Series:
    """Counter plus bounded history for one metric."""

    def __init__(
        self,
        capacity: int,
        label: str,
        kind: CounterKind = CounterKind.RATE,
        key: Optional[str] = None,
    ) -> None:
        """
        Initialize series.

        Args:
            capacity: Maximum number of retained values (window size)
            label: Display label
            kind: Counter kind
            key: Metric key, defaults to the label
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._key = key or label
        self._counter = Counter(label, kind, key=self._key)
        self._values: Deque[float] = deque(maxlen=capacity)

    @classmethod
    def from_definition(cls, definition: MetricDefinition, capacity: int) -> "Series":
        return cls(capacity, definition.label, definition.kind, key=definition.key)

    # =========================================================
    # ACCESSORS
    # =========================================================

    @property
    def key(self) -> str:
        return self._key

    @property
    def label(self) -> str:
        return self._counter.label

    @property
    def kind(self) -> CounterKind:
        return self._counter.kind

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def counter(self) -> Counter:
        return self._counter

    @property
    def history(self) -> Tuple[float, ...]:
        """Copy of the history, oldest first."""
        return tuple(self._values)

    def __len__(self) -> int:
        return len(self._values)

    # =========================================================
    # UPDATE
    # =========================================================

    def update(self, raw_value: float, elapsed: timedelta) -> float:
        """
        Feed a raw value through the counter and record the result.

        Args:
            raw_value: Absolute value reported by the endpoint
            elapsed: Time since the previous update

        Returns:
            The counter's derived value

        Raises:
            DivisionByZeroError: Propagated from the counter; history is untouched
        """
        elapsed_ms = int(elapsed / timedelta(milliseconds=1))
        value = self._counter.update(raw_value, elapsed_ms)

        if not is_unavailable(value):
            # maxlen expires the oldest value once full
            self._values.append(value)

        return value

    # =========================================================
    # READ-ONLY VIEWS
    # =========================================================

    def summary(self) -> Optional[SeriesSummary]:
        """LAST / AVG / MIN / MAX of the window, None when empty."""
        return SeriesSummary.from_values(self._key, self.label, self.history, self._capacity)

    def view(self) -> SeriesView:
        return SeriesView(
            key=self._key,
            label=self.label,
            history=self.history,
            capacity=self._capacity,
        )

    def __repr__(self) -> str:
        return f"Series(key={self._key!r}, len={len(self._values)}, capacity={self._capacity})"
