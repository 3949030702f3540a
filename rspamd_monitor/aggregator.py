"""
Rspamd Monitor - Aggregator.

============================================================
SNAPSHOT -> SERIES
============================================================

The StatAggregator owns one Series per tracked metric and
applies each decoded /stat snapshot to all of them:

1. "actions" must be present (MissingFieldError otherwise)
2. SOURCE metrics: sum of their action counts x scale
3. TOTAL metrics: sum of this cycle's SOURCE totals
4. SCAN_TIME metrics: mean of the valid "scan_times"
5. The first failure aborts the cycle (AggregationError)

============================================================
USAGE
============================================================

```python
aggregator = StatAggregator(window_size=80)

aggregator.update_from_snapshot(json.loads(body), timedelta(seconds=1))

for view in aggregator.views():
    plot(view.label, view.history)
```

============================================================
"""

import logging
import math
from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from .config import DEFAULT_METRICS
from .exceptions import AggregationError, MissingFieldError, MonitorError
from .models import MetricDefinition, MetricRole, SeriesSummary, SeriesView
from .series import Series


logger = logging.getLogger(__name__)


ACTIONS_FIELD = "actions"
SCAN_TIMES_FIELD = "scan_times"

# Largest count an unsigned 64-bit counter can report
MAX_ACTION_COUNT = 2 ** 64 - 1


class StatAggregator:
    """
    Applies /stat snapshots to a fixed set of series.

    Not thread-safe on its own; share it through MonitorState.
    """

    def __init__(
        self,
        window_size: int,
        metrics: Optional[Sequence[MetricDefinition]] = None,
    ) -> None:
        """
        Initialize aggregator.

        Args:
            window_size: History capacity of every series
            metrics: Tracked metrics, in display order
        """
        definitions = tuple(metrics if metrics is not None else DEFAULT_METRICS)
        keys = [d.key for d in definitions]
        if len(set(keys)) != len(keys):
            raise ValueError(f"duplicate metric keys: {keys}")

        self._window_size = window_size
        self._definitions = definitions
        self._series: Dict[str, Series] = {
            d.key: Series.from_definition(d, window_size) for d in definitions
        }
        self._cycles = 0

        logger.debug(f"StatAggregator initialized with metrics {keys}, window {window_size}")

    # =========================================================
    # ACCESSORS
    # =========================================================

    @property
    def window_size(self) -> int:
        return self._window_size

    @property
    def keys(self) -> List[str]:
        return [d.key for d in self._definitions]

    @property
    def cycles(self) -> int:
        """Number of snapshots applied without error."""
        return self._cycles

    @property
    def definitions(self) -> Sequence[MetricDefinition]:
        return self._definitions

    def series(self, key: str) -> Series:
        return self._series[key]

    def views(self) -> List[SeriesView]:
        return [self._series[d.key].view() for d in self._definitions]

    def summaries(self) -> List[SeriesSummary]:
        """Summaries of the non-empty series, in display order."""
        result = []
        for d in self._definitions:
            summary = self._series[d.key].summary()
            if summary is not None:
                result.append(summary)
        return result

    # =========================================================
    # UPDATE
    # =========================================================

    def update_from_snapshot(self, snapshot: Mapping, elapsed: timedelta) -> None:
        """
        Apply one decoded snapshot to every series.

        Args:
            snapshot: Decoded JSON object from the endpoint
            elapsed: Time since the previous snapshot

        Raises:
            MissingFieldError: "actions" is absent; no series is touched
            AggregationError: A series update failed; later metrics are skipped
        """
        actions = snapshot.get(ACTIONS_FIELD) if isinstance(snapshot, Mapping) else None
        if not isinstance(actions, Mapping):
            raise MissingFieldError(ACTIONS_FIELD)

        source_total = 0.0
        for definition in self._by_role(MetricRole.SOURCE):
            scaled = self._sum_actions(actions, definition.sources) * definition.scale
            self._feed(definition, scaled, elapsed)
            source_total += scaled

        for definition in self._by_role(MetricRole.TOTAL):
            self._feed(definition, source_total, elapsed)

        scan_times = snapshot.get(SCAN_TIMES_FIELD)
        if isinstance(scan_times, list):
            mean = mean_scan_time(scan_times)
            if mean is not None:
                for definition in self._by_role(MetricRole.SCAN_TIME):
                    self._feed(definition, mean, elapsed)
            else:
                logger.debug("No valid scan times in snapshot, skipping")

        self._cycles += 1

    def _by_role(self, role: MetricRole) -> List[MetricDefinition]:
        return [d for d in self._definitions if d.role == role]

    def _feed(self, definition: MetricDefinition, raw_value: float, elapsed: timedelta) -> float:
        try:
            return self._series[definition.key].update(raw_value, elapsed)
        except MonitorError as e:
            raise AggregationError(
                reason=e.message,
                metric=definition.key,
                original_exception=e,
            ) from e

    @staticmethod
    def _sum_actions(actions: Mapping, fields: Sequence[str]) -> int:
        """Sum unsigned 64-bit counts of the named actions; anything else counts as 0."""
        total = 0
        for name in fields:
            value = lookup_action(actions, name)
            if isinstance(value, bool) or not isinstance(value, int):
                continue
            if 0 <= value <= MAX_ACTION_COUNT:
                total += value
        return total

    def __repr__(self) -> str:
        return f"StatAggregator(metrics={self.keys}, window={self._window_size})"


def lookup_action(actions: Mapping, name: str) -> Any:
    """
    Find an action count by name.

    Accepts the underscore spelling ("no_action") when the
    spaced one ("no action") is not present.
    """
    if name in actions:
        return actions[name]
    return actions.get(name.replace(" ", "_"))


def _sample_value(sample: Any) -> Optional[float]:
    if isinstance(sample, bool) or not isinstance(sample, (int, float)):
        return None
    try:
        value = float(sample)
    except OverflowError:
        return None
    return value if math.isfinite(value) else None


def mean_scan_time(samples: Sequence[Any]) -> Optional[float]:
    """
    Mean of the numeric, finite samples.

    Returns None when no valid sample remains.
    """
    valid = [v for v in map(_sample_value, samples) if v is not None]
    if not valid:
        return None
    try:
        return math.fsum(valid) / len(valid)
    except OverflowError:
        # Sum leaves float range; divide first
        return math.fsum(v / len(valid) for v in valid)
