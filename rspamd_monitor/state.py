"""
Rspamd Monitor - Shared State.

============================================================
THREAD SAFETY
============================================================

MonitorState is the one object shared between the polling
loop and whoever reads the series (chart renderer, metrics
exporter). A single exclusive lock guards it: held for one
snapshot update and for each read, never while fetching.

============================================================
"""

import logging
import threading
from contextlib import contextmanager
from datetime import timedelta
from typing import Iterator, List, Mapping, Optional, Sequence

from .aggregator import StatAggregator
from .models import MetricDefinition, SeriesSummary, SeriesView


logger = logging.getLogger(__name__)


class MonitorState:
    """Aggregator plus the lock that serializes access to it."""

    def __init__(
        self,
        window_size: int,
        metrics: Optional[Sequence[MetricDefinition]] = None,
    ) -> None:
        self._aggregator = StatAggregator(window_size, metrics)
        self._lock = threading.Lock()

    @contextmanager
    def locked(self) -> Iterator[StatAggregator]:
        """Exclusive access to the aggregator for the duration of the block."""
        with self._lock:
            yield self._aggregator

    def apply(self, snapshot: Mapping, elapsed: timedelta) -> None:
        """Apply a snapshot under the lock."""
        with self._lock:
            self._aggregator.update_from_snapshot(snapshot, elapsed)

    def views(self) -> List[SeriesView]:
        with self._lock:
            return self._aggregator.views()

    def summaries(self) -> List[SeriesSummary]:
        with self._lock:
            return self._aggregator.summaries()
