"""
Rspamd Monitor.

============================================================
RATES AND GAUGES FROM RSPAMD STATISTICS
============================================================

Polls the Rspamd /stat endpoint, turns its cumulative action
counters into per-second rates, keeps a rolling window of
each derived value and draws it as terminal charts and/or
exports it to Prometheus.

============================================================
TRACKED METRICS (default)
============================================================

- spam msg/sec      rate of "reject"
- ham msg/sec       rate of "no action"
- junk msg/sec      rate of "add header" + "rewrite subject"
- total msg/sec     sum of the three rates
- average_time sec  mean of "scan_times" (gauge)

============================================================
USAGE
============================================================

```python
from datetime import timedelta
from rspamd_monitor import StatAggregator

aggregator = StatAggregator(window_size=80)
aggregator.update_from_snapshot(first, timedelta(seconds=1))
aggregator.update_from_snapshot(second, timedelta(seconds=1))

spam = aggregator.series("spam")
print(spam.history, spam.summary())
```

============================================================
"""

__version__ = "0.2.0"

from .models import (
    CounterKind,
    MetricRole,
    MetricDefinition,
    SeriesSummary,
    SeriesView,
)
from .exceptions import (
    MonitorError,
    DivisionByZeroError,
    MissingFieldError,
    AggregationError,
    FetchError,
    PollerFatalError,
    ConfigurationError,
)
from .counters import Counter, UNAVAILABLE, is_unavailable
from .series import Series
from .config import DEFAULT_METRICS, MonitorConfig
from .aggregator import StatAggregator, mean_scan_time
from .state import MonitorState
from .poller import StatPoller
from .render import ChartRenderer, ascii_chart
from .exporter import PrometheusExporter


__all__ = [
    "__version__",
    # Models
    "CounterKind",
    "MetricRole",
    "MetricDefinition",
    "SeriesSummary",
    "SeriesView",
    # Exceptions
    "MonitorError",
    "DivisionByZeroError",
    "MissingFieldError",
    "AggregationError",
    "FetchError",
    "PollerFatalError",
    "ConfigurationError",
    # Core
    "Counter",
    "UNAVAILABLE",
    "is_unavailable",
    "Series",
    "StatAggregator",
    "mean_scan_time",
    "MonitorState",
    # Config
    "DEFAULT_METRICS",
    "MonitorConfig",
    # Glue
    "StatPoller",
    "ChartRenderer",
    "ascii_chart",
    "PrometheusExporter",
]
