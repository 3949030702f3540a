"""
Rspamd Monitor - Prometheus Export.

============================================================
METRICS EXPORT
============================================================

Publishes the window statistics of each series as
Prometheus gauges labelled by metric key:

rspamd_series_last{metric="spam"}
rspamd_series_mean{metric="spam"}
rspamd_series_min{metric="spam"}
rspamd_series_max{metric="spam"}
rspamd_series_samples{metric="spam"}

Gauges are set inside the polling critical section; the
HTTP endpoint thread only reads them.

============================================================
"""

import logging
from typing import Iterable, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Gauge, start_http_server

from .aggregator import StatAggregator
from .models import SeriesSummary


logger = logging.getLogger(__name__)


class PrometheusExporter:
    """Mirrors series summaries into Prometheus gauges."""

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        namespace: str = "rspamd",
    ) -> None:
        self._registry = registry if registry is not None else REGISTRY

        def gauge(name: str, documentation: str) -> Gauge:
            return Gauge(
                name,
                documentation,
                ["metric"],
                namespace=namespace,
                subsystem="series",
                registry=self._registry,
            )

        self._last = gauge("last", "Latest derived value of the series")
        self._mean = gauge("mean", "Mean of the values in the window")
        self._min = gauge("min", "Minimum of the values in the window")
        self._max = gauge("max", "Maximum of the values in the window")
        self._samples = gauge("samples", "Number of values in the window")

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def __call__(self, aggregator: StatAggregator) -> None:
        self.publish(aggregator.summaries())

    def publish(self, summaries: Iterable[SeriesSummary]) -> None:
        for summary in summaries:
            self._last.labels(metric=summary.key).set(summary.last)
            self._mean.labels(metric=summary.key).set(summary.mean)
            self._min.labels(metric=summary.key).set(summary.min)
            self._max.labels(metric=summary.key).set(summary.max)
            self._samples.labels(metric=summary.key).set(summary.count)

    def serve(self, port: int, addr: str = "0.0.0.0") -> None:
        """Start the scrape endpoint in a background thread."""
        start_http_server(port, addr=addr, registry=self._registry)
        logger.info(f"Serving Prometheus metrics on {addr}:{port}")
