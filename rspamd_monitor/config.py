"""
Rspamd Monitor - Configuration.

============================================================
CONFIGURABLE MONITOR
============================================================

All monitor parameters are configurable:
- Endpoint URL and poll interval
- Window size (history capacity, also the chart width)
- Failure budget of the polling loop
- Tracked metrics and their source fields

Configuration can be loaded from:
- Default values
- Environment variables
- YAML config file

============================================================
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .exceptions import ConfigurationError
from .models import CounterKind, MetricDefinition, MetricRole


logger = logging.getLogger(__name__)


# =============================================================
# DEFAULT METRICS
# =============================================================


DEFAULT_METRICS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        key="spam",
        label="spam msg/sec",
        sources=("reject",),
    ),
    MetricDefinition(
        key="ham",
        label="ham msg/sec",
        sources=("no action",),
    ),
    MetricDefinition(
        key="junk",
        label="junk msg/sec",
        sources=("add header", "rewrite subject"),
    ),
    MetricDefinition(
        key="total",
        label="total msg/sec",
        role=MetricRole.TOTAL,
    ),
    MetricDefinition(
        key="avg_time",
        label="average_time sec",
        kind=CounterKind.GAUGE,
        role=MetricRole.SCAN_TIME,
        scale=1.0,
    ),
)


# =============================================================
# LIMITS / COERCION
# =============================================================


MIN_POLL_INTERVAL_SECONDS = 0.001

NUMERIC_FIELDS: Dict[str, Callable[[Any], Any]] = {
    "poll_interval_seconds": float,
    "request_timeout_seconds": float,
    "max_consecutive_errors": int,
    "window_size": int,
    "chart_height": int,
    "metrics_port": int,
}


def _coerce(key: str, value: Any, convert: Callable[[Any], Any]) -> Any:
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be a number", config_key=key, actual_value=str(value))
    try:
        return convert(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"{key} must be a number, got {value!r}",
            config_key=key,
            actual_value=str(value),
        ) from e


def _env_number(name: str, convert: Callable[[Any], Any]) -> Any:
    return _coerce(name, os.getenv(name), convert)


# =============================================================
# MAIN CONFIGURATION
# =============================================================


@dataclass
class MonitorConfig:
    """
    Main configuration for the monitor.

    request_timeout_seconds falls back to the poll interval.
    """
    # Endpoint
    url: str = "http://localhost:11334/stat"
    user_agent: str = "rspamd-mon"
    poll_interval_seconds: float = 1.0
    request_timeout_seconds: Optional[float] = None

    # Failure budget
    max_consecutive_errors: int = 5

    # History / chart
    window_size: int = 80
    chart_height: int = 6
    render_chart: bool = True

    # Export
    metrics_port: Optional[int] = None

    # Logging
    log_level: str = "WARNING"
    log_format: str = "text"

    # Tracked metrics
    metrics: Tuple[MetricDefinition, ...] = field(default_factory=lambda: DEFAULT_METRICS)

    @property
    def effective_timeout(self) -> float:
        if self.request_timeout_seconds is None:
            return self.poll_interval_seconds
        return self.request_timeout_seconds

    @classmethod
    def from_env(cls, base: Optional["MonitorConfig"] = None) -> "MonitorConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - RSPAMD_MON_URL
        - RSPAMD_MON_INTERVAL
        - RSPAMD_MON_TIMEOUT
        - RSPAMD_MON_WINDOW
        - RSPAMD_MON_CHART_HEIGHT
        - RSPAMD_MON_MAX_ERRORS
        - RSPAMD_MON_METRICS_PORT
        - RSPAMD_MON_LOG_LEVEL
        """
        config = base or cls()

        if os.getenv("RSPAMD_MON_URL"):
            config.url = os.getenv("RSPAMD_MON_URL")
        if os.getenv("RSPAMD_MON_INTERVAL"):
            config.poll_interval_seconds = _env_number("RSPAMD_MON_INTERVAL", float)
        if os.getenv("RSPAMD_MON_TIMEOUT"):
            config.request_timeout_seconds = _env_number("RSPAMD_MON_TIMEOUT", float)
        if os.getenv("RSPAMD_MON_WINDOW"):
            config.window_size = _env_number("RSPAMD_MON_WINDOW", int)
        if os.getenv("RSPAMD_MON_CHART_HEIGHT"):
            config.chart_height = _env_number("RSPAMD_MON_CHART_HEIGHT", int)
        if os.getenv("RSPAMD_MON_MAX_ERRORS"):
            config.max_consecutive_errors = _env_number("RSPAMD_MON_MAX_ERRORS", int)
        if os.getenv("RSPAMD_MON_METRICS_PORT"):
            config.metrics_port = _env_number("RSPAMD_MON_METRICS_PORT", int)
        if os.getenv("RSPAMD_MON_LOG_LEVEL"):
            config.log_level = os.getenv("RSPAMD_MON_LOG_LEVEL").upper()

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "MonitorConfig":
        """
        Load configuration from a YAML file.

        Unknown keys are ignored. A "metrics" list replaces the
        default metric set entirely.
        """
        import yaml

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load YAML config from {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitorConfig":
        """Load configuration from a dictionary."""
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for name, value in data.items():
            if name not in known:
                logger.warning(f"Ignoring unknown config key: {name}")
                continue
            kwargs[name] = value

        if "metrics" in kwargs:
            try:
                kwargs["metrics"] = tuple(MetricDefinition.from_dict(m) for m in kwargs["metrics"])
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid metric definition: {e}",
                    config_key="metrics",
                ) from e

        for name, convert in NUMERIC_FIELDS.items():
            if kwargs.get(name) is not None:
                kwargs[name] = _coerce(name, kwargs[name], convert)

        return cls(**kwargs)

    def validate(self) -> List[str]:
        """
        Validate configuration parameters.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.url.startswith(("http://", "https://")):
            errors.append("url must be an http(s) URL")

        if self.poll_interval_seconds < MIN_POLL_INTERVAL_SECONDS:
            # Elapsed time is measured in whole milliseconds
            errors.append(f"poll_interval_seconds must be at least {MIN_POLL_INTERVAL_SECONDS}")

        if self.request_timeout_seconds is not None and self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")

        if self.window_size < 1:
            errors.append("window_size must be at least 1")

        if self.chart_height < 1:
            errors.append("chart_height must be at least 1")

        if self.max_consecutive_errors < 0:
            errors.append("max_consecutive_errors must not be negative")

        if self.metrics_port is not None and not 0 < self.metrics_port < 65536:
            errors.append("metrics_port must be in [1, 65535]")

        if self.log_format not in ("text", "json"):
            errors.append("log_format must be 'text' or 'json'")

        keys = [m.key for m in self.metrics]
        if not keys:
            errors.append("at least one metric must be configured")
        if len(set(keys)) != len(keys):
            errors.append("metric keys must be unique")

        for metric in self.metrics:
            if metric.role == MetricRole.SOURCE and not metric.sources:
                errors.append(f"metric '{metric.key}' has no source fields")
            if metric.role == MetricRole.SCAN_TIME and metric.kind != CounterKind.GAUGE:
                errors.append(f"metric '{metric.key}' must be a gauge")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "url": self.url,
            "poll_interval_seconds": self.poll_interval_seconds,
            "request_timeout_seconds": self.effective_timeout,
            "window_size": self.window_size,
            "chart_height": self.chart_height,
            "max_consecutive_errors": self.max_consecutive_errors,
            "metrics_port": self.metrics_port,
            "metrics": [m.to_dict() for m in self.metrics],
        }
