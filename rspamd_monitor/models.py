"""
Rspamd Monitor - Data Models.

============================================================
CORE DATA STRUCTURES
============================================================

Defines the data models shared by the monitor:
- CounterKind: Rate vs gauge derivation
- MetricRole: Where a metric's raw value comes from
- MetricDefinition: One tracked metric (label, sources, scale)
- SeriesView: Read-only copy of a series for renderers
- SeriesSummary: LAST / AVG / MIN / MAX over a window

============================================================
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple


# =============================================================
# ENUMS
# =============================================================


class CounterKind(str, Enum):
    """
    How a counter turns raw values into derived values.

    - RATE:  difference of successive raw values per millisecond
    - GAUGE: latest raw value passed through unchanged
    """
    RATE = "rate"
    GAUGE = "gauge"


class MetricRole(str, Enum):
    """
    Where the aggregator takes a metric's raw value from.

    - SOURCE:    sum of named fields of the "actions" mapping
    - TOTAL:     sum of all SOURCE totals of the same cycle
    - SCAN_TIME: mean of the "scan_times" array
    """
    SOURCE = "source"
    TOTAL = "total"
    SCAN_TIME = "scan_time"


# =============================================================
# METRIC DEFINITIONS
# =============================================================


@dataclass(frozen=True)
class MetricDefinition:
    """A tracked metric and how to extract it from a snapshot."""
    key: str
    label: str
    kind: CounterKind = CounterKind.RATE
    role: MetricRole = MetricRole.SOURCE
    sources: Tuple[str, ...] = ()
    scale: float = 1000.0  # per-millisecond -> per-second

    def __post_init__(self) -> None:
        """Coerce loosely typed values (e.g. from YAML)."""
        object.__setattr__(self, "kind", CounterKind(self.kind))
        object.__setattr__(self, "role", MetricRole(self.role))
        object.__setattr__(self, "sources", tuple(self.sources))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricDefinition":
        """Build a definition from a plain mapping."""
        return cls(
            key=data["key"],
            label=data.get("label", data["key"]),
            kind=data.get("kind", CounterKind.RATE.value),
            role=data.get("role", MetricRole.SOURCE.value),
            sources=tuple(data.get("sources", ())),
            scale=float(data.get("scale", 1000.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "key": self.key,
            "label": self.label,
            "kind": self.kind.value,
            "role": self.role.value,
            "sources": list(self.sources),
            "scale": self.scale,
        }


# =============================================================
# READ-ONLY VIEWS
# =============================================================


@dataclass(frozen=True)
class SeriesSummary:
    """Window statistics for one series."""
    key: str
    label: str
    last: float
    mean: float
    min: float
    max: float
    count: int
    capacity: int

    @classmethod
    def from_values(
        cls,
        key: str,
        label: str,
        values: Sequence[float],
        capacity: int,
    ) -> Optional["SeriesSummary"]:
        """Summarize a history; None when it is empty."""
        if not values:
            return None
        return cls(
            key=key,
            label=label,
            last=values[-1],
            mean=math.fsum(values) / len(values),
            min=min(values),
            max=max(values),
            count=len(values),
            capacity=capacity,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "key": self.key,
            "label": self.label,
            "last": round(self.last, 4),
            "mean": round(self.mean, 4),
            "min": round(self.min, 4),
            "max": round(self.max, 4),
            "count": self.count,
            "capacity": self.capacity,
        }


@dataclass(frozen=True)
class SeriesView:
    """Snapshot of a series handed to renderers and exporters."""
    key: str
    label: str
    history: Tuple[float, ...] = field(default_factory=tuple)
    capacity: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.history

    def summary(self) -> Optional[SeriesSummary]:
        return SeriesSummary.from_values(self.key, self.label, self.history, self.capacity)
