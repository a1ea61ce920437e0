"""
Core data types for snapmetrics.

A MetricSnapshot is what every collector hands back: one point-in-time
set of named float readings. Datapoint and Dimension mirror the shapes
CloudWatch uses for GetMetricStatistics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, Iterator, Mapping


@dataclass(frozen=True)
class Datapoint:
    """One (timestamp, value) sample from a metrics-API query."""

    timestamp: datetime
    value: float


@dataclass(frozen=True)
class Dimension:
    """Identifies which resource a metrics query targets, e.g. InstanceId."""

    name: str
    value: str

    def to_request(self) -> Dict[str, str]:
        return {"Name": self.name, "Value": self.value}


@dataclass(frozen=True)
class MetricSnapshot:
    """A single point-in-time reading, keyed by metric name.

    Values are exposed through a read-only mapping so a snapshot can be
    passed around without anyone editing it in place.
    """

    values: Mapping[str, float]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        frozen = MappingProxyType({k: float(v) for k, v in self.values.items()})
        object.__setattr__(self, "values", frozen)

    def __getitem__(self, name: str) -> float:
        return self.values[name]

    def __contains__(self, name: object) -> bool:
        return name in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def keys(self):
        return self.values.keys()

    def get(self, name: str, default=None):
        return self.values.get(name, default)

    def as_dict(self) -> Dict[str, float]:
        """Return a plain dict copy for display or storage."""
        return dict(self.values)
