"""
Base collector interface.

A collector is anything that can produce a MetricSnapshot and describe
its metrics with a GraphRegistry. This keeps the plugin host and the
console output decoupled from where the numbers come from (CloudWatch,
PostgreSQL, etc).
"""

from abc import ABC, abstractmethod

from snapmetrics.graphs import GraphRegistry
from snapmetrics.metrics import MetricSnapshot


class MetricsCollector(ABC):
    """Interface for all metrics sources."""

    @abstractmethod
    def collect(self) -> MetricSnapshot:
        """Fetch one snapshot of current metrics."""
        ...

    @abstractmethod
    def graphs(self) -> GraphRegistry:
        """Static graph definitions covering every key collect() returns."""
        ...

    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this source."""
        ...

    def close(self):
        pass
