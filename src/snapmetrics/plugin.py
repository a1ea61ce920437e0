"""
Plugin host: turns a collector's snapshot into monitoring-agent output.

Two modes, picked by the agent through the environment:
  values       one "graph.metric<TAB>value<TAB>epoch" line per metric
  definitions  "# mackerel-agent-plugin" followed by the graph JSON

Diff metrics are reported as a per-minute rate against the snapshot saved
by the previous run.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from snapmetrics.collector.base import MetricsCollector
from snapmetrics.graphs import GraphRegistry
from snapmetrics.metrics import MetricSnapshot
from snapmetrics.storage.snapshot_cache import SnapshotCache

log = logging.getLogger(__name__)

META_HEADER = "# mackerel-agent-plugin"

# A previous value older than this is too stale to diff against
MAX_DIFF_SECONDS = 600


def compute_rate(current: float, previous: float, elapsed_seconds: float) -> Optional[float]:
    """Per-minute rate of a counter between two readings.

    Returns None when there's nothing sensible to report: clock went
    backwards, the gap is too long, or the counter was reset.
    """
    if elapsed_seconds <= 0:
        return None
    if elapsed_seconds > MAX_DIFF_SECONDS:
        log.info("Previous snapshot is %.0fs old, skipping diff", elapsed_seconds)
        return None
    if current < previous:
        log.info("Counter went from %f to %f, assuming reset", previous, current)
        return None
    return (current - previous) * 60 / elapsed_seconds


def output_definitions(registry: GraphRegistry, echo: Callable[[str], None]):
    echo(META_HEADER)
    echo(json.dumps(registry.to_payload()))


def format_value_line(key: str, value: float, when: datetime) -> str:
    return f"{key}\t{value:f}\t{int(when.timestamp())}"


class PluginHost:

    def __init__(
        self,
        collector: MetricsCollector,
        cache: Optional[SnapshotCache] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._collector = collector
        self._cache = cache
        self._clock = clock

    def _previous(self) -> Optional[MetricSnapshot]:
        if self._cache is None:
            return None
        return self._cache.load()

    def output_values(self, echo: Callable[[str], None]) -> MetricSnapshot:
        """Collect, emit, then remember the raw snapshot for next time."""
        registry = self._collector.graphs()
        snapshot = self._collector.collect()
        registry.check_snapshot(snapshot)

        now = self._clock()
        previous = self._previous()
        elapsed = (snapshot.timestamp - previous.timestamp).total_seconds() if previous else 0.0

        for graph_name, graph in registry.items():
            for metric in graph.metrics:
                if metric.name not in snapshot:
                    continue
                value = snapshot[metric.name]

                if metric.diff:
                    if previous is None or metric.name not in previous:
                        log.debug("No previous value for %s yet", metric.name)
                        continue
                    value = compute_rate(value, previous[metric.name], elapsed)
                    if value is None:
                        continue

                echo(format_value_line(f"{graph_name}.{metric.name}", value, now))

        if self._cache is not None:
            self._cache.save(snapshot)
        return snapshot
