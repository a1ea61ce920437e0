"""
Graph definitions: which metrics belong together, how they're labelled,
and whether the agent should report a delta (diff) or the raw value.

Registries are immutable values. Each collector builds its own at import
time and hands it to whatever renders metadata or applies differencing.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from snapmetrics.errors import UnknownMetricError
from snapmetrics.metrics import MetricSnapshot


@dataclass(frozen=True)
class MetricDefinition:
    name: str
    label: str
    diff: bool = False
    stacked: bool = False

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "label": self.label,
            "diff": self.diff,
            "stacked": self.stacked,
        }


@dataclass(frozen=True)
class GraphDefinition:
    label: str
    unit: str
    metrics: Tuple[MetricDefinition, ...]

    def __post_init__(self):
        # accept any iterable but always store a tuple
        object.__setattr__(self, "metrics", tuple(self.metrics))

    def to_payload(self) -> dict:
        return {
            "label": self.label,
            "unit": self.unit,
            "metrics": [m.to_payload() for m in self.metrics],
        }


class GraphRegistry:
    """Read-only table of graph name -> GraphDefinition.

    Graph order is preserved, which keeps metadata and value output stable
    between runs. A metric name may only appear in one graph, since the
    previous-snapshot cache keys on the bare metric name.
    """

    def __init__(self, graphs: Mapping[str, GraphDefinition]):
        self._graphs = MappingProxyType(dict(graphs))
        self._by_metric: Dict[str, Tuple[str, MetricDefinition]] = {}
        for graph_name, graph in self._graphs.items():
            for metric in graph.metrics:
                if metric.name in self._by_metric:
                    raise ValueError(
                        f"metric {metric.name!r} defined in both "
                        f"{self._by_metric[metric.name][0]!r} and {graph_name!r}"
                    )
                self._by_metric[metric.name] = (graph_name, metric)

    def __getitem__(self, graph_name: str) -> GraphDefinition:
        return self._graphs[graph_name]

    def __contains__(self, graph_name: object) -> bool:
        return graph_name in self._graphs

    def __iter__(self) -> Iterator[str]:
        return iter(self._graphs)

    def __len__(self) -> int:
        return len(self._graphs)

    def items(self):
        return self._graphs.items()

    def metric_names(self) -> List[str]:
        return list(self._by_metric)

    def find(self, metric_name: str) -> Optional[Tuple[str, MetricDefinition]]:
        """Return (graph name, definition) for a metric, or None."""
        return self._by_metric.get(metric_name)

    def is_diff(self, metric_name: str) -> bool:
        found = self.find(metric_name)
        if found is None:
            raise UnknownMetricError(f"no graph defines metric {metric_name!r}")
        return found[1].diff

    def check_snapshot(self, snapshot: MetricSnapshot):
        """Raise UnknownMetricError if the snapshot has keys we can't describe."""
        orphans = sorted(k for k in snapshot if k not in self._by_metric)
        if orphans:
            raise UnknownMetricError(f"snapshot has undefined metrics: {', '.join(orphans)}")

    def to_payload(self) -> dict:
        """Metadata in the shape the monitoring agent expects."""
        return {"graphs": {name: g.to_payload() for name, g in self._graphs.items()}}


def counter_graph(label: str, unit: str, names: Iterable[str], diff: bool = True,
                  stacked: bool = False) -> GraphDefinition:
    """Shorthand for graphs whose metric labels are just their names."""
    return GraphDefinition(
        label=label,
        unit=unit,
        metrics=tuple(MetricDefinition(n, n, diff=diff, stacked=stacked) for n in names),
    )
