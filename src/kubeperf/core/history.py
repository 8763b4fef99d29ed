# src/kubeperf/core/history.py
"""
Builds fixed-length historical series for nodes and namespaces.

Measured data comes from range queries against the telemetry backend. An
entity with no usable measured samples gets an approximated series derived
from its current usage; such series are flagged so reports never present
them as measurements.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, Optional, Tuple

from ..collectors.prometheus_collector import (
    NAMESPACE_LABELS,
    NODE_LABELS,
    PrometheusCollector,
    usage_queries,
)
from ..models.metrics import HistoricalSeries, MetricSnapshot, PerformanceMetrics
from .config import Config
from .exceptions import SourceUnavailable

logger = logging.getLogger(__name__)

# The approximation cycles through six multipliers between 0.8 and 1.2
VARIATION_PERIOD = 6
VARIATION_MIN = 0.8
VARIATION_SPAN = 0.4


def variation_factor(index: int) -> float:
    return VARIATION_MIN + VARIATION_SPAN * (index % VARIATION_PERIOD) / (VARIATION_PERIOD - 1)


def _percent(value: float, capacity: float) -> float:
    return (value / capacity) * 100 if capacity > 0 else 0.0


class HistoricalWindowBuilder:
    """
    Produces W samples per entity, one per step, ending at a fixed instant.

    The end instant is captured when the builder is created, so repeated
    build_window calls for the same entity yield identical sequences.
    """

    def __init__(
        self,
        settings: Config,
        prometheus: Optional[PrometheusCollector] = None,
        now: Optional[datetime] = None,
    ):
        self.settings = settings
        self.prometheus = prometheus
        self.window_size = settings.HISTORY_WINDOW_SIZE
        self.step = timedelta(seconds=settings.HISTORY_STEP_SECONDS)
        self.end = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        self.start = self.end - self.step * self.window_size
        # scope -> entity -> unix timestamp -> {"cpu": v, "memory": v}
        self._measured: Dict[str, Dict[str, Dict[float, Dict[str, float]]]] = {
            "node": defaultdict(dict),
            "namespace": defaultdict(dict),
        }

    def timestamps(self):
        """The W sample instants, ascending, spaced by one step and ending at self.end."""
        return [self.end - self.step * (self.window_size - 1 - i) for i in range(self.window_size)]

    async def load(self) -> int:
        """
        Run one range query per scope and metric type. Returns the number of
        queries that answered; failures leave the affected entities to the approximation.
        """
        if self.prometheus is None or not self.prometheus.base_url:
            logger.info("No telemetry backend configured; historical series will be approximated.")
            return 0

        answered = 0
        queries = usage_queries(self.settings.PROMETHEUS_RATE_WINDOW)
        for (scope, metric_type), promql in queries.items():
            try:
                series = await self.prometheus.query_range(
                    promql, self.start, self.end, self.settings.HISTORY_STEP_SECONDS
                )
            except SourceUnavailable as e:
                logger.warning("Range query for %s %s history failed: %s", scope, metric_type, e.reason)
                continue

            answered += 1
            labels = NODE_LABELS if scope == "node" else NAMESPACE_LABELS
            for item in series:
                name = item.label(*labels)
                if not name:
                    continue
                points = self._measured[scope][name]
                # Entries sharing a timestamp are coalesced, the last write wins
                for ts, value in item.samples():
                    points.setdefault(ts, {})[metric_type] = value
        return answered

    def is_measured(self, scope: str, name: str) -> bool:
        return bool(self._measured[scope].get(name))

    def build_window(
        self,
        scope: str,
        name: str,
        usage: Tuple[float, float],
        capacity: Tuple[float, float],
    ) -> Iterator[MetricSnapshot]:
        """
        Yield the series for one entity.

        usage is the current (cpu cores, memory bytes) reading and capacity the
        (cpu, memory) denominators used for the percentage fields.
        """
        cpu_capacity, memory_capacity = capacity
        points = self._measured[scope].get(name)

        if points:
            for ts in sorted(points)[-self.window_size :]:
                values = points[ts]
                cpu = values.get("cpu", 0.0)
                memory = values.get("memory", 0.0)
                yield MetricSnapshot(
                    timestamp=datetime.fromtimestamp(ts, tz=timezone.utc),
                    cpu_usage=cpu,
                    cpu_percent=_percent(cpu, cpu_capacity),
                    memory_usage=memory,
                    memory_percent=_percent(memory, memory_capacity),
                )
            return

        cpu_now, memory_now = usage
        for i, ts in enumerate(self.timestamps()):
            factor = variation_factor(i)
            cpu = cpu_now * factor
            memory = memory_now * factor
            yield MetricSnapshot(
                timestamp=ts,
                cpu_usage=cpu,
                cpu_percent=_percent(cpu, cpu_capacity),
                memory_usage=memory,
                memory_percent=_percent(memory, memory_capacity),
            )

    def series(self, scope: str, name: str, usage, capacity) -> HistoricalSeries:
        measured = self.is_measured(scope, name)
        return HistoricalSeries(
            name=name,
            snapshots=list(self.build_window(scope, name, usage, capacity)),
            approximated=not measured,
        )

    def apply(self, metrics: PerformanceMetrics):
        """Fill the historical maps of the aggregate from what load() gathered."""
        cluster_cpu = sum(n.cpu_allocatable or n.cpu_capacity for n in metrics.node_metrics.values())
        cluster_memory = sum(n.memory_allocatable or n.memory_capacity for n in metrics.node_metrics.values())

        for name, node in metrics.node_metrics.items():
            metrics.historical_nodes[name] = self.series(
                "node",
                name,
                (node.cpu_usage, node.memory_usage),
                (node.cpu_capacity, node.memory_capacity),
            )

        # Namespaces have no capacity of their own; percentages are shares of the cluster.
        for name, ns in metrics.namespace_metrics.items():
            metrics.historical_namespaces[name] = self.series(
                "namespace",
                name,
                (ns.cpu_usage, ns.memory_usage),
                (cluster_cpu, cluster_memory),
            )

        approximated = sum(
            s.approximated
            for s in list(metrics.historical_nodes.values()) + list(metrics.historical_namespaces.values())
        )
        if approximated:
            logger.warning(
                "%d historical series were approximated from current usage (no measured history).", approximated
            )

    async def build(self, metrics: PerformanceMetrics):
        await self.load()
        self.apply(metrics)
