# src/kubeperf/core/aggregate.py
"""
Shared access to the PerformanceMetrics aggregate during collection.

Every write goes through SharedMetrics so that concurrent sources follow the
same merge-by-presence rule: a field is written only while it still holds
its zero sentinel. The first source to populate a field wins and later
sources never overwrite it.
"""

import asyncio
import logging
from typing import Dict, Mapping, Tuple

from pydantic import BaseModel

from ..models.metrics import NamespaceMetric, NodeMetric, PerformanceMetrics, PodMetric, pod_key

logger = logging.getLogger(__name__)


def set_if_unset(model: BaseModel, field: str, value: float) -> bool:
    """Write value into model.field only if the field is still zero. Returns True on write."""
    if not value:
        return False
    if getattr(model, field):
        return False
    setattr(model, field, float(value))
    return True


class SharedMetrics:
    """
    Owns the aggregate and the single lock guarding it while sources run concurrently.
    """

    def __init__(self, metrics: PerformanceMetrics = None):
        self.metrics = metrics if metrics is not None else PerformanceMetrics()
        self.lock = asyncio.Lock()

    async def merge_cluster(self, values: Mapping[str, float], source: str = "") -> int:
        """Merge cluster-level fields such as cpu_utilization."""
        async with self.lock:
            written = sum(set_if_unset(self.metrics, field, value) for field, value in values.items())
        logger.debug("%s wrote %d cluster field(s)", source or "source", written)
        return written

    async def merge_nodes(self, values: Mapping[str, Mapping[str, float]], source: str = "") -> int:
        """Merge per-node fields, creating NodeMetric entries for unseen nodes."""
        written = 0
        async with self.lock:
            for name, fields in values.items():
                node = self.metrics.node_metrics.get(name)
                if node is None:
                    node = NodeMetric(name=name)
                    self.metrics.node_metrics[name] = node
                written += sum(set_if_unset(node, field, value) for field, value in fields.items())
        logger.debug("%s wrote %d node field(s)", source or "source", written)
        return written

    async def merge_namespaces(self, values: Mapping[str, Mapping[str, float]], source: str = "") -> int:
        """Merge per-namespace fields, creating NamespaceMetric entries for unseen namespaces."""
        written = 0
        async with self.lock:
            for name, fields in values.items():
                ns = self.metrics.namespace_metrics.get(name)
                if ns is None:
                    ns = NamespaceMetric(name=name)
                    self.metrics.namespace_metrics[name] = ns
                written += sum(set_if_unset(ns, field, value) for field, value in fields.items())
        logger.debug("%s wrote %d namespace field(s)", source or "source", written)
        return written

    async def merge_pods(self, values: Mapping[Tuple[str, str], Mapping[str, float]], source: str = "") -> int:
        """Merge per-pod fields keyed by (namespace, pod), creating PodMetric entries for unseen pods."""
        written = 0
        async with self.lock:
            for (namespace, name), fields in values.items():
                key = pod_key(namespace, name)
                pod = self.metrics.pod_metrics.get(key)
                if pod is None:
                    pod = PodMetric(name=name, namespace=namespace)
                    self.metrics.pod_metrics[key] = pod
                written += sum(set_if_unset(pod, field, value) for field, value in fields.items())
        logger.debug("%s wrote %d pod field(s)", source or "source", written)
        return written

    async def store_raw(self, name: str, body: str):
        async with self.lock:
            self.metrics.raw_responses.setdefault(name, body)

    async def record_source(self, source: str, ok: bool):
        async with self.lock:
            target = self.metrics.contributing_sources if ok else self.metrics.failed_sources
            if source not in target:
                target.append(source)

    async def node_capacities(self) -> Dict[str, Tuple[float, float]]:
        """Snapshot of node name -> (cpu capacity, memory capacity)."""
        async with self.lock:
            return {n.name: (n.cpu_capacity, n.memory_capacity) for n in self.metrics.node_metrics.values()}

    async def namespace_names(self) -> list:
        async with self.lock:
            return list(self.metrics.namespace_metrics)
