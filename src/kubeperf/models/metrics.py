# src/kubeperf/models/metrics.py
"""
This module defines the Pydantic data models for the metrics collected
within kubeperf. A single PerformanceMetrics aggregate is created per
collection and filled by the source collectors; every other component reads
from it.

Zero is the "unknown" sentinel for every numeric field: an entity that is
present with zero values is known to exist, its measurements are simply not
available yet.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class NodeMetric(BaseModel):
    """
    Capacity, allocatable and usage for a single node.
    CPU values are in cores, memory values in bytes.
    """

    name: str = Field(..., description="The name of the Kubernetes node.")
    cpu_capacity: float = 0.0
    cpu_allocatable: float = 0.0
    cpu_usage: float = 0.0
    memory_capacity: float = 0.0
    memory_allocatable: float = 0.0
    memory_usage: float = 0.0

    @property
    def cpu_percent(self) -> float:
        return (self.cpu_usage / self.cpu_capacity) * 100 if self.cpu_capacity > 0 else 0.0

    @property
    def memory_percent(self) -> float:
        return (self.memory_usage / self.memory_capacity) * 100 if self.memory_capacity > 0 else 0.0


class NamespaceMetric(BaseModel):
    """
    Usage, requests and limits for a namespace, summed across all of its containers.
    """

    name: str = Field(..., description="The namespace name.")
    cpu_usage: float = 0.0
    cpu_requests: float = 0.0
    cpu_limits: float = 0.0
    memory_usage: float = 0.0
    memory_requests: float = 0.0
    memory_limits: float = 0.0
    network_receive_bandwidth: float = Field(0.0, description="Receive rate in bytes per second.")
    network_transmit_bandwidth: float = Field(0.0, description="Transmit rate in bytes per second.")


def pod_key(namespace: str, pod: str) -> str:
    return f"{namespace}/{pod}"


class PodMetric(BaseModel):
    """
    Usage and requests for one pod, summed across its containers.

    The utilization properties compare usage with what the pod requested;
    a pod without requests reports zero.
    """

    name: str = Field(..., description="The pod name.")
    namespace: str
    cpu_usage: float = 0.0
    cpu_requests: float = 0.0
    cpu_limits: float = 0.0
    memory_usage: float = 0.0
    memory_requests: float = 0.0
    memory_limits: float = 0.0

    @property
    def key(self) -> str:
        return pod_key(self.namespace, self.name)

    @property
    def cpu_utilization(self) -> float:
        return (self.cpu_usage / self.cpu_requests) * 100 if self.cpu_requests > 0 else 0.0

    @property
    def memory_utilization(self) -> float:
        return (self.memory_usage / self.memory_requests) * 100 if self.memory_requests > 0 else 0.0


class MetricSnapshot(BaseModel):
    """One point of a historical series."""

    timestamp: datetime
    cpu_usage: float = 0.0
    cpu_percent: float = 0.0
    memory_usage: float = 0.0
    memory_percent: float = 0.0


class HistoricalSeries(BaseModel):
    """
    A time-ordered series for a node or namespace.

    approximated is True when the samples were synthesized from a single
    instantaneous reading instead of being measured.
    """

    name: str
    snapshots: List[MetricSnapshot] = Field(default_factory=list)
    approximated: bool = False

    def averages(self) -> Dict[str, float]:
        if not self.snapshots:
            return {"cpu_usage": 0.0, "cpu_percent": 0.0, "memory_usage": 0.0, "memory_percent": 0.0}
        count = len(self.snapshots)
        return {
            "cpu_usage": sum(s.cpu_usage for s in self.snapshots) / count,
            "cpu_percent": sum(s.cpu_percent for s in self.snapshots) / count,
            "memory_usage": sum(s.memory_usage for s in self.snapshots) / count,
            "memory_percent": sum(s.memory_percent for s in self.snapshots) / count,
        }

    def peaks(self) -> Dict[str, float]:
        return {
            "cpu_usage": max((s.cpu_usage for s in self.snapshots), default=0.0),
            "memory_usage": max((s.memory_usage for s in self.snapshots), default=0.0),
        }


class PerformanceMetrics(BaseModel):
    """
    The aggregate produced by one collection.

    Utilization and commitment values are percentages and are not clamped:
    commitment above 100 means the cluster is overcommitted.
    """

    cpu_utilization: float = 0.0
    memory_utilization: float = 0.0
    cpu_requests_commitment: float = 0.0
    cpu_limits_commitment: float = 0.0
    memory_requests_commitment: float = 0.0
    memory_limits_commitment: float = 0.0

    # Cluster-wide network rates in MBps
    network_receive_bandwidth: float = 0.0
    network_transmit_bandwidth: float = 0.0

    node_metrics: Dict[str, NodeMetric] = Field(default_factory=dict)
    namespace_metrics: Dict[str, NamespaceMetric] = Field(default_factory=dict)
    # Keyed by "namespace/pod"
    pod_metrics: Dict[str, PodMetric] = Field(default_factory=dict)
    historical_nodes: Dict[str, HistoricalSeries] = Field(default_factory=dict)
    historical_namespaces: Dict[str, HistoricalSeries] = Field(default_factory=dict)

    raw_responses: Dict[str, str] = Field(default_factory=dict)
    contributing_sources: List[str] = Field(default_factory=list)
    failed_sources: List[str] = Field(default_factory=list)
    collected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    fallback_used: bool = False

    @property
    def has_utilization(self) -> bool:
        return self.cpu_utilization != 0 or self.memory_utilization != 0

    @property
    def history_approximated(self) -> bool:
        series = list(self.historical_nodes.values()) + list(self.historical_namespaces.values())
        return any(s.approximated for s in series)

    def node(self, name: str) -> Optional[NodeMetric]:
        return self.node_metrics.get(name)
