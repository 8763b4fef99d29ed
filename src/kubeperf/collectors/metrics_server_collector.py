# src/kubeperf/collectors/metrics_server_collector.py
"""
Collects current node and pod usage from the aggregated metrics API
(metrics.k8s.io, served by metrics-server).
"""

import logging
from collections import defaultdict
from typing import Optional

from kubernetes_asyncio.client.rest import ApiException

from ..core.aggregate import SharedMetrics
from ..core.config import Config
from ..core.exceptions import SourceUnavailable
from ..core.k8s_client import KubernetesClients
from ..utils.quantity import normalize_or_zero
from .base_collector import BaseCollector
from .pod_collector import PodResourceCollector, sum_by_namespace

logger = logging.getLogger(__name__)

METRICS_GROUP = "metrics.k8s.io"
METRICS_VERSION = "v1beta1"


class MetricsServerCollector(BaseCollector):
    """
    Fills node usage directly and sums per-container pod usage into namespace totals.
    """

    name = "metrics-server"

    def __init__(
        self,
        clients: KubernetesClients,
        settings: Config,
        pod_collector: Optional[PodResourceCollector] = None,
    ):
        self.clients = clients
        self.settings = settings
        self.pod_collector = pod_collector or PodResourceCollector(clients, settings)

    async def _list(self, api, plural: str, **kwargs) -> dict:
        try:
            return await api.list_cluster_custom_object(
                METRICS_GROUP,
                METRICS_VERSION,
                plural,
                _request_timeout=self.settings.COLLECTION_DEADLINE,
                **kwargs,
            )
        except ApiException as e:
            raise SourceUnavailable(self.name, f"failed to list {plural} metrics: {e.reason}") from e
        except OSError as e:
            raise SourceUnavailable(self.name, f"failed to list {plural} metrics: {e}") from e

    async def collect(self, shared: SharedMetrics) -> None:
        api = await self.clients.custom_objects()
        if not api:
            raise SourceUnavailable(self.name, "Kubernetes client is not configured")

        await self._collect_nodes(api, shared)
        await self._collect_pods(api, shared)

    async def _collect_nodes(self, api, shared: SharedMetrics):
        node_list = await self._list(api, "nodes")

        usage_by_node = {}
        for item in node_list.get("items", []):
            node_name = (item.get("metadata") or {}).get("name")
            if not node_name:
                continue
            usage = item.get("usage") or {}
            usage_by_node[node_name] = {
                "cpu_usage": normalize_or_zero(usage.get("cpu"), f"cpu usage of {node_name}"),
                "memory_usage": normalize_or_zero(usage.get("memory"), f"memory usage of {node_name}"),
            }
        await shared.merge_nodes(usage_by_node, source=self.name)

        # Overall utilization needs the capacities recorded by the node inventory.
        capacities = await shared.node_capacities()
        cpu_used = cpu_cap = mem_used = mem_cap = 0.0
        for node_name, usage in usage_by_node.items():
            node_cpu_cap, node_mem_cap = capacities.get(node_name, (0.0, 0.0))
            if node_cpu_cap > 0:
                cpu_used += usage["cpu_usage"]
                cpu_cap += node_cpu_cap
            if node_mem_cap > 0:
                mem_used += usage["memory_usage"]
                mem_cap += node_mem_cap

        cluster = {}
        if cpu_cap > 0:
            cluster["cpu_utilization"] = (cpu_used / cpu_cap) * 100
        if mem_cap > 0:
            cluster["memory_utilization"] = (mem_used / mem_cap) * 100
        await shared.merge_cluster(cluster, source=self.name)
        logger.info("metrics-server reported usage for %d node(s).", len(usage_by_node))

    async def _collect_pods(self, api, shared: SharedMetrics):
        pod_list = await self._list(api, "pods", limit=self.settings.METRICS_POD_LIST_LIMIT)

        pods = defaultdict(lambda: {"cpu_usage": 0.0, "memory_usage": 0.0})
        for item in pod_list.get("items", []):
            metadata = item.get("metadata") or {}
            namespace, pod = metadata.get("namespace"), metadata.get("name")
            if not namespace or not pod:
                continue
            totals = pods[(namespace, pod)]
            for container in item.get("containers") or []:
                usage = container.get("usage") or {}
                totals["cpu_usage"] += normalize_or_zero(usage.get("cpu"), f"cpu usage of {namespace}/{pod}")
                totals["memory_usage"] += normalize_or_zero(usage.get("memory"), f"memory usage of {namespace}/{pod}")

        try:
            resources = await self.pod_collector.collect_by_pod()
        except Exception as e:
            logger.warning("Could not sum pod requests/limits: %s", e)
            resources = {}

        namespaces = defaultdict(lambda: {"cpu_usage": 0.0, "memory_usage": 0.0})
        for (namespace, _), usage in pods.items():
            namespaces[namespace]["cpu_usage"] += usage["cpu_usage"]
            namespaces[namespace]["memory_usage"] += usage["memory_usage"]

        merged = {}
        namespace_resources = sum_by_namespace(resources)
        for namespace, usage in namespaces.items():
            merged[namespace] = dict(usage)
            merged[namespace].update(namespace_resources.get(namespace, {}))
        await shared.merge_namespaces(merged, source=self.name)

        # Requests of pods without a usage reading are not ranked
        await shared.merge_pods(
            {key: {**usage, **resources.get(key, {})} for key, usage in pods.items()}, source=self.name
        )
        logger.info("metrics-server reported usage for %d pod(s) in %d namespace(s).", len(pods), len(merged))
