# src/kubeperf/collectors/pod_collector.py
"""
Collects resource 'request' and 'limit' data (CPU, memory) for all pods
from the Kubernetes API, per pod and summed per namespace.
"""

import logging
from collections import defaultdict
from typing import Dict, Mapping, Tuple

from ..core.config import Config
from ..core.k8s_client import KubernetesClients
from ..utils.quantity import normalize_or_zero

logger = logging.getLogger(__name__)

RESOURCE_FIELDS = (
    ("requests", "cpu", "cpu_requests"),
    ("limits", "cpu", "cpu_limits"),
    ("requests", "memory", "memory_requests"),
    ("limits", "memory", "memory_limits"),
)


def _empty_totals() -> Dict[str, float]:
    return {field: 0.0 for _, _, field in RESOURCE_FIELDS}


def sum_by_namespace(by_pod: Mapping[Tuple[str, str], Mapping[str, float]]) -> Dict[str, Dict[str, float]]:
    """Fold (namespace, pod) totals into namespace totals."""
    totals: Dict[str, Dict[str, float]] = defaultdict(_empty_totals)
    for (namespace, _), values in by_pod.items():
        for field, value in values.items():
            totals[namespace][field] += value
    return dict(totals)


class PodResourceCollector:
    """
    Connects to the K8s API to find the resource requests and limits
    for every container in every pod.
    """

    def __init__(self, clients: KubernetesClients, settings: Config):
        self.clients = clients
        self.settings = settings

    async def collect_by_pod(self) -> Dict[Tuple[str, str], Dict[str, float]]:
        """
        Returns (namespace, pod) -> {cpu_requests, cpu_limits, memory_requests, memory_limits}.

        Kubernetes API errors propagate to the caller.
        """
        api = await self.clients.core_v1()
        if not api:
            logger.debug("Kubernetes client not configured; skipping pod resource collection.")
            return {}

        pod_list = await api.list_pod_for_all_namespaces(
            watch=False, _request_timeout=self.settings.COLLECTION_DEADLINE
        )

        pods: Dict[Tuple[str, str], Dict[str, float]] = defaultdict(_empty_totals)
        containers = 0
        for pod in pod_list.items:
            namespace = pod.metadata.namespace
            if not pod.spec or not pod.spec.containers:
                continue

            key = (namespace, pod.metadata.name)
            for container in pod.spec.containers:
                resources = container.resources
                if resources is None:
                    continue
                containers += 1
                for section, resource, field in RESOURCE_FIELDS:
                    spec = getattr(resources, section, None) or {}
                    pods[key][field] += normalize_or_zero(
                        spec.get(resource), f"{resource} {section} of {namespace}/{pod.metadata.name}"
                    )

        logger.debug("Summed requests/limits of %d container(s) in %d pod(s).", containers, len(pods))
        return dict(pods)

    async def collect(self) -> Dict[str, Dict[str, float]]:
        """Returns namespace -> {cpu_requests, cpu_limits, memory_requests, memory_limits}."""
        return sum_by_namespace(await self.collect_by_pod())
