# src/kubeperf/collectors/node_collector.py

import logging

from kubernetes_asyncio.client.rest import ApiException

from ..core.aggregate import SharedMetrics
from ..core.config import Config
from ..core.exceptions import FatalCollectionError
from ..core.k8s_client import KubernetesClients
from ..utils.quantity import normalize_or_zero
from .base_collector import BaseCollector

logger = logging.getLogger(__name__)


class NodeCollector(BaseCollector):
    """
    Lists the cluster nodes and records their CPU and memory capacity and allocatable.

    This is the required source: its output provides the denominators of every
    ratio, so any failure to list nodes is raised as FatalCollectionError.
    """

    name = "node-inventory"

    def __init__(self, clients: KubernetesClients, settings: Config):
        self.clients = clients
        self.settings = settings

    async def collect(self, shared: SharedMetrics) -> None:
        api = await self.clients.core_v1()
        if not api:
            raise FatalCollectionError("Kubernetes client is not configured; cannot list nodes.")

        try:
            nodes = await api.list_node(watch=False, _request_timeout=self.settings.COLLECTION_DEADLINE)
        except ApiException as e:
            logger.error("Kubernetes API error while listing nodes: %s", e)
            raise FatalCollectionError(f"Failed to list nodes: {e.reason}") from e
        except Exception as e:
            logger.error("An unexpected error occurred while listing nodes: %s", e)
            raise FatalCollectionError(f"Failed to list nodes: {e}") from e

        if not nodes.items:
            logger.warning("No nodes found in the cluster.")
            return

        values = {}
        for node in nodes.items:
            node_name = node.metadata.name
            status = getattr(node, "status", None)
            capacity = (status and status.capacity) or {}
            allocatable = (status and status.allocatable) or {}

            values[node_name] = {
                "cpu_capacity": normalize_or_zero(capacity.get("cpu"), f"cpu capacity of {node_name}"),
                "cpu_allocatable": normalize_or_zero(allocatable.get("cpu"), f"cpu allocatable of {node_name}"),
                "memory_capacity": normalize_or_zero(capacity.get("memory"), f"memory capacity of {node_name}"),
                "memory_allocatable": normalize_or_zero(
                    allocatable.get("memory"), f"memory allocatable of {node_name}"
                ),
            }
            logger.debug(
                " -> Node '%s': cpu=%s/%s cores, mem=%s/%s bytes",
                node_name,
                values[node_name]["cpu_allocatable"],
                values[node_name]["cpu_capacity"],
                values[node_name]["memory_allocatable"],
                values[node_name]["memory_capacity"],
            )

        await shared.merge_nodes(values, source=self.name)
        logger.info("Collected capacity for %d node(s).", len(values))
