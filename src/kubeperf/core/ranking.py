# src/kubeperf/core/ranking.py
"""
Selects the top namespaces and pods by CPU and memory usage.
"""

import logging
from typing import List, Mapping, Tuple

from ..models.metrics import NamespaceMetric, PodMetric
from .config import Config

logger = logging.getLogger(__name__)


def top_k(entities: Mapping[str, float], k: int) -> List[str]:
    """
    Names of the k largest values, descending by value and ascending by
    name for equal values.
    """
    if k <= 0:
        return []
    ordered = sorted(entities.items(), key=lambda item: (-item[1], item[0]))
    return [name for name, _ in ordered[:k]]


class RankingEngine:
    """
    Ranks namespaces and pods for the report tables.

    System namespaces below the noise floor are left out, unless that would
    leave fewer than RANKING_MIN_ENTRIES candidates. A sparse CPU list is
    backfilled from the memory ranking. Pods are ranked only inside user
    namespaces.
    """

    def __init__(self, settings: Config):
        self.settings = settings
        self.min_entries = settings.RANKING_MIN_ENTRIES

    def is_system(self, namespace: str) -> bool:
        return namespace.startswith(self.settings.SYSTEM_NAMESPACE_PREFIXES)

    def is_noise(self, namespace: NamespaceMetric) -> bool:
        if not self.is_system(namespace.name):
            return False
        return (
            namespace.cpu_usage < self.settings.NOISE_FLOOR_CPU_CORES
            and namespace.memory_usage < self.settings.NOISE_FLOOR_MEMORY_BYTES
        )

    def candidates(self, namespaces: Mapping[str, NamespaceMetric]) -> Mapping[str, NamespaceMetric]:
        kept = {name: ns for name, ns in namespaces.items() if not self.is_noise(ns)}
        if len(kept) < self.min_entries:
            return namespaces
        if len(kept) < len(namespaces):
            logger.debug("Excluded %d system namespace(s) under the noise floor.", len(namespaces) - len(kept))
        return kept

    def rank_namespaces(self, namespaces: Mapping[str, NamespaceMetric], k: int = None) -> Tuple[List[str], List[str]]:
        """Returns (top by cpu, top by memory)."""
        k = self.settings.RANKING_TOP_K if k is None else k
        candidates = self.candidates(namespaces)

        top_cpu = top_k({name: ns.cpu_usage for name, ns in candidates.items() if ns.cpu_usage > 0}, k)
        top_memory = top_k({name: ns.memory_usage for name, ns in candidates.items() if ns.memory_usage > 0}, k)

        if len(top_cpu) < self.min_entries and len(top_memory) > len(top_cpu):
            backfill = [name for name in top_memory if name not in top_cpu]
            top_cpu = top_cpu + backfill[: max(k - len(top_cpu), 0)]
            logger.debug("Backfilled the CPU ranking with %d memory-ranked namespace(s).", len(backfill))

        return top_cpu, top_memory

    def user_pods(self, pods: Mapping[str, PodMetric]) -> Mapping[str, PodMetric]:
        return {key: pod for key, pod in pods.items() if not self.is_system(pod.namespace)}

    def rank_pods(self, pods: Mapping[str, PodMetric], k: int = None) -> Tuple[List[str], List[str]]:
        """Returns (top by cpu, top by memory) as "namespace/pod" keys."""
        k = self.settings.RANKING_TOP_K if k is None else k
        candidates = self.user_pods(pods)
        top_cpu = top_k({key: pod.cpu_usage for key, pod in candidates.items() if pod.cpu_usage > 0}, k)
        top_memory = top_k({key: pod.memory_usage for key, pod in candidates.items() if pod.memory_usage > 0}, k)
        return top_cpu, top_memory

    def high_utilization_pods(self, pods: Mapping[str, PodMetric], k: int = None) -> Tuple[List[str], List[str]]:
        """
        Pods whose usage reaches the warning share of their requests, highest first.

        Returns (cpu, memory) lists of "namespace/pod" keys. Pods without
        requests never qualify.
        """
        k = self.settings.RANKING_TOP_K if k is None else k
        candidates = self.user_pods(pods)
        cpu = top_k(
            {
                key: pod.cpu_utilization
                for key, pod in candidates.items()
                if pod.cpu_requests > 0 and pod.cpu_utilization >= self.settings.POD_CPU_UTILIZATION_WARNING
            },
            k,
        )
        memory = top_k(
            {
                key: pod.memory_utilization
                for key, pod in candidates.items()
                if pod.memory_requests > 0 and pod.memory_utilization >= self.settings.POD_MEMORY_UTILIZATION_WARNING
            },
            k,
        )
        if cpu or memory:
            logger.debug("%d pod(s) over the CPU and %d over the memory request warning.", len(cpu), len(memory))
        return cpu, memory
