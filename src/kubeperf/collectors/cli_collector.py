# src/kubeperf/collectors/cli_collector.py
"""
Last-resort source that shells out to kubectl (or oc) and parses the
textual "top" tables. Column positions are fixed, which makes this the
least reliable source, so it is ordered last in the fallback chain.
"""

import asyncio
import logging
import os
from collections import defaultdict
from typing import Dict, List, NamedTuple

from ..core.aggregate import SharedMetrics
from ..core.config import Config
from ..core.exceptions import NormalizationError, SourceUnavailable
from ..utils.quantity import normalize, normalize_or_zero
from .base_collector import BaseCollector

logger = logging.getLogger(__name__)

# Namespaces below both thresholds are not worth a requests/limits lookup
SIGNIFICANT_CPU_CORES = 0.01
SIGNIFICANT_MEMORY_BYTES = 10 * 1024 * 1024

RESOURCES_JSONPATH = (
    "jsonpath={range .items[*].spec.containers[*]}"
    "{.resources.requests.cpu},{.resources.limits.cpu},"
    "{.resources.requests.memory},{.resources.limits.memory}{\"\\n\"}{end}"
)


class TopNodeRow(NamedTuple):
    name: str
    cpu_usage: float
    cpu_percent: float
    memory_usage: float
    memory_percent: float


class TopPodRow(NamedTuple):
    namespace: str
    pod: str
    cpu_usage: float
    memory_usage: float


def _data_rows(output: str) -> List[List[str]]:
    """Skip the header row and split the remaining non-empty rows on whitespace."""
    lines = output.splitlines()[1:]
    return [line.split() for line in lines if line.strip()]


def _percent(token: str) -> float:
    return normalize(token.rstrip("%"))


def parse_top_nodes(output: str) -> List[TopNodeRow]:
    """Parse `top nodes`: NAME CPU(cores) CPU% MEMORY(bytes) MEMORY%."""
    rows = []
    for fields in _data_rows(output):
        if len(fields) < 5:
            logger.debug("Skipping short 'top nodes' row: %s", fields)
            continue
        try:
            rows.append(
                TopNodeRow(
                    name=fields[0],
                    cpu_usage=normalize(fields[1]),
                    cpu_percent=_percent(fields[2]),
                    memory_usage=normalize(fields[3]),
                    memory_percent=_percent(fields[4]),
                )
            )
        except NormalizationError as e:
            # metrics not yet available for a node shows as <unknown>
            logger.debug("Skipping 'top nodes' row for %s: %s", fields[0], e)
    return rows


def parse_top_pods(output: str) -> List[TopPodRow]:
    """Parse `top pods --all-namespaces`: NAMESPACE NAME CPU(cores) MEMORY(bytes)."""
    rows = []
    for fields in _data_rows(output):
        if len(fields) < 4:
            logger.debug("Skipping short 'top pods' row: %s", fields)
            continue
        try:
            rows.append(
                TopPodRow(
                    namespace=fields[0],
                    pod=fields[1],
                    cpu_usage=normalize(fields[2]),
                    memory_usage=normalize(fields[3]),
                )
            )
        except NormalizationError as e:
            logger.debug("Skipping 'top pods' row for %s/%s: %s", fields[0], fields[1], e)
    return rows


def parse_container_resources(output: str) -> Dict[str, float]:
    """Sum the `reqCpu,limCpu,reqMem,limMem` lines printed by RESOURCES_JSONPATH."""
    totals = {"cpu_requests": 0.0, "cpu_limits": 0.0, "memory_requests": 0.0, "memory_limits": 0.0}
    for line in output.splitlines():
        parts = line.strip().strip("'").split(",")
        if len(parts) != 4:
            continue
        totals["cpu_requests"] += normalize_or_zero(parts[0], "cpu request")
        totals["cpu_limits"] += normalize_or_zero(parts[1], "cpu limit")
        totals["memory_requests"] += normalize_or_zero(parts[2], "memory request")
        totals["memory_limits"] += normalize_or_zero(parts[3], "memory limit")
    return totals


class CLICollector(BaseCollector):
    """
    Collects node and namespace usage by running `top` through the cluster CLI.
    """

    name = "cli"

    def __init__(self, settings: Config):
        self.settings = settings
        self.binary = settings.CLI_BINARY
        self.timeout = settings.CLI_TIMEOUT

    def _top_args(self, *args: str) -> List[str]:
        # OpenShift's client keeps `top` under `adm`
        if os.path.basename(self.binary) == "oc":
            return ["adm", "top", *args]
        return ["top", *args]

    async def run(self, args: List[str], timeout: float = None) -> str:
        """Run the CLI with args and return stdout; any failure raises SourceUnavailable."""
        timeout = timeout or self.timeout
        cmd = [self.binary, *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SourceUnavailable(self.name, f"cannot run {self.binary}: {e}") from e

        try:
            async with asyncio.timeout(timeout):
                stdout, stderr = await proc.communicate()
        except (TimeoutError, asyncio.CancelledError):
            proc.kill()
            await proc.wait()
            raise
        if proc.returncode != 0:
            message = stderr.decode(errors="replace").strip()
            raise SourceUnavailable(self.name, f"'{' '.join(cmd)}' exited with {proc.returncode}: {message}")
        return stdout.decode(errors="replace")

    async def collect(self, shared: SharedMetrics) -> None:
        failures = []
        for step in (self._collect_nodes, self._collect_namespaces):
            try:
                await step(shared)
            except (SourceUnavailable, TimeoutError) as e:
                logger.warning("CLI step %s failed: %s", step.__name__, e)
                failures.append(e)

        if len(failures) == 2:
            raise SourceUnavailable(self.name, failures[-1])

    async def _collect_nodes(self, shared: SharedMetrics):
        rows = parse_top_nodes(await self.run(self._top_args("nodes")))
        if not rows:
            raise SourceUnavailable(self.name, "no rows in 'top nodes' output")

        capacities = await shared.node_capacities()
        node_values = {}
        cpu_used = cpu_cap = mem_used = mem_cap = 0.0
        for row in rows:
            node_cpu_cap, node_mem_cap = capacities.get(row.name, (0.0, 0.0))
            if node_cpu_cap <= 0 or node_mem_cap <= 0:
                node_cpu_cap, node_mem_cap = await self._node_capacity(row.name, node_cpu_cap, node_mem_cap)

            node_values[row.name] = {
                "cpu_usage": row.cpu_usage,
                "memory_usage": row.memory_usage,
                "cpu_capacity": node_cpu_cap,
                "memory_capacity": node_mem_cap,
            }
            if node_cpu_cap > 0:
                cpu_used += row.cpu_usage
                cpu_cap += node_cpu_cap
            if node_mem_cap > 0:
                mem_used += row.memory_usage
                mem_cap += node_mem_cap

        await shared.merge_nodes(node_values, source=self.name)

        cluster = {}
        if cpu_cap > 0:
            cluster["cpu_utilization"] = (cpu_used / cpu_cap) * 100
        elif rows:
            cluster["cpu_utilization"] = sum(r.cpu_percent for r in rows) / len(rows)
        if mem_cap > 0:
            cluster["memory_utilization"] = (mem_used / mem_cap) * 100
        elif rows:
            cluster["memory_utilization"] = sum(r.memory_percent for r in rows) / len(rows)
        await shared.merge_cluster(cluster, source=self.name)

    async def _node_capacity(self, node: str, cpu_cap: float, mem_cap: float):
        try:
            out = await self.run(
                ["get", "node", node, "-o", "jsonpath={.status.capacity.cpu},{.status.capacity.memory}"],
                timeout=5,
            )
        except (SourceUnavailable, TimeoutError) as e:
            logger.debug("Could not read capacity of node %s: %s", node, e)
            return cpu_cap, mem_cap

        parts = out.strip().strip("'").split(",")
        if len(parts) != 2:
            return cpu_cap, mem_cap
        return (
            cpu_cap or normalize_or_zero(parts[0], f"cpu capacity of {node}"),
            mem_cap or normalize_or_zero(parts[1], f"memory capacity of {node}"),
        )

    async def _collect_namespaces(self, shared: SharedMetrics):
        rows = parse_top_pods(await self.run(self._top_args("pods", "--all-namespaces")))
        if not rows:
            raise SourceUnavailable(self.name, "no rows in 'top pods' output")

        namespaces = defaultdict(lambda: {"cpu_usage": 0.0, "memory_usage": 0.0})
        for row in rows:
            namespaces[row.namespace]["cpu_usage"] += row.cpu_usage
            namespaces[row.namespace]["memory_usage"] += row.memory_usage

        # Usage lands before the per-namespace requests/limits lookups start
        await shared.merge_namespaces(dict(namespaces), source=self.name)
        await shared.merge_pods(
            {(row.namespace, row.pod): {"cpu_usage": row.cpu_usage, "memory_usage": row.memory_usage} for row in rows},
            source=self.name,
        )

        for namespace, values in namespaces.items():
            if values["cpu_usage"] > SIGNIFICANT_CPU_CORES or values["memory_usage"] > SIGNIFICANT_MEMORY_BYTES:
                resources = await self._namespace_resources(namespace)
                if resources:
                    await shared.merge_namespaces({namespace: resources}, source=self.name)

    async def _namespace_resources(self, namespace: str) -> Dict[str, float]:
        try:
            out = await self.run(["get", "pods", "-n", namespace, "-o", RESOURCES_JSONPATH], timeout=5)
        except (SourceUnavailable, TimeoutError) as e:
            logger.debug("Could not read requests/limits for namespace %s: %s", namespace, e)
            return {}
        return parse_container_resources(out)
