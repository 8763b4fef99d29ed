# src/kubeperf/core/check.py
"""
Maps a finished PerformanceMetrics aggregate onto a CheckResult.

Thresholds are evaluated through an ordered rule table; the first matching
rule decides status, importance and the specific recommendations.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from ..models.metrics import PerformanceMetrics
from ..models.result import CheckResult, ResultKey, Status
from ..utils.quantity import format_bytes
from .config import Config
from .ranking import RankingEngine

logger = logging.getLogger(__name__)

PodLists = Tuple[Sequence[str], Sequence[str]]

CHECK_ID = "cluster-performance"

BEST_PRACTICES = (
    "Ensure resource requests and limits are set appropriately for all workloads",
    "Consider using horizontal pod autoscaling for applications with variable workloads",
    "Separate infrastructure workloads from application workloads using node selectors and taints",
)

HIGH_POD_UTILIZATION_RECOMMENDATION = (
    "Monitor workloads with high utilization and consider adjusting resource requests"
)


@dataclass(frozen=True)
class Rule:
    """One row of the threshold table."""

    name: str
    matches: Callable[[PerformanceMetrics, Config], bool]
    status: Status
    result_key: ResultKey
    message: Callable[[PerformanceMetrics, Config], str]
    recommendations: Tuple[str, ...] = ()


RULES: Tuple[Rule, ...] = (
    Rule(
        name="cpu-critical",
        matches=lambda m, c: m.cpu_utilization >= c.CPU_CRITICAL,
        status=Status.CRITICAL,
        result_key=ResultKey.REQUIRED,
        message=lambda m, c: (
            f"Critical CPU utilization ({m.cpu_utilization:.2f}%) exceeds threshold ({c.CPU_CRITICAL:.2f}%)"
        ),
        recommendations=(
            "Add capacity to the cluster by scaling up or adding more nodes",
            "Investigate high CPU workloads and consider setting appropriate resource limits",
        ),
    ),
    Rule(
        name="cpu-warning",
        matches=lambda m, c: m.cpu_utilization >= c.CPU_WARNING,
        status=Status.WARNING,
        result_key=ResultKey.RECOMMENDED,
        message=lambda m, c: (
            f"High CPU utilization ({m.cpu_utilization:.2f}%) exceeds warning threshold ({c.CPU_WARNING:.2f}%)"
        ),
        recommendations=(
            "Plan for additional capacity in the cluster",
            "Review workload resource requests and limits",
        ),
    ),
    Rule(
        name="memory-critical",
        matches=lambda m, c: m.memory_utilization >= c.MEMORY_CRITICAL,
        status=Status.CRITICAL,
        result_key=ResultKey.REQUIRED,
        message=lambda m, c: (
            f"Critical memory utilization ({m.memory_utilization:.2f}%) exceeds threshold ({c.MEMORY_CRITICAL:.2f}%)"
        ),
        recommendations=(
            "Add capacity to the cluster by scaling up memory or adding more nodes",
            "Investigate high memory workloads and consider optimizing applications",
        ),
    ),
    Rule(
        name="memory-warning",
        matches=lambda m, c: m.memory_utilization >= c.MEMORY_WARNING,
        status=Status.WARNING,
        result_key=ResultKey.RECOMMENDED,
        message=lambda m, c: (
            f"High memory utilization ({m.memory_utilization:.2f}%) "
            f"exceeds warning threshold ({c.MEMORY_WARNING:.2f}%)"
        ),
        recommendations=(
            "Plan for additional memory capacity in the cluster",
            "Review and optimize memory-intensive workloads",
        ),
    ),
    Rule(
        name="ok",
        matches=lambda m, c: True,
        status=Status.OK,
        result_key=ResultKey.NO_CHANGE,
        message=lambda m, c: (
            "Cluster performance metrics are within acceptable ranges "
            f"(CPU: {m.cpu_utilization:.2f}%, Memory: {m.memory_utilization:.2f}%)"
        ),
    ),
)


def match_rule(metrics: PerformanceMetrics, settings: Config, rules=RULES) -> Rule:
    for rule in rules:
        if rule.matches(metrics, settings):
            return rule
    raise LookupError("No rule matched; the table must end with a catch-all rule.")


def render_detail(
    metrics: PerformanceMetrics,
    top_cpu: List[str],
    top_memory: List[str],
    top_pods: PodLists = ((), ()),
    high_pods: PodLists = ((), ()),
) -> str:
    """
    Plain-text detail block handed to report renderers.

    top_pods and high_pods are (cpu, memory) lists of "namespace/pod" keys.
    """
    lines = [
        "== Cluster Resource Utilization ==",
        f"CPU Utilization: {metrics.cpu_utilization:.2f}%",
        f"Memory Utilization: {metrics.memory_utilization:.2f}%",
        f"CPU Requests Commitment: {metrics.cpu_requests_commitment:.2f}%",
        f"CPU Limits Commitment: {metrics.cpu_limits_commitment:.2f}%",
        f"Memory Requests Commitment: {metrics.memory_requests_commitment:.2f}%",
        f"Memory Limits Commitment: {metrics.memory_limits_commitment:.2f}%",
        "",
    ]

    if top_cpu:
        lines.append("== Top CPU Consuming Namespaces ==")
        for name in top_cpu:
            ns = metrics.namespace_metrics[name]
            lines.append(f"{name}: {ns.cpu_usage:.3f} cores")
        lines.append("")

    if top_memory:
        lines.append("== Top Memory Consuming Namespaces ==")
        for name in top_memory:
            ns = metrics.namespace_metrics[name]
            lines.append(f"{name}: {format_bytes(ns.memory_usage)}")
        lines.append("")

    pods = metrics.pod_metrics
    pod_cpu, pod_memory = top_pods
    if pod_cpu:
        lines.append("== Top CPU Consuming Pods ==")
        for key in pod_cpu:
            lines.append(f"{key}: {pods[key].cpu_usage:.3f} cores")
        lines.append("")

    if pod_memory:
        lines.append("== Top Memory Consuming Pods ==")
        for key in pod_memory:
            lines.append(f"{key}: {format_bytes(pods[key].memory_usage)}")
        lines.append("")

    high_cpu, high_memory = high_pods
    if high_cpu:
        lines.append("== High CPU Utilization Pods (usage vs requests) ==")
        for key in high_cpu:
            pod = pods[key]
            lines.append(
                f"{key}: {pod.cpu_usage:.3f} of {pod.cpu_requests:.3f} cores requested ({pod.cpu_utilization:.2f}%)"
            )
        lines.append("")

    if high_memory:
        lines.append("== High Memory Utilization Pods (usage vs requests) ==")
        for key in high_memory:
            pod = pods[key]
            lines.append(
                f"{key}: {format_bytes(pod.memory_usage)} of {format_bytes(pod.memory_requests)} requested "
                f"({pod.memory_utilization:.2f}%)"
            )
        lines.append("")

    if metrics.historical_nodes:
        lines.append("== 24-Hour Node Utilization ==")
        for name in sorted(metrics.historical_nodes):
            series = metrics.historical_nodes[name]
            avg = series.averages()
            marker = " (approximated)" if series.approximated else ""
            lines.append(f"{name}: avg CPU {avg['cpu_percent']:.2f}%, avg memory {avg['memory_percent']:.2f}%{marker}")
        lines.append("")

    if metrics.history_approximated:
        lines.append(
            "Note: some historical series were approximated from current usage because no "
            "measured history was available; they are not measurements."
        )
        lines.append("")

    if metrics.network_receive_bandwidth or metrics.network_transmit_bandwidth:
        lines.append("== Network Utilization ==")
        lines.append(f"Current Receive Bandwidth: {metrics.network_receive_bandwidth:.2f} MBps")
        lines.append(f"Current Transmit Bandwidth: {metrics.network_transmit_bandwidth:.2f} MBps")
        lines.append("")

    if metrics.fallback_used:
        lines.append("Note: data was obtained from the CLI fallback and may be less accurate.")

    return "\n".join(lines).rstrip() + "\n"


def evaluate(
    metrics: PerformanceMetrics, settings: Config, ranking: Optional[RankingEngine] = None
) -> CheckResult:
    """Build the CheckResult for a completed collection."""
    ranking = ranking or RankingEngine(settings)
    top_cpu, top_memory = ranking.rank_namespaces(metrics.namespace_metrics)
    top_pods = ranking.rank_pods(metrics.pod_metrics)
    high_pods = ranking.high_utilization_pods(metrics.pod_metrics)

    rule = match_rule(metrics, settings)
    logger.debug("Result rule '%s' matched.", rule.name)

    result = CheckResult(
        check_id=CHECK_ID,
        status=rule.status,
        message=rule.message(metrics, settings),
        result_key=rule.result_key,
        detail=render_detail(metrics, top_cpu, top_memory, top_pods, high_pods),
    )
    recommendations = rule.recommendations
    if any(high_pods):
        recommendations += (HIGH_POD_UTILIZATION_RECOMMENDATION,)
    for recommendation in recommendations + BEST_PRACTICES:
        result.add_recommendation(recommendation)
    return result


def fatal_result(error: Exception) -> CheckResult:
    """The result reported when the node inventory could not be collected."""
    return CheckResult(
        check_id=CHECK_ID,
        status=Status.CRITICAL,
        message=f"Failed to collect cluster performance metrics: {error}",
        result_key=ResultKey.REQUIRED,
    )
