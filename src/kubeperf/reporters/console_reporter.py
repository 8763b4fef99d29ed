# src/kubeperf/reporters/console_reporter.py
"""
A reporter that displays the collected metrics in formatted tables in the console.
"""

import logging
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from ..core.ranking import RankingEngine
from ..models.metrics import PerformanceMetrics
from ..models.result import CheckResult, Status
from ..utils.quantity import format_bytes
from .base_reporter import BaseReporter

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    Status.OK: "green",
    Status.WARNING: "yellow",
    Status.CRITICAL: "bold red",
    Status.UNKNOWN: "dim",
    Status.NOT_APPLICABLE: "dim",
}


class ConsoleReporter(BaseReporter):
    """
    Renders cluster performance data to the console using the 'rich' library.
    """

    def __init__(self, ranking: RankingEngine):
        self.console = Console()
        self.ranking = ranking

    def report(self, metrics: PerformanceMetrics, result: Optional[CheckResult] = None, top: int = 10):
        if not metrics.node_metrics and not metrics.namespace_metrics:
            self.console.print("No data to report.", style="yellow")
            return

        self.report_overview(metrics)

        top_cpu, top_memory = self.ranking.rank_namespaces(metrics.namespace_metrics, top)
        self.report_top_cpu(metrics, top_cpu)
        self.report_top_memory(metrics, top_memory)

        pod_cpu, pod_memory = self.ranking.rank_pods(metrics.pod_metrics, top)
        self.report_top_pods(metrics, pod_cpu, "Top CPU Consuming Pods")
        self.report_top_pods(metrics, pod_memory, "Top Memory Consuming Pods")

        if metrics.historical_nodes:
            self.report_history(metrics)

        if metrics.network_receive_bandwidth or metrics.network_transmit_bandwidth:
            self.console.print(
                f"Network: receive {metrics.network_receive_bandwidth:.2f} MBps, "
                f"transmit {metrics.network_transmit_bandwidth:.2f} MBps"
            )

        if result is not None:
            self.report_result(result)

    def report_overview(self, metrics: PerformanceMetrics):
        table = Table(title="Cluster Resource Utilization", header_style="bold magenta", show_lines=True)
        table.add_column("Metric", style="cyan")
        table.add_column("Value (%)", style="green", justify="right")

        table.add_row("CPU Utilization", f"{metrics.cpu_utilization:.2f}")
        table.add_row("Memory Utilization", f"{metrics.memory_utilization:.2f}")
        table.add_row("CPU Requests Commitment", f"{metrics.cpu_requests_commitment:.2f}")
        table.add_row("CPU Limits Commitment", f"{metrics.cpu_limits_commitment:.2f}")
        table.add_row("Memory Requests Commitment", f"{metrics.memory_requests_commitment:.2f}")
        table.add_row("Memory Limits Commitment", f"{metrics.memory_limits_commitment:.2f}")
        self.console.print(table)

        if metrics.fallback_used:
            self.console.print("Data was obtained from the CLI fallback and may be less accurate.", style="yellow")

    def report_top_cpu(self, metrics: PerformanceMetrics, names: List[str]):
        if not names:
            return
        table = Table(title="Top CPU Consuming Namespaces", header_style="bold magenta")
        table.add_column("Namespace", style="cyan")
        table.add_column("CPU Usage (cores)", style="green", justify="right")
        table.add_column("CPU Requests (cores)", style="blue", justify="right")
        table.add_column("CPU Limits (cores)", style="blue", justify="right")
        for name in names:
            ns = metrics.namespace_metrics[name]
            table.add_row(name, f"{ns.cpu_usage:.3f}", f"{ns.cpu_requests:.3f}", f"{ns.cpu_limits:.3f}")
        self.console.print(table)

    def report_top_memory(self, metrics: PerformanceMetrics, names: List[str]):
        if not names:
            return
        table = Table(title="Top Memory Consuming Namespaces", header_style="bold magenta")
        table.add_column("Namespace", style="cyan")
        table.add_column("Memory Usage", style="green", justify="right")
        table.add_column("Memory Requests", style="blue", justify="right")
        table.add_column("Memory Limits", style="blue", justify="right")
        for name in names:
            ns = metrics.namespace_metrics[name]
            table.add_row(
                name,
                format_bytes(ns.memory_usage),
                format_bytes(ns.memory_requests),
                format_bytes(ns.memory_limits),
            )
        self.console.print(table)

    def report_top_pods(self, metrics: PerformanceMetrics, keys: List[str], title: str):
        if not keys:
            return
        table = Table(title=title, header_style="bold magenta")
        table.add_column("Namespace", style="cyan")
        table.add_column("Pod", style="cyan")
        table.add_column("CPU Usage (cores)", style="green", justify="right")
        table.add_column("CPU % of Request", style="blue", justify="right")
        table.add_column("Memory Usage", style="green", justify="right")
        table.add_column("Memory % of Request", style="blue", justify="right")
        for key in keys:
            pod = metrics.pod_metrics[key]
            table.add_row(
                pod.namespace,
                pod.name,
                f"{pod.cpu_usage:.3f}",
                f"{pod.cpu_utilization:.1f}" if pod.cpu_requests else "-",
                format_bytes(pod.memory_usage),
                f"{pod.memory_utilization:.1f}" if pod.memory_requests else "-",
            )
        self.console.print(table)

    def report_history(self, metrics: PerformanceMetrics):
        table = Table(title="24-Hour Node Utilization", header_style="bold magenta")
        table.add_column("Node", style="cyan")
        table.add_column("Avg CPU (%)", style="green", justify="right")
        table.add_column("Avg Memory (%)", style="green", justify="right")
        table.add_column("Peak CPU (cores)", style="yellow", justify="right")
        table.add_column("Peak Memory", style="yellow", justify="right")
        table.add_column("Source", style="dim")

        for name in sorted(metrics.historical_nodes):
            series = metrics.historical_nodes[name]
            avg = series.averages()
            peak = series.peaks()
            table.add_row(
                name,
                f"{avg['cpu_percent']:.2f}",
                f"{avg['memory_percent']:.2f}",
                f"{peak['cpu_usage']:.3f}",
                format_bytes(peak["memory_usage"]),
                "approximated" if series.approximated else "measured",
            )
        self.console.print(table)

        if metrics.history_approximated:
            self.console.print(
                "Approximated series are derived from current usage, not measured history.", style="yellow"
            )

    def report_result(self, result: CheckResult):
        self.console.print(f"\n{result}", style=STATUS_STYLES.get(result.status, "white"))
        for recommendation in result.recommendations:
            self.console.print(f"  - {recommendation}")
