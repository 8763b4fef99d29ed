# src/kubeperf/collectors/__init__.py
from .cli_collector import CLICollector
from .metrics_server_collector import MetricsServerCollector
from .node_collector import NodeCollector
from .pod_collector import PodResourceCollector
from .prometheus_collector import PrometheusCollector

__all__ = [
    "CLICollector",
    "MetricsServerCollector",
    "NodeCollector",
    "PodResourceCollector",
    "PrometheusCollector",
]
