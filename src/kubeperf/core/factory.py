# src/kubeperf/core/factory.py
"""
Factory functions wiring the source collectors into a CollectionOrchestrator.
"""

import logging
from typing import Optional

from ..collectors.cli_collector import CLICollector
from ..collectors.metrics_server_collector import MetricsServerCollector
from ..collectors.node_collector import NodeCollector
from ..collectors.pod_collector import PodResourceCollector
from ..collectors.prometheus_collector import PrometheusCollector
from .config import Config
from .history import HistoricalWindowBuilder
from .k8s_client import KubernetesClients
from .orchestrator import CollectionOrchestrator

logger = logging.getLogger(__name__)


def get_orchestrator(settings: Config, clients: Optional[KubernetesClients] = None) -> CollectionOrchestrator:
    """
    Builds an orchestrator with the standard source chain.

    The CLI collector is both one of the concurrent derived sources and the
    last-resort fallback.
    """
    clients = clients or KubernetesClients()
    prometheus = PrometheusCollector(settings)
    cli = CLICollector(settings)

    return CollectionOrchestrator(
        settings,
        node_source=NodeCollector(clients, settings),
        derived_sources=[
            prometheus,
            MetricsServerCollector(clients, settings, PodResourceCollector(clients, settings)),
            cli,
        ],
        fallback_source=cli,
        history_builder=HistoricalWindowBuilder(settings, prometheus),
    )
