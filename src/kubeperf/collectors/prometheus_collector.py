# src/kubeperf/collectors/prometheus_collector.py

"""
PrometheusCollector runs instant queries against a Prometheus-compatible
telemetry backend and merges cluster, namespace and node figures into the
shared aggregate. It also exposes range queries for the historical window.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import httpx
from pydantic import ValidationError

from ..core.aggregate import SharedMetrics
from ..core.config import Config
from ..core.exceptions import SourceUnavailable
from ..models.prometheus import PromResponse, PromSeries
from ..utils.http_client import get_async_http_client
from .base_collector import BaseCollector

logger = logging.getLogger(__name__)

NAMESPACE_LABELS = ("namespace", "kubernetes_namespace", "k8s_namespace")
NODE_LABELS = ("node", "kubernetes_node")
POD_LABELS = ("pod", "pod_name")

QUERY_PATHS = ("/api/v1/query", "/query", "/prometheus/api/v1/query")
RANGE_PATHS = ("/api/v1/query_range", "/query_range", "/prometheus/api/v1/query_range")

BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class QuerySpec:
    """A named instant query and the aggregate field its result feeds."""

    name: str
    promql: str
    scope: str  # "cluster", "namespace", "node" or "pod"
    field: str
    scale: float = 1.0


def usage_queries(rate_window: str) -> dict:
    """PromQL for current usage, keyed by (scope, metric type). Shared with the history builder."""
    return {
        ("namespace", "cpu"): (
            f'sum(rate(container_cpu_usage_seconds_total{{container!="",pod!=""}}[{rate_window}])) by (namespace)'
        ),
        ("namespace", "memory"): 'sum(container_memory_working_set_bytes{container!="",pod!=""}) by (namespace)',
        ("node", "cpu"): f'sum(rate(container_cpu_usage_seconds_total{{id="/"}}[{rate_window}])) by (node)',
        ("node", "memory"): 'sum(container_memory_working_set_bytes{id="/"}) by (node)',
    }


def build_query_specs(rate_window: str) -> List[QuerySpec]:
    usage = usage_queries(rate_window)
    return [
        # Recording rules expose ratios; the aggregate stores percentages.
        QuerySpec("cluster_cpu_ratio", "cluster:cpu_usage:ratio", "cluster", "cpu_utilization", 100.0),
        QuerySpec("cluster_memory_ratio", "cluster:memory_usage:ratio", "cluster", "memory_utilization", 100.0),
        QuerySpec("namespace_cpu_usage", usage[("namespace", "cpu")], "namespace", "cpu_usage"),
        QuerySpec("namespace_memory_usage", usage[("namespace", "memory")], "namespace", "memory_usage"),
        QuerySpec(
            "namespace_cpu_requests",
            'sum(kube_pod_container_resource_requests{resource="cpu"}) by (namespace)',
            "namespace",
            "cpu_requests",
        ),
        QuerySpec(
            "namespace_cpu_limits",
            'sum(kube_pod_container_resource_limits{resource="cpu"}) by (namespace)',
            "namespace",
            "cpu_limits",
        ),
        QuerySpec(
            "namespace_memory_requests",
            'sum(kube_pod_container_resource_requests{resource="memory"}) by (namespace)',
            "namespace",
            "memory_requests",
        ),
        QuerySpec(
            "namespace_memory_limits",
            'sum(kube_pod_container_resource_limits{resource="memory"}) by (namespace)',
            "namespace",
            "memory_limits",
        ),
        QuerySpec(
            "namespace_network_receive",
            f"sum(rate(container_network_receive_bytes_total[{rate_window}])) by (namespace)",
            "namespace",
            "network_receive_bandwidth",
        ),
        QuerySpec(
            "namespace_network_transmit",
            f"sum(rate(container_network_transmit_bytes_total[{rate_window}])) by (namespace)",
            "namespace",
            "network_transmit_bandwidth",
        ),
        QuerySpec("node_cpu_usage", usage[("node", "cpu")], "node", "cpu_usage"),
        QuerySpec("node_memory_usage", usage[("node", "memory")], "node", "memory_usage"),
        QuerySpec(
            "pod_cpu_usage",
            f'sum(rate(container_cpu_usage_seconds_total{{container!="",pod!=""}}[{rate_window}])) by (namespace, pod)',
            "pod",
            "cpu_usage",
        ),
        QuerySpec(
            "pod_memory_usage",
            'sum(container_memory_working_set_bytes{container!="",pod!=""}) by (namespace, pod)',
            "pod",
            "memory_usage",
        ),
        QuerySpec(
            "pod_cpu_requests",
            'sum(kube_pod_container_resource_requests{resource="cpu"}) by (namespace, pod)',
            "pod",
            "cpu_requests",
        ),
        QuerySpec(
            "pod_memory_requests",
            'sum(kube_pod_container_resource_requests{resource="memory"}) by (namespace, pod)',
            "pod",
            "memory_requests",
        ),
    ]


class PrometheusCollector(BaseCollector):
    """
    Collects utilization figures from the telemetry backend.

    Each query is bounded by its own timeout and failures of individual
    queries are tolerated; the source is only reported unavailable when no
    query succeeded at all.
    """

    name = "prometheus"

    def __init__(self, settings: Config, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.base_url = settings.PROMETHEUS_URL
        self.timeout = settings.query_timeout
        self.keep_raw = settings.KEEP_RAW_RESPONSES
        self.queries = build_query_specs(settings.PROMETHEUS_RATE_WINDOW)
        self._client = client
        self._owns_client = client is None
        self._query_path = None
        self._range_path = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = get_async_http_client(self.settings, timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def collect(self, shared: SharedMetrics) -> None:
        if not self.base_url:
            raise SourceUnavailable(self.name, "PROMETHEUS_URL is not set")

        succeeded = 0
        last_error = None
        network_totals = {"network_receive_bandwidth": None, "network_transmit_bandwidth": None}

        for spec in self.queries:
            try:
                series = await self.query(spec.promql, raw_key=spec.name, shared=shared)
            except SourceUnavailable as e:
                last_error = e.reason
                logger.debug("Query '%s' failed: %s", spec.name, e.reason)
                continue

            succeeded += 1
            parsed = self._parse_series(spec, series)
            if spec.scope == "cluster":
                if parsed is not None:
                    await shared.merge_cluster({spec.field: parsed}, source=self.name)
            elif spec.scope == "namespace":
                await shared.merge_namespaces({ns: {spec.field: v} for ns, v in parsed.items()}, source=self.name)
                if spec.field in network_totals:
                    network_totals[spec.field] = sum(parsed.values()) / BYTES_PER_MB
            elif spec.scope == "pod":
                await shared.merge_pods({key: {spec.field: v} for key, v in parsed.items()}, source=self.name)
            else:
                await shared.merge_nodes({node: {spec.field: v} for node, v in parsed.items()}, source=self.name)

        totals = {k: v for k, v in network_totals.items() if v is not None}
        if totals:
            await shared.merge_cluster(totals, source=self.name)

        if not succeeded:
            raise SourceUnavailable(self.name, last_error or "no query succeeded")
        logger.info("Prometheus answered %d of %d queries.", succeeded, len(self.queries))

    def _parse_series(self, spec: QuerySpec, series: List[PromSeries]):
        """
        Reduce a query result to a scalar (cluster scope) or a label -> value
        mapping. Pod results are keyed by (namespace, pod).
        """
        if spec.scope == "cluster":
            for item in series:
                value = item.instant()
                if value is not None:
                    return value * spec.scale
            return None

        labels = NAMESPACE_LABELS if spec.scope == "namespace" else NODE_LABELS
        parsed = {}
        skipped = 0
        for item in series:
            if spec.scope == "pod":
                namespace, pod = item.label(*NAMESPACE_LABELS), item.label(*POD_LABELS)
                key = (namespace, pod) if namespace and pod else None
            else:
                key = item.label(*labels)
            value = item.instant()
            if not key or value is None:
                skipped += 1
                continue
            parsed[key] = parsed.get(key, 0.0) + value * spec.scale

        if skipped:
            logger.debug("Skipped %d unlabeled or NaN series for query '%s'.", skipped, spec.name)
        return parsed

    async def query(self, promql: str, raw_key: str = None, shared: SharedMetrics = None) -> List[PromSeries]:
        """Run an instant query and return its series."""
        params = {"query": promql}
        response, path = await self._get(self._query_path, QUERY_PATHS, params, raw_key, shared)
        self._query_path = path
        return response.series

    async def query_range(
        self, promql: str, start: datetime, end: datetime, step_seconds: int, raw_key: str = None
    ) -> List[PromSeries]:
        """Run a range query between start and end (unix seconds on the wire) and return its series."""
        if not self.base_url:
            raise SourceUnavailable(self.name, "PROMETHEUS_URL is not set")
        params = {
            "query": promql,
            "start": str(int(start.timestamp())),
            "end": str(int(end.timestamp())),
            "step": f"{int(step_seconds)}s",
        }
        response, path = await self._get(self._range_path, RANGE_PATHS, params, raw_key, None)
        self._range_path = path
        return response.series

    async def _get(self, known_path, candidates, params, raw_key, shared):
        """
        Try the known endpoint path, or each candidate path until one answers
        with a success envelope. Each attempt is bounded by the query timeout.
        """
        base = self.base_url.rstrip("/")
        paths = (known_path,) if known_path else candidates
        client = self._http()
        last_err = None

        for path in paths:
            url = f"{base}{path}"
            try:
                async with asyncio.timeout(self.timeout):
                    resp = await client.get(url, params=params)
                resp.raise_for_status()
                envelope = PromResponse.model_validate(resp.json())
            except (httpx.HTTPError, TimeoutError) as e:
                last_err = e
                logger.debug("Request to %s failed: %s", url, e)
                continue
            except (ValueError, ValidationError) as e:
                last_err = e
                logger.debug("Malformed response from %s: %s", url, e)
                continue

            if envelope.status != "success":
                last_err = envelope.error or "Unknown"
                logger.warning("Prometheus returned non-success status for %s: %s", url, last_err)
                continue

            if self.keep_raw and raw_key and shared is not None:
                await shared.store_raw(raw_key, resp.text)
            return envelope, path

        raise SourceUnavailable(self.name, last_err or "no endpoint answered")
