# tests/collectors/test_prometheus_collector.py
"""
Tests for the PrometheusCollector.

All HTTP requests to the Prometheus API are mocked with respx.
"""

from datetime import datetime, timezone

import httpx
import pytest
import respx
from httpx import Response

from kubeperf.collectors.prometheus_collector import PrometheusCollector, build_query_specs
from kubeperf.core.exceptions import SourceUnavailable

BASE_URL = "http://prometheus:9090"

# --- Mock Prometheus API Responses ---


def vector(*series):
    return {"status": "success", "data": {"resultType": "vector", "result": list(series)}}


def sample(labels, value):
    return {"metric": labels, "value": [1678886400, value]}


RESPONSES = {
    "cluster:cpu_usage:ratio": vector(sample({}, "0.42")),
    "cluster:memory_usage:ratio": vector(sample({}, "0.5")),
}


def answer(request):
    promql = request.url.params["query"]
    if promql in RESPONSES:
        return Response(200, json=RESPONSES[promql])
    if "container_cpu_usage_seconds_total" in promql and "by (namespace)" in promql:
        return Response(
            200,
            json=vector(
                sample({"namespace": "prod"}, "1.5"),
                sample({"namespace": "dev"}, "NaN"),
                sample({}, "0.3"),
            ),
        )
    if "container_memory_working_set_bytes" in promql and "by (namespace)" in promql:
        return Response(200, json=vector(sample({"namespace": "prod"}, "1073741824")))
    if "container_network_receive_bytes_total" in promql:
        return Response(
            200,
            json=vector(sample({"namespace": "prod"}, "1048576"), sample({"namespace": "dev"}, "1048576")),
        )
    if "by (node)" in promql and "cpu" in promql:
        return Response(200, json=vector(sample({"node": "node-1"}, "2.5")))
    return Response(200, json=vector())


@pytest.mark.asyncio
@respx.mock
async def test_collect_merges_cluster_namespace_and_node_values(settings, shared):
    route = respx.get(f"{BASE_URL}/api/v1/query").mock(side_effect=answer)
    collector = PrometheusCollector(settings)

    await collector.collect(shared)
    await collector.close()

    metrics = shared.metrics
    assert route.call_count == len(build_query_specs("5m"))
    assert metrics.cpu_utilization == pytest.approx(42.0)
    assert metrics.memory_utilization == pytest.approx(50.0)
    assert metrics.namespace_metrics["prod"].cpu_usage == 1.5
    assert metrics.namespace_metrics["prod"].memory_usage == 1073741824
    # NaN samples and unlabeled series are skipped
    assert "dev" not in metrics.namespace_metrics or metrics.namespace_metrics["dev"].cpu_usage == 0.0
    assert metrics.node_metrics["node-1"].cpu_usage == 2.5
    assert metrics.network_receive_bandwidth == pytest.approx(2.0)
    assert metrics.raw_responses == {}


@pytest.mark.asyncio
@respx.mock
async def test_keep_raw_responses_stores_bodies(settings, shared):
    settings.KEEP_RAW_RESPONSES = True
    respx.get(f"{BASE_URL}/api/v1/query").mock(side_effect=answer)
    collector = PrometheusCollector(settings)

    await collector.collect(shared)

    assert '"0.42"' in shared.metrics.raw_responses["cluster_cpu_ratio"]


@pytest.mark.asyncio
@respx.mock
async def test_falls_back_to_alternate_query_path(settings, shared):
    primary = respx.get(f"{BASE_URL}/api/v1/query").mock(return_value=Response(404))
    alternate = respx.get(f"{BASE_URL}/query").mock(side_effect=answer)
    collector = PrometheusCollector(settings)

    await collector.collect(shared)

    assert primary.call_count == 1
    assert alternate.call_count == len(collector.queries)
    assert shared.metrics.cpu_utilization == pytest.approx(42.0)


@pytest.mark.asyncio
@respx.mock
async def test_error_envelope_tries_next_path(settings, shared):
    respx.get(f"{BASE_URL}/api/v1/query").mock(
        return_value=Response(200, json={"status": "error", "errorType": "bad_data", "error": "parse error"})
    )
    respx.get(f"{BASE_URL}/query").mock(return_value=Response(500))
    respx.get(f"{BASE_URL}/prometheus/api/v1/query").mock(side_effect=answer)

    await PrometheusCollector(settings).collect(shared)

    assert shared.metrics.memory_utilization == pytest.approx(50.0)


@pytest.mark.asyncio
@respx.mock
async def test_unreachable_backend_raises_source_unavailable(settings, shared):
    respx.get(url__startswith=BASE_URL).mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(SourceUnavailable):
        await PrometheusCollector(settings).collect(shared)

    assert shared.metrics.namespace_metrics == {}


@pytest.mark.asyncio
async def test_missing_url_raises_source_unavailable(settings, shared):
    settings.PROMETHEUS_URL = ""
    with pytest.raises(SourceUnavailable, match="PROMETHEUS_URL"):
        await PrometheusCollector(settings).collect(shared)


@pytest.mark.asyncio
@respx.mock
async def test_bearer_token_is_sent(monkeypatch, shared):
    monkeypatch.setenv("PROMETHEUS_BEARER_TOKEN", "s3cr3t")
    from kubeperf.core.config import Config

    route = respx.get(f"{BASE_URL}/api/v1/query").mock(side_effect=answer)
    await PrometheusCollector(Config()).collect(shared)

    assert route.calls.last.request.headers["Authorization"] == "Bearer s3cr3t"


@pytest.mark.asyncio
@respx.mock
async def test_query_range_sends_unix_seconds_and_step(settings):
    route = respx.get(f"{BASE_URL}/api/v1/query_range").mock(
        return_value=Response(
            200,
            json={
                "status": "success",
                "data": {
                    "resultType": "matrix",
                    "result": [{"metric": {"node": "node-1"}, "values": [[1700000000, "1"], [1700003600, "2"]]}],
                },
            },
        )
    )
    start = datetime(2023, 11, 14, 0, 0, tzinfo=timezone.utc)
    end = datetime(2023, 11, 15, 0, 0, tzinfo=timezone.utc)

    series = await PrometheusCollector(settings).query_range("up", start, end, 3600)

    params = route.calls.last.request.url.params
    assert params["start"] == str(int(start.timestamp()))
    assert params["end"] == str(int(end.timestamp()))
    assert params["step"] == "3600s"
    assert series[0].samples() == [(1700000000, 1.0), (1700003600, 2.0)]


@pytest.mark.asyncio
@respx.mock
async def test_instance_label_does_not_create_nodes(settings, shared):
    def node_answer(request):
        promql = request.url.params["query"]
        if "by (node)" in promql:
            return Response(
                200,
                json=vector(sample({"instance": "10.0.0.7:9100"}, "3.0"), sample({"node": "node-1"}, "1.0")),
            )
        return Response(200, json=vector())

    respx.get(f"{BASE_URL}/api/v1/query").mock(side_effect=node_answer)

    await PrometheusCollector(settings).collect(shared)

    assert list(shared.metrics.node_metrics) == ["node-1"]
    assert shared.metrics.node_metrics["node-1"].cpu_usage == 1.0


@pytest.mark.asyncio
@respx.mock
async def test_collect_merges_pod_usage_and_requests(settings, shared):
    def pod_answer(request):
        promql = request.url.params["query"]
        if "by (namespace, pod)" not in promql:
            return Response(200, json=vector())
        if "container_cpu_usage_seconds_total" in promql:
            return Response(
                200,
                json=vector(
                    sample({"namespace": "prod", "pod": "api-1"}, "0.4"),
                    sample({"namespace": "prod"}, "9"),
                ),
            )
        if 'resource="cpu"' in promql:
            return Response(200, json=vector(sample({"namespace": "prod", "pod": "api-1"}, "0.5")))
        return Response(200, json=vector())

    respx.get(f"{BASE_URL}/api/v1/query").mock(side_effect=pod_answer)

    await PrometheusCollector(settings).collect(shared)

    pods = shared.metrics.pod_metrics
    assert list(pods) == ["prod/api-1"]
    assert pods["prod/api-1"].cpu_usage == pytest.approx(0.4)
    assert pods["prod/api-1"].cpu_utilization == pytest.approx(80.0)
