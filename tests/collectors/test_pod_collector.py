# tests/collectors/test_pod_collector.py

from unittest.mock import AsyncMock, MagicMock

import pytest
from kubernetes_asyncio import client

from kubeperf.collectors.pod_collector import PodResourceCollector, sum_by_namespace


def create_mock_pod(namespace, name, containers):
    pod = MagicMock(spec=client.V1Pod)
    pod.metadata = MagicMock(spec=client.V1ObjectMeta)
    pod.metadata.namespace = namespace
    pod.metadata.name = name
    pod.spec = MagicMock()
    pod.spec.containers = []
    for requests, limits in containers:
        container = MagicMock()
        container.resources = MagicMock()
        container.resources.requests = requests
        container.resources.limits = limits
        pod.spec.containers.append(container)
    return pod


@pytest.mark.asyncio
async def test_sums_requests_and_limits_per_namespace(settings):
    api = MagicMock()
    api.list_pod_for_all_namespaces = AsyncMock(
        return_value=MagicMock(
            items=[
                create_mock_pod(
                    "prod",
                    "api",
                    [
                        ({"cpu": "500m", "memory": "256Mi"}, {"cpu": "1", "memory": "512Mi"}),
                        ({"cpu": "250m"}, None),
                    ],
                ),
                create_mock_pod("prod", "worker", [({"cpu": "1"}, {"memory": "1Gi"})]),
                create_mock_pod("dev", "tool", [(None, None)]),
            ]
        )
    )
    clients = MagicMock()
    clients.core_v1 = AsyncMock(return_value=api)

    totals = await PodResourceCollector(clients, settings).collect()

    assert totals["prod"]["cpu_requests"] == pytest.approx(1.75)
    assert totals["prod"]["cpu_limits"] == pytest.approx(1.0)
    assert totals["prod"]["memory_requests"] == 256 * 1024**2
    assert totals["prod"]["memory_limits"] == 512 * 1024**2 + 1024**3
    assert totals["dev"] == {"cpu_requests": 0.0, "cpu_limits": 0.0, "memory_requests": 0.0, "memory_limits": 0.0}


@pytest.mark.asyncio
async def test_no_client_returns_empty(settings):
    clients = MagicMock()
    clients.core_v1 = AsyncMock(return_value=None)
    assert await PodResourceCollector(clients, settings).collect() == {}


@pytest.mark.asyncio
async def test_collect_by_pod_keeps_each_pod(settings):
    api = MagicMock()
    api.list_pod_for_all_namespaces = AsyncMock(
        return_value=MagicMock(
            items=[
                create_mock_pod("prod", "api", [({"cpu": "500m"}, None), ({"cpu": "250m", "memory": "1Gi"}, None)]),
                create_mock_pod("prod", "worker", [({"cpu": "1"}, {"cpu": "2"})]),
            ]
        )
    )
    clients = MagicMock()
    clients.core_v1 = AsyncMock(return_value=api)

    pods = await PodResourceCollector(clients, settings).collect_by_pod()

    assert set(pods) == {("prod", "api"), ("prod", "worker")}
    assert pods[("prod", "api")]["cpu_requests"] == pytest.approx(0.75)
    assert pods[("prod", "api")]["memory_requests"] == 1024**3
    assert pods[("prod", "worker")]["cpu_limits"] == 2.0


def test_sum_by_namespace_folds_pods():
    totals = sum_by_namespace(
        {
            ("prod", "a"): {"cpu_requests": 1.0, "memory_limits": 10.0},
            ("prod", "b"): {"cpu_requests": 0.5},
            ("dev", "c"): {"memory_requests": 4.0},
        }
    )
    assert totals["prod"]["cpu_requests"] == 1.5
    assert totals["prod"]["memory_limits"] == 10.0
    assert totals["dev"] == {"cpu_requests": 0.0, "cpu_limits": 0.0, "memory_requests": 4.0, "memory_limits": 0.0}
