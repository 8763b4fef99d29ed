# tests/core/test_k8s_client.py

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from kubernetes_asyncio import config as k8s_config

from kubeperf.core.k8s_client import KubernetesClients


@pytest.mark.asyncio
@patch("kubeperf.core.k8s_client.config.load_kube_config", new_callable=AsyncMock)
@patch("kubeperf.core.k8s_client.config.load_incluster_config")
async def test_falls_back_to_kubeconfig_once(mock_incluster, mock_kubeconfig):
    mock_incluster.side_effect = k8s_config.ConfigException("not in cluster")
    clients = KubernetesClients()

    assert await clients.ensure_config() is True
    assert await clients.ensure_config() is True

    mock_incluster.assert_called_once()
    mock_kubeconfig.assert_awaited_once()


@pytest.mark.asyncio
@patch("kubeperf.core.k8s_client.config.load_kube_config", new_callable=AsyncMock)
@patch("kubeperf.core.k8s_client.config.load_incluster_config")
async def test_no_configuration_yields_no_api(mock_incluster, mock_kubeconfig):
    mock_incluster.side_effect = k8s_config.ConfigException("not in cluster")
    mock_kubeconfig.side_effect = k8s_config.ConfigException("no kubeconfig")
    clients = KubernetesClients()

    assert await clients.core_v1() is None
    assert await clients.custom_objects() is None


@pytest.mark.asyncio
@patch("kubeperf.core.k8s_client.client.CustomObjectsApi")
@patch("kubeperf.core.k8s_client.client.CoreV1Api")
@patch("kubeperf.core.k8s_client.config.load_incluster_config")
async def test_apis_are_created_once_and_closed(mock_incluster, mock_core, mock_custom):
    core = MagicMock()
    core.api_client.close = AsyncMock()
    mock_core.return_value = core
    custom = MagicMock()
    custom.api_client.close = AsyncMock()
    mock_custom.return_value = custom
    clients = KubernetesClients()

    assert await clients.core_v1() is core
    assert await clients.core_v1() is core
    assert await clients.custom_objects() is custom
    mock_core.assert_called_once()

    await clients.close()
    core.api_client.close.assert_awaited_once()
    custom.api_client.close.assert_awaited_once()
