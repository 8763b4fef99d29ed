# tests/conftest.py

import pytest

from kubeperf.core.aggregate import SharedMetrics
from kubeperf.core.config import Config


@pytest.fixture(autouse=True)
def mock_settings_env_vars(monkeypatch):
    """
    Pytest fixture to mock environment variables for the config module.

    This fixture runs automatically for every test (`autouse=True`). It uses
    monkeypatch to set environment variables, ensuring that the application's
    config is predictable and isolated from the actual environment.
    """
    monkeypatch.setenv("PROMETHEUS_URL", "http://prometheus:9090")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("CLI_BINARY", "kubectl")
    for key in (
        "PROMETHEUS_BEARER_TOKEN",
        "PROMETHEUS_USERNAME",
        "PROMETHEUS_PASSWORD",
        "KEEP_RAW_RESPONSES",
        "OTEL_EXPORTER_OTLP_ENDPOINT",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings():
    """A fresh Config built from the mocked environment."""
    return Config()


@pytest.fixture
def shared():
    return SharedMetrics()
