# tests/core/test_config.py
"""
Tests for the Config class.
"""

import os
from unittest.mock import mock_open, patch

import pytest

from kubeperf.core.config import Config


class TestGetSecret:
    """Tests for the Config._get_secret method."""

    def test_get_secret_from_env_var(self):
        with patch.dict(os.environ, {"TEST_SECRET": "env_value"}):
            assert Config._get_secret("TEST_SECRET") == "env_value"

    def test_get_secret_with_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert Config._get_secret("NONEXISTENT_SECRET", default="default_value") == "default_value"

    def test_get_secret_prefers_mounted_file(self):
        with (
            patch("kubeperf.core.config.os.path.exists", return_value=True),
            patch("builtins.open", mock_open(read_data="file_value\n")) as opened,
            patch.dict(os.environ, {"TEST_SECRET": "env_value"}),
        ):
            assert Config._get_secret("TEST_SECRET") == "file_value"
        opened.assert_called_once_with("/etc/kubeperf/secrets/TEST_SECRET", "r")

    def test_get_secret_permission_error(self):
        with (
            patch("kubeperf.core.config.os.path.exists", return_value=True),
            patch("builtins.open", side_effect=PermissionError("denied")),
        ):
            with pytest.raises(PermissionError, match="permission denied"):
                Config._get_secret("TEST_SECRET")


def test_defaults(settings):
    assert settings.PROMETHEUS_URL == "http://prometheus:9090"
    assert settings.COLLECTION_DEADLINE == 30
    assert settings.HISTORY_DEADLINE == 120
    assert settings.HISTORY_WINDOW_SIZE == 24
    assert settings.HISTORY_STEP_SECONDS == 3600
    assert settings.RANKING_TOP_K == 10
    assert settings.NOISE_FLOOR_MEMORY_BYTES == 50 * 1024 * 1024
    assert settings.SYSTEM_NAMESPACE_PREFIXES == ("openshift-", "kube-")
    assert settings.KEEP_RAW_RESPONSES is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("SYSTEM_NAMESPACE_PREFIXES", "kube-, cattle-")
    monkeypatch.setenv("KEEP_RAW_RESPONSES", "yes")
    monkeypatch.setenv("CLI_BINARY", "oc")
    settings = Config()
    assert settings.SYSTEM_NAMESPACE_PREFIXES == ("kube-", "cattle-")
    assert settings.KEEP_RAW_RESPONSES is True
    assert settings.CLI_BINARY == "oc"


@pytest.mark.parametrize("configured, expected", [("1", 5.0), ("10", 10.0), ("120", 30.0)])
def test_query_timeout_is_clamped(monkeypatch, configured, expected):
    monkeypatch.setenv("PROMETHEUS_QUERY_TIMEOUT", configured)
    assert Config().query_timeout == expected


def test_validate_returns_self(settings):
    assert settings.validate() is settings


@pytest.mark.parametrize(
    "attribute, value",
    [
        ("COLLECTION_DEADLINE", 0),
        ("HISTORY_DEADLINE", -1),
        ("HISTORY_WINDOW_SIZE", 0),
        ("HISTORY_STEP_SECONDS", 0),
        ("PROMETHEUS_RATE_WINDOW", "five minutes"),
        ("CPU_WARNING", 95.0),
    ],
)
def test_validate_rejects_bad_values(settings, attribute, value):
    setattr(settings, attribute, value)
    with pytest.raises(ValueError):
        settings.validate()
