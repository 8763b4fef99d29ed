# tests/core/test_history.py
"""
Tests for the HistoricalWindowBuilder: measured series and the approximation.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from kubeperf.core.exceptions import SourceUnavailable
from kubeperf.core.history import HistoricalWindowBuilder, variation_factor
from kubeperf.models.metrics import NamespaceMetric, NodeMetric, PerformanceMetrics
from kubeperf.models.prometheus import PromSeries

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_variation_factor_cycles_between_bounds():
    factors = [variation_factor(i) for i in range(12)]
    assert factors[0] == pytest.approx(0.8)
    assert factors[5] == pytest.approx(1.2)
    assert factors[6] == pytest.approx(0.8)
    assert all(0.8 - 1e-9 <= f <= 1.2 + 1e-9 for f in factors)


@pytest.mark.parametrize("window, step", [(24, 3600), (6, 600), (1, 60)])
def test_approximated_window_shape(settings, window, step):
    settings.HISTORY_WINDOW_SIZE = window
    settings.HISTORY_STEP_SECONDS = step
    builder = HistoricalWindowBuilder(settings, now=NOW)

    snapshots = list(builder.build_window("node", "node-1", (2.0, 1024.0), (4.0, 2048.0)))

    assert len(snapshots) == window
    assert snapshots[-1].timestamp == NOW
    for earlier, later in zip(snapshots, snapshots[1:]):
        assert later.timestamp - earlier.timestamp == timedelta(seconds=step)
    assert snapshots[0].cpu_usage == pytest.approx(1.6)
    assert snapshots[0].cpu_percent == pytest.approx(40.0)


def test_build_window_is_repeatable(settings):
    builder = HistoricalWindowBuilder(settings, now=NOW)
    first = list(builder.build_window("namespace", "prod", (1.0, 10.0), (8.0, 100.0)))
    second = list(builder.build_window("namespace", "prod", (1.0, 10.0), (8.0, 100.0)))
    assert first == second


def test_zero_capacity_gives_zero_percent(settings):
    builder = HistoricalWindowBuilder(settings, now=NOW)
    snapshot = next(builder.build_window("node", "n", (1.0, 1.0), (0.0, 0.0)))
    assert snapshot.cpu_percent == 0.0
    assert snapshot.memory_percent == 0.0


def range_series(label_key, name, points):
    return PromSeries(metric={label_key: name}, values=[(ts, str(v)) for ts, v in points])


@pytest.mark.asyncio
async def test_load_uses_measured_series(settings):
    base = int(NOW.timestamp())
    prometheus = MagicMock()
    prometheus.base_url = "http://prometheus:9090"

    async def query_range(promql, start, end, step):
        if "by (node)" in promql and "cpu" in promql:
            return [
                range_series("node", "node-1", [(base - 7200, 1.0), (base - 3600, 2.0), (base, 3.0)]),
                # Same timestamp in a second series replaces the earlier value
                range_series("node", "node-1", [(base, 4.0)]),
            ]
        if "by (node)" in promql:
            return [range_series("node", "node-1", [(base, 1024.0)])]
        raise SourceUnavailable("prometheus", "no namespace data")

    prometheus.query_range = AsyncMock(side_effect=query_range)
    builder = HistoricalWindowBuilder(settings, prometheus, now=NOW)

    assert await builder.load() == 2

    metrics = PerformanceMetrics(
        node_metrics={"node-1": NodeMetric(name="node-1", cpu_capacity=8.0, memory_capacity=2048.0)},
        namespace_metrics={"prod": NamespaceMetric(name="prod", cpu_usage=0.5, memory_usage=64.0)},
    )
    builder.apply(metrics)

    node_series = metrics.historical_nodes["node-1"]
    assert node_series.approximated is False
    assert [s.cpu_usage for s in node_series.snapshots] == [1.0, 2.0, 4.0]
    assert node_series.snapshots[-1].memory_percent == 50.0
    assert node_series.snapshots[-1].cpu_percent == 50.0

    ns_series = metrics.historical_namespaces["prod"]
    assert ns_series.approximated is True
    assert len(ns_series.snapshots) == settings.HISTORY_WINDOW_SIZE
    assert metrics.history_approximated is True

    call = prometheus.query_range.call_args_list[0]
    assert call.args[1] == NOW - timedelta(hours=24)
    assert call.args[2] == NOW


@pytest.mark.asyncio
async def test_measured_series_is_trimmed_to_window(settings):
    settings.HISTORY_WINDOW_SIZE = 3
    base = int(NOW.timestamp())
    prometheus = MagicMock()
    prometheus.base_url = "http://prometheus:9090"
    points = [(base - i * 3600, float(i)) for i in range(5)]
    prometheus.query_range = AsyncMock(return_value=[range_series("node", "node-1", points)])

    builder = HistoricalWindowBuilder(settings, prometheus, now=NOW)
    await builder.load()
    snapshots = list(builder.build_window("node", "node-1", (0.0, 0.0), (1.0, 1.0)))

    assert [s.cpu_usage for s in snapshots] == [2.0, 1.0, 0.0]


@pytest.mark.asyncio
async def test_build_without_backend_approximates_everything(settings):
    settings.PROMETHEUS_URL = ""
    metrics = PerformanceMetrics(
        node_metrics={"node-1": NodeMetric(name="node-1", cpu_capacity=4.0, cpu_usage=1.0)},
    )

    await HistoricalWindowBuilder(settings, None, now=NOW).build(metrics)

    series = metrics.historical_nodes["node-1"]
    assert series.approximated is True
    assert len(series.snapshots) == 24
