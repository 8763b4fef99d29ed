# src/kubeperf/core/orchestrator.py
"""
Runs one collection: the required node inventory first, then the derived
sources concurrently, an optional last-resort fallback, and finally the
commitment ratios. The whole run shares one deadline.
"""

import asyncio
import logging
from enum import Enum
from typing import List, Optional, Sequence

from ..collectors.base_collector import BaseCollector
from ..models.metrics import PerformanceMetrics
from .aggregate import SharedMetrics
from .config import Config
from .exceptions import FatalCollectionError, IncompleteAggregateWarning
from .history import HistoricalWindowBuilder
from .telemetry import tracer

logger = logging.getLogger(__name__)


class CollectionState(str, Enum):
    IDLE = "Idle"
    COLLECTING_NODES = "CollectingNodes"
    COLLECTING_DERIVED = "CollectingDerived"
    CONDITIONAL_FALLBACK = "ConditionalFallback"
    COMPUTING_RATIOS = "ComputingRatios"
    DONE = "Done"
    FAILED = "Failed"


def _percent(numerator: float, denominator: float) -> float:
    # Unclamped: commitment above 100 means the cluster is overcommitted.
    return (numerator / denominator) * 100 if denominator > 0 else 0.0


def compute_commitment_ratios(metrics: PerformanceMetrics):
    """Fill the four commitment percentages from node allocatable and namespace requests/limits."""
    nodes = metrics.node_metrics.values()
    namespaces = metrics.namespace_metrics.values()
    cpu_allocatable = sum(n.cpu_allocatable for n in nodes)
    memory_allocatable = sum(n.memory_allocatable for n in nodes)

    metrics.cpu_requests_commitment = _percent(sum(ns.cpu_requests for ns in namespaces), cpu_allocatable)
    metrics.cpu_limits_commitment = _percent(sum(ns.cpu_limits for ns in namespaces), cpu_allocatable)
    metrics.memory_requests_commitment = _percent(sum(ns.memory_requests for ns in namespaces), memory_allocatable)
    metrics.memory_limits_commitment = _percent(sum(ns.memory_limits for ns in namespaces), memory_allocatable)

    if metrics.cpu_requests_commitment > 100 or metrics.memory_requests_commitment > 100:
        logger.info(
            "Cluster is overcommitted on requests (cpu=%.1f%%, memory=%.1f%%).",
            metrics.cpu_requests_commitment,
            metrics.memory_requests_commitment,
        )


class CollectionOrchestrator:
    """
    Drives the collection state machine.

    Idle -> CollectingNodes -> CollectingDerived -> (ConditionalFallback)
    -> ComputingRatios -> Done, with Failed reachable only from CollectingNodes.
    Each source is attempted once; the fallback stage is the only retry.
    """

    def __init__(
        self,
        settings: Config,
        node_source: BaseCollector,
        derived_sources: Sequence[BaseCollector],
        fallback_source: Optional[BaseCollector] = None,
        history_builder: Optional[HistoricalWindowBuilder] = None,
    ):
        self.settings = settings
        self.node_source = node_source
        self.derived_sources = list(derived_sources)
        self.fallback_source = fallback_source
        self.history_builder = history_builder
        self.state = CollectionState.IDLE
        self.transitions: List[CollectionState] = [CollectionState.IDLE]

    def _enter(self, state: CollectionState):
        logger.debug("Collection state %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    async def collect(self, deadline: Optional[float] = None) -> PerformanceMetrics:
        """
        Run one collection and return the aggregate.

        Only FatalCollectionError is raised; every other failure leaves the
        affected fields at zero. deadline is an event-loop time; it can only
        shorten the COLLECTION_DEADLINE budget.
        """
        shared = SharedMetrics()
        loop = asyncio.get_running_loop()
        own_deadline = loop.time() + self.settings.COLLECTION_DEADLINE
        deadline = own_deadline if deadline is None else min(deadline, own_deadline)

        await self._collect_nodes(shared, deadline)

        self._enter(CollectionState.COLLECTING_DERIVED)
        with tracer.start_as_current_span("kubeperf.collect.derived"):
            await self._collect_derived(shared, deadline)

        metrics = shared.metrics
        if not metrics.has_utilization and not metrics.namespace_metrics:
            self._enter(CollectionState.CONDITIONAL_FALLBACK)
            with tracer.start_as_current_span("kubeperf.collect.fallback"):
                await self._run_fallback(shared, deadline)

        self._enter(CollectionState.COMPUTING_RATIOS)
        with tracer.start_as_current_span("kubeperf.collect.ratios"):
            compute_commitment_ratios(metrics)

        self._enter(CollectionState.DONE)
        logger.info(
            "Collection finished: %d node(s), %d namespace(s), %d pod(s); sources ok=%s failed=%s",
            len(metrics.node_metrics),
            len(metrics.namespace_metrics),
            len(metrics.pod_metrics),
            metrics.contributing_sources,
            metrics.failed_sources,
        )
        return metrics

    async def collect_with_history(self) -> PerformanceMetrics:
        """
        Run collect() and then build the historical windows.

        Both stages share one HISTORY_DEADLINE budget; the range queries get
        whatever the collection left of it.
        """
        loop = asyncio.get_running_loop()
        overall = loop.time() + self.settings.HISTORY_DEADLINE
        metrics = await self.collect(deadline=overall)
        builder = self.history_builder or HistoricalWindowBuilder(self.settings)

        with tracer.start_as_current_span("kubeperf.collect.history"):
            try:
                async with asyncio.timeout_at(overall):
                    await builder.load()
            except TimeoutError:
                logger.warning(
                    "Historical range queries exceeded the %ss budget; missing series will be approximated.",
                    self.settings.HISTORY_DEADLINE,
                )
            builder.apply(metrics)
        return metrics

    async def _collect_nodes(self, shared: SharedMetrics, deadline: float):
        self._enter(CollectionState.COLLECTING_NODES)
        with tracer.start_as_current_span("kubeperf.collect.nodes"):
            try:
                async with asyncio.timeout_at(deadline):
                    await self.node_source.collect(shared)
            except FatalCollectionError:
                self._enter(CollectionState.FAILED)
                raise
            except TimeoutError as e:
                self._enter(CollectionState.FAILED)
                raise FatalCollectionError("Timed out while listing nodes.") from e
            except Exception as e:
                self._enter(CollectionState.FAILED)
                raise FatalCollectionError(f"Node inventory failed: {e}") from e
        await shared.record_source(self.node_source.name, ok=True)

    async def _run_source(self, source: BaseCollector, shared: SharedMetrics, pending: set):
        try:
            await source.collect(shared)
        except Exception as e:
            logger.warning("Source '%s' failed: %s", source.name, e)
            await shared.record_source(source.name, ok=False)
        else:
            await shared.record_source(source.name, ok=True)
        # A task cancelled at the deadline stays in pending
        pending.discard(source.name)

    async def _collect_derived(self, shared: SharedMetrics, deadline: float):
        pending = {source.name for source in self.derived_sources}
        try:
            async with asyncio.timeout_at(deadline):
                async with asyncio.TaskGroup() as tg:
                    for source in self.derived_sources:
                        tg.create_task(self._run_source(source, shared, pending))
        except TimeoutError:
            logger.warning(
                "Collection deadline reached; keeping partial results. Unfinished sources: %s",
                sorted(pending),
            )
            for name in sorted(pending):
                await shared.record_source(name, ok=False)

    async def _run_fallback(self, shared: SharedMetrics, deadline: float):
        logger.warning(
            "%s: no derived source produced utilization or namespace data.",
            IncompleteAggregateWarning.__name__,
        )
        if self.fallback_source is None:
            logger.warning("No fallback source configured; returning the sparse aggregate.")
            return

        shared.metrics.fallback_used = True
        loop = asyncio.get_running_loop()
        if deadline <= loop.time():
            logger.warning("No time left for the fallback source '%s'.", self.fallback_source.name)
            return

        try:
            async with asyncio.timeout_at(deadline):
                await self.fallback_source.collect(shared)
        except TimeoutError:
            logger.warning("Fallback source '%s' ran out of time.", self.fallback_source.name)
            await shared.record_source(self.fallback_source.name, ok=False)
        except Exception as e:
            logger.warning("Fallback source '%s' failed: %s", self.fallback_source.name, e)
            await shared.record_source(self.fallback_source.name, ok=False)
        else:
            await shared.record_source(self.fallback_source.name, ok=True)

    async def close(self):
        sources = [self.node_source, *self.derived_sources]
        if self.fallback_source is not None and self.fallback_source not in sources:
            sources.append(self.fallback_source)
        for source in sources:
            await source.close()
