# src/kubeperf/collectors/base_collector.py
"""
This module defines the abstract base class for all metric sources.
Every source shares one capability: a best-effort fetch that writes whatever
it obtained into the shared aggregate and never blocks indefinitely.
"""

from abc import ABC, abstractmethod

from ..core.aggregate import SharedMetrics


class BaseCollector(ABC):
    """
    Abstract Base Class for all metric sources.
    """

    #: Short name used in logs and in PerformanceMetrics.contributing_sources
    name = "base"

    @abstractmethod
    async def collect(self, shared: SharedMetrics) -> None:
        """
        Fetch data from the source and merge it into the shared aggregate.

        Partial results are merged as soon as they are available, so a
        failure or cancellation half-way keeps what was already written.
        Non-required sources signal failure with SourceUnavailable.
        """
        pass

    async def close(self):
        """
        Clean up resources (e.g., close HTTP sessions or API clients).
        """
        pass
