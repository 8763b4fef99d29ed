# src/kubeperf/reporters/base_reporter.py
"""
Defines the abstract base class for all reporters.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..models.metrics import PerformanceMetrics
from ..models.result import CheckResult


class BaseReporter(ABC):
    """
    Abstract Base Class for all reporters.
    """

    @abstractmethod
    def report(self, metrics: PerformanceMetrics, result: Optional[CheckResult] = None, top: int = 10):
        """
        Takes the collected aggregate (and its mapped result, if any) and
        presents it in a specific format.
        """
        pass
