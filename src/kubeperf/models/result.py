# src/kubeperf/models/result.py
"""
The generic result shape handed to report renderers.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class Status(str, Enum):
    """Outcome of a check."""

    OK = "OK"
    WARNING = "Warning"
    CRITICAL = "Critical"
    UNKNOWN = "Unknown"
    NOT_APPLICABLE = "NotApplicable"


class ResultKey(str, Enum):
    """Importance of a result in a report summary."""

    NO_CHANGE = "nochange"
    RECOMMENDED = "recommended"
    REQUIRED = "required"
    ADVISORY = "advisory"
    NOT_APPLICABLE = "na"
    EVALUATE = "eval"


class CheckResult(BaseModel):
    check_id: str = Field(..., description="Stable identifier of the check.")
    status: Status
    message: str
    result_key: ResultKey
    detail: str = ""
    recommendations: List[str] = Field(default_factory=list)

    def add_recommendation(self, recommendation: str):
        self.recommendations.append(recommendation)

    def __str__(self) -> str:
        return f"[{self.status.value}] {self.message}"
