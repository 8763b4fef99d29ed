# src/kubeperf/models/prometheus.py
"""
Pydantic models for the Prometheus HTTP API JSON envelope.

The shapes mirror the wire format exactly:
{"status": "success", "data": {"resultType": "vector", "result": [
    {"metric": {...}, "value": [ts, "v"]} | {"metric": {...}, "values": [[ts, "v"], ...]}
]}}
"""

import math
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


def sample_value(raw: str) -> Optional[float]:
    """Convert a Prometheus string sample into a float; NaN/Inf and garbage become None."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


class PromSeries(BaseModel):
    """A single labeled series of an instant (value) or range (values) result."""

    model_config = ConfigDict(extra="ignore")

    metric: Dict[str, str] = Field(default_factory=dict)
    value: Optional[Tuple[float, str]] = None
    values: List[Tuple[float, str]] = Field(default_factory=list)

    def label(self, *keys: str) -> Optional[str]:
        """Return the first non-empty label among keys."""
        for key in keys:
            found = self.metric.get(key)
            if found:
                return found
        return None

    def instant(self) -> Optional[float]:
        if self.value is None:
            return None
        return sample_value(self.value[1])

    def samples(self) -> List[Tuple[float, float]]:
        """Parsed (timestamp, value) pairs; unparsable samples are dropped."""
        parsed = []
        for ts, raw in self.values:
            value = sample_value(raw)
            if value is not None:
                parsed.append((ts, value))
        return parsed


class PromData(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    result_type: str = Field("vector", alias="resultType")
    result: List[PromSeries] = Field(default_factory=list)


class PromResponse(BaseModel):
    """Top-level envelope returned by /api/v1/query and /api/v1/query_range."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    status: Literal["success", "error"]
    data: Optional[PromData] = None
    error_type: Optional[str] = Field(None, alias="errorType")
    error: Optional[str] = None

    @property
    def series(self) -> List[PromSeries]:
        if self.status != "success" or self.data is None:
            return []
        return self.data.result
