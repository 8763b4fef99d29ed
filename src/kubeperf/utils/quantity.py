import logging
import math
from typing import Optional

from ..core.exceptions import NormalizationError

logger = logging.getLogger(__name__)

# CPU suffixes, checked before the memory tables
CPU_DIVISORS = (
    ("m", 1e3),
    ("u", 1e6),
    ("n", 1e9),
)

BINARY_MULTIPLIERS = (
    ("Ki", 1024),
    ("Mi", 1024**2),
    ("Gi", 1024**3),
    ("Ti", 1024**4),
    ("Pi", 1024**5),
    ("Ei", 1024**6),
)

DECIMAL_MULTIPLIERS = (
    ("K", 1000),
    ("M", 1000**2),
    ("G", 1000**3),
    ("T", 1000**4),
    ("P", 1000**5),
    ("E", 1000**6),
)


def _to_float(number: str, token: str) -> float:
    try:
        value = float(number)
    except ValueError:
        raise NormalizationError(token) from None
    if not math.isfinite(value):
        raise NormalizationError(token)
    return value


def normalize(token: Optional[str]) -> float:
    """
    Parse a Kubernetes-style quantity into a canonical float.

    CPU values come back in cores and memory values in bytes. An empty or
    missing token is a valid "no resource spec" and yields 0.

    Raises:
        NormalizationError: if the remainder after stripping a suffix is not numeric.
    """
    if token is None:
        return 0.0
    if isinstance(token, (int, float)):
        return float(token)

    quantity = str(token).strip()
    if not quantity:
        return 0.0

    for suffix, divisor in CPU_DIVISORS:
        if quantity.endswith(suffix):
            return _to_float(quantity[: -len(suffix)], token) / divisor

    for table in (BINARY_MULTIPLIERS, DECIMAL_MULTIPLIERS):
        for suffix, multiplier in table:
            if quantity.endswith(suffix):
                return _to_float(quantity[: -len(suffix)], token) * multiplier

    # A bare decimal number is a CPU value in cores
    if "." in quantity:
        return _to_float(quantity, token)

    try:
        return float(int(quantity))
    except ValueError:
        pass

    return _to_float(quantity, token)


def normalize_or_zero(token: Optional[str], what: str = "quantity") -> float:
    """Like normalize(), but a malformed token contributes 0 instead of raising."""
    try:
        return normalize(token)
    except NormalizationError as e:
        logger.debug("Skipping unparsable %s: %s", what, e)
        return 0.0


def format_bytes(value: float) -> str:
    """Render a byte count with binary units, e.g. '1.50 GiB'."""
    unit = 1024.0
    if value < unit:
        return f"{value:.2f} B"

    div, exp = unit, 0
    n = value / unit
    while n >= unit and exp < 5:
        div *= unit
        exp += 1
        n /= unit

    return f"{value / div:.2f} {'KMGTPE'[exp]}iB"
