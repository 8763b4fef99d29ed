# src/kubeperf/core/config.py

import logging
import os
import re

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables from a .env file located in the project root
dotenv_path = os.path.join(os.path.dirname(__file__), "..", "..", "..", ".env")
load_dotenv(dotenv_path=dotenv_path)

_TRUTHY = ("true", "1", "t", "y", "yes")


def _env_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).lower() in _TRUTHY


class Config:
    """
    Handles the application's configuration by loading values from environment variables.

    Values are resolved when the instance is created, so callers that change
    the environment (tests, embedding applications) build a fresh Config and
    pass it down explicitly. There is no module-level instance.
    """

    # Bounds applied to the per-query telemetry timeout, in seconds
    MIN_QUERY_TIMEOUT = 5.0
    MAX_QUERY_TIMEOUT = 30.0

    def __init__(self):
        # --- Logging variables ---
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # -- Prometheus variables ---
        self.PROMETHEUS_BEARER_TOKEN = self._get_secret("PROMETHEUS_BEARER_TOKEN")
        self.PROMETHEUS_USERNAME = self._get_secret("PROMETHEUS_USERNAME")
        self.PROMETHEUS_PASSWORD = self._get_secret("PROMETHEUS_PASSWORD")
        self.PROMETHEUS_URL = os.getenv("PROMETHEUS_URL", "")
        self.PROMETHEUS_VERIFY_CERTS = _env_bool("PROMETHEUS_VERIFY_CERTS", "True")
        self.PROMETHEUS_QUERY_TIMEOUT = float(os.getenv("PROMETHEUS_QUERY_TIMEOUT", "10"))
        self.PROMETHEUS_RATE_WINDOW = os.getenv("PROMETHEUS_RATE_WINDOW", "5m")
        self.KEEP_RAW_RESPONSES = _env_bool("KEEP_RAW_RESPONSES", "False")

        # --- Collection budget ---
        self.COLLECTION_DEADLINE = float(os.getenv("COLLECTION_DEADLINE", "30"))
        self.HISTORY_DEADLINE = float(os.getenv("HISTORY_DEADLINE", "120"))
        self.METRICS_POD_LIST_LIMIT = int(os.getenv("METRICS_POD_LIST_LIMIT", "500"))

        # --- Historical window ---
        self.HISTORY_WINDOW_SIZE = int(os.getenv("HISTORY_WINDOW_SIZE", "24"))
        self.HISTORY_STEP_SECONDS = int(os.getenv("HISTORY_STEP_SECONDS", "3600"))

        # --- CLI fallback ---
        self.CLI_BINARY = os.getenv("CLI_BINARY", "kubectl")
        self.CLI_TIMEOUT = float(os.getenv("CLI_TIMEOUT", "15"))

        # --- Ranking ---
        self.RANKING_TOP_K = int(os.getenv("RANKING_TOP_K", "10"))
        self.RANKING_MIN_ENTRIES = int(os.getenv("RANKING_MIN_ENTRIES", "3"))
        self.NOISE_FLOOR_CPU_CORES = float(os.getenv("NOISE_FLOOR_CPU_CORES", "0.01"))
        self.NOISE_FLOOR_MEMORY_BYTES = float(os.getenv("NOISE_FLOOR_MEMORY_BYTES", str(50 * 1024 * 1024)))
        self.SYSTEM_NAMESPACE_PREFIXES = tuple(
            p.strip() for p in os.getenv("SYSTEM_NAMESPACE_PREFIXES", "openshift-,kube-").split(",") if p.strip()
        )

        # --- Result thresholds (percent) ---
        self.CPU_WARNING = float(os.getenv("CPU_WARNING", "80"))
        self.CPU_CRITICAL = float(os.getenv("CPU_CRITICAL", "90"))
        self.MEMORY_WARNING = float(os.getenv("MEMORY_WARNING", "80"))
        self.MEMORY_CRITICAL = float(os.getenv("MEMORY_CRITICAL", "90"))

        # --- Pod utilization against requests (percent) ---
        self.POD_CPU_UTILIZATION_WARNING = float(os.getenv("POD_CPU_UTILIZATION_WARNING", "80"))
        self.POD_MEMORY_UTILIZATION_WARNING = float(os.getenv("POD_MEMORY_UTILIZATION_WARNING", "80"))

    @staticmethod
    def _get_secret(key: str, default: str = None) -> str:
        """
        Retrieves a secret from a file (Docker secret/volume) or falls back to environment variable.

        Raises:
            PermissionError: If the secret file exists but cannot be read due to permissions.
            IOError: If the secret file exists but cannot be read due to I/O errors.
        """
        secret_file = f"/etc/kubeperf/secrets/{key}"
        if os.path.exists(secret_file):
            try:
                with open(secret_file, "r") as f:
                    value = f.read().strip()
                    logger.debug("Loaded secret '%s' from %s", key, secret_file)
                    return value
            except PermissionError as e:
                raise PermissionError(
                    f"Secret file '{secret_file}' exists but cannot be read due to permission denied. "
                    f"Please check file permissions or run with appropriate privileges."
                ) from e
            except (IOError, OSError) as e:
                raise IOError(
                    f"Secret file '{secret_file}' exists but cannot be read: {e}. "
                    f"Please check the file integrity and system resources."
                ) from e
        return os.getenv(key, default)

    @property
    def query_timeout(self) -> float:
        """Per-query telemetry timeout, clamped to the supported range."""
        return min(max(self.PROMETHEUS_QUERY_TIMEOUT, self.MIN_QUERY_TIMEOUT), self.MAX_QUERY_TIMEOUT)

    def validate(self):
        if self.COLLECTION_DEADLINE <= 0:
            raise ValueError("COLLECTION_DEADLINE must be a positive number of seconds.")
        if self.HISTORY_DEADLINE <= 0:
            raise ValueError("HISTORY_DEADLINE must be a positive number of seconds.")
        if self.HISTORY_WINDOW_SIZE <= 0:
            raise ValueError("HISTORY_WINDOW_SIZE must be a positive integer.")
        if self.HISTORY_STEP_SECONDS <= 0:
            raise ValueError("HISTORY_STEP_SECONDS must be a positive integer.")
        if not re.match(r"^\d+[smh]$", self.PROMETHEUS_RATE_WINDOW.lower()):
            raise ValueError("PROMETHEUS_RATE_WINDOW format is invalid. Use 's', 'm', or 'h'.")
        if self.CPU_WARNING > self.CPU_CRITICAL or self.MEMORY_WARNING > self.MEMORY_CRITICAL:
            raise ValueError("Warning thresholds must not exceed critical thresholds.")
        if not self.PROMETHEUS_URL:
            logger.warning("PROMETHEUS_URL is not set; the telemetry source will be skipped.")
        return self
