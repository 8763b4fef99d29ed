"""kubeperf: best-effort CPU and memory utilization collection for Kubernetes clusters."""

__version__ = "0.3.1"
