# src/kubeperf/cli/__init__.py
"""
kubeperf CLI Package

This package exposes the top-level Typer `app` so tests and the console
entrypoint can import `kubeperf.cli.app`.
"""

from .main import app

__all__ = ["app"]
