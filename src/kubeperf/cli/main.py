# src/kubeperf/cli/main.py
"""
This module is the main entry point for the kubeperf CLI.
"""

import asyncio
import logging
import os
from typing import Optional

import typer
from typing_extensions import Annotated

from ..core.check import evaluate, fatal_result
from ..core.config import Config
from ..core.exceptions import FatalCollectionError
from ..core.factory import get_orchestrator
from ..core.k8s_client import KubernetesClients
from ..core.ranking import RankingEngine
from ..core.telemetry import initialize_telemetry
from ..reporters.console_reporter import ConsoleReporter

logger = logging.getLogger(__name__)


app = typer.Typer(
    name="kubeperf",
    help="Collect CPU and memory utilization for a Kubernetes cluster's nodes and namespaces.",
    add_completion=False,
)


def version_callback(value: bool):
    """
    Prints the version of kubeperf.
    """
    if value:
        from .. import __version__

        typer.echo(f"kubeperf version: {__version__}")
        raise typer.Exit()


@app.command()
def version():
    """
    Show the version of kubeperf.
    """
    from .. import __version__

    typer.echo(f"kubeperf version: {__version__}")


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    """
    kubeperf CLI main entry point.
    """
    settings = Config()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    # Spans stay no-ops unless an OTLP collector is configured
    if os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"):
        initialize_telemetry()
    ctx.obj = settings


async def run_collection(settings: Config, history: bool):
    clients = KubernetesClients()
    orchestrator = get_orchestrator(settings, clients)
    try:
        if history:
            return await orchestrator.collect_with_history()
        return await orchestrator.collect()
    finally:
        await orchestrator.close()
        await clients.close()


@app.command()
def collect(
    ctx: typer.Context,
    history: Annotated[
        bool, typer.Option("--history/--no-history", help="Also build the 24-hour historical windows.")
    ] = True,
    top: Annotated[Optional[int], typer.Option("--top", min=0, help="Number of namespaces per ranking.")] = None,
    prometheus_url: Annotated[
        Optional[str], typer.Option("--prometheus-url", help="Override PROMETHEUS_URL for this run.")
    ] = None,
):
    """
    Run one collection and print the cluster performance report.
    """
    settings: Config = ctx.obj if isinstance(ctx.obj, Config) else Config()
    if prometheus_url:
        settings.PROMETHEUS_URL = prometheus_url

    try:
        settings.validate()
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        raise typer.Exit(code=2)

    ranking = RankingEngine(settings)
    reporter = ConsoleReporter(ranking)

    try:
        metrics = asyncio.run(run_collection(settings, history))
    except FatalCollectionError as e:
        logger.error("Collection failed: %s", e)
        reporter.report_result(fatal_result(e))
        raise typer.Exit(code=1)

    result = evaluate(metrics, settings, ranking)
    reporter.report(metrics, result, top=settings.RANKING_TOP_K if top is None else top)


if __name__ == "__main__":
    app()
