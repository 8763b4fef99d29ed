# src/kubeperf/core/telemetry.py
"""Initializes OpenTelemetry tracing for kubeperf."""

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

# Default: http://localhost:4318. In k8s, this would be http://otel-collector.<ns>.svc.cluster.local:4318
OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318")


def initialize_telemetry(endpoint: str = None):
    """
    Installs a TracerProvider exporting spans via OTLP/HTTP.

    Until this is called (by the CLI or an embedding application) the
    collection spans are no-ops.
    """
    endpoint = endpoint or OTEL_EXPORTER_OTLP_ENDPOINT
    resource = Resource(attributes={SERVICE_NAME: "kubeperf"})

    tracer_provider = TracerProvider(resource=resource)
    span_exporter = OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces")
    tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
    trace.set_tracer_provider(tracer_provider)
    logger.info("OpenTelemetry initialized. Exporting to: %s", endpoint)
    return tracer_provider


tracer = trace.get_tracer("kubeperf.tracer")
