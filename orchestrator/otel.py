from __future__ import annotations

import os

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor


def tracing_enabled(environ: dict[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get("OTEL_ENABLED", "false").lower() == "true"


def setup_tracing(app: FastAPI, environ: dict[str, str] | None = None) -> bool:
    """Export spans over OTLP/HTTP when OTEL_ENABLED is set.

    Without it the global no-op tracer stays in place, so the router's
    per-attempt spans cost nothing.
    """
    env = os.environ if environ is None else environ
    if not tracing_enabled(env):
        return False

    resource = Resource.create(
        {
            "service.name": env.get("OTEL_SERVICE_NAME", "llm-orchestrator"),
            "deployment.environment": env.get("DEPLOYMENT_ENV", "local"),
        }
    )
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=env.get("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318/v1/traces"))
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")
    HTTPXClientInstrumentor().instrument()
    return True
