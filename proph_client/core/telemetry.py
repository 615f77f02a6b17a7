from __future__ import annotations

from dataclasses import dataclass
import logging
import os

import httpx
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from proph_client.core.auth import Session
from proph_client.core.config import Settings

ROLE_ATTRIBUTE = "enduser.role"
NAMESPACE_ATTRIBUTE = "proph.session.namespace"

_BASE_LOG_RECORD_FACTORY = logging.getLogRecordFactory()
_LOG_CORRELATION_INSTALLED = False
_HTTPX_INSTRUMENTOR = HTTPXClientInstrumentor()

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TelemetryRuntime:
    enabled: bool
    provider: TracerProvider | None
    instrumented_clients: list[httpx.AsyncClient]


def configure_client_logging(level: int = logging.INFO) -> None:
    _install_log_correlation()
    if logging.getLogger().handlers:
        return
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s span_id=%(span_id)s %(message)s",
    )


def session_resource(settings: Settings, session: Session | None = None) -> Resource:
    """Resource for one signed-in session; spans from two sessions stay apart in the backend."""
    attributes: dict[str, str] = {
        SERVICE_NAME: settings.otel_service_name,
        DEPLOYMENT_ENVIRONMENT: settings.environment,
    }
    if session is not None:
        attributes[ROLE_ATTRIBUTE] = session.role.value
        attributes[NAMESPACE_ATTRIBUTE] = session.storage_namespace
    return Resource.create(attributes)


def setup_client_telemetry(settings: Settings, *, session: Session | None = None) -> TelemetryRuntime:
    if not settings.otel_enabled:
        return TelemetryRuntime(enabled=False, provider=None, instrumented_clients=[])

    if settings.otel_log_correlation:
        _install_log_correlation()

    provider = TracerProvider(
        resource=session_resource(settings, session),
        sampler=TraceIdRatioBased(settings.otel_trace_sample_ratio),
    )
    exporter = _build_exporter(settings)
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    # Clients built per request by ApiClient are covered by the global hook;
    # injected clients go through instrument_http_client.
    _HTTPX_INSTRUMENTOR.instrument(tracer_provider=provider)
    return TelemetryRuntime(enabled=True, provider=provider, instrumented_clients=[])


def instrument_http_client(runtime: TelemetryRuntime, client: httpx.AsyncClient) -> None:
    if not runtime.enabled or client in runtime.instrumented_clients:
        return
    HTTPXClientInstrumentor.instrument_client(client, tracer_provider=runtime.provider)
    runtime.instrumented_clients.append(client)


def shutdown_client_telemetry(runtime: TelemetryRuntime) -> None:
    if not runtime.enabled:
        return
    for client in runtime.instrumented_clients:
        HTTPXClientInstrumentor.uninstrument_client(client)
    runtime.instrumented_clients.clear()
    _HTTPX_INSTRUMENTOR.uninstrument()
    if runtime.provider is not None:
        runtime.provider.force_flush()
        runtime.provider.shutdown()


def _build_exporter(settings: Settings) -> OTLPSpanExporter | None:
    endpoint = (
        settings.otel_exporter_otlp_endpoint
        or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    )
    if not endpoint:
        logger.info("no OTLP endpoint configured; client spans are sampled but not exported")
        return None

    headers = parse_otlp_headers(settings.otel_exporter_otlp_headers or os.getenv("OTEL_EXPORTER_OTLP_HEADERS"))
    return OTLPSpanExporter(endpoint=endpoint, headers=headers or None)


def parse_otlp_headers(raw: str | None) -> dict[str, str]:
    if raw is None:
        return {}
    parsed: dict[str, str] = {}
    for item in raw.split(","):
        key, separator, value = item.partition("=")
        if separator and key.strip():
            parsed[key.strip()] = value.strip()
    return parsed


def _install_log_correlation() -> None:
    global _LOG_CORRELATION_INSTALLED
    if _LOG_CORRELATION_INSTALLED:
        return

    def record_factory(*args: object, **kwargs: object) -> logging.LogRecord:
        record = _BASE_LOG_RECORD_FACTORY(*args, **kwargs)
        context = trace.get_current_span().get_span_context()
        record.trace_id = format(context.trace_id, "032x") if context.is_valid else "0" * 32
        record.span_id = format(context.span_id, "016x") if context.is_valid else "0" * 16
        return record

    logging.setLogRecordFactory(record_factory)
    _LOG_CORRELATION_INSTALLED = True
