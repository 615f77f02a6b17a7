from __future__ import annotations

import asyncio
import logging

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from fake_backend import BASE_URL, COACH_ID, FakeBackend
from proph_client.client import build_client
from proph_client.core import telemetry
from proph_client.core.auth import Role, Session
from proph_client.core.config import Settings
from proph_client.core.telemetry import (
    NAMESPACE_ATTRIBUTE,
    ROLE_ATTRIBUTE,
    TelemetryRuntime,
    configure_client_logging,
    parse_otlp_headers,
    setup_client_telemetry,
    shutdown_client_telemetry,
)
from proph_client.services.store import InMemoryStore

COACH_SESSION = Session(token="coach-token", user_id=COACH_ID, role=Role.COACH, session_id="coach-tab-1")


def test_parse_otlp_headers_skips_malformed_items() -> None:
    assert parse_otlp_headers(None) == {}
    assert parse_otlp_headers("authorization=Bearer abc, x-team = recruiting ,broken,=empty") == {
        "authorization": "Bearer abc",
        "x-team": "recruiting",
    }


def test_disabled_telemetry_is_a_no_op() -> None:
    runtime = setup_client_telemetry(Settings(otel_enabled=False), session=COACH_SESSION)

    assert runtime.enabled is False
    assert runtime.provider is None
    shutdown_client_telemetry(runtime)


def test_enabled_telemetry_tags_resource_with_session(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(telemetry.trace, "set_tracer_provider", lambda provider: None)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT", raising=False)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)

    runtime = setup_client_telemetry(Settings(otel_enabled=True, environment="test"), session=COACH_SESSION)
    try:
        assert runtime.provider is not None
        attributes = runtime.provider.resource.attributes
        assert attributes[ROLE_ATTRIBUTE] == "coach"
        assert attributes[NAMESPACE_ATTRIBUTE] == "coach-tab-1"
        assert attributes["service.name"] == "proph-client"
    finally:
        shutdown_client_telemetry(runtime)


def test_injected_http_client_is_traced(backend: FakeBackend) -> None:
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    runtime = TelemetryRuntime(enabled=True, provider=provider, instrumented_clients=[])
    backend.seed_application(42)

    async def run() -> int:
        async with backend.http_client() as http:
            client = build_client(
                COACH_SESSION,
                settings=Settings(api_base_url=BASE_URL, otel_enabled=False),
                http_client=http,
                store=InMemoryStore(),
                telemetry=runtime,
            )
            assert runtime.instrumented_clients == [http]
            info = await client.applications.get_aggregate_info()
            shutdown_client_telemetry(runtime)
            return info.pending_count

    assert asyncio.run(run()) == 1
    spans = exporter.get_finished_spans()
    assert len(spans) == 1
    assert "GET" in spans[0].name
    assert runtime.instrumented_clients == []


def test_log_records_carry_empty_trace_ids_outside_spans() -> None:
    configure_client_logging()
    record = logging.getLogRecordFactory()("proph", logging.INFO, __file__, 1, "hello", (), None)

    assert record.trace_id == "0" * 32
    assert record.span_id == "0" * 16
