import logging

from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from walkin.core.config import Settings
from walkin.core.logging import build_resource, configure_logging, init_tracer, shutdown_tracer


def test_configure_logging_sets_level():
    settings = Settings(app_name="walkin.test", log_level="debug")

    logger = configure_logging(settings)

    assert logger.name == "walkin.test"
    assert logger.level == logging.DEBUG
    assert logging.getLogger("walkin").handlers
    assert logging.getLogger("asyncpg").level == logging.WARNING


def test_resource_describes_deployment():
    resource = build_resource(Settings(otel_service_name="front-desk", environment="staging"))

    assert resource.attributes["service.name"] == "front-desk"
    assert resource.attributes["service.namespace"] == "walkin"
    assert resource.attributes["deployment.environment"] == "staging"
    assert resource.attributes["walkin.storage_backend"] == "memory"


def test_tracer_is_not_initialised_when_disabled():
    provider = init_tracer(Settings(otel_enabled=False))

    assert provider is None
    shutdown_tracer(provider)


def test_tracer_exports_spans_with_configured_exporter(monkeypatch):
    exporter = InMemorySpanExporter()
    exporter_kwargs: dict[str, object] = {}
    installed: list[object] = []

    def exporter_factory(**kwargs):
        exporter_kwargs.update(kwargs)
        return exporter

    monkeypatch.setattr("walkin.core.logging.OTLPSpanExporter", exporter_factory)
    monkeypatch.setattr("walkin.core.logging.trace.set_tracer_provider", installed.append)
    settings = Settings(
        otel_enabled=True,
        environment="staging",
        otel_exporter_otlp_endpoint="http://collector:4318/v1/traces",
        otel_exporter_otlp_headers="X-Tenant=queue,authorization=Bearer%20x,broken",
    )

    provider = init_tracer(settings)

    assert installed == [provider]
    assert exporter_kwargs == {
        "endpoint": "http://collector:4318/v1/traces",
        "headers": {"x-tenant": "queue", "authorization": "Bearer x"},
    }
    assert provider.resource.attributes["deployment.environment"] == "staging"

    with provider.get_tracer("walkin.test").start_as_current_span("walkin.issue"):
        pass
    provider.force_flush()
    assert [span.name for span in exporter.get_finished_spans()] == ["walkin.issue"]

    shutdown_tracer(provider)
