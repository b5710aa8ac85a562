"""Logging and tracing setup for the walk-in queue core."""

from __future__ import annotations

import logging
from logging.config import dictConfig

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.util.re import parse_env_headers

from walkin.core.config import Settings

SERVICE_NAMESPACE = "walkin"


def configure_logging(settings: Settings) -> logging.Logger:
    """Route the ``walkin`` loggers to stderr at the configured level.

    The asyncpg driver is kept at WARNING so pool chatter does not drown out
    numbering and lifecycle events.
    """

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"queue": {"format": settings.log_format}},
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "queue",
                    "level": level,
                }
            },
            "loggers": {
                "walkin": {"handlers": ["stderr"], "level": level, "propagate": True},
                "asyncpg": {"handlers": ["stderr"], "level": logging.WARNING, "propagate": False},
            },
        }
    )

    logger = logging.getLogger(settings.app_name)
    logger.setLevel(level)
    return logger


def build_resource(settings: Settings) -> Resource:
    return Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.namespace": SERVICE_NAMESPACE,
            "deployment.environment": settings.environment,
            "walkin.storage_backend": settings.storage_backend,
        }
    )


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install an OTLP-exporting tracer provider and return it, or ``None`` when disabled.

    The caller owns the returned provider and hands it to :func:`shutdown_tracer`.
    """

    if not settings.otel_enabled:
        return None

    exporter_kwargs: dict[str, object] = {}
    if settings.otel_exporter_otlp_endpoint:
        exporter_kwargs["endpoint"] = settings.otel_exporter_otlp_endpoint
    if settings.otel_exporter_otlp_headers:
        exporter_kwargs["headers"] = dict(parse_env_headers(settings.otel_exporter_otlp_headers, liberal=True))

    provider = TracerProvider(resource=build_resource(settings))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs)))
    trace.set_tracer_provider(provider)
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    """Flush and stop ``provider``; spans started afterwards are dropped."""

    if provider is not None:
        provider.shutdown()
