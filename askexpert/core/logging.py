"""Logging and tracing setup for the askexpert service.

Log records carry the id of the conversation being handled, bound with
:func:`bind_conversation` for the duration of one inbound message, so the
lines produced by routing, lookups and ticket updates of one message can be
grepped together.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from logging.config import dictConfig
from typing import Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

from askexpert.core.config import Settings

_NO_CONVERSATION = "-"
_conversation_id: ContextVar[str] = ContextVar("conversation_id", default=_NO_CONVERSATION)
_tracer_provider: TracerProvider | None = None


@contextmanager
def bind_conversation(conversation_id: str | None) -> Iterator[None]:
    """Tag every log record emitted inside the block with ``conversation_id``."""

    token = _conversation_id.set(conversation_id or _NO_CONVERSATION)
    try:
        yield
    finally:
        _conversation_id.reset(token)


class ConversationFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.conversation_id = _conversation_id.get()
        return True


def configure_logging(settings: Settings) -> logging.Logger:
    """Route all logging through one stream handler and return the service logger."""

    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"conversation": {"()": ConversationFilter}},
            "formatters": {"service": {"format": settings.log_format}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "service",
                    "filters": ["conversation"],
                }
            },
            "loggers": {
                "askexpert": {"level": level},
                # one INFO line per connector request otherwise
                "httpx": {"level": max(level, logging.WARNING)},
            },
            "root": {"handlers": ["console"], "level": level},
        }
    )
    return logging.getLogger("askexpert")


def parse_otlp_headers(header_string: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` exporter headers, skipping malformed items."""

    headers: dict[str, str] = {}
    for item in (header_string or "").split(","):
        key, separator, value = item.partition("=")
        if separator and key.strip():
            headers[key.strip()] = value.strip()
    return headers


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install the OTLP span exporter once per process when tracing is enabled."""

    global _tracer_provider

    if not settings.otel_enabled or _tracer_provider is not None:
        return None

    exporter = OTLPSpanExporter(
        endpoint=settings.otel_exporter_otlp_endpoint,
        headers=parse_otlp_headers(settings.otel_exporter_otlp_headers) or None,
    )
    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.otel_service_name,
                "deployment.environment": settings.environment,
            }
        ),
        sampler=ParentBased(TraceIdRatioBased(settings.otel_sample_ratio)),
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _tracer_provider = provider
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    global _tracer_provider

    if provider is None:
        return
    provider.shutdown()
    if provider is _tracer_provider:
        _tracer_provider = None
