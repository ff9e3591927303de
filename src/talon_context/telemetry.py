"""OpenTelemetry tracing integration for talon-context.

Provides distributed tracing with support for stdout, OTLP, and noop exporters.
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import NoOpTracer, Span, Tracer

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class TelemetryConfig:
    """Configuration for the talon-context tracing subsystem."""

    service_name: str = "talon-context"
    enabled: bool = True
    exporter: str = "none"  # "stdout" | "otlp" | "none"
    otlp_endpoint: str = "http://localhost:4317"


# ---------------------------------------------------------------------------
# ContextTracer
# ---------------------------------------------------------------------------


class ContextTracer:
    """Central tracer for context assembly and compression.

    Owns the OpenTelemetry ``TracerProvider`` (when an exporter is
    configured) and hands out spans; with no exporter every span is a no-op.
    """

    def __init__(self, config: TelemetryConfig | None = None) -> None:
        self._config = config or TelemetryConfig()
        self._provider: TracerProvider | None = None
        self._tracer: Tracer = NoOpTracer()

    # -- lifecycle -----------------------------------------------------------

    def init(self) -> None:
        """Set up the OTel TracerProvider based on config."""
        cfg = self._config

        if not cfg.enabled or cfg.exporter == "none":
            return

        resource = Resource.create({"service.name": cfg.service_name})

        if cfg.exporter == "stdout":
            from opentelemetry.sdk.trace.export import (
                ConsoleSpanExporter,
                SimpleSpanProcessor,
            )

            provider = TracerProvider(resource=resource)
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
            self._provider = provider
            self._tracer = provider.get_tracer(cfg.service_name)

        elif cfg.exporter == "otlp":
            # The OTLP exporter is an optional extra.
            try:
                from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                    OTLPSpanExporter,
                )
                from opentelemetry.sdk.trace.export import SimpleSpanProcessor
            except ImportError:  # pragma: no cover
                return

            exporter = OTLPSpanExporter(endpoint=cfg.otlp_endpoint, insecure=True)
            provider = TracerProvider(resource=resource)
            provider.add_span_processor(SimpleSpanProcessor(exporter))
            self._provider = provider
            self._tracer = provider.get_tracer(cfg.service_name)

    # -- span helpers --------------------------------------------------------

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[Span, None, None]:
        """Create a span as a context manager.

        Usage::

            with tracer.span("context/build", {"session.id": sid}) as s:
                ...
        """
        with self._tracer.start_as_current_span(name) as s:
            if attributes:
                for k, v in attributes.items():
                    s.set_attribute(k, v)
            yield s

    def shutdown(self) -> None:
        """Flush pending spans and shut down the provider.

        Safe to call multiple times.
        """
        if self._provider is not None:
            self._provider.shutdown()
            self._provider = None


# ---------------------------------------------------------------------------
# Module-level singleton (lazily initialised)
# ---------------------------------------------------------------------------

_DEFAULT_TRACER: ContextTracer | None = None


def get_tracer() -> ContextTracer:
    global _DEFAULT_TRACER  # noqa: PLW0603
    if _DEFAULT_TRACER is None:
        _DEFAULT_TRACER = ContextTracer()
    return _DEFAULT_TRACER


def set_tracer(tracer: ContextTracer | None) -> None:
    """Install *tracer* as the module default (``None`` resets to noop)."""
    global _DEFAULT_TRACER  # noqa: PLW0603
    _DEFAULT_TRACER = tracer


# ---------------------------------------------------------------------------
# Convenience context managers
# ---------------------------------------------------------------------------


@contextlib.contextmanager
def trace_context_build(session_id: str) -> Generator[Span, None, None]:
    """Trace one context assembly."""
    with get_tracer().span("context/build", {"session.id": session_id}) as s:
        yield s


@contextlib.contextmanager
def trace_integrity_repair(window_size: int) -> Generator[Span, None, None]:
    """Trace a window repair."""
    with get_tracer().span("context/repair", {"window.size": window_size}) as s:
        yield s


@contextlib.contextmanager
def trace_recall(query_tokens: int) -> Generator[Span, None, None]:
    """Trace a recall lookup."""
    with get_tracer().span("context/recall", {"recall.query_tokens": query_tokens}) as s:
        yield s


@contextlib.contextmanager
def trace_compression(session_id: str) -> Generator[Span, None, None]:
    """Trace a compression cycle."""
    with get_tracer().span("compression/run", {"session.id": session_id}) as s:
        yield s
