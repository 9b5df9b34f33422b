"""Tracing for crawls and queries.

- Trace: a Langfuse trace per /scrape or /query call. Without LANGFUSE_* settings
  every method is a no-op; Langfuse errors are logged and never reach the caller.
- span: an OpenTelemetry span around store and model calls. Spans are
  non-recording unless OTEL_CONSOLE_EXPORT installs a console exporter.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional

from langfuse import Langfuse
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from planrag.config import settings

logger = logging.getLogger(__name__)

_langfuse: Optional[Langfuse] = None
_otel_ready = False


def _langfuse_client() -> Optional[Langfuse]:
    global _langfuse
    if _langfuse is None and settings.LANGFUSE_HOST and settings.LANGFUSE_PUBLIC_KEY and settings.LANGFUSE_SECRET_KEY:
        _langfuse = Langfuse(
            host=settings.LANGFUSE_HOST,
            public_key=settings.LANGFUSE_PUBLIC_KEY,
            secret_key=settings.LANGFUSE_SECRET_KEY,
        )
    return _langfuse


def _setup_otel() -> None:
    global _otel_ready
    if _otel_ready:
        return
    _otel_ready = True
    if settings.OTEL_CONSOLE_EXPORT:
        provider = TracerProvider()
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        trace.set_tracer_provider(provider)


@contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None):
    """OpenTelemetry span; attribute values must be str, bool, int or float."""
    _setup_otel()
    with trace.get_tracer(__name__).start_as_current_span(name) as current:
        for key, value in (attributes or {}).items():
            current.set_attribute(key, value)
        yield current


class Trace:
    """One Langfuse trace for a crawl or a query."""

    def __init__(self, name: str, input: Optional[Dict[str, Any]] = None):
        self.name = name
        self._trace = None
        client = _langfuse_client()
        if client is not None:
            try:
                self._trace = client.trace(name=name, input=input or {})
            except Exception:
                logger.warning("Could not start Langfuse trace %s", name, exc_info=True)

    @property
    def enabled(self) -> bool:
        return self._trace is not None

    def _send(self, what: str, call: Callable[[], Any]) -> None:
        if self._trace is None:
            return
        try:
            call()
        except Exception:
            logger.debug("Langfuse %s dropped for trace %s", what, self.name, exc_info=True)

    def event(self, name: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Record a pipeline step, e.g. how many plans a crawl or a search returned."""
        self._send(name, lambda: self._trace.event(name=name, input=data or {}))

    def generation(self, name: str, prompt: str, output: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Record the model call: full prompt, raw reply and the configured model."""
        self._send(
            name,
            lambda: self._trace.generation(
                name=name,
                model=settings.OPENAI_MODEL,
                input=prompt,
                output=output,
                metadata=metadata or {},
            ),
        )

    def end(self, output: Optional[Dict[str, Any]] = None) -> None:
        self._send("end", lambda: self._trace.update(output=output or {}))
