"""
Module: tracing.py
Description: Tracing capability for send and receive operations.

The client is composed with a Tracer instance. NullTracer does nothing;
LoggingTracer emits structlog span events and propagates a W3C-style
traceparent through the message properties.

Key Components:
- Tracer: interface used by the pipelines
- NullTracer: no-op implementation (default)
- LoggingTracer: span start/end/error events through structlog
"""

import secrets
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, ContextManager, Dict, Iterator, MutableMapping, Optional

from large_message.utils.logger import get_logger

logger = get_logger(__name__)

TRACEPARENT_PROPERTY = "traceparent"

_current_span: ContextVar[Optional[Dict[str, Any]]] = ContextVar(
    "large_message_span", default=None
)


class Tracer(ABC):
    """Span and context propagation hooks used by the send/receive pipelines."""

    @abstractmethod
    def span(self, name: str, **attributes: Any) -> ContextManager[Dict[str, Any]]:
        """Open a span around a block; exceptions are recorded and re-raised."""

    @abstractmethod
    def inject(self, properties: MutableMapping[str, Any]) -> None:
        """Write the current trace context into outgoing properties."""

    @abstractmethod
    def extract(self, properties: MutableMapping[str, Any]) -> Optional[str]:
        """Remove trace context from incoming properties and return it."""


class NullTracer(Tracer):
    """Tracer that records nothing and leaves properties untouched."""

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[Dict[str, Any]]:
        yield {}

    def inject(self, properties: MutableMapping[str, Any]) -> None:
        return None

    def extract(self, properties: MutableMapping[str, Any]) -> Optional[str]:
        return None


class LoggingTracer(Tracer):
    """
    Tracer that logs spans as structured events.

    Each span gets a trace id (inherited from the enclosing span when there
    is one) and a random span id. The active span lives in a ContextVar so
    concurrent calls and tasks never see each other's spans. inject()
    writes `00-<trace_id>-<span_id>-01` under the `traceparent` property.
    """

    def __init__(self, service_name: str = "large-message-client"):
        self.service_name = service_name

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[Dict[str, Any]]:
        parent = _current_span.get()
        span = {
            "name": name,
            "trace_id": parent["trace_id"] if parent else secrets.token_hex(16),
            "span_id": secrets.token_hex(8),
        }
        token = _current_span.set(span)
        started = time.monotonic()
        logger.debug(
            "Span started",
            service=self.service_name,
            span=name,
            trace_id=span["trace_id"],
            span_id=span["span_id"],
            **attributes,
        )
        try:
            yield span
        except Exception as e:
            logger.warning(
                "Span failed",
                span=name,
                trace_id=span["trace_id"],
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        finally:
            _current_span.reset(token)
            logger.debug(
                "Span ended",
                span=name,
                trace_id=span["trace_id"],
                duration_ms=round((time.monotonic() - started) * 1000, 3),
            )

    def inject(self, properties: MutableMapping[str, Any]) -> None:
        span = _current_span.get()
        if span is None:
            return
        properties[TRACEPARENT_PROPERTY] = f"00-{span['trace_id']}-{span['span_id']}-01"

    def extract(self, properties: MutableMapping[str, Any]) -> Optional[str]:
        traceparent = properties.pop(TRACEPARENT_PROPERTY, None)
        if traceparent is not None:
            logger.debug("Trace context extracted", traceparent=traceparent)
        return traceparent
