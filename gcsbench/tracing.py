"""OpenTelemetry tracing for the transfer benchmark.

``enable_tracing`` wires a global TracerProvider that batches every span to
Cloud Trace. ``PhaseTracer`` opens spans only when tracing was requested, so
a run without ``--add-spans`` never touches the OpenTelemetry API.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Tuple

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import ALWAYS_ON

from gcsbench.exceptions import GcsBenchError, TracingSetupError

logger = logging.getLogger(__name__)

TRACER_NAME = "gcsbench.transfer"

# Read once by google-cloud-storage when it is first imported
CLIENT_LIBRARY_TRACES_ENV = "ENABLE_GCS_PYTHON_CLIENT_OTEL_TRACES"


def detect_resource(service_name: str) -> Resource:
    """GCP platform attributes plus the SDK defaults and a fixed service name.

    A failed or partial platform detection (e.g. when not running on GCP) is
    logged and the run continues with the attributes that could be resolved.
    """
    from opentelemetry.resourcedetector.gcp_resource_detector import GoogleCloudResourceDetector

    try:
        detected = GoogleCloudResourceDetector(raise_on_error=True).detect()
    except Exception as exc:
        logger.warning(f"GCP resource detection incomplete: {exc}")
        detected = Resource.get_empty()
    return detected.merge(Resource.create({SERVICE_NAME: service_name}))


def enable_client_library_spans() -> None:
    """Ask google-cloud-storage to emit its own spans next to the benchmark's.

    The library decides at import time, so this must run before the first
    ``google.cloud.storage`` import (i.e. before the store is built).
    """
    os.environ[CLIENT_LIBRARY_TRACES_ENV] = "True"
    if "google.cloud.storage" in sys.modules:
        logger.warning(
            f"google.cloud.storage was imported before {CLIENT_LIBRARY_TRACES_ENV} was set; "
            "client library spans may be missing"
        )


def enable_tracing(
    service_name: str,
    exporter: Optional[SpanExporter] = None,
    resource: Optional[Resource] = None,
    set_global: bool = True,
) -> Tuple[TracerProvider, Callable[[], None]]:
    """Turn on OpenTelemetry tracing with export to Cloud Trace.

    Args:
        service_name: Value of the ``service.name`` resource attribute
        exporter: Span exporter (defaults to CloudTraceSpanExporter)
        resource: Resource (defaults to :func:`detect_resource`)
        set_global: Register the provider as the global tracer provider

    Returns:
        The provider and a teardown callable that flushes and shuts it down.
        The teardown must run on every exit path.

    Raises:
        TracingSetupError: If the exporter cannot be created
    """
    if exporter is None:
        try:
            from opentelemetry.exporter.cloud_trace import CloudTraceSpanExporter

            exporter = CloudTraceSpanExporter()
        except Exception as exc:
            raise TracingSetupError(f"CloudTraceSpanExporter: {exc}", original_error=exc) from exc

    if resource is None:
        resource = detect_resource(service_name)

    # ALWAYS_ON samples every trace
    provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)
    provider.add_span_processor(BatchSpanProcessor(exporter))

    if set_global:
        trace.set_tracer_provider(provider)
    logger.info(f"Tracing enabled for service '{service_name}'")

    def shutdown() -> None:
        if not provider.force_flush():
            logger.warning("Timed out flushing spans")
        provider.shutdown()
        logger.debug("Tracer provider shut down")

    return provider, shutdown


class PhaseTracer:
    """Opens benchmark spans when enabled; does nothing otherwise.

    Example:
        >>> tracer = PhaseTracer(enabled=True, attributes={"api": "http2"})
        >>> with tracer.span("upload", object="trace_1234"):
        ...     upload()
    """

    def __init__(
        self,
        enabled: bool = False,
        provider: Optional[trace.TracerProvider] = None,
        attributes: Optional[dict] = None,
    ) -> None:
        self.enabled = enabled
        self._provider = provider
        self._attributes = dict(attributes or {})

    def _tracer(self) -> trace.Tracer:
        provider = self._provider or trace.get_tracer_provider()
        return provider.get_tracer(TRACER_NAME)

    @contextmanager
    def span(self, name: str, parent: Any = None, **attributes: Any) -> Iterator[Any]:
        """Run the block inside span ``name``; yields the span, or None when disabled.

        Args:
            name: Span name
            parent: Span to parent the new one on instead of the current span
            **attributes: Extra span attributes
        """
        if not self.enabled:
            yield None
            return

        context = trace.set_span_in_context(parent) if parent is not None else None
        with self._tracer().start_as_current_span(
            name,
            context=context,
            attributes={**self._attributes, **attributes},
        ) as span:
            yield span


def ensure_shutdown(teardown: Optional[Callable[[], None]]) -> None:
    """Run a tracing teardown, converting failures into TracingSetupError."""
    if teardown is None:
        return
    try:
        teardown()
    except GcsBenchError:
        raise
    except Exception as exc:
        raise TracingSetupError(f"tracer provider shutdown: {exc}", original_error=exc) from exc
