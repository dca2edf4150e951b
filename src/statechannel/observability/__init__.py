"""
Observability for channel operations: Prometheus metrics and OpenTelemetry spans.
"""

from .tracing import (
    setup_tracing,
    shutdown_tracing,
    create_span,
    get_tracer,
)
from .metrics import get_metrics

__all__ = [
    'setup_tracing',
    'shutdown_tracing',
    'create_span',
    'get_tracer',
    'get_metrics',
]
