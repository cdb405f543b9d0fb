"""Infrastructure layer - cross-cutting concerns."""

from kv_tables.infrastructure.config import Settings, get_settings
from kv_tables.infrastructure.logging import setup_logging, get_logger
from kv_tables.infrastructure.metrics import MetricsRegistry, NullMetrics, get_metrics
from kv_tables.infrastructure.tracing import setup_tracing, get_tracer, trace_span

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "get_logger",
    "MetricsRegistry",
    "NullMetrics",
    "get_metrics",
    "setup_tracing",
    "get_tracer",
    "trace_span",
]
