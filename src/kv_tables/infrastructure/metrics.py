"""Prometheus metrics for the typed table layer."""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
)


class MetricsRegistry:
    """Registry of all kv_tables metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Table operation metrics
        self.operations_total = Counter(
            "kv_tables_operations_total",
            "Typed table operations issued",
            ["operation", "partition", "status"],  # status: success, error
            registry=self._registry,
        )

        # Transaction metrics
        self.transactions_total = Counter(
            "kv_tables_transactions_total",
            "Transactions finished",
            ["status"],  # commit, rollback
            registry=self._registry,
        )

        self.transactions_active = Gauge(
            "kv_tables_transactions_active",
            "Transactions currently open",
            registry=self._registry,
        )

        # Database lifecycle metrics
        self.open_databases = Gauge(
            "kv_tables_open_databases",
            "Databases currently open",
            ["mode"],
            registry=self._registry,
        )

        self.open_latency_seconds = Histogram(
            "kv_tables_open_latency_seconds",
            "Time spent opening a database",
            ["mode"],
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0),
            registry=self._registry,
        )

        self.catch_ups_total = Counter(
            "kv_tables_catch_ups_total",
            "Secondary catch-up attempts",
            ["status"],  # success, error
            registry=self._registry,
        )

        self.info = Info(
            "kv_tables",
            "kv_tables library information",
            registry=self._registry,
        )


class NullMetrics:
    """Stand-in used when metrics are disabled in configuration."""

    def __getattr__(self, name: str) -> NullMetrics:
        return self

    def labels(self, *args: object, **kwargs: object) -> NullMetrics:
        return self

    def inc(self, amount: float = 1) -> None:
        pass

    def dec(self, amount: float = 1) -> None:
        pass

    def observe(self, amount: float) -> None:
        pass


# Global metrics registry
_metrics: MetricsRegistry | None = None


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        from kv_tables import __version__

        _metrics = MetricsRegistry()
        _metrics.info.info({"version": __version__})
    return _metrics
