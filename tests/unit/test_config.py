"""Unit tests for configuration and observability setup."""

from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry
from pydantic import ValidationError

from kv_tables.infrastructure.config import EngineConfig, Settings, get_settings
from kv_tables.infrastructure.logging import get_logger, setup_logging
from kv_tables.infrastructure.metrics import MetricsRegistry, NullMetrics
from kv_tables.infrastructure.tracing import get_tracer, trace_span


@pytest.mark.unit
class TestSettings:
    """Tests for Settings."""

    def test_default_settings(self) -> None:
        """Test default configuration values."""
        settings = Settings()

        assert settings.engine.backend == "memory"
        assert settings.engine.create_if_missing is True
        assert settings.engine.create_missing_partitions is True
        assert settings.engine.max_open_files == 512
        assert settings.engine.lock_timeout_ms == 1000
        assert settings.observability.log_format == "json"
        assert settings.observability.metrics_enabled is True

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Nested settings are read from KV_TABLES_ variables."""
        monkeypatch.setenv("KV_TABLES_ENGINE__BACKEND", "rocksdb")
        monkeypatch.setenv("KV_TABLES_ENGINE__MAX_OPEN_FILES", "-1")
        monkeypatch.setenv("KV_TABLES_OBSERVABILITY__LOG_LEVEL", "DEBUG")

        settings = Settings()

        assert settings.engine.backend == "rocksdb"
        assert settings.engine.max_open_files == -1
        assert settings.observability.log_level == "DEBUG"

    def test_invalid_backend(self) -> None:
        with pytest.raises(ValidationError):
            EngineConfig(backend="leveldb")  # type: ignore[arg-type]

    def test_get_settings_returns_same_instance(self) -> None:
        assert get_settings() is get_settings()


@pytest.mark.unit
class TestMetrics:
    """Tests for the metrics registry."""

    def test_metrics_register_in_private_registry(self) -> None:
        registry = CollectorRegistry()
        metrics = MetricsRegistry(registry=registry)

        metrics.operations_total.labels(
            operation="insert", partition="scores", status="success"
        ).inc()
        metrics.open_databases.labels(mode="writeable").inc()

        assert (
            registry.get_sample_value(
                "kv_tables_operations_total",
                {"operation": "insert", "partition": "scores", "status": "success"},
            )
            == 1.0
        )
        assert registry.get_sample_value("kv_tables_open_databases", {"mode": "writeable"}) == 1.0

    def test_null_metrics_accepts_everything(self) -> None:
        metrics = NullMetrics()
        metrics.operations_total.labels(operation="x", partition="y", status="z").inc()
        metrics.open_latency_seconds.labels(mode="writeable").observe(0.1)
        metrics.transactions_active.dec()


@pytest.mark.unit
class TestObservability:
    """Smoke tests for logging and tracing helpers."""

    def test_setup_logging_and_log(self) -> None:
        setup_logging(level="DEBUG", log_format="console")
        logger = get_logger(__name__, component="test")
        logger.info("test_event", value=1)

    def test_trace_span_sets_attributes(self) -> None:
        assert get_tracer() is get_tracer()
        with trace_span("kv_tables.test", {"path": "/tmp/db"}) as span:
            assert span is not None
