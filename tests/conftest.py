"""Pytest configuration and fixtures for kv_tables tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Generator

import pytest
from prometheus_client import CollectorRegistry

from kv_tables import Database, TableConfig, Writeable
from kv_tables.adapters.outbound import MemoryEngine
from kv_tables.infrastructure.metrics import MetricsRegistry
from sample_entries import Counter, Score, Simple


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    """Path of the primary database under test."""
    return temp_dir / "db"


@pytest.fixture
def memory_engine() -> MemoryEngine:
    """Provide a fresh in-memory engine for each test."""
    return MemoryEngine()


@pytest.fixture
def collector_registry() -> CollectorRegistry:
    """Provide an isolated Prometheus registry."""
    return CollectorRegistry(auto_describe=True)


@pytest.fixture
def metrics_registry(collector_registry: CollectorRegistry) -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    return MetricsRegistry(registry=collector_registry)


@pytest.fixture
def sample_config() -> TableConfig:
    """Config registering every sample table."""
    return TableConfig.for_tables(Simple, Score, Counter)


@pytest.fixture
def writeable_db(
    sample_config: TableConfig,
    db_path: Path,
    memory_engine: MemoryEngine,
    metrics_registry: MetricsRegistry,
) -> Generator[Database[Writeable], None, None]:
    """A writeable database holding the sample tables."""
    db = Database.open(
        sample_config, db_path, Writeable, engine=memory_engine, metrics=metrics_registry
    )
    yield db
    db.close()


@pytest.fixture(params=["writeable", "transactional", "transaction"])
def surface(
    request: pytest.FixtureRequest,
    sample_config: TableConfig,
    db_path: Path,
    memory_engine: MemoryEngine,
    metrics_registry: MetricsRegistry,
) -> Generator[Any, None, None]:
    """The typed surface over each backend shape.

    Yields a writeable Database, a transactional Database, or an open
    Transaction. Transactions still open at teardown are rolled back.
    """
    if request.param == "writeable":
        db = Database.open(
            sample_config, db_path, Writeable, engine=memory_engine, metrics=metrics_registry
        )
        yield db
        db.close()
        return

    db = Database.open_transactional(
        sample_config, db_path, engine=memory_engine, metrics=metrics_registry
    )
    if request.param == "transactional":
        yield db
    else:
        tx = db.begin_transaction()
        yield tx
        if tx.is_active:
            tx.rollback()
    db.close()


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "rocksdb: Tests needing python-rocksdb")
