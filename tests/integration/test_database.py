"""Integration tests for the typed surface across every backend shape."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from prometheus_client import CollectorRegistry
from sortedcontainers import SortedDict

from kv_tables import (
    ConfigurationError,
    Database,
    EngineError,
    InvalidPartitionNameError,
    InvalidValueBytesError,
    ReadOnly,
    Selected,
    Skipped,
    TableConfig,
    Writeable,
)
from kv_tables.adapters.outbound import MemoryEngine
from kv_tables.infrastructure.metrics import MetricsRegistry
from sample_entries import Counter, RawScore, Score, Simple


@pytest.mark.integration
class TestTypedSurface:
    """The same calls behave alike on Database, transactional Database and Transaction."""

    def test_end_to_end_index_scan(self, surface: Any) -> None:
        """Index lookups return exactly the entries under that index, in key order."""
        surface.insert(Score, (1, 100), "A")
        surface.insert(Score, (1, 200), "B")
        surface.insert(Score, (2, 50), "C")

        assert [e.key() for e in surface.iter(Score)] == [(1, 100), (1, 200), (2, 50)]
        assert list(surface.lookup_index(Score, 1)) == [
            Score(1, 100, "A"),
            Score(1, 200, "B"),
        ]
        assert list(surface.lookup_index(Score, 2)) == [Score(2, 50, "C")]
        assert list(surface.lookup_index(Score, 3)) == []

    def test_last_write_wins(self, surface: Any) -> None:
        surface.insert(Simple, 1, "first")
        surface.insert(Simple, 1, "second")
        assert surface.lookup(Simple, 1) == "second"

    def test_lookup_missing(self, surface: Any) -> None:
        assert surface.lookup(Simple, 404) is None

    def test_multi_lookup_order_and_duplicates(self, surface: Any) -> None:
        surface.insert(Simple, 1, "one")
        surface.insert(Simple, 2, "two")

        assert surface.multi_lookup(Simple, [2, 9, 1, 2]) == ["two", None, "one", "two"]
        assert surface.multi_lookup(Simple, []) == []

    def test_merge_accumulates(self, surface: Any) -> None:
        surface.merge(Counter, "hits", 100)
        surface.merge(Counter, "hits", 200)
        surface.merge(Counter, "hits", 14)
        assert surface.lookup(Counter, "hits") == 314

    def test_merge_onto_inserted_value(self, surface: Any) -> None:
        surface.insert(Counter, "hits", 1)
        surface.merge(Counter, "hits", 41)
        assert surface.lookup(Counter, "hits") == 42

    def test_merge_without_operator_fails(self, surface: Any) -> None:
        with pytest.raises(EngineError):
            surface.merge(Score, (1, 1), "A")

    def test_selective_index_scan(self, surface: Any) -> None:
        surface.insert(Score, (1, 100), "A")
        surface.insert(Score, (1, 200), "B")
        surface.insert(Score, (2, 50), "C")

        items = list(surface.lookup_index_selected(Score, 1, lambda key: key[1] > 150))
        assert items == [Skipped((1, 100)), Selected(Score(1, 200, "B"))]

    def test_iter_selected(self, surface: Any) -> None:
        for i in range(5):
            surface.insert(Simple, i, f"v{i}")

        items = list(surface.iter_selected(Simple, lambda key: key % 2 == 0))
        assert [item.key for item in items] == [0, 1, 2, 3, 4]
        assert [item.entry.text for item in items if item.is_selected] == ["v0", "v2", "v4"]

    def test_tables_are_isolated(self, surface: Any) -> None:
        """Entries in one partition never show up in another."""
        surface.insert(Simple, 1, "default")
        surface.insert(Score, (0, 1), "A")
        assert [e.key() for e in surface.iter(Simple)] == [1]
        assert [e.key() for e in surface.iter(Score)] == [(0, 1)]

    def test_unknown_partition(self, surface: Any) -> None:
        """A name that was not registered fails before encoding."""

        class Unregistered(Simple):
            name = "unregistered"

            @classmethod
            def key_to_bytes(cls, key: int) -> bytes:
                raise AssertionError("must not encode")

        with pytest.raises(InvalidPartitionNameError) as exc_info:
            surface.insert(Unregistered, 1, "x")
        assert exc_info.value.name == "unregistered"
        with pytest.raises(InvalidPartitionNameError):
            surface.lookup(Unregistered, 1)
        with pytest.raises(InvalidPartitionNameError):
            surface.iter(Unregistered)

    def test_index_lookup_needs_indexed_entry(self, surface: Any) -> None:
        with pytest.raises(ConfigurationError, match="not an Indexed entry"):
            surface.lookup_index(Simple, 1)


@pytest.mark.integration
class TestDecodeSafety:
    """Malformed stored bytes surface as decode errors."""

    def plant(self, engine: MemoryEngine, path: Path, key: bytes, value: bytes) -> None:
        with Database.open(TableConfig().add(RawScore), path, engine=engine) as db:
            db.insert(RawScore, key, value)

    def test_selective_scan_skips_malformed_values(
        self, memory_engine: MemoryEngine, db_path: Path, metrics_registry: MetricsRegistry
    ) -> None:
        self.plant(memory_engine, db_path, Score.encode_key((1, 1)), b"\xff\xfe")
        self.plant(memory_engine, db_path, Score.encode_key((1, 2)), b"ok")

        with Database.open(
            TableConfig().add(Score), db_path, ReadOnly, engine=memory_engine, metrics=metrics_registry
        ) as db:
            items = list(db.lookup_index_selected(Score, 1, lambda key: key[1] == 2))
            assert items == [Skipped((1, 1)), Selected(Score(1, 2, "ok"))]

            it = db.lookup_index(Score, 1)
            with pytest.raises(InvalidValueBytesError) as exc_info:
                next(it)
            assert exc_info.value.data == b"\xff\xfe"
            assert list(it) == []

    def test_multi_lookup_fails_closed(
        self, memory_engine: MemoryEngine, db_path: Path, metrics_registry: MetricsRegistry
    ) -> None:
        self.plant(memory_engine, db_path, Score.encode_key((1, 2)), b"\xff")

        with Database.open(
            TableConfig().add(Score), db_path, engine=memory_engine, metrics=metrics_registry
        ) as db:
            db.insert(Score, (1, 1), "A")
            with pytest.raises(InvalidValueBytesError):
                db.multi_lookup(Score, [(1, 1), (1, 2)])


@pytest.mark.integration
class TestDatabaseLifecycle:
    """Opening, closing and metrics."""

    def test_properties(self, writeable_db: Database[Writeable], db_path: Path) -> None:
        assert writeable_db.mode.value == "writeable"
        assert writeable_db.path == db_path
        assert writeable_db.partition_names == ("scores", "counters")
        assert writeable_db.entry_types == (Simple, Score, Counter)
        assert writeable_db.engine_name == "memory"
        assert "writeable" in repr(writeable_db)

    def test_closed_database_raises(self, writeable_db: Database[Writeable]) -> None:
        writeable_db.close()
        writeable_db.close()
        assert writeable_db.closed
        with pytest.raises(EngineError, match="closed"):
            writeable_db.lookup(Simple, 1)

    def test_context_manager_closes(
        self, memory_engine: MemoryEngine, db_path: Path, metrics_registry: MetricsRegistry
    ) -> None:
        with Database.open(
            TableConfig().add(Simple), db_path, engine=memory_engine, metrics=metrics_registry
        ) as db:
            db.insert(Simple, 1, "x")
        assert db.closed

        with Database.open(
            TableConfig().add(Simple), db_path, engine=memory_engine, metrics=metrics_registry
        ) as db:
            assert db.lookup(Simple, 1) == "x"

    def test_config_cannot_be_reused(
        self, memory_engine: MemoryEngine, temp_dir: Path, metrics_registry: MetricsRegistry
    ) -> None:
        config = TableConfig().add(Simple)
        Database.open(config, temp_dir / "a", engine=memory_engine, metrics=metrics_registry).close()
        with pytest.raises(ConfigurationError, match="already consumed"):
            Database.open(config, temp_dir / "b", engine=memory_engine, metrics=metrics_registry)

    def test_open_failure_is_engine_error(
        self, memory_engine: MemoryEngine, db_path: Path, metrics_registry: MetricsRegistry
    ) -> None:
        with pytest.raises(EngineError):
            Database.open(
                TableConfig(create_if_missing=False),
                db_path,
                engine=memory_engine,
                metrics=metrics_registry,
            )

    def test_metrics_recorded(
        self,
        memory_engine: MemoryEngine,
        db_path: Path,
        metrics_registry: MetricsRegistry,
        collector_registry: CollectorRegistry,
    ) -> None:
        db = Database.open(
            TableConfig().add(Score), db_path, engine=memory_engine, metrics=metrics_registry
        )
        assert collector_registry.get_sample_value(
            "kv_tables_open_databases", {"mode": "writeable"}
        ) == 1.0

        class Other(Simple):
            name = "other"

        db.insert(Score, (1, 1), "A")
        with pytest.raises(InvalidPartitionNameError):
            db.insert(Other, 1, "x")

        assert collector_registry.get_sample_value(
            "kv_tables_operations_total",
            {"operation": "insert", "partition": "scores", "status": "success"},
        ) == 1.0
        assert collector_registry.get_sample_value(
            "kv_tables_operations_total",
            {"operation": "insert", "partition": "other", "status": "error"},
        ) == 1.0

        db.close()
        assert collector_registry.get_sample_value(
            "kv_tables_open_databases", {"mode": "writeable"}
        ) == 0.0
        assert collector_registry.get_sample_value(
            "kv_tables_open_latency_seconds_count", {"mode": "writeable"}
        ) == 1.0

    def test_index_lookup_reads_only_matching_range(
        self, writeable_db: Database[Writeable], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        for user in range(50):
            for ts in range(200):
                writeable_db.insert(Score, (user, ts), "A")

        def refuse_copy(self: SortedDict) -> SortedDict:
            raise AssertionError("partition copied")

        monkeypatch.setattr(SortedDict, "copy", refuse_copy)

        entries = list(writeable_db.lookup_index(Score, 7))
        assert len(entries) == 200
        assert {entry.user for entry in entries} == {7}
