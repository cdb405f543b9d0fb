"""Integration tests for transactional databases and transactions."""

from __future__ import annotations

from pathlib import Path
from typing import Generator, Optional, Sequence

import pytest
from prometheus_client import CollectorRegistry

from kv_tables import (
    Database,
    EngineError,
    MergeOperator,
    ModeType,
    TableConfig,
    Transactional,
    TransactionClosedError,
    TransactionOptions,
)
from kv_tables.adapters.outbound import MemoryEngine
from kv_tables.adapters.outbound.memory_engine import MAX_PENDING_OPERANDS
from kv_tables.infrastructure.metrics import MetricsRegistry
from sample_entries import Counter, Score, Simple


def refuse(key: bytes, existing: Optional[bytes], operands: Sequence[bytes]) -> bytes:
    raise ValueError("counter is frozen")


class Refusing(Counter):
    """Counter whose merge operator always fails."""

    name = "refusing"

    @classmethod
    def associative_merge(cls) -> MergeOperator:
        return MergeOperator("refuse", refuse)


@pytest.fixture
def tx_db(
    memory_engine: MemoryEngine, db_path: Path, metrics_registry: MetricsRegistry
) -> Generator[Database[Transactional], None, None]:
    db = Database.open_transactional(
        TableConfig.for_tables(Simple, Score, Counter),
        db_path,
        TransactionOptions(lock_timeout_ms=500),
        engine=memory_engine,
        metrics=metrics_registry,
    )
    yield db
    db.close()


@pytest.mark.integration
class TestTransactions:
    """Tests for Transaction semantics."""

    def test_mode(self, tx_db: Database[Transactional]) -> None:
        assert tx_db.mode is ModeType.TRANSACTIONAL

    def test_commit_publishes_writes(self, tx_db: Database[Transactional]) -> None:
        tx = tx_db.begin_transaction()
        tx.insert(Simple, 1, "one")
        tx.merge(Counter, "hits", 5)

        assert tx.lookup(Simple, 1) == "one"
        assert tx_db.lookup(Simple, 1) is None

        tx.commit()
        assert tx.state == "committed"
        assert tx_db.lookup(Simple, 1) == "one"
        assert tx_db.lookup(Counter, "hits") == 5

    def test_rollback_discards_writes(self, tx_db: Database[Transactional]) -> None:
        tx = tx_db.begin_transaction()
        tx.insert(Simple, 1, "one")
        tx.rollback()
        assert tx_db.lookup(Simple, 1) is None

    def test_finished_transaction_rejects_calls(self, tx_db: Database[Transactional]) -> None:
        tx = tx_db.begin_transaction()
        tx.commit()
        with pytest.raises(TransactionClosedError):
            tx.lookup(Simple, 1)
        with pytest.raises(TransactionClosedError):
            tx.insert(Simple, 1, "x")
        with pytest.raises(TransactionClosedError):
            tx.commit()
        with pytest.raises(TransactionClosedError):
            tx.rollback()

    def test_context_manager_commits(self, tx_db: Database[Transactional]) -> None:
        with tx_db.begin_transaction() as tx:
            tx.insert(Score, (1, 100), "A")
        assert tx.state == "committed"
        assert tx_db.lookup(Score, (1, 100)) == "A"

    def test_context_manager_rolls_back_on_error(self, tx_db: Database[Transactional]) -> None:
        with pytest.raises(RuntimeError):
            with tx_db.begin_transaction() as tx:
                tx.insert(Score, (1, 100), "A")
                raise RuntimeError("abort")
        assert tx.state == "rolled back"
        assert tx_db.lookup(Score, (1, 100)) is None

    def test_context_manager_after_explicit_rollback(
        self, tx_db: Database[Transactional]
    ) -> None:
        with tx_db.begin_transaction() as tx:
            tx.insert(Simple, 1, "x")
            tx.rollback()
        assert tx_db.lookup(Simple, 1) is None

    def test_snapshot_isolation(self, tx_db: Database[Transactional]) -> None:
        tx_db.insert(Simple, 1, "before")
        tx = tx_db.begin_transaction()
        tx_db.insert(Simple, 1, "after")

        assert tx.lookup(Simple, 1) == "before"
        tx.rollback()

    def test_index_scan_sees_own_writes(self, tx_db: Database[Transactional]) -> None:
        tx_db.insert(Score, (1, 100), "A")
        with tx_db.begin_transaction() as tx:
            tx.insert(Score, (1, 50), "Z")
            tx.insert(Score, (2, 1), "C")
            assert [e.key() for e in tx.lookup_index(Score, 1)] == [(1, 50), (1, 100)]

    def test_transaction_keeps_database(self, tx_db: Database[Transactional]) -> None:
        tx = tx_db.begin_transaction()
        assert tx.database is tx_db
        assert "active" in repr(tx)
        tx.rollback()

    def test_parent_closed(self, tx_db: Database[Transactional]) -> None:
        tx = tx_db.begin_transaction()
        tx_db.close()
        assert tx.state == "rolled back"
        with pytest.raises(EngineError, match="closed"):
            tx.insert(Simple, 1, "x")
        with pytest.raises(EngineError, match="closed"):
            tx.rollback()

    def test_block_error_survives_closed_database(
        self, tx_db: Database[Transactional], collector_registry: CollectorRegistry
    ) -> None:
        """The block's own exception reaches the caller, not a closed-database error."""
        with pytest.raises(KeyError, match="original"):
            with tx_db.begin_transaction() as tx:
                tx.insert(Simple, 1, "x")
                tx_db.close()
                raise KeyError("original")

        assert tx.state == "rolled back"
        assert collector_registry.get_sample_value("kv_tables_transactions_active") == 0.0

    def test_close_rolls_back_active_transactions(
        self,
        tx_db: Database[Transactional],
        memory_engine: MemoryEngine,
        db_path: Path,
        metrics_registry: MetricsRegistry,
        collector_registry: CollectorRegistry,
    ) -> None:
        first = tx_db.begin_transaction()
        second = tx_db.begin_transaction()
        first.insert(Simple, 1, "never")
        second.commit()
        tx_db.close()

        assert first.state == "rolled back"
        assert second.state == "committed"
        assert collector_registry.get_sample_value("kv_tables_transactions_active") == 0.0
        assert collector_registry.get_sample_value(
            "kv_tables_transactions_total", {"status": "rollback"}
        ) == 1.0

        with Database.open(
            TableConfig.for_tables(Simple, Score, Counter),
            db_path,
            engine=memory_engine,
            metrics=metrics_registry,
        ) as db:
            assert db.lookup(Simple, 1) is None

    def test_failed_commit_leaves_store_unchanged(
        self, memory_engine: MemoryEngine, temp_dir: Path, metrics_registry: MetricsRegistry
    ) -> None:
        with Database.open_transactional(
            TableConfig.for_tables(Simple, Refusing),
            temp_dir / "refusing",
            engine=memory_engine,
            metrics=metrics_registry,
        ) as db:
            tx = db.begin_transaction()
            tx.insert(Simple, 1, "written-first")
            for _ in range(MAX_PENDING_OPERANDS):
                tx.merge(Refusing, "hits", 1)

            with pytest.raises(EngineError, match="refuse"):
                tx.commit()
            assert tx.is_active
            tx.rollback()

            assert db.lookup(Simple, 1) is None

    def test_context_manager_rolls_back_failed_commit(
        self, memory_engine: MemoryEngine, temp_dir: Path, metrics_registry: MetricsRegistry
    ) -> None:
        with Database.open_transactional(
            TableConfig.for_tables(Simple, Refusing),
            temp_dir / "refusing",
            engine=memory_engine,
            metrics=metrics_registry,
        ) as db:
            with pytest.raises(EngineError, match="refuse"):
                with db.begin_transaction() as tx:
                    tx.insert(Simple, 1, "written-first")
                    for _ in range(MAX_PENDING_OPERANDS):
                        tx.merge(Refusing, "hits", 1)

            assert tx.state == "rolled back"
            assert db.lookup(Simple, 1) is None

    def test_transaction_metrics(
        self, tx_db: Database[Transactional], collector_registry: CollectorRegistry
    ) -> None:
        with tx_db.begin_transaction() as tx:
            tx.insert(Simple, 1, "x")
            assert collector_registry.get_sample_value("kv_tables_transactions_active") == 1.0
        tx_db.begin_transaction().rollback()

        assert collector_registry.get_sample_value(
            "kv_tables_transactions_total", {"status": "commit"}
        ) == 1.0
        assert collector_registry.get_sample_value(
            "kv_tables_transactions_total", {"status": "rollback"}
        ) == 1.0
        assert collector_registry.get_sample_value("kv_tables_transactions_active") == 0.0

    def test_default_transaction_options(
        self, memory_engine: MemoryEngine, temp_dir: Path, metrics_registry: MetricsRegistry
    ) -> None:
        with Database.open_transactional(
            TableConfig().add(Simple),
            temp_dir / "defaults",
            engine=memory_engine,
            metrics=metrics_registry,
        ) as db:
            with db.begin_transaction() as tx:
                tx.insert(Simple, 7, "seven")
            assert db.lookup(Simple, 7) == "seven"
