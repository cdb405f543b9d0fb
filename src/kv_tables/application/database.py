"""Database - typed entry point over an embedded key-value engine.

A Database couples an engine handle opened in one mode with the access
backend matching that mode, and checks the mode's capabilities before
delegating each typed call.

Usage:
    from kv_tables import Database, TableConfig, Writeable

    config = TableConfig().add(Score)
    with Database.open(config, "/path/to/db", Writeable) as db:
        db.insert(Score, (1, 100), 7)
        for entry in db.lookup_index(Score, 1):
            ...

    tx_db = Database.open_transactional(TableConfig().add(Score), "/path/to/tx")
    with tx_db.begin_transaction() as tx:
        tx.insert(Score, (1, 100), 8)
        # commits on exit, rolls back if the block raises

Thread Safety:
    A Database may be shared across threads; the engine handle provides
    the synchronisation. A Transaction belongs to one thread at a time.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Generic, Iterable, TypeVar

from kv_tables.adapters.outbound import create_engine
from kv_tables.domain.entities.entry import Entry
from kv_tables.domain.errors import (
    CapabilityError,
    ConfigurationError,
    EngineError,
    TransactionClosedError,
)
from kv_tables.domain.services.access import (
    DatabaseAccess,
    TransactionAccess,
    TransactionDatabaseAccess,
)
from kv_tables.domain.services.iterators import (
    KeyPredicate,
    SelectedEntryIterator,
    TableIterator,
)
from kv_tables.domain.services.registration import TableConfig
from kv_tables.domain.value_objects.mode import (
    Mode,
    ModeType,
    Secondary,
    Transactional,
    Writeable,
    mode_type_of,
)
from kv_tables.infrastructure.config import get_settings
from kv_tables.infrastructure.logging import get_logger
from kv_tables.infrastructure.metrics import MetricsRegistry, NullMetrics, get_metrics
from kv_tables.infrastructure.tracing import trace_span
from kv_tables.ports.inbound.access import Access
from kv_tables.ports.outbound.kv_engine import (
    EngineDatabase,
    KVEngine,
    TransactionOptions,
)

logger = get_logger(__name__)

E = TypeVar("E", bound=Entry)
M = TypeVar("M", bound=Mode)
T = TypeVar("T")


def _default_metrics() -> MetricsRegistry | NullMetrics:
    if get_settings().observability.metrics_enabled:
        return get_metrics()
    return NullMetrics()


class _TypedOperations(ABC):
    """Typed read/write surface shared by Database and Transaction."""

    _metrics: MetricsRegistry | NullMetrics

    @abstractmethod
    def _ready(self, operation: str, write: bool) -> Access:
        """Check the handle can serve ``operation`` and return its backend."""
        ...

    def _observe(self, operation: str, entry_type: type[Entry], call: Callable[[], T]) -> T:
        try:
            result = call()
        except Exception:
            self._metrics.operations_total.labels(
                operation=operation, partition=entry_type.partition_label(), status="error"
            ).inc()
            raise
        self._metrics.operations_total.labels(
            operation=operation, partition=entry_type.partition_label(), status="success"
        ).inc()
        return result

    def lookup(self, entry_type: type[E], key: Any) -> Any | None:
        """Return the value stored under ``key``, or None if absent."""
        access = self._ready("lookup", write=False)
        return self._observe("lookup", entry_type, lambda: access.lookup_entry(entry_type, key))

    def multi_lookup(self, entry_type: type[E], keys: Iterable[Any]) -> list[Any | None]:
        """Batched lookup; one slot per input key, in input order."""
        access = self._ready("multi_lookup", write=False)
        return self._observe(
            "multi_lookup", entry_type, lambda: access.lookup_entries(entry_type, keys)
        )

    def lookup_index(self, entry_type: type[E], index: Any) -> TableIterator[E]:
        """Iterate the entries under ``index`` in key order."""
        access = self._ready("lookup_index", write=False)
        return self._observe(
            "lookup_index", entry_type, lambda: access.lookup_entries_by_index(entry_type, index)
        )

    def lookup_index_selected(
        self, entry_type: type[E], index: Any, predicate: KeyPredicate
    ) -> SelectedEntryIterator[E]:
        """Index scan decoding values only for keys accepted by ``predicate``."""
        access = self._ready("lookup_index_selected", write=False)
        return self._observe(
            "lookup_index_selected",
            entry_type,
            lambda: access.lookup_selected_entries_by_index(entry_type, index, predicate),
        )

    def iter(self, entry_type: type[E]) -> TableIterator[E]:
        """Iterate every entry of the table in key order."""
        access = self._ready("iter", write=False)
        return self._observe("iter", entry_type, lambda: access.iter_entries(entry_type))

    def iter_selected(
        self, entry_type: type[E], predicate: KeyPredicate
    ) -> SelectedEntryIterator[E]:
        """Full scan decoding values only for keys accepted by ``predicate``."""
        access = self._ready("iter_selected", write=False)
        return self._observe(
            "iter_selected",
            entry_type,
            lambda: access.iter_selected_entries(entry_type, predicate),
        )

    def insert(self, entry_type: type[E], key: Any, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        access = self._ready("insert", write=True)
        self._observe("insert", entry_type, lambda: access.insert(entry_type, key, value))

    def merge(self, entry_type: type[E], key: Any, value: Any) -> None:
        """Queue ``value`` as a merge operand for ``key``."""
        access = self._ready("merge", write=True)
        self._observe("merge", entry_type, lambda: access.merge(entry_type, key, value))


class Database(_TypedOperations, Generic[M]):
    """A database opened in a fixed mode.

    Use the class methods ``open``, ``open_secondary`` and
    ``open_transactional`` rather than the constructor.

    Attributes:
        mode: The ModeType the database was opened in.
        path: Database path (the primary path for secondaries).
    """

    def __init__(
        self,
        handle: EngineDatabase,
        access: Access,
        mode: ModeType,
        path: Path,
        entry_types: tuple[type[Entry], ...],
        engine_name: str,
        metrics: MetricsRegistry | NullMetrics,
        secondary_path: Path | None = None,
    ) -> None:
        self._handle = handle
        self._access = access
        self._mode = mode
        self._path = path
        self._secondary_path = secondary_path
        self._entry_types = entry_types
        self._engine_name = engine_name
        self._metrics = metrics
        self._closed = False
        self._transactions: set[Transaction] = set()

    # -- Opening ---------------------------------------------------------------

    @classmethod
    def open(
        cls,
        config: TableConfig,
        path: str | Path,
        mode: type[Mode] | ModeType = Writeable,
        *,
        engine: KVEngine | None = None,
        metrics: MetricsRegistry | NullMetrics | None = None,
    ) -> Database[Any]:
        """Open a database read-only or writeable.

        Args:
            config: Registered entry types. Consumed by this call.
            path: Database path.
            mode: ReadOnly or Writeable.
            engine: Engine to open with. None uses the configured backend.
            metrics: Metrics registry. None uses the process registry.

        Raises:
            ConfigurationError: If the mode needs a different open call or
                the config was already consumed.
            EngineError: If the engine cannot open the database.
        """
        mode_type = mode_type_of(mode)
        if mode_type is ModeType.SECONDARY:
            raise ConfigurationError("Secondary databases are opened with open_secondary")
        if mode_type is ModeType.TRANSACTIONAL:
            raise ConfigurationError(
                "Transactional databases are opened with open_transactional"
            )
        path = _require_path(path, "path")
        engine = engine or create_engine()
        metrics = metrics or _default_metrics()
        options, partitions = config.consume()

        handle = _open_handle(
            engine,
            mode_type,
            path,
            metrics,
            lambda: engine.open(
                path, options, partitions, read_only=mode_type is ModeType.READ_ONLY
            ),
        )
        return cls(
            handle,
            DatabaseAccess(handle),
            mode_type,
            path,
            config.entry_types,
            engine.name,
            metrics,
        )

    @classmethod
    def open_secondary(
        cls,
        config: TableConfig,
        primary_path: str | Path,
        secondary_path: str | Path,
        *,
        engine: KVEngine | None = None,
        metrics: MetricsRegistry | NullMetrics | None = None,
    ) -> Database[Secondary]:
        """Open a read-only replica of the database at ``primary_path``.

        ``secondary_path`` is where the replica keeps its own state and must
        differ from the primary path.

        Raises:
            ConfigurationError: If either path is missing or both are equal.
            EngineError: If the primary cannot be opened.
        """
        primary = _require_path(primary_path, "primary_path")
        secondary = _require_path(secondary_path, "secondary_path")
        if primary == secondary:
            raise ConfigurationError("Secondary path must differ from the primary path")
        engine = engine or create_engine()
        metrics = metrics or _default_metrics()
        options, partitions = config.consume()

        handle = _open_handle(
            engine,
            ModeType.SECONDARY,
            primary,
            metrics,
            lambda: engine.open_secondary(primary, secondary, options, partitions),
        )
        return cls(
            handle,
            DatabaseAccess(handle),
            ModeType.SECONDARY,
            primary,
            config.entry_types,
            engine.name,
            metrics,
            secondary_path=secondary,
        )

    @classmethod
    def open_transactional(
        cls,
        config: TableConfig,
        path: str | Path,
        transaction_options: TransactionOptions | None = None,
        *,
        engine: KVEngine | None = None,
        metrics: MetricsRegistry | NullMetrics | None = None,
    ) -> Database[Transactional]:
        """Open a transactional database.

        Args:
            transaction_options: Engine transaction options. None uses the
                configured lock timeout.
        """
        path = _require_path(path, "path")
        engine = engine or create_engine()
        metrics = metrics or _default_metrics()
        if transaction_options is None:
            transaction_options = TransactionOptions(
                lock_timeout_ms=get_settings().engine.lock_timeout_ms
            )
        options, partitions = config.consume()

        handle = _open_handle(
            engine,
            ModeType.TRANSACTIONAL,
            path,
            metrics,
            lambda: engine.open_transactional(path, options, partitions, transaction_options),
        )
        return cls(
            handle,
            TransactionDatabaseAccess(handle),
            ModeType.TRANSACTIONAL,
            path,
            config.entry_types,
            engine.name,
            metrics,
        )

    # -- Properties ------------------------------------------------------------

    @property
    def mode(self) -> ModeType:
        return self._mode

    @property
    def path(self) -> Path:
        return self._path

    @property
    def secondary_path(self) -> Path | None:
        return self._secondary_path

    @property
    def partition_names(self) -> tuple[str, ...]:
        return tuple(self._handle.partition_names())

    @property
    def entry_types(self) -> tuple[type[Entry], ...]:
        return self._entry_types

    @property
    def engine_name(self) -> str:
        return self._engine_name

    @property
    def closed(self) -> bool:
        return self._closed

    # -- Operations ------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise EngineError(f"Database at {self._path} is closed")

    def _ready(self, operation: str, write: bool) -> Access:
        if write:
            self._mode.require_writeable(operation)
        self._check_open()
        return self._access

    def catch_up_with_primary(self) -> bool:
        """Advance a secondary to the primary's latest state.

        Returns:
            True on success. False if the engine failed to catch up; the
            failure is logged and the current view is kept.

        Raises:
            CapabilityError: If this database is not a secondary.
        """
        if not self._mode.can_catch_up:
            raise CapabilityError(self._mode.value, "catch_up_with_primary")
        self._check_open()

        with trace_span("kv_tables.catch_up", {"path": str(self._path)}) as span:
            try:
                self._handle.try_catch_up_with_primary()  # type: ignore[attr-defined]
            except EngineError as e:
                span.set_attribute("kv_tables.caught_up", False)
                self._metrics.catch_ups_total.labels(status="error").inc()
                logger.warning("catch_up_failed", path=str(self._path), error=str(e))
                return False
            span.set_attribute("kv_tables.caught_up", True)

        self._metrics.catch_ups_total.labels(status="success").inc()
        logger.debug("caught_up_with_primary", path=str(self._path))
        return True

    def begin_transaction(self) -> Transaction:
        """Begin a transaction.

        Raises:
            CapabilityError: If this database is not transactional.
        """
        if not self._mode.is_transactional:
            raise CapabilityError(self._mode.value, "begin_transaction")
        self._check_open()
        access = self._access.begin()  # type: ignore[attr-defined]
        transaction = Transaction(self, access, self._metrics)
        self._transactions.add(transaction)
        return transaction

    def close(self) -> None:
        """Close the database. Closing twice is a no-op.

        Transactions still active are rolled back first.
        """
        if self._closed:
            return
        for transaction in list(self._transactions):
            transaction._abort("database_closed")
        self._closed = True
        self._handle.close()
        self._metrics.open_databases.labels(mode=self._mode.value).dec()
        logger.info("database_closed", mode=self._mode.value, path=str(self._path))

    def __enter__(self) -> Database[M]:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Database(path={str(self._path)!r}, mode={self._mode.value}, {state})"


class Transaction(_TypedOperations):
    """An open transaction on a transactional Database.

    Reads see the transaction's own writes on top of the snapshot taken at
    begin. ``commit`` and ``rollback`` end it; any later call raises
    TransactionClosedError. Used as a context manager it commits when the
    block succeeds and rolls back when it raises, letting the exception
    propagate. Closing the database rolls back its active transactions;
    calls made after that raise EngineError.
    """

    def __init__(
        self,
        database: Database[Any],
        access: TransactionAccess,
        metrics: MetricsRegistry | NullMetrics,
    ) -> None:
        self._database = database
        self._access = access
        self._metrics = metrics
        self._state = "active"
        self._metrics.transactions_active.inc()
        logger.debug("transaction_begun", path=str(database.path))

    @property
    def database(self) -> Database[Any]:
        return self._database

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == "active"

    def _check_active(self) -> None:
        self._database._check_open()
        if self._state != "active":
            raise TransactionClosedError(f"Transaction already {self._state}")

    def _ready(self, operation: str, write: bool) -> Access:
        self._check_active()
        return self._access

    def commit(self) -> None:
        """Atomically apply the transaction's writes.

        Raises:
            TransactionClosedError: If the transaction already ended.
            EngineError: If the engine rejects the commit. The transaction
                stays active so it can be rolled back.
        """
        self._check_active()
        with trace_span("kv_tables.commit", {"path": str(self._database.path)}):
            try:
                self._access.commit()
            except EngineError as e:
                logger.warning("transaction_commit_failed", error=str(e))
                raise
        self._finish("committed", "commit")

    def rollback(self) -> None:
        """Discard the transaction's writes."""
        self._check_active()
        self._access.rollback()
        self._finish("rolled back", "rollback")

    def _abort(self, reason: str) -> None:
        """Roll back without raising; the transaction always ends."""
        if not self.is_active:
            return
        try:
            self._access.rollback()
        except EngineError as e:
            logger.warning("transaction_rollback_failed", reason=reason, error=str(e))
        self._finish("rolled back", "rollback")

    def _finish(self, state: str, status: str) -> None:
        self._state = state
        self._database._transactions.discard(self)
        self._metrics.transactions_active.dec()
        self._metrics.transactions_total.labels(status=status).inc()
        logger.debug("transaction_finished", status=status, path=str(self._database.path))

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.is_active:
            return
        if exc_type is not None:
            self._abort("block_raised")
            return
        try:
            self.commit()
        except EngineError:
            self._abort("commit_failed")
            raise

    def __repr__(self) -> str:
        return f"Transaction(path={str(self._database.path)!r}, state={self._state})"


def _require_path(path: str | Path | None, label: str) -> Path:
    if path is None or str(path) == "":
        raise ConfigurationError(f"{label} is required")
    return Path(path)


def _open_handle(
    engine: KVEngine,
    mode: ModeType,
    path: Path,
    metrics: MetricsRegistry | NullMetrics,
    opener: Callable[[], T],
) -> T:
    """Run an engine open call with tracing, metrics and logging."""
    started = time.perf_counter()
    attributes = {"mode": mode.value, "path": str(path), "engine": engine.name}

    with trace_span("kv_tables.open", attributes):
        try:
            handle = opener()
        except EngineError as e:
            logger.error("database_open_failed", error=str(e), **attributes)
            raise

    metrics.open_latency_seconds.labels(mode=mode.value).observe(
        time.perf_counter() - started
    )
    metrics.open_databases.labels(mode=mode.value).inc()
    logger.info("database_opened", partitions=handle.partition_names(), **attributes)
    return handle
