"""In-memory key-value engine.

This adapter implements the KVEngine port without any native dependency.
Every database path maps to one in-process store; each partition is a
sortedcontainers.SortedDict from key bytes to a record, so iteration is in
byte-wise key order.

Key concepts:
- Record: a base value plus merge operands not yet folded into it.
  Operands are resolved with the partition's merge operator when read,
  and folded eagerly once MAX_PENDING_OPERANDS accumulate.
- Primary handles (writeable, transactional) read and write the store's
  live partitions. Only one primary handle may be open per store.
- Read-only and secondary handles see a snapshot taken at open. A
  secondary refreshes its snapshot when it catches up with the primary.
- Transactions read a snapshot taken at begin plus their own buffered
  writes; commit stages every record before publishing any of them, so a
  failing merge leaves the store untouched. There is no conflict
  detection: the last transaction to commit wins.
- Snapshots are copy-on-write: taking one is O(1) and the first write
  after it copies the partition once.

Thread Safety:
    Each store has one RLock shared by every handle opened on it.
    Iterators take a snapshot under the lock when created and see a
    consistent view from then on.
"""

from __future__ import annotations

import heapq
import threading
from dataclasses import dataclass, field
from operator import itemgetter
from pathlib import Path
from typing import Callable, Iterator, Sequence

from sortedcontainers import SortedDict

from kv_tables.domain.errors import EngineError
from kv_tables.domain.value_objects.partition import (
    DEFAULT_PARTITION_NAME,
    DatabaseOptions,
    PartitionDescriptor,
    PartitionOptions,
)
from kv_tables.infrastructure.logging import get_logger
from kv_tables.ports.outbound.kv_engine import Cursor, TransactionOptions

logger = get_logger(__name__)

# Pending merge operands per key before they are folded into the base value
MAX_PENDING_OPERANDS = 16


@dataclass(frozen=True, slots=True)
class _Record:
    """Stored state of one key.

    ``base`` is None only while the key has never been put, in which case
    ``operands`` holds at least one merge operand.
    """

    base: bytes | None
    operands: tuple[bytes, ...] = ()

    def with_operand(self, operand: bytes) -> _Record:
        return _Record(self.base, self.operands + (operand,))


def _combine(current: _Record | None, write: _Record | None) -> _Record | None:
    """Layer a buffered write on top of the current record.

    A write with a base replaces the current record outright; a write made
    only of operands extends it.
    """
    if write is None:
        return current
    if write.base is not None or current is None:
        return write
    return _Record(current.base, current.operands + write.operands)


class _Table:
    """Ordered records of one partition with copy-on-write snapshots.

    A snapshot hands out the current SortedDict and marks it shared; the
    next write replaces it with a private copy, so snapshots never change.
    Callers hold the store lock.
    """

    __slots__ = ("data", "_shared")

    def __init__(self, data: SortedDict | None = None) -> None:
        self.data = SortedDict() if data is None else data
        self._shared = False

    def snapshot(self) -> SortedDict:
        self._shared = True
        return self.data

    def writable(self) -> SortedDict:
        if self._shared:
            self.data = self.data.copy()
            self._shared = False
        return self.data


@dataclass(eq=False)
class MemoryPartition:
    """Handle of one open partition."""

    name: str
    options: PartitionOptions
    table: _Table

    @property
    def data(self) -> SortedDict:
        return self.table.data

    def resolve(self, key: bytes, record: _Record) -> bytes:
        """Compute the visible value of ``record``.

        Raises:
            EngineError: If operands are pending without a merge operator, or
                the merge operator fails.
        """
        if not record.operands:
            return record.base  # type: ignore[return-value]
        operator = self.options.merge_operator
        if operator is None:
            raise EngineError(
                f"Partition {self.name!r} has merge operands but no merge operator"
            )
        try:
            return bytes(operator(key, record.base, record.operands))
        except Exception as e:
            raise EngineError(
                f"Merge operator {operator.name!r} failed for key {key.hex()}"
            ) from e

    def require_merge_operator(self) -> None:
        if self.options.merge_operator is None:
            raise EngineError(f"Partition {self.name!r} has no merge operator")

    def stage(self, key: bytes, write: _Record) -> _Record:
        """Compute the record ``write`` leaves under ``key`` without storing it.

        Raises:
            EngineError: If folding pending operands fails.
        """
        record = _combine(self.data.get(key), write)
        assert record is not None
        if len(record.operands) >= MAX_PENDING_OPERANDS:
            record = _Record(self.resolve(key, record))
        return record

    def apply(self, key: bytes, write: _Record) -> None:
        """Apply a write. The caller holds the store lock."""
        record = self.stage(key, write)
        self.table.writable()[key] = record


def _cursor(
    partition: MemoryPartition,
    items: Iterator[tuple[bytes, _Record]],
    check_open: Callable[[], None],
) -> Cursor:
    for key, record in items:
        check_open()
        yield key, partition.resolve(key, record)


def _items_from(data: SortedDict, start: bytes | None) -> Iterator[tuple[bytes, _Record]]:
    for key in data.irange(minimum=start):
        yield key, data[key]


@dataclass
class _Store:
    """All partitions stored under one database path."""

    path: Path
    lock: threading.RLock = field(default_factory=threading.RLock)
    tables: dict[str, _Table] = field(
        default_factory=lambda: {DEFAULT_PARTITION_NAME: _Table()}
    )
    writer: object | None = None

    def snapshot(self, names: Sequence[str]) -> dict[str, SortedDict]:
        with self.lock:
            return {name: self.tables[name].snapshot() for name in names}


class MemoryDatabase:
    """An open in-memory database handle (read-only or writeable)."""

    def __init__(
        self,
        store: _Store,
        default: MemoryPartition,
        partitions: dict[str, MemoryPartition],
        read_only: bool,
    ) -> None:
        self._store = store
        self._lock = store.lock
        self._default = default
        self._partitions = partitions
        self._read_only = read_only
        self._closed = False

    @property
    def path(self) -> Path:
        return self._store.path

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def default_partition(self) -> MemoryPartition:
        self._check_open()
        return self._default

    def partition(self, name: str) -> MemoryPartition | None:
        self._check_open()
        return self._partitions.get(name)

    def partition_names(self) -> list[str]:
        return list(self._partitions)

    def all_partitions(self) -> list[MemoryPartition]:
        return [self._default, *self._partitions.values()]

    def _check_open(self) -> None:
        if self._closed:
            raise EngineError(f"Database at {self._store.path} is closed")

    def _check_writeable(self, operation: str) -> None:
        self._check_open()
        if self._read_only:
            raise EngineError(f"Cannot {operation}: database opened read-only")

    # -- KVStore ---------------------------------------------------------------

    def get(self, partition: MemoryPartition, key: bytes) -> bytes | None:
        self._check_open()
        with self._lock:
            record = partition.data.get(key)
        if record is None:
            return None
        return partition.resolve(key, record)

    def multi_get(
        self, partition: MemoryPartition, keys: Sequence[bytes]
    ) -> list[bytes | None]:
        return [self.get(partition, key) for key in keys]

    def iterate(self, partition: MemoryPartition, start: bytes | None = None) -> Cursor:
        self._check_open()
        with self._lock:
            data = partition.table.snapshot()
        return _cursor(partition, _items_from(data, start), self._check_open)

    def put(self, partition: MemoryPartition, key: bytes, value: bytes) -> None:
        self._check_writeable("put")
        with self._lock:
            partition.apply(bytes(key), _Record(bytes(value)))

    def merge(self, partition: MemoryPartition, key: bytes, operand: bytes) -> None:
        self._check_writeable("merge")
        partition.require_merge_operator()
        with self._lock:
            partition.apply(bytes(key), _Record(None, (bytes(operand),)))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with self._lock:
            if self._store.writer is self:
                self._store.writer = None
        logger.debug("memory_database_closed", path=str(self._store.path))


class MemorySecondaryDatabase(MemoryDatabase):
    """Read-only replica whose view can be advanced to the primary's state."""

    def __init__(
        self,
        engine: MemoryEngine,
        store: _Store,
        default: MemoryPartition,
        partitions: dict[str, MemoryPartition],
        secondary_path: Path,
    ) -> None:
        super().__init__(store, default, partitions, read_only=True)
        self._engine = engine
        self._secondary_path = secondary_path

    @property
    def secondary_path(self) -> Path:
        return self._secondary_path

    def try_catch_up_with_primary(self) -> None:
        self._check_open()
        if self._engine.store(self._store.path) is not self._store:
            raise EngineError(f"Primary at {self._store.path} no longer exists")

        partitions = self.all_partitions()
        fresh = self._store.snapshot([p.name for p in partitions])
        with self._lock:
            for partition in partitions:
                partition.table = _Table(fresh[partition.name])


class MemoryTransaction:
    """A snapshot transaction with buffered writes."""

    def __init__(
        self, database: MemoryTransactionDatabase, options: TransactionOptions
    ) -> None:
        self._database = database
        self._lock = threading.RLock()
        self._snapshot: dict[str, SortedDict] | None = None
        if options.set_snapshot:
            self._snapshot = database.snapshot_partitions()
        self._writes: dict[str, SortedDict] = {}
        self._handles: dict[str, MemoryPartition] = {}
        self._state = "active"

    @property
    def state(self) -> str:
        return self._state

    def _check_active(self) -> None:
        if self._state != "active":
            raise EngineError(f"Transaction is {self._state}")
        self._database._check_open()

    def _base(self, partition: MemoryPartition, frozen: bool = False) -> SortedDict:
        """Committed records this transaction reads. The caller holds the store lock.

        ``frozen`` asks for a view later commits cannot change.
        """
        if self._snapshot is not None:
            return self._snapshot[partition.name]
        if frozen:
            return partition.table.snapshot()
        return partition.data

    def _buffer(self, partition: MemoryPartition) -> SortedDict:
        self._handles[partition.name] = partition
        return self._writes.setdefault(partition.name, SortedDict())

    # -- KVStore ---------------------------------------------------------------

    def get(self, partition: MemoryPartition, key: bytes) -> bytes | None:
        self._check_active()
        with self._database._lock:
            current = self._base(partition).get(key)
        with self._lock:
            write = self._writes.get(partition.name, {}).get(key)
        record = _combine(current, write)
        if record is None:
            return None
        return partition.resolve(key, record)

    def multi_get(
        self, partition: MemoryPartition, keys: Sequence[bytes]
    ) -> list[bytes | None]:
        return [self.get(partition, key) for key in keys]

    def iterate(self, partition: MemoryPartition, start: bytes | None = None) -> Cursor:
        self._check_active()
        with self._database._lock:
            base = self._base(partition, frozen=True)
        with self._lock:
            writes = self._writes.get(partition.name, SortedDict()).copy()
        return _cursor(partition, _overlay(base, writes, start), self._check_active)

    def put(self, partition: MemoryPartition, key: bytes, value: bytes) -> None:
        self._check_active()
        with self._lock:
            self._buffer(partition)[bytes(key)] = _Record(bytes(value))

    def merge(self, partition: MemoryPartition, key: bytes, operand: bytes) -> None:
        self._check_active()
        partition.require_merge_operator()
        key = bytes(key)
        with self._lock:
            writes = self._buffer(partition)
            write = writes.get(key)
            if write is None:
                writes[key] = _Record(None, (bytes(operand),))
            else:
                writes[key] = write.with_operand(bytes(operand))

    # -- Terminal operations ---------------------------------------------------

    def commit(self) -> None:
        self._check_active()
        with self._database._lock, self._lock:
            staged = []
            for name, writes in self._writes.items():
                partition = self._handles[name]
                for key, write in writes.items():
                    staged.append((partition, key, partition.stage(key, write)))
            for partition, key, record in staged:
                partition.table.writable()[key] = record
        self._finish("committed")

    def rollback(self) -> None:
        self._check_active()
        self._finish("rolled back")

    def _finish(self, state: str) -> None:
        self._state = state
        self._writes = {}
        self._handles = {}
        self._snapshot = None


def _overlay(
    base: SortedDict, writes: SortedDict, start: bytes | None
) -> Iterator[tuple[bytes, _Record]]:
    """Merge committed records with buffered writes in key order."""
    merged = heapq.merge(
        ((key, 0) for key in base.irange(minimum=start)),
        ((key, 1) for key in writes.irange(minimum=start)),
        key=itemgetter(0),
    )
    previous: bytes | None = None
    for key, _ in merged:
        if key == previous:
            continue
        previous = key
        record = _combine(base.get(key), writes.get(key))
        if record is not None:
            yield key, record


class MemoryTransactionDatabase(MemoryDatabase):
    """Writeable database that can begin snapshot transactions."""

    def __init__(
        self,
        store: _Store,
        default: MemoryPartition,
        partitions: dict[str, MemoryPartition],
        transaction_options: TransactionOptions,
    ) -> None:
        super().__init__(store, default, partitions, read_only=False)
        self._transaction_options = transaction_options

    def snapshot_partitions(self) -> dict[str, SortedDict]:
        with self._lock:
            return {p.name: p.table.snapshot() for p in self.all_partitions()}

    def transaction(self) -> MemoryTransaction:
        self._check_open()
        return MemoryTransaction(self, self._transaction_options)


class MemoryEngine:
    """In-process engine keyed by database path.

    Stores outlive the handles opened on them, so reopening a path in the
    same engine sees the data written before.
    """

    def __init__(self) -> None:
        self._stores: dict[Path, _Store] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "memory"

    @staticmethod
    def _normalize(path: Path | str) -> Path:
        return Path(path).expanduser().resolve()

    def store(self, path: Path | str) -> _Store | None:
        with self._lock:
            return self._stores.get(self._normalize(path))

    def exists(self, path: Path | str) -> bool:
        return self.store(path) is not None

    def destroy(self, path: Path | str) -> None:
        """Drop the store at ``path``.

        Raises:
            EngineError: If a primary handle is still open on it.
        """
        key = self._normalize(path)
        with self._lock:
            store = self._stores.get(key)
            if store is None:
                return
            if store.writer is not None:
                raise EngineError(f"Database at {key} is in use")
            del self._stores[key]
        logger.info("memory_store_destroyed", path=str(key))

    def _primary_store(self, path: Path, options: DatabaseOptions) -> _Store:
        key = self._normalize(path)
        with self._lock:
            store = self._stores.get(key)
            if store is None:
                if not options.create_if_missing:
                    raise EngineError(f"Database at {key} does not exist")
                store = self._stores[key] = _Store(key)
                logger.debug("memory_store_created", path=str(key))
        return store

    def _existing_store(self, path: Path) -> _Store:
        store = self.store(path)
        if store is None:
            raise EngineError(f"Database at {self._normalize(path)} does not exist")
        return store

    def _bind_live(
        self,
        store: _Store,
        options: DatabaseOptions,
        partitions: Sequence[PartitionDescriptor],
    ) -> tuple[MemoryPartition, dict[str, MemoryPartition]]:
        with store.lock:
            for descriptor in partitions:
                if descriptor.name not in store.tables:
                    if not options.create_missing_partitions:
                        raise EngineError(
                            f"Partition {descriptor.name!r} does not exist at {store.path}"
                        )
                    store.tables[descriptor.name] = _Table()
            default = MemoryPartition(
                DEFAULT_PARTITION_NAME, options.default, store.tables[DEFAULT_PARTITION_NAME]
            )
            named = {
                d.name: MemoryPartition(d.name, d.options, store.tables[d.name])
                for d in partitions
            }
        return default, named

    def _bind_copy(
        self,
        store: _Store,
        options: DatabaseOptions,
        partitions: Sequence[PartitionDescriptor],
    ) -> tuple[MemoryPartition, dict[str, MemoryPartition]]:
        with store.lock:
            missing = [d.name for d in partitions if d.name not in store.tables]
            if missing:
                raise EngineError(f"Partitions {missing} do not exist at {store.path}")
            data = store.snapshot([DEFAULT_PARTITION_NAME, *(d.name for d in partitions)])
        default = MemoryPartition(
            DEFAULT_PARTITION_NAME, options.default, _Table(data[DEFAULT_PARTITION_NAME])
        )
        named = {
            d.name: MemoryPartition(d.name, d.options, _Table(data[d.name])) for d in partitions
        }
        return default, named

    @staticmethod
    def _acquire_writer(store: _Store, handle: MemoryDatabase) -> None:
        with store.lock:
            if store.writer is not None:
                raise EngineError(
                    f"Database at {store.path} is already open by another primary handle"
                )
            store.writer = handle

    def open(
        self,
        path: Path,
        options: DatabaseOptions,
        partitions: Sequence[PartitionDescriptor],
        read_only: bool = False,
    ) -> MemoryDatabase:
        if read_only:
            store = self._existing_store(path)
            default, named = self._bind_copy(store, options, partitions)
            return MemoryDatabase(store, default, named, read_only=True)

        store = self._primary_store(path, options)
        default, named = self._bind_live(store, options, partitions)
        database = MemoryDatabase(store, default, named, read_only=False)
        self._acquire_writer(store, database)
        return database

    def open_secondary(
        self,
        primary_path: Path,
        secondary_path: Path,
        options: DatabaseOptions,
        partitions: Sequence[PartitionDescriptor],
    ) -> MemorySecondaryDatabase:
        store = self._existing_store(primary_path)
        default, named = self._bind_copy(store, options, partitions)
        return MemorySecondaryDatabase(self, store, default, named, Path(secondary_path))

    def open_transactional(
        self,
        path: Path,
        options: DatabaseOptions,
        partitions: Sequence[PartitionDescriptor],
        transaction_options: TransactionOptions,
    ) -> MemoryTransactionDatabase:
        store = self._primary_store(path, options)
        default, named = self._bind_live(store, options, partitions)
        database = MemoryTransactionDatabase(store, default, named, transaction_options)
        self._acquire_writer(store, database)
        return database
