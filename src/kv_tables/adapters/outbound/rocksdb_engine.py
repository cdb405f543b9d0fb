"""RocksDB engine adapter (optional dependency).

Implements the KVEngine port over python-rocksdb (imported as ``rocksdb``).
Registered partitions map to column families; Indexed entries get a fixed
prefix extractor of ``index_length`` bytes and entries with an associative
merge get a RocksDB associative merge operator.

Supported modes are read-only and writeable. The python-rocksdb binding
exposes neither secondary instances nor TransactionDB, so those modes raise
UnsupportedModeError.

Install
-------
    pip install "kv-tables[rocksdb]"
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

from kv_tables.domain.errors import EngineError, UnsupportedModeError
from kv_tables.domain.value_objects.partition import (
    DatabaseOptions,
    MergeOperator,
    PartitionDescriptor,
    PartitionOptions,
)
from kv_tables.infrastructure.logging import get_logger
from kv_tables.ports.outbound.kv_engine import Cursor, TransactionOptions

logger = get_logger(__name__)


def _load_rocksdb() -> Any:
    try:
        import rocksdb
    except ImportError as e:
        raise EngineError(
            "RocksDB backend not available: failed to import 'rocksdb' "
            f"({type(e).__name__}: {e}). "
            'Install with: pip install "kv-tables[rocksdb]"'
        ) from e
    return rocksdb


def _merge_operator_for(rocksdb: Any, operator: MergeOperator) -> Any:
    """Wrap a MergeOperator as a RocksDB associative merge operator."""

    class _AssociativeMerge(rocksdb.interfaces.AssociativeMergeOperator):
        def merge(self, key: bytes, existing_value: bytes | None, value: bytes):
            return True, bytes(operator(key, existing_value, [value]))

        def name(self) -> bytes:
            return operator.name.encode()

    return _AssociativeMerge()


def _prefix_extractor_for(rocksdb: Any, length: int) -> Any:
    """Build a fixed-length prefix extractor."""

    class _FixedPrefix(rocksdb.interfaces.SliceTransform):
        def name(self) -> bytes:
            return f"kv_tables.fixed_prefix.{length}".encode()

        def transform(self, src: bytes):
            return (0, length)

        def in_domain(self, src: bytes) -> bool:
            return len(src) >= length

        def in_range(self, dst: bytes) -> bool:
            return len(dst) == length

    return _FixedPrefix()


def _apply_partition_options(rocksdb: Any, target: Any, options: PartitionOptions) -> Any:
    if options.merge_operator is not None:
        target.merge_operator = _merge_operator_for(rocksdb, options.merge_operator)
    if options.prefix_length is not None:
        target.prefix_extractor = _prefix_extractor_for(rocksdb, options.prefix_length)
    return target


class RocksDBPartition:
    """Handle of one open column family (or the default partition)."""

    def __init__(self, name: str, handle: Any | None, options: PartitionOptions) -> None:
        self.name = name
        self.handle = handle
        self.options = options

    def key(self, key: bytes) -> Any:
        # python-rocksdb addresses column families with (handle, key) tuples
        return key if self.handle is None else (self.handle, key)


class RocksDBDatabase:
    """An open RocksDB database."""

    def __init__(
        self,
        db: Any,
        path: Path,
        default: RocksDBPartition,
        partitions: dict[str, RocksDBPartition],
        read_only: bool,
    ) -> None:
        self._db = db
        self._path = path
        self._default = default
        self._partitions = partitions
        self._read_only = read_only

    @property
    def path(self) -> Path:
        return self._path

    @property
    def default_partition(self) -> RocksDBPartition:
        self._check_open()
        return self._default

    def partition(self, name: str) -> RocksDBPartition | None:
        self._check_open()
        return self._partitions.get(name)

    def partition_names(self) -> list[str]:
        return list(self._partitions)

    def _check_open(self) -> Any:
        if self._db is None:
            raise EngineError(f"Database at {self._path} is closed")
        return self._db

    def _check_writeable(self, operation: str) -> Any:
        db = self._check_open()
        if self._read_only:
            raise EngineError(f"Cannot {operation}: database opened read-only")
        return db

    def get(self, partition: RocksDBPartition, key: bytes) -> bytes | None:
        db = self._check_open()
        try:
            value = db.get(partition.key(key))
        except Exception as e:
            raise EngineError(f"RocksDB get failed: {e}") from e
        return None if value is None else bytes(value)

    def multi_get(
        self, partition: RocksDBPartition, keys: Sequence[bytes]
    ) -> list[bytes | None]:
        # One get per key: multi_get returns a dict, which would fold duplicates
        return [self.get(partition, key) for key in keys]

    def iterate(self, partition: RocksDBPartition, start: bytes | None = None) -> Cursor:
        db = self._check_open()
        try:
            if partition.handle is None:
                it = db.iteritems()
            else:
                it = db.iteritems(partition.handle)
            if start is None:
                it.seek_to_first()
            else:
                it.seek(start)
        except Exception as e:
            raise EngineError(f"RocksDB iterator failed: {e}") from e
        return self._cursor(it)

    def _cursor(self, it: Any) -> Cursor:
        try:
            for key, value in it:
                self._check_open()
                if isinstance(key, tuple):
                    # Column family iterators yield ((handle, key), value)
                    key = key[1]
                yield bytes(key), bytes(value)
        except EngineError:
            raise
        except Exception as e:
            raise EngineError(f"RocksDB iteration failed: {e}") from e
        finally:
            del it

    def put(self, partition: RocksDBPartition, key: bytes, value: bytes) -> None:
        db = self._check_writeable("put")
        try:
            db.put(partition.key(key), value)
        except Exception as e:
            raise EngineError(f"RocksDB put failed: {e}") from e

    def merge(self, partition: RocksDBPartition, key: bytes, operand: bytes) -> None:
        db = self._check_writeable("merge")
        if partition.options.merge_operator is None:
            raise EngineError(f"Partition {partition.name!r} has no merge operator")
        try:
            db.merge(partition.key(key), operand)
        except Exception as e:
            raise EngineError(f"RocksDB merge failed: {e}") from e

    def close(self) -> None:
        db, self._db = self._db, None
        if db is None:
            return
        close = getattr(db, "close", None)
        if close is not None:
            close()
        logger.debug("rocksdb_database_closed", path=str(self._path))


class RocksDBEngine:
    """Opens RocksDB databases through python-rocksdb.

    Args:
        max_open_files: File descriptor budget; -1 for unlimited.
    """

    def __init__(self, max_open_files: int = 512) -> None:
        self._max_open_files = max_open_files

    @property
    def name(self) -> str:
        return "rocksdb"

    def _options(self, rocksdb: Any, options: DatabaseOptions, read_only: bool) -> Any:
        opts = rocksdb.Options()
        opts.create_if_missing = options.create_if_missing and not read_only
        opts.max_open_files = self._max_open_files
        return _apply_partition_options(rocksdb, opts, options.default)

    def _existing_families(self, rocksdb: Any, path: Path, opts: Any) -> set[bytes]:
        if not (path / "CURRENT").exists():
            return set()
        try:
            return set(rocksdb.list_column_families(str(path), opts))
        except Exception as e:
            raise EngineError(f"Cannot list column families at {path}: {e}") from e

    def open(
        self,
        path: Path,
        options: DatabaseOptions,
        partitions: Sequence[PartitionDescriptor],
        read_only: bool = False,
    ) -> RocksDBDatabase:
        rocksdb = _load_rocksdb()
        path = Path(path)
        opts = self._options(rocksdb, options, read_only)

        existing = self._existing_families(rocksdb, path, opts)
        existing.discard(b"default")
        registered = {d.name.encode(): d for d in partitions}

        missing = [name for name in registered if name not in existing]
        if missing and (read_only or not options.create_missing_partitions):
            raise EngineError(
                f"Partitions {[m.decode() for m in missing]} do not exist at {path}"
            )

        # Every existing column family must be opened
        families = {}
        for name in existing:
            cf_options = rocksdb.ColumnFamilyOptions()
            if name in registered:
                _apply_partition_options(rocksdb, cf_options, registered[name].options)
            families[name] = cf_options

        try:
            if not read_only:
                path.mkdir(parents=True, exist_ok=True)
            db = rocksdb.DB(str(path), opts, column_families=families, read_only=read_only)
            for name in missing:
                cf_options = _apply_partition_options(
                    rocksdb, rocksdb.ColumnFamilyOptions(), registered[name].options
                )
                db.create_column_family(name, cf_options)
            handles = {
                d.name: RocksDBPartition(
                    d.name, db.get_column_family(d.name.encode()), d.options
                )
                for d in partitions
            }
        except Exception as e:
            raise EngineError(f"Cannot open RocksDB at {path}: {e}") from e

        logger.debug(
            "rocksdb_database_opened",
            path=str(path),
            read_only=read_only,
            created_partitions=[m.decode() for m in missing],
        )
        default = RocksDBPartition("default", None, options.default)
        return RocksDBDatabase(db, path, default, handles, read_only)

    def open_secondary(
        self,
        primary_path: Path,
        secondary_path: Path,
        options: DatabaseOptions,
        partitions: Sequence[PartitionDescriptor],
    ) -> RocksDBDatabase:
        raise UnsupportedModeError(self.name, "secondary")

    def open_transactional(
        self,
        path: Path,
        options: DatabaseOptions,
        partitions: Sequence[PartitionDescriptor],
        transaction_options: TransactionOptions,
    ) -> RocksDBDatabase:
        raise UnsupportedModeError(self.name, "transactional")
