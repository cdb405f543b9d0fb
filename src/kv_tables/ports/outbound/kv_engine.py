"""Key-value engine port.

This outbound port defines the contract the typed table layer needs from
an embedded, ordered, byte-oriented key-value engine (RocksDB-shaped):

- Ordered iteration from a seek position
- Point lookups, single and batched
- Atomic single-key writes and associative merges
- Named partitions (column families)
- Transactions with isolated reads and atomic commit

The engine's internal algorithms (compaction, WAL replay, MVCC) are out of
scope; adapters wrap a concrete engine and translate its native errors into
EngineError.

Thread Safety:
    Database handles must be safe to share across threads. The table layer
    adds no locking of its own.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Protocol, Sequence

from kv_tables.domain.value_objects.partition import (
    DatabaseOptions,
    PartitionDescriptor,
)

PartitionHandle = Any
"""Opaque engine handle for an open partition."""

Cursor = Iterator[tuple[bytes, bytes]]
"""Ordered (key, value) cursor produced by KVStore.iterate."""


@dataclass(frozen=True, slots=True)
class TransactionOptions:
    """Engine options for transactional databases.

    Attributes:
        lock_timeout_ms: How long a transaction waits for a key lock before
            failing. Negative means wait forever.
        set_snapshot: Take the read snapshot when the transaction begins.
    """

    lock_timeout_ms: int = 1000
    set_snapshot: bool = True


class KVStore(Protocol):
    """Read/write surface shared by database handles and transactions."""

    @abstractmethod
    def get(self, partition: PartitionHandle, key: bytes) -> bytes | None:
        """Fetch the value stored under ``key``, or None if absent.

        Raises:
            EngineError: If the engine read fails.
        """
        ...

    @abstractmethod
    def multi_get(
        self, partition: PartitionHandle, keys: Sequence[bytes]
    ) -> list[bytes | None]:
        """Fetch many keys at once.

        Returns:
            One slot per input key, in input order.
        """
        ...

    @abstractmethod
    def iterate(self, partition: PartitionHandle, start: bytes | None = None) -> Cursor:
        """Iterate (key, value) pairs in key order.

        Args:
            partition: The partition to scan.
            start: Seek position; iteration begins at the first key >= start.
                None starts at the first key.

        Yields:
            (key, value) tuples in ascending byte-wise key order.
        """
        ...

    @abstractmethod
    def put(self, partition: PartitionHandle, key: bytes, value: bytes) -> None:
        """Store ``value`` under ``key``, replacing any existing value."""
        ...

    @abstractmethod
    def merge(self, partition: PartitionHandle, key: bytes, operand: bytes) -> None:
        """Queue a merge operand for ``key``.

        Raises:
            EngineError: If the partition has no merge operator.
        """
        ...


class EngineDatabase(KVStore, Protocol):
    """An open engine database."""

    @property
    @abstractmethod
    def default_partition(self) -> PartitionHandle:
        """Handle of the unnamed default partition."""
        ...

    @abstractmethod
    def partition(self, name: str) -> PartitionHandle | None:
        """Resolve a partition name to its handle, or None if not open."""
        ...

    @abstractmethod
    def partition_names(self) -> list[str]:
        """Names of the open named partitions."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the database. Further calls raise EngineError."""
        ...


class EngineSecondaryDatabase(EngineDatabase, Protocol):
    """A read-only replica of a primary database."""

    @abstractmethod
    def try_catch_up_with_primary(self) -> None:
        """Advance this replica's view to the primary's latest state.

        Raises:
            EngineError: If catching up fails. The current view is unchanged.
        """
        ...


class EngineTransaction(KVStore, Protocol):
    """An open engine transaction.

    Reads observe the transaction's own writes plus the snapshot taken when
    it began. Writes are buffered until commit.
    """

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...


class EngineTransactionDatabase(EngineDatabase, Protocol):
    """A database that can begin transactions."""

    @abstractmethod
    def transaction(self) -> EngineTransaction:
        ...


class KVEngine(Protocol):
    """Factory for opening engine databases in each supported mode."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def open(
        self,
        path: Path,
        options: DatabaseOptions,
        partitions: Sequence[PartitionDescriptor],
        read_only: bool = False,
    ) -> EngineDatabase:
        """Open (or create) a plain database.

        Raises:
            EngineError: If the database cannot be opened.
        """
        ...

    @abstractmethod
    def open_secondary(
        self,
        primary_path: Path,
        secondary_path: Path,
        options: DatabaseOptions,
        partitions: Sequence[PartitionDescriptor],
    ) -> EngineSecondaryDatabase:
        """Open a secondary replica of the database at ``primary_path``.

        Raises:
            EngineError: If the primary does not exist or cannot be read.
            UnsupportedModeError: If the engine has no secondary mode.
        """
        ...

    @abstractmethod
    def open_transactional(
        self,
        path: Path,
        options: DatabaseOptions,
        partitions: Sequence[PartitionDescriptor],
        transaction_options: TransactionOptions,
    ) -> EngineTransactionDatabase:
        """Open (or create) a transactional database.

        Raises:
            EngineError: If the database cannot be opened.
            UnsupportedModeError: If the engine has no transactional mode.
        """
        ...
