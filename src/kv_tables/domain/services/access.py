"""Access backends: one typed surface over three kinds of engine handle.

- DatabaseAccess: a plain (read-only, secondary or writeable) database
- TransactionDatabaseAccess: a transactional database, outside any
  transaction
- TransactionAccess: an open engine transaction; partition names are
  resolved against the transactional database that began it

All typed logic lives in _AccessBase. Subclasses only say which engine
store reads and writes go to and which database resolves partition names.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Iterable, TypeVar

from kv_tables.domain.entities.entry import Entry, is_indexed
from kv_tables.domain.errors import ConfigurationError, InvalidPartitionNameError
from kv_tables.domain.services.iterators import (
    KeyPredicate,
    SelectedEntryIterator,
    TableIterator,
)
from kv_tables.ports.inbound.access import Access
from kv_tables.ports.outbound.kv_engine import (
    EngineDatabase,
    EngineTransaction,
    EngineTransactionDatabase,
    KVStore,
    PartitionHandle,
)

E = TypeVar("E", bound=Entry)


class _AccessBase(Access):
    """Implementation of the Access port shared by every backend."""

    @property
    @abstractmethod
    def store(self) -> KVStore:
        """Engine object that serves reads and writes."""
        ...

    @property
    @abstractmethod
    def database(self) -> EngineDatabase:
        """Engine database that resolves partition names."""
        ...

    def partition(self, entry_type: type[Entry]) -> PartitionHandle:
        """Resolve the partition of ``entry_type``.

        Raises:
            InvalidPartitionNameError: If the name was not opened.
        """
        database = self.database
        if entry_type.name is None:
            return database.default_partition
        handle = database.partition(entry_type.name)
        if handle is None:
            raise InvalidPartitionNameError(entry_type.name)
        return handle

    def lookup_entry(self, entry_type: type[E], key: Any) -> Any | None:
        partition = self.partition(entry_type)
        data = self.store.get(partition, entry_type.encode_key(key))
        if data is None:
            return None
        return entry_type.decode_value(data)

    def lookup_entries(self, entry_type: type[E], keys: Iterable[Any]) -> list[Any | None]:
        partition = self.partition(entry_type)
        encoded = [entry_type.encode_key(key) for key in keys]
        if not encoded:
            return []
        results = self.store.multi_get(partition, encoded)
        return [
            None if data is None else entry_type.decode_value(data)
            for data in results
        ]

    def lookup_entries_by_index(self, entry_type: type[E], index: Any) -> TableIterator[E]:
        partition = self.partition(entry_type)
        prefix = _index_prefix(entry_type, index)
        return TableIterator(self.store.iterate(partition, prefix), entry_type, prefix)

    def lookup_selected_entries_by_index(
        self,
        entry_type: type[E],
        index: Any,
        predicate: KeyPredicate,
    ) -> SelectedEntryIterator[E]:
        partition = self.partition(entry_type)
        prefix = _index_prefix(entry_type, index)
        return SelectedEntryIterator(
            self.store.iterate(partition, prefix), entry_type, predicate, prefix
        )

    def iter_entries(self, entry_type: type[E]) -> TableIterator[E]:
        partition = self.partition(entry_type)
        return TableIterator(self.store.iterate(partition), entry_type)

    def iter_selected_entries(
        self, entry_type: type[E], predicate: KeyPredicate
    ) -> SelectedEntryIterator[E]:
        partition = self.partition(entry_type)
        return SelectedEntryIterator(self.store.iterate(partition), entry_type, predicate)

    def insert(self, entry_type: type[E], key: Any, value: Any) -> None:
        partition = self.partition(entry_type)
        self.store.put(partition, entry_type.encode_key(key), entry_type.encode_value(value))

    def merge(self, entry_type: type[E], key: Any, value: Any) -> None:
        partition = self.partition(entry_type)
        self.store.merge(partition, entry_type.encode_key(key), entry_type.encode_value(value))


def _index_prefix(entry_type: type[Entry], index: Any) -> bytes:
    if not is_indexed(entry_type):
        raise ConfigurationError(f"{entry_type.__name__} is not an Indexed entry")
    return entry_type.index_bytes(index)  # type: ignore[attr-defined]


class DatabaseAccess(_AccessBase):
    """Access over a plain engine database."""

    def __init__(self, database: EngineDatabase) -> None:
        self._database = database

    @property
    def store(self) -> KVStore:
        return self._database

    @property
    def database(self) -> EngineDatabase:
        return self._database


class TransactionDatabaseAccess(_AccessBase):
    """Access over a transactional engine database, outside a transaction.

    Writes issued here are committed individually by the engine.
    """

    def __init__(self, database: EngineTransactionDatabase) -> None:
        self._database = database

    @property
    def store(self) -> KVStore:
        return self._database

    @property
    def database(self) -> EngineTransactionDatabase:
        return self._database

    def begin(self) -> TransactionAccess:
        """Begin an engine transaction bound to this database."""
        return TransactionAccess(self._database.transaction(), self._database)


class TransactionAccess(_AccessBase):
    """Access through an open engine transaction.

    Holds a strong reference to the transactional database so partition
    handles stay resolvable for the transaction's lifetime.
    """

    def __init__(
        self, transaction: EngineTransaction, database: EngineTransactionDatabase
    ) -> None:
        self._transaction = transaction
        self._database = database

    @property
    def store(self) -> KVStore:
        return self._transaction

    @property
    def database(self) -> EngineTransactionDatabase:
        return self._database

    def commit(self) -> None:
        self._transaction.commit()

    def rollback(self) -> None:
        self._transaction.rollback()
