"""Access port: the typed read/write surface over any database handle.

One contract covers plain databases, transactional databases and open
transactions, so code written against Access runs unchanged on each.

Every call first resolves the entry type's partition against the opened
database. A declared name that was not opened raises
InvalidPartitionNameError before anything is encoded; an entry type with
no name targets the default partition.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, Protocol, TypeVar

from kv_tables.domain.entities.entry import Entry

if TYPE_CHECKING:
    from kv_tables.domain.services.iterators import (
        KeyPredicate,
        SelectedEntryIterator,
        TableIterator,
    )

E = TypeVar("E", bound=Entry)


class Access(Protocol):
    """Typed operations shared by every backend."""

    @abstractmethod
    def lookup_entry(self, entry_type: type[E], key: Any) -> Any | None:
        """Look up the value stored under ``key``.

        Returns:
            The decoded value, or None if the key is absent.

        Raises:
            InvalidPartitionNameError: If the entry's partition is not open.
            InvalidValueBytesError: If the stored value cannot be decoded.
            EngineError: If the engine read fails.
        """
        ...

    @abstractmethod
    def lookup_entries(self, entry_type: type[E], keys: Iterable[Any]) -> list[Any | None]:
        """Batched lookup.

        Returns:
            One slot per input key, in input order. Duplicate keys produce
            duplicate slots.

        Raises:
            InvalidValueBytesError: At the first value that fails to decode;
                no partial result is returned.
        """
        ...

    @abstractmethod
    def lookup_entries_by_index(self, entry_type: type[E], index: Any) -> TableIterator[E]:
        """Iterate the entries whose key starts with ``index_to_bytes(index)``.

        Entries arrive in key order and the scan stops at the first key
        outside the index prefix.
        """
        ...

    @abstractmethod
    def lookup_selected_entries_by_index(
        self,
        entry_type: type[E],
        index: Any,
        predicate: KeyPredicate,
    ) -> SelectedEntryIterator[E]:
        """Index scan that decodes values only for keys accepted by ``predicate``."""
        ...

    @abstractmethod
    def iter_entries(self, entry_type: type[E]) -> TableIterator[E]:
        """Iterate every entry of the table in key order."""
        ...

    @abstractmethod
    def iter_selected_entries(
        self, entry_type: type[E], predicate: KeyPredicate
    ) -> SelectedEntryIterator[E]:
        """Full scan that decodes values only for keys accepted by ``predicate``."""
        ...

    @abstractmethod
    def insert(self, entry_type: type[E], key: Any, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    @abstractmethod
    def merge(self, entry_type: type[E], key: Any, value: Any) -> None:
        """Queue ``value`` as a merge operand for ``key``.

        Raises:
            EngineError: If the partition has no merge operator.
        """
        ...
