"""Typed iterators over raw engine cursors.

TableIterator decodes every (key bytes, value bytes) pair into an entry.
SelectedEntryIterator always decodes the key but decodes the value only when
a predicate over the key accepts it, so expensive value deserialization can
be skipped for most of a scan.

Both iterators:
- are lazy and single-pass; request a new iterator to scan again
- stop at the first key that does not start with ``prefix`` when one is
  given, which bounds index scans to the matching contiguous key range
- surface at most one error: after raising, they are exhausted
"""

from __future__ import annotations

from typing import Callable, Generic, Iterator, TypeVar

from kv_tables.domain.entities.entry import Entry
from kv_tables.domain.value_objects.selection import Selected, Selection, Skipped
from kv_tables.ports.outbound.kv_engine import Cursor

E = TypeVar("E", bound=Entry)

KeyPredicate = Callable[[object], bool]


class _CursorIterator:
    """Shared cursor handling: prefix bound and one-shot error semantics."""

    def __init__(self, cursor: Cursor, prefix: bytes | None = None) -> None:
        self._cursor = cursor
        self._prefix = prefix
        self._done = False

    @property
    def exhausted(self) -> bool:
        return self._done

    def _finish(self) -> None:
        self._done = True
        close = getattr(self._cursor, "close", None)
        if close is not None:
            close()

    def _next_raw(self) -> tuple[bytes, bytes]:
        if self._done:
            raise StopIteration
        try:
            key_bytes, value_bytes = next(self._cursor)
        except Exception:
            # StopIteration included: the cursor is spent either way.
            self._finish()
            raise

        if self._prefix is not None and not key_bytes.startswith(self._prefix):
            self._finish()
            raise StopIteration
        return key_bytes, value_bytes

    def close(self) -> None:
        """Stop iterating and release the cursor."""
        if not self._done:
            self._finish()


class TableIterator(_CursorIterator, Generic[E]):
    """Iterator decoding every visited pair into an entry of ``entry_type``."""

    def __init__(
        self,
        cursor: Cursor,
        entry_type: type[E],
        prefix: bytes | None = None,
    ) -> None:
        super().__init__(cursor, prefix)
        self._entry_type = entry_type

    def __iter__(self) -> Iterator[E]:
        return self

    def __next__(self) -> E:
        key_bytes, value_bytes = self._next_raw()
        try:
            key = self._entry_type.decode_key(key_bytes)
            value = self._entry_type.decode_value(value_bytes)
        except Exception:
            self._finish()
            raise
        return self._entry_type.new(key, value)  # type: ignore[return-value]


class SelectedEntryIterator(_CursorIterator, Generic[E]):
    """Iterator decoding values only for keys accepted by ``predicate``.

    Yields Selected(entry) for accepted keys and Skipped(key) otherwise.
    Malformed value bytes are never looked at for skipped keys.
    """

    def __init__(
        self,
        cursor: Cursor,
        entry_type: type[E],
        predicate: KeyPredicate,
        prefix: bytes | None = None,
    ) -> None:
        super().__init__(cursor, prefix)
        self._entry_type = entry_type
        self._predicate = predicate

    def __iter__(self) -> Iterator[Selection[E]]:
        return self

    def __next__(self) -> Selection[E]:
        key_bytes, value_bytes = self._next_raw()
        try:
            key = self._entry_type.decode_key(key_bytes)
            if not self._predicate(key):
                return Skipped(key)
            value = self._entry_type.decode_value(value_bytes)
        except Exception:
            self._finish()
            raise
        return Selected(self._entry_type.new(key, value))
