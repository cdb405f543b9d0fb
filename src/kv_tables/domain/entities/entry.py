"""Entry and Indexed: the encoding contract between typed tables and bytes.

An Entry subclass describes one table: its partition name, how keys and
values are converted to and from the engine's byte strings, and optionally
an associative merge operator. Instances are single typed key/value pairs
as yielded by iteration.

Round trip invariant:
    bytes_to_key(key_to_bytes(k)) == k for every producible key,
    and likewise for values.

Encodings used for ordered iteration or index lookups must preserve the
domain order under byte-wise comparison (e.g. fixed-width big-endian
integers). The layer does not check this.

Example:
    >>> @dataclass
    ... class Score(Entry, Indexed):
    ...     name = "scores"
    ...     index_length = 2
    ...     id: int
    ...     ts: int
    ...     points: int
    ...     ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar

from kv_tables.domain.errors import (
    ConfigurationError,
    InvalidKeyBytesError,
    InvalidValueBytesError,
    TableError,
)
from kv_tables.domain.value_objects.partition import MergeOperator


class Entry(ABC):
    """A typed key/value pair belonging to one table.

    Subclasses implement the four conversion class methods plus ``new``,
    ``key`` and ``value``. ``name`` selects the partition; None means the
    default partition.
    """

    name: ClassVar[str | None] = None

    @classmethod
    def associative_merge(cls) -> MergeOperator | None:
        """Return the merge operator for this table, if it supports merges."""
        return None

    @classmethod
    @abstractmethod
    def new(cls, key: Any, value: Any) -> Entry:
        """Build an entry from a decoded key and value."""
        ...

    @abstractmethod
    def key(self) -> Any:
        ...

    @abstractmethod
    def value(self) -> Any:
        ...

    @classmethod
    @abstractmethod
    def key_to_bytes(cls, key: Any) -> bytes:
        ...

    @classmethod
    @abstractmethod
    def value_to_bytes(cls, value: Any) -> bytes:
        ...

    @classmethod
    @abstractmethod
    def bytes_to_key(cls, data: bytes) -> Any:
        """Decode key bytes.

        Raises:
            InvalidKeyBytesError: If the bytes do not match the key layout.
        """
        ...

    @classmethod
    @abstractmethod
    def bytes_to_value(cls, data: bytes) -> Any:
        """Decode value bytes.

        Raises:
            InvalidValueBytesError: If the bytes do not match the value layout.
        """
        ...

    # ------------------------------------------------------------------
    # Helpers used by the access layer
    # ------------------------------------------------------------------

    @classmethod
    def invalid_key(cls, data: bytes, reason: str | None = None) -> InvalidKeyBytesError:
        return InvalidKeyBytesError(data, reason)

    @classmethod
    def invalid_value(
        cls, data: bytes, reason: str | None = None
    ) -> InvalidValueBytesError:
        return InvalidValueBytesError(data, reason)

    @classmethod
    def encode_key(cls, key: Any) -> bytes:
        return bytes(cls.key_to_bytes(key))

    @classmethod
    def encode_value(cls, value: Any) -> bytes:
        return bytes(cls.value_to_bytes(value))

    @classmethod
    def decode_key(cls, data: bytes) -> Any:
        """Decode key bytes, normalising foreign exceptions.

        Anything other than a TableError raised by ``bytes_to_key`` is
        re-raised as InvalidKeyBytesError chained to the original.
        """
        try:
            return cls.bytes_to_key(data)
        except TableError:
            raise
        except Exception as e:
            raise cls.invalid_key(data, str(e) or type(e).__name__) from e

    @classmethod
    def decode_value(cls, data: bytes) -> Any:
        """Decode value bytes, normalising foreign exceptions."""
        try:
            return cls.bytes_to_value(data)
        except TableError:
            raise
        except Exception as e:
            raise cls.invalid_value(data, str(e) or type(e).__name__) from e

    @classmethod
    def partition_label(cls) -> str:
        """Name used in logs and metrics."""
        return cls.name or "default"


class Indexed(ABC):
    """Mixin for entries whose keys start with a fixed-length index prefix.

    ``index_length`` is N, the number of leading key bytes that encode the
    index. For every entry the first N bytes of its encoded key must equal
    ``index_to_bytes(entry.index())``, which makes the index usable for
    bounded prefix scans.

    N must be a positive integer; zero or negative lengths are rejected
    when the concrete class is defined.
    """

    index_length: ClassVar[int]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "index_length" in cls.__dict__:
            validate_index_length(cls)

    @abstractmethod
    def index(self) -> Any:
        ...

    @classmethod
    @abstractmethod
    def index_to_bytes(cls, index: Any) -> bytes:
        ...

    @classmethod
    def index_bytes(cls, index: Any) -> bytes:
        """Encode an index and check it is exactly ``index_length`` bytes."""
        data = bytes(cls.index_to_bytes(index))
        if len(data) != cls.index_length:
            raise ConfigurationError(
                f"{cls.__name__}.index_to_bytes returned {len(data)} bytes, "
                f"expected {cls.index_length}"
            )
        return data


def validate_index_length(entry_type: type) -> int:
    """Return the index length of an Indexed type, rejecting non-positive values."""
    length = getattr(entry_type, "index_length", None)
    if isinstance(length, bool) or not isinstance(length, int):
        raise ConfigurationError(
            f"{entry_type.__name__}.index_length must be an int, got {length!r}"
        )
    if length <= 0:
        raise ConfigurationError(
            f"{entry_type.__name__}.index_length must be positive, got {length}"
        )
    return length


def is_indexed(entry_type: type) -> bool:
    return isinstance(entry_type, type) and issubclass(entry_type, Indexed)
