"""Partition (column family) options and descriptors.

These are built once by TableConfig when a database is opened and handed to
the engine unchanged. They are immutable thereafter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from kv_tables.domain.errors import ConfigurationError

MergeFunction = Callable[[bytes, Optional[bytes], Sequence[bytes]], bytes]
"""Associative reduction: (key, existing value or None, operands) -> value."""

DEFAULT_PARTITION_NAME = "default"
"""Name engines use for the unnamed default partition."""


@dataclass(frozen=True, slots=True)
class MergeOperator:
    """A named associative merge function registered with the engine.

    The function must tolerate a missing existing value (first write) and
    any number of operands, and must be associative so the engine may apply
    operands in arbitrary batches.
    """

    name: str
    function: MergeFunction

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Merge operator name must be non-empty")

    def __call__(
        self, key: bytes, existing: bytes | None, operands: Sequence[bytes]
    ) -> bytes:
        return self.function(key, existing, operands)


@dataclass(frozen=True, slots=True)
class PartitionOptions:
    """Tuning options for one partition.

    Attributes:
        prefix_length: Fixed prefix extractor length, or None for no
            prefix extractor.
        merge_operator: Associative merge operator, if any.
    """

    prefix_length: int | None = None
    merge_operator: MergeOperator | None = None

    def __post_init__(self) -> None:
        if self.prefix_length is not None and self.prefix_length <= 0:
            raise ConfigurationError(
                f"Prefix length must be positive, got {self.prefix_length}"
            )

    def is_default(self) -> bool:
        return self.prefix_length is None and self.merge_operator is None


@dataclass(frozen=True, slots=True)
class PartitionDescriptor:
    """A named partition to open, with its options."""

    name: str
    options: PartitionOptions = field(default_factory=PartitionOptions)

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Partition name must be non-empty")
        if self.name == DEFAULT_PARTITION_NAME:
            raise ConfigurationError(
                f"{DEFAULT_PARTITION_NAME!r} is reserved for the default partition"
            )


@dataclass(frozen=True, slots=True)
class DatabaseOptions:
    """Database-wide options passed to the engine open call.

    ``default`` holds the options of the unnamed default partition.
    """

    create_if_missing: bool = True
    create_missing_partitions: bool = True
    default: PartitionOptions = field(default_factory=PartitionOptions)
