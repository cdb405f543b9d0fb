"""Value objects for the typed table domain.

Value objects are immutable types that represent domain concepts.
They have no identity - two value objects with the same attributes are equal.

Exports:
    Modes:
        - ModeType: Runtime mode enum used to pick the engine open call
        - Mode, ReadOnly, Secondary, Writeable, Transactional: Mode markers

    Partitions:
        - MergeOperator: Named associative merge function
        - PartitionOptions: Prefix extractor length and merge operator
        - PartitionDescriptor: Named partition with its options
        - DatabaseOptions: Open flags and default partition options

    Selection:
        - Selected, Skipped: Items yielded by selective iteration
"""

from kv_tables.domain.value_objects.mode import (
    Mode,
    ModeType,
    ReadOnly,
    Secondary,
    Transactional,
    Writeable,
    mode_type_of,
)
from kv_tables.domain.value_objects.partition import (
    DEFAULT_PARTITION_NAME,
    DatabaseOptions,
    MergeFunction,
    MergeOperator,
    PartitionDescriptor,
    PartitionOptions,
)
from kv_tables.domain.value_objects.selection import (
    Selected,
    Selection,
    Skipped,
    selected_entries,
)

__all__ = [
    # Modes
    "Mode",
    "ModeType",
    "ReadOnly",
    "Secondary",
    "Writeable",
    "Transactional",
    "mode_type_of",
    # Partitions
    "DEFAULT_PARTITION_NAME",
    "DatabaseOptions",
    "MergeFunction",
    "MergeOperator",
    "PartitionDescriptor",
    "PartitionOptions",
    # Selection
    "Selected",
    "Selection",
    "Skipped",
    "selected_entries",
]
