"""Domain entities for the typed table layer.

Exports:
    - Entry: Encoding contract for one table's keys and values
    - Indexed: Mixin adding a fixed-length index prefix to an Entry
"""

from kv_tables.domain.entities.entry import (
    Entry,
    Indexed,
    is_indexed,
    validate_index_length,
)

__all__ = [
    "Entry",
    "Indexed",
    "is_indexed",
    "validate_index_length",
]
