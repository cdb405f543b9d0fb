"""Domain services for typed table access.

Services hold the logic that sits between entry types and the engine:
partition registration, typed iteration and the access backends.
"""

from kv_tables.domain.services.access import (
    DatabaseAccess,
    TransactionAccess,
    TransactionDatabaseAccess,
)
from kv_tables.domain.services.iterators import (
    KeyPredicate,
    SelectedEntryIterator,
    TableIterator,
)
from kv_tables.domain.services.registration import TableConfig, partition_options_for

__all__ = [
    "DatabaseAccess",
    "KeyPredicate",
    "SelectedEntryIterator",
    "TableConfig",
    "TableIterator",
    "TransactionAccess",
    "TransactionDatabaseAccess",
    "partition_options_for",
]
