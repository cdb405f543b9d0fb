"""
kv_tables - Typed tables over an embedded key-value engine

Maps typed key/value pairs onto the raw byte strings of an ordered
key-value engine, with one access surface for plain databases,
transactional databases and transactions, and per-mode capability checks.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"

from kv_tables.application import Database, Transaction
from kv_tables.domain.entities import Entry, Indexed
from kv_tables.domain.errors import (
    CapabilityError,
    ConfigurationError,
    DuplicatePartitionError,
    EngineError,
    InvalidBytesError,
    InvalidKeyBytesError,
    InvalidPartitionNameError,
    InvalidValueBytesError,
    TableError,
    TransactionClosedError,
    UnsupportedModeError,
)
from kv_tables.domain.services import TableConfig
from kv_tables.domain.value_objects import (
    MergeOperator,
    ModeType,
    ReadOnly,
    Secondary,
    Selected,
    Skipped,
    Transactional,
    Writeable,
)
from kv_tables.ports.outbound import TransactionOptions

__all__ = [
    "__version__",
    # Entry points
    "Database",
    "Transaction",
    "TableConfig",
    "TransactionOptions",
    # Encoding contract
    "Entry",
    "Indexed",
    "MergeOperator",
    # Modes
    "ModeType",
    "ReadOnly",
    "Secondary",
    "Transactional",
    "Writeable",
    # Selective iteration
    "Selected",
    "Skipped",
    # Errors
    "CapabilityError",
    "ConfigurationError",
    "DuplicatePartitionError",
    "EngineError",
    "InvalidBytesError",
    "InvalidKeyBytesError",
    "InvalidPartitionNameError",
    "InvalidValueBytesError",
    "TableError",
    "TransactionClosedError",
    "UnsupportedModeError",
]
