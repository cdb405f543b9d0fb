"""Outbound ports - interfaces for external dependencies.

The only external dependency of the table layer is the embedded
key-value engine.
"""

from kv_tables.ports.outbound.kv_engine import (
    Cursor,
    EngineDatabase,
    EngineSecondaryDatabase,
    EngineTransaction,
    EngineTransactionDatabase,
    KVEngine,
    KVStore,
    PartitionHandle,
    TransactionOptions,
)

__all__ = [
    "Cursor",
    "EngineDatabase",
    "EngineSecondaryDatabase",
    "EngineTransaction",
    "EngineTransactionDatabase",
    "KVEngine",
    "KVStore",
    "PartitionHandle",
    "TransactionOptions",
]
