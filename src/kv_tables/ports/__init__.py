"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Inbound ports: APIs offered to clients (Access)
- Outbound ports: Dependencies on external systems (KVEngine)

Adapters implement these ports with concrete functionality.
"""

from kv_tables.ports.outbound import (
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
from kv_tables.ports.inbound import Access

__all__ = [
    # Inbound ports
    "Access",
    # Outbound ports
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
