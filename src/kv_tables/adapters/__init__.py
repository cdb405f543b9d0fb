"""Adapters layer - concrete implementations of port interfaces.

Outbound adapters wrap an embedded key-value engine behind the KVEngine
port.
"""

from kv_tables.adapters.outbound import MemoryEngine, RocksDBEngine, create_engine

__all__ = [
    # Outbound adapters
    "MemoryEngine",
    "RocksDBEngine",
    "create_engine",
]
