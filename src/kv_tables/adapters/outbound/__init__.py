"""Outbound adapters - implementations of the key-value engine port.

create_engine picks the engine named in configuration. Memory engines are
shared per process so that a secondary handle sees the store its primary
writes to.
"""

from __future__ import annotations

import threading

from kv_tables.adapters.outbound.memory_engine import MemoryEngine
from kv_tables.adapters.outbound.rocksdb_engine import RocksDBEngine
from kv_tables.infrastructure.config import get_settings
from kv_tables.ports.outbound.kv_engine import KVEngine

_shared_memory_engine: MemoryEngine | None = None
_shared_lock = threading.Lock()


def shared_memory_engine() -> MemoryEngine:
    """Return the process-wide memory engine."""
    global _shared_memory_engine
    with _shared_lock:
        if _shared_memory_engine is None:
            _shared_memory_engine = MemoryEngine()
        return _shared_memory_engine


def create_engine(backend: str | None = None) -> KVEngine:
    """Build the engine for ``backend``, or the configured backend if None.

    Raises:
        ValueError: If the backend name is unknown.
    """
    engine_config = get_settings().engine
    backend = backend or engine_config.backend
    if backend == "memory":
        return shared_memory_engine()
    if backend == "rocksdb":
        return RocksDBEngine(max_open_files=engine_config.max_open_files)
    raise ValueError(f"Unknown engine backend: {backend!r}")


__all__ = [
    "MemoryEngine",
    "RocksDBEngine",
    "create_engine",
    "shared_memory_engine",
]
