"""Inbound ports - API contracts for typed table access."""

from kv_tables.ports.inbound.access import Access

__all__ = ["Access"]
