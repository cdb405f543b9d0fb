"""Application layer for typed tables.

Exports:
    - Database: A database opened in a fixed mode
    - Transaction: An open transaction on a transactional Database
"""

from kv_tables.application.database import Database, Transaction

__all__ = [
    "Database",
    "Transaction",
]
