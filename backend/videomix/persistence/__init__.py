"""
SQLite persistence for jobs, outputs, credits and the durable queue.
"""

from .errors import PersistenceError, SchemaError
from .manager import PersistenceManager, SCHEMA_VERSION

__all__ = [
    "PersistenceManager",
    "PersistenceError",
    "SchemaError",
    "SCHEMA_VERSION",
]
