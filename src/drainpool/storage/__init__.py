"""Resource-handle collaborators: protocols, an in-memory store and a SQL store.

The SQLAlchemy provider lives in ``drainpool.storage.sql`` and is imported
from there, so importing the package does not load the ORM.
"""

from drainpool.storage.memory import MemoryHandle, MemoryStore
from drainpool.storage.protocols import ProcessFn, ResourceHandle, ResourceProvider

__all__ = [
    "MemoryHandle",
    "MemoryStore",
    "ProcessFn",
    "ResourceHandle",
    "ResourceProvider",
]
