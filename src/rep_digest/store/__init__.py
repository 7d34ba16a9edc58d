"""
Record store access and artifact storage.
"""

from .artifacts import ArtifactStore, FileArtifactStore, MemoryArtifactStore
from .connection import DatabaseConnectionPool
from .sales_orders import (
    InMemorySalesOrderSource,
    PostgresSalesOrderSource,
    SalesOrderQuery,
    SalesOrderSource,
)

__all__ = [
    "ArtifactStore",
    "FileArtifactStore",
    "MemoryArtifactStore",
    "DatabaseConnectionPool",
    "SalesOrderQuery",
    "SalesOrderSource",
    "PostgresSalesOrderSource",
    "InMemorySalesOrderSource",
]
