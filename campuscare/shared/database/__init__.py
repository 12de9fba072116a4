"""Document store access for CampusCare services.

Provides the MongoDB connection manager and the repository base class
with its error taxonomy.
"""

from .connection import (
    DatabaseConfig,
    ConnectionManager,
)
from .repository import (
    BaseRepository,
    RepositoryError,
    NotFoundError,
    PersistenceError,
)

__all__ = [
    "DatabaseConfig",
    "ConnectionManager",
    "BaseRepository",
    "RepositoryError",
    "NotFoundError",
    "PersistenceError",
]
