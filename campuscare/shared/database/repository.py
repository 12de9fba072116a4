"""Base repository pattern for document store operations.

Provides the repository error taxonomy and common lookups shared by
collection-backed repositories.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, TypeVar

from pymongo.errors import PyMongoError

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class NotFoundError(RepositoryError):
    """Entity not found in database."""
    pass


class PersistenceError(RepositoryError):
    """Store read or write failed. The operation did not take effect.

    Callers on the reviewer path surface this as a retryable failure.
    """
    retryable = True


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository over one collection.

    Subclasses implement entity-specific conversion while inheriting:
    - Collection access through the connection manager
    - Driver error wrapping
    - Logging patterns
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        collection_name: str,
    ):
        """Initialize repository.

        Args:
            connection_manager: Database connection manager
            collection_name: Name of the collection
        """
        self.connection_manager = connection_manager
        self.collection_name = collection_name

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={"collection_name": collection_name}
        )

    @property
    def collection(self):
        return self.connection_manager.get_collection(self.collection_name)

    @abstractmethod
    def _document_to_entity(self, document: Dict[str, Any]) -> T:
        """Convert a stored document to an entity."""
        pass

    @abstractmethod
    def _entity_to_document(self, entity: T) -> Dict[str, Any]:
        """Convert an entity to a storable document."""
        pass

    async def _find_document(self, entity_id: str) -> Optional[T]:
        try:
            document = await self.collection.find_one({"_id": entity_id})
        except PyMongoError as e:
            raise self._wrap_error("find", e, entity_id)
        if document is None:
            return None
        return self._document_to_entity(document)

    async def _insert_document(self, entity: T) -> T:
        document = self._entity_to_document(entity)
        try:
            await self.collection.insert_one(document)
        except PyMongoError as e:
            raise self._wrap_error("insert", e, document.get("_id"))
        return entity

    async def _count_documents(self, query: Dict[str, Any]) -> int:
        try:
            return await self.collection.count_documents(query)
        except PyMongoError as e:
            raise self._wrap_error("count", e)

    def _wrap_error(
        self,
        operation: str,
        error: Exception,
        entity_id: Optional[str] = None,
    ) -> PersistenceError:
        logger.error(
            "REPOSITORY_OPERATION_FAILED",
            extra={
                "collection_name": self.collection_name,
                "operation": operation,
                "entity_id": entity_id,
                "error": str(error),
            }
        )
        return PersistenceError(f"{operation} on {self.collection_name} failed: {error}")
