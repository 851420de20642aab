"""
Repository abstract base class.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Iterable, List, Optional, Sequence, TypeVar

from sqlalchemy.sql import ColumnElement, Select
from sqlmodel import SQLModel

from persistence.result import Result

T = TypeVar("T", bound=SQLModel)


class IRepository(ABC, Generic[T]):
    """Repository interface; defines the standard data access API. Every call returns a Result."""

    # ----- create ------------------------------------------------------
    @abstractmethod
    def create(self, entity: T, created_by_id: Optional[int] = None) -> Result[T]:
        """Create entity."""

    @abstractmethod
    def create_many(self, entities: Iterable[T], created_by_id: Optional[int] = None) -> Result[List[T]]:
        """Create entities, saving in batches."""

    @abstractmethod
    def create_distinct(
        self, entities: Iterable[T], key: Callable[[T], Any], created_by_id: Optional[int] = None
    ) -> Result[List[T]]:
        """Create entities, keeping the first one per key."""

    @abstractmethod
    def bulk_create(self, entities: Iterable[T], created_by_id: Optional[int] = None) -> Result[List[T]]:
        """Insert entities in one transactional bulk operation."""

    @abstractmethod
    def bulk_create_distinct(
        self, entities: Iterable[T], key: Callable[[T], Any], created_by_id: Optional[int] = None
    ) -> Result[List[T]]:
        """Bulk insert, keeping the first entity per key."""

    # ----- read --------------------------------------------------------
    @abstractmethod
    def find_all(
        self,
        filter: Optional[ColumnElement[bool]] = None,
        order_by: Optional[Sequence[Any]] = None,
        include_properties: Optional[str] = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        ignore_query_filters: bool = False,
        as_no_tracking: bool = False,
    ) -> Result[List[T]]:
        """Get entities matching the composed query."""

    @abstractmethod
    def find_by_id(
        self, id: int, ignore_query_filters: bool = False, include_properties: Optional[str] = None
    ) -> Result[Optional[T]]:
        """Get entity by ID."""

    @abstractmethod
    def get_queryable(
        self,
        filter: Optional[ColumnElement[bool]] = None,
        order_by: Optional[Sequence[Any]] = None,
        include_properties: Optional[str] = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        ignore_query_filters: bool = False,
        as_no_tracking: bool = False,
    ) -> Select:
        """Build a lazily evaluated query."""

    # ----- update ------------------------------------------------------
    @abstractmethod
    def update(self, entity: T, updated_by: Optional[int] = None) -> Result[bool]:
        """Update entity."""

    @abstractmethod
    def update_many(self, entities: Iterable[T], updated_by: Optional[int] = None) -> Result[bool]:
        """Update entities, saving in batches."""

    @abstractmethod
    def bulk_update(self, entities: Iterable[T], updated_by: Optional[int] = None) -> Result[bool]:
        """Update entities in one transactional bulk operation."""

    # ----- delete / restore --------------------------------------------
    @abstractmethod
    def delete(self, entity: Optional[T], deleted_by_id: Optional[int] = None, soft: bool = True) -> Result[bool]:
        """Delete entity (soft by default)."""

    @abstractmethod
    def delete_by_id(self, id: int, deleted_by_id: Optional[int] = None, soft: bool = True) -> Result[bool]:
        """Delete entity by ID."""

    @abstractmethod
    def delete_many(
        self,
        entities: Iterable[Optional[T]],
        deleted_by_id: Optional[int] = None,
        batch_size: int = 100,
        soft: bool = True,
    ) -> Result[bool]:
        """Delete entities, saving in batches."""

    @abstractmethod
    def bulk_delete(
        self, entities: Iterable[T], deleted_by_id: Optional[int] = None, soft: bool = True
    ) -> Result[bool]:
        """Delete entities in one transactional bulk operation."""

    @abstractmethod
    def restore(self, entity: Optional[T]) -> Result[bool]:
        """Clear soft-deletion stamps."""

    @abstractmethod
    def restore_by_id(self, id: int) -> Result[bool]:
        """Restore entity by ID."""
