"""
Generic repository: CRUD, soft delete / restore and bulk operations for a mapped model.

Every public method returns a Result; exceptions are converted into keyed errors
and never propagate to the caller.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import inspect
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement, Select

from persistence.config import settings
from persistence.exceptions.handler import UnmappedModelError, exception_to_error
from persistence.localization import Localizer
from persistence.logging.logger import get_logger
from persistence.models.entity import Creatable, Deletable, Updatable
from persistence.repository.base import IRepository, T
from persistence.repository.bulk import (
    BulkConfig,
    bulk_delete,
    bulk_insert,
    bulk_update,
    detach,
    primary_key_name,
    snapshot_rows,
)
from persistence.repository.query import INCLUDE_DELETED, NO_TRACKING, include_options
from persistence.result import Result

if TYPE_CHECKING:
    from persistence.repository.unit_of_work import UnitOfWork

K = TypeVar("K")

logger = get_logger("repository")

# Temporary identities for bulk inserted entities until the database assigns real ones
PLACEHOLDER_ID_BASE = -(2 ** 63)


def distinct_by(items: Optional[Iterable[T]], key: Callable[[T], K]) -> List[T]:
    """Order-preserving distinct; the first item per key wins."""
    seen = set()
    distinct = []
    for item in items or []:
        item_key = key(item)
        if item_key in seen:
            continue
        seen.add(item_key)
        distinct.append(item)
    return distinct


class Repository(IRepository[T]):
    """SQLModel implementation of the repository interface for one model."""

    ERROR_DELETE_MISSING_ENTITY = "Repository.Delete.MissingEntity"
    ERROR_DELETE_SOFT_DELETION_NOT_IDELETEABLE = "Repository.Delete.SoftDeletionNotIDeleteable"
    ERROR_RESTORE_MISSING_ENTITY = "Repository.Restore.MissingEntity"

    def __init__(self, context: "UnitOfWork", model: Type[T], localizer: Optional[Localizer] = None):
        """Initialize repository with the unit of work and model."""
        if inspect(model, raiseerr=False) is None:
            raise UnmappedModelError(model)
        self.context = context
        self.model = model
        self.query = context.query(model)
        self.localizer = localizer or Localizer()
        self.batch_size = settings.REPOSITORY_BATCH_SIZE
        self.bulk_config = BulkConfig(batch_size=settings.BULK_BATCH_SIZE)

    @property
    def session(self) -> Session:
        return self.context.session

    @property
    def command_timeout(self) -> Optional[int]:
        return self.context.command_timeout

    @command_timeout.setter
    def command_timeout(self, value: Optional[int]) -> None:
        self.context.command_timeout = value

    # ----- helpers -----------------------------------------------------
    def _save_batch(self) -> None:
        self.context.detect_changes()
        self.context.save_changes()
        logger.debug(f"Saved batch of {self.model.__name__}")

    def _fail(self, result: Result, exc: Exception, include_inner: bool = True, rollback: bool = True) -> None:
        error = exception_to_error(exc, include_inner)
        logger.warning(f"{self.model.__name__} operation failed | {error.key}: {error.message}")
        result.errors.append(error)
        if rollback:
            self.session.rollback()

    def _bulk_fail(self, result: Result, exc: Exception) -> None:
        error = exception_to_error(exc)
        logger.error(f"{error.key}: {error.message}")
        result.errors.append(error)

    def _execute_resilient(self, operation: Callable[[Session], Any]) -> Any:
        """Run operation in an explicit transaction, retried as a whole on transient faults."""
        strategy = self.context.create_execution_strategy()

        def unit_of_work():
            with self.context.begin_transaction() as session:
                return operation(session)

        return strategy.execute(unit_of_work)

    # ----- create ------------------------------------------------------
    def create(self, entity: T, created_by_id: Optional[int] = None) -> Result[T]:
        """Create entity, stamping creation fields."""
        result = Result()
        try:
            if isinstance(entity, Creatable):
                entity.mark_created(created_by_id)

            self.context.add(entity)
            self.context.detect_changes()
            self.context.save_changes()

            result.result_object = entity
        except Exception as e:
            self._fail(result, e)
        return result

    def create_many(self, entities: Iterable[T], created_by_id: Optional[int] = None) -> Result[List[T]]:
        """Add entities, saving every batch_size of them; earlier batches stay committed if a later one fails."""
        result = Result(result_object=[])
        try:
            pending = 0
            for entity in entities or []:
                if isinstance(entity, Creatable):
                    entity.mark_created(created_by_id)

                self.context.add(entity)
                result.result_object.append(entity)

                pending += 1
                if pending >= self.batch_size:
                    pending = 0
                    self._save_batch()

            # Save whatever is left over.
            self._save_batch()
        except Exception as e:
            self._fail(result, e)
        return result

    def create_distinct(
        self, entities: Iterable[T], key: Callable[[T], Any], created_by_id: Optional[int] = None
    ) -> Result[List[T]]:
        """Create entities, keeping the first one per key."""
        return self.create_many(distinct_by(entities, key), created_by_id)

    def bulk_create(self, entities: Iterable[T], created_by_id: Optional[int] = None) -> Result[List[T]]:
        """
        Insert entities in one transaction, batch by batch, writing generated ids back.

        Until the database assigns identities each entity carries a negative placeholder
        id (PLACEHOLDER_ID_BASE + index) so callers can correlate them in memory.
        On failure nothing is committed and result_object is None.
        """
        entity_list = list(entities or [])
        if not entity_list:
            return Result.success([])

        result = Result(result_object=[])

        try:
            for entity in entity_list:
                if isinstance(entity, Creatable):
                    entity.mark_created(created_by_id)

            id_name = primary_key_name(self.model)
            for index, entity in enumerate(entity_list):
                setattr(entity, id_name, PLACEHOLDER_ID_BASE + index)

            result.result_object.extend(entity_list)

            rows = snapshot_rows(self.model, entity_list, include_primary_key=False)
            config = self.bulk_config.model_copy(
                update={"preserve_insert_order": True, "set_output_identity": True}
            )
            identities = self._execute_resilient(
                lambda session: bulk_insert(session, self.model, rows, config)
            )
            for entity, identity in zip(entity_list, identities):
                setattr(entity, id_name, identity)
        except Exception as e:
            self._bulk_fail(result, e)
            result.result_object = None
        return result

    def bulk_create_distinct(
        self, entities: Iterable[T], key: Callable[[T], Any], created_by_id: Optional[int] = None
    ) -> Result[List[T]]:
        """Bulk insert entities, keeping the first one per key."""
        return self.bulk_create(distinct_by(entities, key), created_by_id)

    # ----- read --------------------------------------------------------
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
        """
        Compose a lazily evaluated query.

        Applied in a fixed order: filter bypass, predicate, ordering, includes,
        offset, limit, no-tracking.
        """
        query = self.query

        if ignore_query_filters:
            query = query.execution_options(**{INCLUDE_DELETED: True})

        if filter is not None:
            query = query.where(filter)

        if order_by is not None:
            clauses = order_by if isinstance(order_by, (list, tuple)) else [order_by]
            query = query.order_by(*clauses)

        options = include_options(self.model, include_properties)
        if options:
            query = query.options(*options)

        if skip is not None:
            query = query.offset(skip)

        if take is not None:
            query = query.limit(take)

        if as_no_tracking:
            query = query.execution_options(**{NO_TRACKING: True})

        return query

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
        result = Result()
        try:
            query = self.get_queryable(
                filter=filter,
                order_by=order_by,
                include_properties=include_properties,
                skip=skip,
                take=take,
                ignore_query_filters=ignore_query_filters,
                as_no_tracking=as_no_tracking,
            )
            result.result_object = list(self.session.exec(query).all())
        except Exception as e:
            self._fail(result, e, rollback=False)
        return result

    def find_by_id(
        self, id: int, ignore_query_filters: bool = False, include_properties: Optional[str] = None
    ) -> Result[Optional[T]]:
        """A missing row is a successful None, not an error."""
        result = Result()
        try:
            id_column = getattr(self.model, primary_key_name(self.model))
            query = self.get_queryable(
                filter=id_column == id,
                include_properties=include_properties,
                ignore_query_filters=ignore_query_filters,
            )
            result.result_object = self.session.exec(query).first()
        except Exception as e:
            self._fail(result, e, rollback=False)
        return result

    # ----- update ------------------------------------------------------
    def update(self, entity: T, updated_by: Optional[int] = None) -> Result[bool]:
        """Update entity."""
        result = Result(result_object=False)
        try:
            if isinstance(entity, Updatable):
                entity.mark_updated(updated_by)

            self.context.update(entity)
            self.context.save_changes()

            result.result_object = True
        except Exception as e:
            self._fail(result, e, include_inner=False)
        return result

    def update_many(self, entities: Iterable[T], updated_by: Optional[int] = None) -> Result[bool]:
        """Update entities, saving in batches."""
        result = Result(result_object=False)
        try:
            pending = 0
            for entity in entities or []:
                if isinstance(entity, Updatable):
                    entity.mark_updated(updated_by)

                self.context.update(entity)

                pending += 1
                if pending >= self.batch_size:
                    pending = 0
                    self.context.save_changes()

            # Save whatever is left over.
            self.context.save_changes()
            result.result_object = True
        except Exception as e:
            self._fail(result, e, include_inner=False)
        return result

    def bulk_update(self, entities: Iterable[T], updated_by: Optional[int] = None) -> Result[bool]:
        """Update entities in one transactional bulk operation."""
        entity_list = list(entities or [])
        if not entity_list:
            return Result.success(True)

        result = Result(result_object=False)

        try:
            for entity in entity_list:
                if isinstance(entity, Updatable):
                    entity.mark_updated(updated_by)

            rows = snapshot_rows(self.model, entity_list)
            self._execute_resilient(
                lambda session: bulk_update(session, self.model, rows, self.bulk_config)
            )
            result.result_object = True
        except Exception as e:
            self._bulk_fail(result, e)
            result.result_object = False
        return result

    # ----- delete / restore --------------------------------------------
    def delete(self, entity: Optional[T], deleted_by_id: Optional[int] = None, soft: bool = True) -> Result[bool]:
        """Delete entity (soft by default)."""
        result = Result(result_object=False)
        try:
            if entity is None:
                result.add_localized_error(self.localizer, self.ERROR_DELETE_MISSING_ENTITY, self.model.__name__)
                return result

            if soft and not isinstance(entity, Deletable):
                result.add_localized_error(self.localizer, self.ERROR_DELETE_SOFT_DELETION_NOT_IDELETEABLE)
                return result

            if soft:
                entity.mark_deleted(deleted_by_id)
                self.context.update(entity)
            else:
                self.context.delete(entity)

            self.context.save_changes()
            result.result_object = True
        except Exception as e:
            self._fail(result, e, include_inner=False)
        return result

    def delete_by_id(self, id: int, deleted_by_id: Optional[int] = None, soft: bool = True) -> Result[bool]:
        """Delete entity by ID."""
        # soft-deleted rows must be found too, e.g. for a later hard delete
        find_result = self.find_by_id(id, ignore_query_filters=True)
        if find_result.has_errors:
            return Result(result_object=False, errors=find_result.errors)
        return self.delete(find_result.result_object, deleted_by_id, soft)

    def delete_many(
        self,
        entities: Iterable[Optional[T]],
        deleted_by_id: Optional[int] = None,
        batch_size: int = 100,
        soft: bool = True,
    ) -> Result[bool]:
        """
        Delete entities, saving every batch_size of them.

        A None entity records a MissingEntity error and is skipped; an entity that cannot
        be soft deleted aborts the whole call. Success means no errors were recorded.
        """
        result = Result(result_object=False)
        try:
            pending = 0
            for entity in entities or []:
                if entity is None:
                    result.add_localized_error(self.localizer, self.ERROR_DELETE_MISSING_ENTITY, self.model.__name__)
                    continue

                if soft and not isinstance(entity, Deletable):
                    result.add_localized_error(self.localizer, self.ERROR_DELETE_SOFT_DELETION_NOT_IDELETEABLE)
                    return result

                if soft:
                    entity.mark_deleted(deleted_by_id)
                    self.context.update(entity)
                else:
                    self.context.delete(entity)

                pending += 1
                if pending >= batch_size:
                    pending = 0
                    self._save_batch()

            # Save whatever is left over.
            self._save_batch()
        except Exception as e:
            self._fail(result, e)

        result.result_object = not result.has_errors
        return result

    def bulk_delete(
        self, entities: Iterable[T], deleted_by_id: Optional[int] = None, soft: bool = True
    ) -> Result[bool]:
        """Soft: stamp and bulk update the Deletable entities (others are skipped). Hard: bulk delete all."""
        entity_list = list(entities or [])
        if not entity_list:
            return Result.success(True)

        result = Result(result_object=False)

        try:
            if soft:
                deletable = [entity for entity in entity_list if isinstance(entity, Deletable)]
                for entity in deletable:
                    entity.mark_deleted(deleted_by_id)

                rows = snapshot_rows(self.model, deletable)
                self._execute_resilient(
                    lambda session: bulk_update(session, self.model, rows, self.bulk_config)
                )
            else:
                id_name = primary_key_name(self.model)
                identities = [getattr(entity, id_name) for entity in entity_list]
                # pending changes on tracked instances must not be flushed against deleted rows
                detach(self.session, entity_list)
                self._execute_resilient(
                    lambda session: bulk_delete(session, self.model, identities, self.bulk_config)
                )
        except Exception as e:
            self._bulk_fail(result, e)
            return result

        result.result_object = True
        return result

    def restore(self, entity: Optional[T]) -> Result[bool]:
        """Clear soft-deletion stamps and save."""
        if entity is None:
            return Result.fail(
                self.ERROR_RESTORE_MISSING_ENTITY,
                self.localizer(self.ERROR_RESTORE_MISSING_ENTITY, self.model.__name__),
                result_object=False,
            )

        result = Result(result_object=False)

        try:
            if isinstance(entity, Deletable):
                entity.clear_deleted()

            self.context.update(entity)
            self.context.save_changes()

            result.result_object = True
        except Exception as e:
            self._fail(result, e, include_inner=False)
        return result

    def restore_by_id(self, id: int) -> Result[bool]:
        """Restore entity by ID."""
        result = Result(result_object=False)

        find_result = self.find_by_id(id, ignore_query_filters=True)
        if find_result.has_errors:
            result.add_errors(find_result.errors)
            return result

        restore_result = self.restore(find_result.result_object)
        if restore_result.has_errors:
            result.add_errors(restore_result.errors)
            return result

        result.result_object = True
        return result

    # ----- async -------------------------------------------------------
    # Each runs its synchronous counterpart in a worker thread. The unit of work is
    # not thread safe: never await two calls on the same repository concurrently.
    async def create_async(self, entity: T, created_by_id: Optional[int] = None) -> Result[T]:
        return await asyncio.to_thread(self.create, entity, created_by_id)

    async def create_many_async(self, entities: Iterable[T], created_by_id: Optional[int] = None) -> Result[List[T]]:
        return await asyncio.to_thread(self.create_many, entities, created_by_id)

    async def create_distinct_async(
        self, entities: Iterable[T], key: Callable[[T], Any], created_by_id: Optional[int] = None
    ) -> Result[List[T]]:
        return await asyncio.to_thread(self.create_distinct, entities, key, created_by_id)

    async def bulk_create_async(self, entities: Iterable[T], created_by_id: Optional[int] = None) -> Result[List[T]]:
        return await asyncio.to_thread(self.bulk_create, entities, created_by_id)

    async def bulk_create_distinct_async(
        self, entities: Iterable[T], key: Callable[[T], Any], created_by_id: Optional[int] = None
    ) -> Result[List[T]]:
        return await asyncio.to_thread(self.bulk_create_distinct, entities, key, created_by_id)

    async def bulk_delete_async(
        self, entities: Iterable[T], deleted_by_id: Optional[int] = None, soft: bool = True
    ) -> Result[bool]:
        return await asyncio.to_thread(self.bulk_delete, entities, deleted_by_id, soft)

    async def bulk_update_async(self, entities: Iterable[T], updated_by: Optional[int] = None) -> Result[bool]:
        return await asyncio.to_thread(self.bulk_update, entities, updated_by)

    async def delete_async(
        self, entity: Optional[T], deleted_by_id: Optional[int] = None, soft: bool = True
    ) -> Result[bool]:
        return await asyncio.to_thread(self.delete, entity, deleted_by_id, soft)

    async def delete_by_id_async(self, id: int, deleted_by_id: Optional[int] = None, soft: bool = True) -> Result[bool]:
        return await asyncio.to_thread(self.delete_by_id, id, deleted_by_id, soft)

    async def delete_many_async(
        self,
        entities: Iterable[Optional[T]],
        deleted_by_id: Optional[int] = None,
        batch_size: int = 100,
        soft: bool = True,
    ) -> Result[bool]:
        return await asyncio.to_thread(self.delete_many, entities, deleted_by_id, batch_size, soft)

    async def restore_async(self, entity: Optional[T]) -> Result[bool]:
        return await asyncio.to_thread(self.restore, entity)

    async def restore_by_id_async(self, id: int) -> Result[bool]:
        return await asyncio.to_thread(self.restore_by_id, id)

    async def update_async(self, entity: T, updated_by: Optional[int] = None) -> Result[bool]:
        return await asyncio.to_thread(self.update, entity, updated_by)

    async def update_many_async(self, entities: Iterable[T], updated_by: Optional[int] = None) -> Result[bool]:
        return await asyncio.to_thread(self.update_many, entities, updated_by)
