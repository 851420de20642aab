"""
Query composition helpers: the soft-delete global filter, no-tracking reads, eager-load paths.
"""

from typing import Any, List, Optional, Type

from sqlalchemy import event, inspect
from sqlalchemy.engine import Row
from sqlalchemy.orm import ORMExecuteState, Session, selectinload, with_loader_criteria

from persistence.models.entity import Deletable

# Execution options understood by the session hook
INCLUDE_DELETED = "include_deleted"
NO_TRACKING = "no_tracking"


def _apply_query_filters(execute_state: ORMExecuteState):
    if (
        execute_state.is_select
        and not execute_state.is_column_load
        and not execute_state.is_relationship_load
        and not execute_state.execution_options.get(INCLUDE_DELETED, False)
    ):
        execute_state.statement = execute_state.statement.options(
            with_loader_criteria(
                Deletable,
                lambda cls: cls.deleted_on.is_(None),
                include_aliases=True,
            )
        )

    if (
        execute_state.is_select
        and not execute_state.is_relationship_load
        and execute_state.execution_options.get(NO_TRACKING, False)
    ):
        # instances tracked before the query stay attached
        tracked = set(execute_state.session.identity_map.keys())
        result = execute_state.invoke_statement()
        frozen = result.freeze()
        _expunge_loaded(execute_state.session, frozen.data, tracked)
        return frozen()
    return None


def _expunge_loaded(session: Session, data, tracked) -> None:
    for row in data:
        items = tuple(row) if isinstance(row, Row) else (row,)
        for item in items:
            state = inspect(item, raiseerr=False)
            if state is None or getattr(state, "session", None) is not session:
                continue
            if state.key not in tracked:
                session.expunge(item)


def install_query_filters(session: Session) -> None:
    """Register the soft-delete / no-tracking hook on a session (idempotent)."""
    if not event.contains(session, "do_orm_execute", _apply_query_filters):
        event.listen(session, "do_orm_execute", _apply_query_filters)


def include_options(model: Type, include_properties: Optional[str]) -> List[Any]:
    """
    Resolve a comma-separated list of relationship paths into selectinload options.

    "category,tags.owner" -> [selectinload(M.category), selectinload(M.tags).selectinload(Tag.owner)]
    """
    options = []
    for path in (include_properties or "").split(","):
        path = path.strip()
        if not path:
            continue
        current = model
        option = None
        for name in path.split("."):
            attribute = getattr(current, name)
            option = selectinload(attribute) if option is None else option.selectinload(attribute)
            current = attribute.property.mapper.class_
        options.append(option)
    return options
