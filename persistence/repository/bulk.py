"""
Bulk insert / update / delete issued through the session's connection.

Statements run on ``session.connection()`` so they join the session's current
transaction; committing or rolling back is left to the caller.
"""

from typing import Any, Dict, Iterable, Iterator, List, Sequence

from pydantic import BaseModel, Field
from sqlalchemy import bindparam, delete, insert, inspect, update
from sqlalchemy.orm import Session

from persistence.exceptions.handler import UnmappedModelError

Row = Dict[str, Any]


class BulkConfig(BaseModel):
    """Options for a bulk operation."""
    batch_size: int = Field(default=1000, gt=0, description="Rows per statement")
    preserve_insert_order: bool = Field(default=True, description="Return identities in input order")
    set_output_identity: bool = Field(default=True, description="Fetch server-generated identities")


def _mapper(model):
    mapper = inspect(model, raiseerr=False)
    if mapper is None:
        raise UnmappedModelError(model)
    return mapper


def _chunks(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def primary_key_name(model) -> str:
    """Attribute name of the (single-column) primary key."""
    mapper = _mapper(model)
    return mapper.get_property_by_column(mapper.primary_key[0]).key


def snapshot_rows(model, entities: Iterable[Any], include_primary_key: bool = True) -> List[Row]:
    """Copy column values off the entities, keyed by column name."""
    mapper = _mapper(model)
    primary_keys = {column.key for column in mapper.primary_key}
    rows = []
    for entity in entities:
        row = {}
        for attribute in mapper.column_attrs:
            column = attribute.columns[0]
            if not include_primary_key and column.key in primary_keys:
                continue
            row[column.key] = getattr(entity, attribute.key)
        rows.append(row)
    return rows


def bulk_insert(session: Session, model, rows: List[Row], config: BulkConfig) -> List[Any]:
    """Insert rows (primary key omitted); returns generated identities when set_output_identity."""
    mapper = _mapper(model)
    table = mapper.local_table
    primary_key = mapper.primary_key[0]
    connection = session.connection()
    identities: List[Any] = []
    for batch in _chunks(rows, config.batch_size):
        if config.set_output_identity:
            statement = insert(table).returning(
                primary_key, sort_by_parameter_order=config.preserve_insert_order
            )
            identities.extend(connection.execute(statement, list(batch)).scalars().all())
        else:
            connection.execute(insert(table), list(batch))
    return identities


def bulk_update(session: Session, model, rows: List[Row], config: BulkConfig) -> int:
    """Update every column of each row, matched by primary key. Returns affected row count."""
    if not rows:
        return 0
    mapper = _mapper(model)
    table = mapper.local_table
    primary_key = mapper.primary_key[0]
    # bind names must not collide with column names used in SET
    values = {key: bindparam(f"b_{key}") for key in rows[0] if key != primary_key.key}
    statement = (
        update(table)
        .where(primary_key == bindparam(f"b_{primary_key.key}"))
        .values(values)
    )
    connection = session.connection()
    affected = 0
    for batch in _chunks(rows, config.batch_size):
        params = [{f"b_{key}": value for key, value in row.items()} for row in batch]
        affected += connection.execute(statement, params).rowcount
    return affected


def bulk_delete(session: Session, model, identities: Sequence[Any], config: BulkConfig) -> int:
    """Physically delete rows by primary key. Returns affected row count."""
    mapper = _mapper(model)
    table = mapper.local_table
    primary_key = mapper.primary_key[0]
    connection = session.connection()
    affected = 0
    for batch in _chunks(list(identities), config.batch_size):
        affected += connection.execute(delete(table).where(primary_key.in_(batch))).rowcount
    return affected


def detach(session: Session, entities: Iterable[Any]) -> None:
    """Drop instances from the identity map after their rows were removed behind the ORM's back."""
    for entity in entities:
        state = inspect(entity, raiseerr=False)
        if state is not None and state.session is session:
            session.expunge(entity)
