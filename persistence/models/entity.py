"""
Base entity and audit capability mixins.

A table model opts into audit stamping by inheriting the matching mixin:

    class Widget(Entity, Creatable, Updatable, Deletable, table=True):
        name: str
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Entity(SQLModel):
    """Base record with an integer identity."""
    id: Optional[int] = Field(default=None, primary_key=True)


class Creatable(SQLModel):
    """Stamped with creator and creation time on insert."""
    created_by_id: Optional[int] = Field(default=None, description="Creator user id")
    created_on: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    def mark_created(self, created_by_id: Optional[int] = None, when: Optional[datetime] = None) -> None:
        # created_by_id is only overwritten when provided
        if created_by_id is not None:
            self.created_by_id = created_by_id
        self.created_on = when or utc_now()


class Updatable(SQLModel):
    """Stamped with updater and update time on every update."""
    updated_by_id: Optional[int] = Field(default=None, description="Last updater user id")
    updated_on: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    def mark_updated(self, updated_by_id: Optional[int] = None, when: Optional[datetime] = None) -> None:
        self.updated_by_id = updated_by_id
        self.updated_on = when or utc_now()


class Deletable(SQLModel):
    """Soft-deletable: a non-null deleted_on marks the row deleted."""
    deleted_by_id: Optional[int] = Field(default=None, description="Deleter user id")
    deleted_on: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True), index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_on is not None

    def mark_deleted(self, deleted_by_id: Optional[int] = None, when: Optional[datetime] = None) -> None:
        if deleted_by_id is not None:
            self.deleted_by_id = deleted_by_id
        self.deleted_on = when or utc_now()

    def clear_deleted(self) -> None:
        self.deleted_by_id = None
        self.deleted_on = None
