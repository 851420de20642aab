from abc import ABC, abstractmethod
from typing import Iterator
from sqlmodel import Session


class BaseDatabaseDriver(ABC):
    """Owns an engine and hands out sessions bound to it."""

    @abstractmethod
    def connect(self) -> None:
        """Verify the database is reachable."""

    @abstractmethod
    def disconnect(self) -> None:
        """Release pooled connections."""

    @abstractmethod
    def get_session(self) -> Iterator[Session]:
        """Yield a session, closing it afterwards."""
