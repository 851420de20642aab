from typing import Optional
from sqlalchemy.exc import DBAPIError, DisconnectionError, TimeoutError as PoolTimeoutError
from persistence.result import ResultError

class RepositoryException(Exception):
    """Base class for errors raised inside the persistence layer."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnmappedModelError(RepositoryException):
    """Model passed to a repository is not a mapped SQLModel table."""
    def __init__(self, model):
        super().__init__(f"{getattr(model, '__name__', model)} is not a mapped table model")


def inner_exception(exc: BaseException) -> Optional[BaseException]:
    """DBAPI error wrapped by SQLAlchemy, else the chained cause/context."""
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return exc.orig
    return exc.__cause__ or exc.__context__


def exception_to_error(exc: BaseException, include_inner: bool = True) -> ResultError:
    """Convert any exception into a keyed ResultError (key = exception type name)."""
    key = type(exc).__name__
    if not include_inner:
        return ResultError(key=key, message=str(exc))
    inner = inner_exception(exc)
    return ResultError(key=key, message=f"{exc} -- {inner if inner is not None else ''}")


def is_transient(exc: BaseException) -> bool:
    """Connection-level faults worth retrying: invalidated connections, disconnects, pool timeouts."""
    if isinstance(exc, (DisconnectionError, PoolTimeoutError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated
