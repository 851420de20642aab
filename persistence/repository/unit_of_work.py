"""
Unit of Work: the change-tracking context repositories persist through.
"""

from contextlib import contextmanager
from typing import Any, Iterator, Optional, Type

from sqlalchemy import event, inspect, text
from sqlalchemy.sql import Select
from sqlmodel import Session, select

from persistence.logging.logger import get_logger
from persistence.repository.execution_strategy import ExecutionStrategy, RetryPolicy
from persistence.repository.query import INCLUDE_DELETED, install_query_filters

logger = get_logger("unit_of_work")

# Per-dialect (apply, reset) statements for a command timeout in milliseconds.
# A None reset means the setting ends with the transaction.
_TIMEOUT_STATEMENTS = {
    "postgresql": ("SET LOCAL statement_timeout = {ms}", None),
    "mysql": ("SET SESSION max_execution_time = {ms}", "SET SESSION max_execution_time = DEFAULT"),
}

_TIMEOUT_RESET_KEY = "command_timeout_reset"


def _reset_command_timeout(dbapi_connection, connection_record) -> None:
    """Pool checkin hook: undo a session-scoped timeout before the connection is reused."""
    reset = connection_record.info.pop(_TIMEOUT_RESET_KEY, None)
    if reset is None or dbapi_connection is None:
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute(reset)
    finally:
        cursor.close()


def _apply_command_timeout(session: Session, transaction, connection) -> None:
    """Session after_begin hook: apply the stored timeout to the transaction's connection."""
    timeout = session.info.get("command_timeout")
    statements = _TIMEOUT_STATEMENTS.get(connection.dialect.name)
    if timeout is None or statements is None:
        return
    apply, reset = statements
    if reset is not None:
        if not event.contains(connection.engine, "checkin", _reset_command_timeout):
            event.listen(connection.engine, "checkin", _reset_command_timeout)
        connection.info[_TIMEOUT_RESET_KEY] = reset
    connection.execute(text(apply.format(ms=int(timeout * 1000))))


class UnitOfWork:
    """Wraps a session: tracked add/update/delete, saving, transactions and retry strategy."""

    def __init__(
        self,
        session: Optional[Session] = None,
        retry_policy: Optional[RetryPolicy] = None,
        command_timeout: Optional[int] = None,
    ):
        """Initialize UnitOfWork; session must be provided (e.g. UnitOfWork.from_session())."""
        if session is None:
            raise ValueError("Session must be provided. Use UnitOfWork.from_session() or pass session explicitly.")

        self.session = session
        self.retry_policy = retry_policy
        self._repositories = {}
        install_query_filters(session)
        if command_timeout is not None:
            self.command_timeout = command_timeout

    @classmethod
    def from_session(cls, session: Session, **kwargs) -> "UnitOfWork":
        """Create UnitOfWork from an existing session."""
        return cls(session=session, **kwargs)

    def repository(self, model_class: Type[Any], repo_class=None):
        """Get or create a repository instance for a model (cached)."""
        if repo_class is None:
            from persistence.repository.repository import Repository
            repo_class = Repository
        cache_key = f"{repo_class.__name__}_{model_class.__name__}"
        if cache_key not in self._repositories:
            self._repositories[cache_key] = repo_class(self, model_class)
        return self._repositories[cache_key]

    # ----- change tracking ---------------------------------------------
    def add(self, entity: Any) -> Any:
        self.session.add(entity)
        return entity

    def _attach(self, entity: Any) -> Any:
        # transient or detached instances carrying a primary key (e.g. bulk inserted) are merged
        state = inspect(entity)
        identity = state.mapper.primary_key_from_instance(entity)
        if (state.transient or state.detached) and None not in identity:
            # load the row regardless of soft deletion so merge updates instead of inserting
            self.session.get(state.mapper.class_, tuple(identity), execution_options={INCLUDE_DELETED: True})
            return self.session.merge(entity)
        self.session.add(entity)
        return entity

    def update(self, entity: Any) -> Any:
        """Attach an entity so its changes are saved."""
        return self._attach(entity)

    def delete(self, entity: Any) -> None:
        self.session.delete(self._attach(entity))

    def detect_changes(self) -> None:
        """Push pending in-memory changes to the open transaction."""
        self.session.flush()

    def save_changes(self) -> None:
        self.session.commit()

    def query(self, model: Type[Any]) -> Select:
        return select(model)

    # ----- transactions ------------------------------------------------
    @contextmanager
    def begin_transaction(self) -> Iterator[Session]:
        """Explicit transaction: commit once on success, roll back everything on failure."""
        try:
            yield self.session
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def create_execution_strategy(self) -> ExecutionStrategy:
        return ExecutionStrategy(self.retry_policy)

    @property
    def command_timeout(self) -> Optional[int]:
        return self.session.info.get("command_timeout")

    @command_timeout.setter
    def command_timeout(self, value: Optional[int]) -> None:
        """Store the timeout (seconds); it is applied at the start of every transaction."""
        self.session.info["command_timeout"] = value
        if not event.contains(self.session, "after_begin", _apply_command_timeout):
            event.listen(self.session, "after_begin", _apply_command_timeout)

        dialect = self.session.get_bind().dialect.name
        if dialect not in _TIMEOUT_STATEMENTS:
            logger.debug(f"Command timeout stored only; dialect '{dialect}' has no per-connection timeout")
            return
        if value is not None and self.session.in_transaction():
            # the running transaction already began without it
            _apply_command_timeout(self.session, None, self.session.connection())

    def commit(self) -> None:
        """Commit all changes."""
        self.save_changes()

    def rollback(self) -> None:
        """Rollback all changes."""
        self.session.rollback()

    def flush(self) -> None:
        """Flush session (e.g. to get auto-increment IDs)."""
        self.session.flush()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.rollback()
        else:
            self.commit()
