from contextlib import contextmanager
from typing import Iterator
from persistence.repository.execution_strategy import RetryPolicy
from persistence.repository.unit_of_work import UnitOfWork
from .sql_driver import SQLDriver

class DatabaseManager:
    _instance = None

    def __init__(self, settings):
        self.settings = settings
        self.sql = SQLDriver(settings.DATABASE_URL, echo=settings.DB_ECHO)

    @classmethod
    def get_instance(cls, settings=None):
        if cls._instance is None:
            if settings is None:
                from persistence.config import settings as app_settings
                settings = app_settings
            cls._instance = cls(settings)
        return cls._instance

    @classmethod
    def reset(cls):
        """Dispose and forget the singleton (tests, reconfiguration)."""
        if cls._instance is not None:
            cls._instance.sql.disconnect()
            cls._instance = None

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        """Fresh session wrapped in a UnitOfWork; commits on clean exit, rolls back on error."""
        with self.sql.session_factory() as session:
            policy = RetryPolicy(
                max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
                base_delay=self.settings.RETRY_BASE_DELAY,
                max_delay=self.settings.RETRY_MAX_DELAY,
            )
            with UnitOfWork(session, retry_policy=policy, command_timeout=self.settings.DB_COMMAND_TIMEOUT) as uow:
                yield uow
