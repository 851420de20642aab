from typing import Iterator
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel
from .base import BaseDatabaseDriver

class SQLDriver(BaseDatabaseDriver):
    def __init__(self, url: str, echo: bool = False):
        self.url = make_url(url)
        engine_kwargs = {}
        if self.url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if self.url.database in (None, "", ":memory:"):
                # one shared connection, otherwise every checkout gets an empty database
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(self.url, echo=echo, **engine_kwargs)
        self.session_factory = sessionmaker(
            self.engine, class_=Session, expire_on_commit=False, autoflush=False
        )

    def connect(self):
        """Check connectivity."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def disconnect(self):
        """Dispose the engine's connection pool."""
        self.engine.dispose()

    def create_all(self):
        SQLModel.metadata.create_all(self.engine)

    def drop_all(self):
        SQLModel.metadata.drop_all(self.engine)

    def get_session(self) -> Iterator[Session]:
        with self.session_factory() as session:
            yield session
