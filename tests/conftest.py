"""Test config and shared fixtures."""
import pytest
from typing import Iterator
from sqlmodel import Session

from persistence.database.sql_driver import SQLDriver
from persistence.repository import Repository, RetryPolicy, UnitOfWork
from tests.entities import Category, Gadget, Widget


# In-memory SQLite for tests
TEST_DATABASE_URL = "sqlite://"


@pytest.fixture(scope="function")
def driver() -> Iterator[SQLDriver]:
    """Create test database with all tables."""
    driver = SQLDriver(TEST_DATABASE_URL)
    driver.create_all()
    yield driver
    driver.drop_all()
    driver.disconnect()


@pytest.fixture
def session(driver: SQLDriver) -> Iterator[Session]:
    """Create test database session."""
    with driver.session_factory() as session:
        yield session


@pytest.fixture
def retry_policy() -> RetryPolicy:
    """Retry policy without delays."""
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, jitter=False)


@pytest.fixture
def uow(session: Session, retry_policy: RetryPolicy) -> UnitOfWork:
    return UnitOfWork(session, retry_policy=retry_policy)


@pytest.fixture
def widgets(uow: UnitOfWork) -> Repository[Widget]:
    return uow.repository(Widget)


@pytest.fixture
def gadgets(uow: UnitOfWork) -> Repository[Gadget]:
    return uow.repository(Gadget)


@pytest.fixture
def categories(uow: UnitOfWork) -> Repository[Category]:
    return uow.repository(Category)


@pytest.fixture
def make_widgets():
    """Factory for unsaved widgets."""
    def _make(count: int, prefix: str = "widget"):
        return [Widget(name=f"{prefix}-{i}") for i in range(count)]
    return _make


@pytest.fixture
def saved_widget(widgets: Repository[Widget]) -> Widget:
    """Create sample widget."""
    result = widgets.create(Widget(name="sample", sku="SKU-1"), created_by_id=7)
    assert not result.has_errors
    return result.result_object
