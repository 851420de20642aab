"""Repository read and query composition test cases."""
import pytest
from sqlalchemy import inspect
from sqlmodel import select

from persistence.repository.query import INCLUDE_DELETED, NO_TRACKING, include_options
from tests.entities import Category, Widget


@pytest.fixture
def catalog(widgets, categories):
    """Five widgets, two of them in a category and one soft deleted."""
    tools = categories.create(Category(name="tools")).result_object
    batch = [
        Widget(name="e", category_id=tools.id),
        Widget(name="c", category_id=tools.id),
        Widget(name="a"),
        Widget(name="d"),
        Widget(name="b"),
    ]
    widgets.create_many(batch)
    widgets.delete(batch[3])
    return batch


class TestFindAll:
    """Test find_all composition."""

    def test_hides_soft_deleted(self, widgets, catalog):
        """Test the global filter excludes deleted rows."""
        names = sorted(w.name for w in widgets.find_all().result_object)

        assert names == ["a", "b", "c", "e"]

    def test_ignore_query_filters(self, widgets, catalog):
        """Test deleted rows are returned when filters are ignored."""
        result = widgets.find_all(ignore_query_filters=True)

        assert len(result.result_object) == 5

    def test_filter_and_order(self, widgets, catalog):
        """Test predicate and ordering."""
        result = widgets.find_all(filter=Widget.category_id.is_not(None), order_by=[Widget.name])

        assert [w.name for w in result.result_object] == ["c", "e"]

    def test_single_order_clause(self, widgets, catalog):
        """Test a single ordering clause without a list."""
        result = widgets.find_all(order_by=Widget.name.desc())

        assert [w.name for w in result.result_object] == ["e", "c", "b", "a"]

    def test_skip_and_take(self, widgets, catalog):
        """Test paging is applied after ordering."""
        result = widgets.find_all(order_by=[Widget.name], skip=1, take=2)

        assert [w.name for w in result.result_object] == ["b", "c"]

    def test_take_applies_after_filter(self, widgets, catalog):
        """Test paging counts only visible rows."""
        result = widgets.find_all(order_by=[Widget.name], skip=2, take=10)

        assert [w.name for w in result.result_object] == ["c", "e"]

    def test_include_properties(self, widgets, catalog, session):
        """Test related entities are loaded eagerly."""
        session.expunge_all()

        result = widgets.find_all(filter=Widget.name == "c", include_properties="category")

        widget = result.result_object[0]
        assert "category" not in inspect(widget).unloaded
        assert widget.category.name == "tools"

    def test_as_no_tracking(self, widgets, catalog, session):
        """Test no-tracking results are detached from the session."""
        session.expunge_all()

        result = widgets.find_all(include_properties="category", as_no_tracking=True)

        assert len(result.result_object) == 4
        assert all(widget not in session for widget in result.result_object)
        assert {w.category.name for w in result.result_object if w.category_id} == {"tools"}

    def test_no_tracking_keeps_tracked_instances(self, widgets, catalog, session):
        """Test instances already tracked stay attached."""
        tracked = catalog[0]

        result = widgets.find_all(filter=Widget.id == tracked.id, as_no_tracking=True)

        assert result.result_object == [tracked]
        assert tracked in session


class TestFindById:
    """Test find_by_id."""

    def test_find_existing(self, widgets, saved_widget):
        """Test entity is found by id."""
        result = widgets.find_by_id(saved_widget.id)

        assert not result.has_errors
        assert result.result_object is saved_widget

    def test_find_missing(self, widgets):
        """Test unknown id is a successful None."""
        result = widgets.find_by_id(404)

        assert not result.has_errors
        assert result.result_object is None

    def test_find_with_include(self, widgets, catalog, session):
        """Test includes are honoured by id lookups."""
        session.expunge_all()

        result = widgets.find_by_id(catalog[0].id, include_properties="category")

        assert result.result_object.category.name == "tools"


class TestGetQueryable:
    """Test the lazily evaluated query."""

    def test_queryable_is_composable(self, widgets, catalog, session):
        """Test the caller can refine and execute the query."""
        query = widgets.get_queryable(order_by=[Widget.name]).where(Widget.name != "a")

        names = [w.name for w in session.exec(query).all()]

        assert names == ["b", "c", "e"]

    def test_queryable_execution_options(self, widgets):
        """Test bypass and no-tracking are carried as execution options."""
        query = widgets.get_queryable(ignore_query_filters=True, as_no_tracking=True)

        options = query.get_execution_options()
        assert options[INCLUDE_DELETED] is True
        assert options[NO_TRACKING] is True

    def test_queryable_defaults(self, widgets):
        """Test no options by default."""
        query = widgets.get_queryable()

        assert INCLUDE_DELETED not in query.get_execution_options()
        assert NO_TRACKING not in query.get_execution_options()

    def test_filter_applies_to_plain_select(self, session, catalog):
        """Test the global filter is installed on the session itself."""
        assert len(session.exec(select(Widget)).all()) == 4


class TestIncludeOptions:
    """Test include path parsing."""

    def test_empty(self):
        """Test no paths gives no options."""
        assert include_options(Widget, None) == []
        assert include_options(Widget, " , ") == []

    def test_nested_path(self):
        """Test dotted paths build one chained option each."""
        options = include_options(Category, "widgets.category, widgets")

        assert len(options) == 2

    def test_unknown_attribute(self):
        """Test unknown relationship names raise."""
        with pytest.raises(AttributeError):
            include_options(Widget, "nothing")
