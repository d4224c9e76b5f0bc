"""
Unit tests for Query normalization and filter merging.
"""

import pytest
from pymongo import ASCENDING, DESCENDING

from mdb_policy.database.query import Query, merge_filters


@pytest.mark.unit
class TestMergeFilters:
    """Test combining caller filters with policy conditions."""

    def test_empty_condition_keeps_filter(self):
        assert merge_filters({"name": "y"}, {}) == {"name": "y"}

    def test_empty_filter_uses_condition(self):
        assert merge_filters(None, {"owner": "joe"}) == {"owner": "joe"}

    def test_both_sides_are_combined_with_and(self):
        merged = merge_filters({"owner": "ann"}, {"owner": "joe"})
        assert merged == {"$and": [{"owner": "ann"}, {"owner": "joe"}]}

    def test_result_is_a_new_mapping(self):
        condition = {"owner": "joe"}
        merged = merge_filters({}, condition)
        merged["extra"] = 1
        assert condition == {"owner": "joe"}


@pytest.mark.unit
class TestQuery:
    """Test projection and sort normalization."""

    def test_defaults(self):
        query = Query()
        assert query.filter == {}
        assert query.projection is None
        assert query.sort == []
        assert query.find_kwargs() == {}

    def test_list_projection_becomes_inclusion(self):
        query = Query(projection=["name", "owner"])
        assert query.projection == {"name": 1, "owner": 1}
        assert query.has_inclusions() is True

    def test_exclusion_projection(self):
        query = Query(projection={"notes": 0})
        assert query.has_inclusions() is False

    def test_sort_shapes(self):
        assert Query(sort="name").sort == [("name", ASCENDING)]
        assert Query(sort={"name": DESCENDING}).sort == [("name", DESCENDING)]
        assert Query(sort=[("a", 1), ("b", -1)]).sort == [("a", 1), ("b", -1)]

    def test_filter_is_deep_copied(self):
        original = {"tags": {"$in": ["a"]}}
        query = Query(original)
        query.filter["tags"]["$in"].append("b")
        assert original == {"tags": {"$in": ["a"]}}

    def test_find_kwargs(self):
        query = Query({"a": 1}, projection=["name"], sort="name")
        assert query.find_kwargs() == {
            "projection": {"name": 1},
            "sort": [("name", ASCENDING)],
        }
