"""
Unit tests for placeholder substitution.
"""

from datetime import datetime

import pytest
from bson import ObjectId

from mdb_policy.core.templating import resolve_parameter, substitute
from mdb_policy.exceptions import TemplateError, TemplateParameterMissing


@pytest.mark.unit
class TestSubstitute:
    """Test substitution over condition trees."""

    def test_whole_placeholder_keeps_value_type(self):
        user_id = ObjectId()
        assert substitute({"owner": "{{user_id}}"}, {"user_id": user_id}) == {"owner": user_id}

    def test_whole_placeholder_keeps_lists(self):
        result = substitute({"team": {"$in": "{{teams}}"}}, {"teams": ["a", "b"]})
        assert result == {"team": {"$in": ["a", "b"]}}

    def test_embedded_placeholder_is_interpolated(self):
        result = substitute({"path": "/users/{{user_id}}/files"}, {"user_id": 7})
        assert result == {"path": "/users/7/files"}

    def test_keys_are_substituted(self):
        result = substitute({"acl.{{user_id}}": True}, {"user_id": "joe"})
        assert result == {"acl.joe": True}

    def test_nested_lists_and_operators(self):
        condition = {"$or": [{"owner": "{{user_id}}"}, {"members": {"$all": ["{{user_id}}"]}}]}
        result = substitute(condition, {"user_id": "joe"})
        assert result == {"$or": [{"owner": "joe"}, {"members": {"$all": ["joe"]}}]}

    def test_dotted_paths(self):
        parameters = {"user": {"profile": {"team": "red"}}}
        assert substitute({"team": "{{ user.profile.team }}"}, parameters) == {"team": "red"}

    def test_dotted_path_on_object_attribute(self):
        class Request:
            user_id = "joe"

        assert substitute("{{request.user_id}}", {"request": Request()}) == "joe"

    def test_input_is_not_modified(self):
        condition = {"owner": "{{user_id}}", "tags": ["{{tag}}"]}
        substitute(condition, {"user_id": "joe", "tag": "x"})
        assert condition == {"owner": "{{user_id}}", "tags": ["{{tag}}"]}

    def test_non_string_leaves_pass_through(self):
        when = datetime(2024, 1, 1)
        assert substitute({"at": when, "n": 3, "flag": False}, {}) == {
            "at": when,
            "n": 3,
            "flag": False,
        }

    def test_booleans_are_returned(self):
        assert substitute(True, {}) is True

    def test_missing_parameter_raises(self):
        with pytest.raises(TemplateParameterMissing) as exc_info:
            substitute({"owner": "{{user_id}}"}, {"target": None})
        assert exc_info.value.parameter == "user_id"

    def test_missing_path_segment_raises(self):
        with pytest.raises(TemplateParameterMissing):
            substitute("{{user.team}}", {"user": {}})

    def test_invalid_expression_raises(self):
        with pytest.raises(TemplateError) as exc_info:
            substitute("{{user_id + 1}}", {"user_id": 1})
        assert not isinstance(exc_info.value, TemplateParameterMissing)


@pytest.mark.unit
def test_resolve_parameter_strips_whitespace():
    assert resolve_parameter("  user_id ", {"user_id": "joe"}) == "joe"
