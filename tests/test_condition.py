"""
Tests for placeholder templates and condition predicates.
"""

import pytest

from agentflow.engine.condition import (
    BoolOp,
    Compare,
    Literal,
    Not,
    Path,
    evaluate_condition,
    parse_condition,
)
from agentflow.engine.errors import ConditionError
from agentflow.engine.template import MISSING, get_nested_value, resolve_template


# ============================================================
# Template Tests
# ============================================================

class TestTemplate:
    """Tests for resolve_template."""

    def test_nested_path(self):
        """Test resolving a nested path."""
        assert resolve_template("{{a.b}}", {"a": {"b": 5}}) == "5"

    def test_missing_path_left_verbatim(self):
        """Test an unresolved placeholder stays as written."""
        assert resolve_template("{{missing}}", {}) == "{{missing}}"

    def test_mixed_text(self):
        """Test placeholders embedded in text."""
        template = "Hello {{user.name}}, you have {{count}} items"
        data = {"user": {"name": "Ada"}, "count": 3}
        assert resolve_template(template, data) == "Hello Ada, you have 3 items"

    def test_structured_values_as_json(self):
        """Test objects, booleans and null render as JSON."""
        data = {"obj": {"k": "v"}, "flag": True, "nothing": None}
        assert resolve_template("{{obj}}", data) == '{"k": "v"}'
        assert resolve_template("{{flag}}", data) == "true"
        assert resolve_template("{{nothing}}", data) == "null"

    def test_list_index(self):
        """Test indexing into lists."""
        assert resolve_template("{{items.1}}", {"items": ["a", "b"]}) == "b"

    def test_whitespace_in_placeholder(self):
        """Test whitespace around the path is ignored."""
        assert resolve_template("{{ name }}", {"name": "x"}) == "x"

    def test_non_string_template(self):
        """Test non-string templates pass through."""
        assert resolve_template(42, {"a": 1}) == 42

    def test_non_mapping_data(self):
        """Test resolving against a scalar payload leaves placeholders."""
        assert resolve_template("{{a}}", "plain") == "{{a}}"

    def test_get_nested_value_missing(self):
        """Test the MISSING sentinel is distinct from None."""
        assert get_nested_value({"a": None}, "a") is None
        assert get_nested_value({"a": None}, "a.b") is MISSING
        assert get_nested_value({"a": [1]}, "a.5") is MISSING


# ============================================================
# Condition Tests
# ============================================================

class TestConditionParser:
    """Tests for parse_condition."""

    def test_parse_comparison(self):
        """Test parsing a single comparison."""
        expr = parse_condition("data.score >= 0.5")
        assert expr == Compare(">=", Path(("data", "score")), Literal(0.5))

    def test_and_binds_tighter_than_or(self):
        """Test operator precedence."""
        expr = parse_condition("a || b && c")
        assert isinstance(expr, BoolOp)
        assert expr.op == "||"
        assert isinstance(expr.operands[1], BoolOp)
        assert expr.operands[1].op == "&&"

    def test_not_binds_tighter_than_comparison(self):
        """Test ! applies to its operand before the comparison."""
        expr = parse_condition("!a == b")
        assert expr == Compare("==", Not(Path(("a",))), Path(("b",)))

    @pytest.mark.parametrize("text",["", "   ", "a >", "(a", "a b", "a ; b", "import('os')"])
    def test_invalid_syntax(self, text):
        """Test malformed predicates are rejected."""
        with pytest.raises(ConditionError):
            parse_condition(text)


class TestConditionEvaluation:
    """Tests for evaluate_condition."""

    @pytest.mark.parametrize(
        "text,context,expected",
        [
            ("data.score > 5", {"score": 9}, True),
            ("score > 5", {"score": 2}, False),
            ("status == 'ok'", {"status": "ok"}, True),
            ("status === \"ok\"", {"status": "fail"}, False),
            ("status != 'ok'", {"status": "fail"}, True),
            ("a && b", {"a": True, "b": False}, False),
            ("a || b", {"a": False, "b": 1}, True),
            ("!active", {"active": False}, True),
            ("!(x > 1 && y < 1)", {"x": 2, "y": 0}, False),
            ("user.name == 'Ada'", {"user": {"name": "Ada"}}, True),
            ("missing == null", {}, True),
            ("flag == true", {"flag": True}, True),
            ("count >= -1", {"count": 0}, True),
            ("name < 'b'", {"name": "a"}, True),
            ("data", {"x": 1}, True),
            ("!name == 'y'", {"name": "x"}, False),
            ("!flag == false", {"flag": 1}, True),
        ],
    )
    def test_evaluate(self, text, context, expected):
        """Test predicate results against payloads."""
        assert evaluate_condition(text, context) is expected

    def test_ordering_mismatched_types(self):
        """Test ordering comparisons between unrelated types fail."""
        with pytest.raises(ConditionError, match="Cannot compare"):
            evaluate_condition("score > 5", {"score": "high"})

    def test_ordering_missing_value(self):
        """Test ordering against a missing path fails."""
        with pytest.raises(ConditionError):
            evaluate_condition("score > 5", {})
