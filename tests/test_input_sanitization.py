"""
Input sanitization tests.
"""
import pytest

from utils.input_sanitization import (
    InputSanitizer,
    collapse_repeated_params,
    neutralize_operator_keys,
)


@pytest.fixture
def sanitizer():
    return InputSanitizer(default_max_length=1000, field_limits={"description": 2000})


class TestSanitizeText:
    def test_strips_markup_and_collapses_whitespace(self, sanitizer):
        assert sanitizer.sanitize_text("  <b>Quarterly</b>   budget \n review ") == "Quarterly budget review"

    def test_removes_special_characters(self, sanitizer):
        assert sanitizer.sanitize_text('Tom &amp; "Jerry"') == "Tom Jerry"

    def test_script_tags_never_survive(self, sanitizer):
        result = sanitizer.sanitize_text("<script>alert(1)</script>Hello")
        assert "<" not in result and ">" not in result
        assert result.endswith("Hello")

    def test_truncates_to_limit(self, sanitizer):
        assert len(sanitizer.sanitize_text("a" * 1500)) == 1000
        assert len(sanitizer.sanitize_text("a" * 1500, max_length=20)) == 20

    @pytest.mark.parametrize("text", [
        "<b>Hello</b>   world",
        "&lt;b&gt;escaped&lt;/b&gt;",
        "&amp;lt;double&amp;gt;",
        "  padded   text  ",
        "<<script>>nested<</script>>",
        "plain",
        "",
    ])
    def test_is_idempotent(self, sanitizer, text):
        once = sanitizer.sanitize_text(text)
        assert sanitizer.sanitize_text(once) == once


class TestSanitizeStructures:
    def test_walks_nested_values_and_keeps_shape(self, sanitizer):
        payload = {
            "title": "<i>Audit</i>",
            "tags": ["<b>ops</b>", "finance"],
            "meta": {"note": " a  b "},
            "count": 3,
            "done": False,
            "deadline": None,
        }
        assert sanitizer.sanitize(payload) == {
            "title": "Audit",
            "tags": ["ops", "finance"],
            "meta": {"note": "a b"},
            "count": 3,
            "done": False,
            "deadline": None,
        }

    def test_field_limits_apply_per_key(self, sanitizer):
        cleaned = sanitizer.sanitize({"description": "d" * 1500, "title": "t" * 1500})
        assert len(cleaned["description"]) == 1500
        assert len(cleaned["title"]) == 1000

    def test_sensitive_fields_pass_through(self, sanitizer):
        payload = {"password": "<P@ss'word&>", "new_password": " x  y "}
        assert sanitizer.sanitize(payload) == payload

    def test_structure_is_idempotent(self, sanitizer):
        payload = {"a": ["<b>x</b> &amp; y", {"b": "  z  "}]}
        once = sanitizer.sanitize(payload)
        assert sanitizer.sanitize(once) == once


def test_neutralize_operator_keys():
    payload = {"$where": 1, "a.b": {"$gt": 2}, "items": [{"$ne": None}], "plain": "x"}
    assert neutralize_operator_keys(payload) == {
        "_where": 1,
        "a_b": {"_gt": 2},
        "items": [{"_ne": None}],
        "plain": "x",
    }


def test_collapse_repeated_params_keeps_last_value():
    pairs = [("status", "ASSIGNED"), ("status", "COMPLETED"), ("tags", "a"), ("tags", "b")]
    assert collapse_repeated_params(pairs) == {"status": "COMPLETED", "tags": ["a", "b"]}


def test_collapse_repeated_params_custom_whitelist():
    pairs = [("ids", "1"), ("ids", "2"), ("tags", "a"), ("tags", "b")]
    assert collapse_repeated_params(pairs, whitelist=["ids"]) == {"ids": ["1", "2"], "tags": "b"}
