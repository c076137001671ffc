# tests/test_validation.py

"""Tests for JSON validation with line and column reporting"""

# Third party imports
import pytest

# Local imports
from validation import ValidationResult
from validation import line_and_column
from validation import parse_json
from validation import validate_json


class TestValidateJson:

    @pytest.mark.parametrize("text", ['{"a": 1}', "[]", '"x"', "12", "null", '  {"a": [1, {"b": null}]}\n'])
    def test_valid(self, text):
        assert validate_json(text) == ValidationResult(True)
        assert validate_json(text).to_dict() == {"valid": True}

    def test_unterminated_object(self):
        result = validate_json("{invalid")
        assert result.valid is False
        assert result.line == 1
        assert result.column == 2
        assert result.error == "Line 1: Expecting property name enclosed in double quotes"

    def test_error_on_later_line(self):
        text = '{\n  "a": 1,\n  "b": }'
        result = validate_json(text)
        assert (result.line, result.column) == (3, 8)
        assert result.error.startswith("Line 3: ")

    def test_message_has_no_offset_text(self):
        result = validate_json("{} x")
        assert result.error == "Line 1: Extra data"
        assert result.column == 4

    def test_empty_buffer(self):
        result = validate_json("")
        assert (result.line, result.column) == (1, 1)

    @pytest.mark.parametrize("text", ["[NaN]", '{"a": Infinity}', "-Infinity"])
    def test_non_standard_constants(self, text):
        result = validate_json(text)
        assert result.valid is False
        assert (result.line, result.column) == (1, 1)

    def test_deep_nesting_does_not_raise(self):
        result = validate_json("[" * 100000 + "]" * 100000)
        assert result.valid is False
        assert result.line == 1

    def test_to_dict_for_errors(self):
        data = validate_json("[1,").to_dict()
        assert set(data) == {"valid", "error", "line", "column"}
        assert data["valid"] is False


class TestLineAndColumn:

    def test_counts_newlines(self):
        assert line_and_column("ab\ncd", 0) == (1, 1)
        assert line_and_column("ab\ncd", 3) == (2, 1)
        assert line_and_column("ab\ncd", 4) == (2, 2)

    def test_offset_clamped(self):
        assert line_and_column("ab", 99) == (1, 3)

    def test_matches_manual_count(self):
        text = '[\n1,\n\n  oops]'
        offset = text.index("oops")
        before = text[:offset]
        assert line_and_column(text, offset) == (before.count("\n") + 1, len(before.split("\n")[-1]) + 1)


def test_parse_json_rejects_nan():
    with pytest.raises(ValueError):
        parse_json("NaN")


def test_out_of_range_number_reads_as_null():
    assert validate_json('{"x": 1e400}').valid is True
    assert parse_json('{"x": 1e400, "y": -1e400, "z": 2.5}') == {"x": None, "y": None, "z": 2.5}
