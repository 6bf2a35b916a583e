from __future__ import annotations

import pytest

from searchtype.classifier import Category, classify, parse_params
from searchtype.errors import DecodeError


class TestTruthTable:
    @pytest.mark.parametrize(
        ("catalog_value", "expected"),
        [
            ("preset=10&_st2=abc", Category.EXTEND_SEARCH),
            ("preset=10", Category.PRESET),
            ("subject=5&_st12=abc", Category.MERGER),
            ("subject=5&brand=7", Category.UNKNOWN),
        ],
    )
    def test_category(self, make_body, catalog_value: str, expected: Category):
        record = classify(make_body("shoes", catalog_value))
        assert record.category is expected

    @pytest.mark.parametrize(
        ("has_preset", "has_token", "expected"),
        [
            (True, True, Category.EXTEND_SEARCH),
            (True, False, Category.PRESET),
            (False, True, Category.MERGER),
            (False, False, Category.UNKNOWN),
        ],
    )
    def test_detect(self, has_preset: bool, has_token: bool, expected: Category):
        assert Category.detect(has_preset, has_token) is expected


class TestRecord:
    def test_fields(self, make_body):
        record = classify(make_body("red dress", "preset=1&preset=2&_st3=x"))
        assert record.text == "red dress"
        assert record.filter_value == "preset=1&preset=2&_st3=x"
        assert record.preset_ids == ["1", "2"]

    def test_no_presets_gives_empty_list(self, make_body):
        record = classify(make_body("q", "_st1=x"))
        assert record.preset_ids == []

    def test_semicolon_is_part_of_value(self, make_body):
        record = classify(make_body("q", "subject=1;2;3&preset=9"))
        assert record.category is Category.PRESET
        assert record.preset_ids == ["9"]
        assert record.filter_value == "subject=1;2;3&preset=9"

    def test_semicolon_does_not_split_parameters(self, make_body):
        record = classify(make_body("q", "preset=5;_st1=x"))
        assert record.category is Category.PRESET
        assert record.preset_ids == ["5;_st1=x"]

    def test_token_pattern_matches_inside_key(self, make_body):
        record = classify(make_body("q", "x_st42y=1"))
        assert record.category is Category.MERGER

    def test_non_utf8_escape_is_kept(self, make_body):
        record = classify(make_body("q", "preset=%FF&_st1=x"))
        assert record.category is Category.EXTEND_SEARCH
        assert record.preset_ids == ["\udcff"]
        assert record.preset_ids[0].encode("utf-8", "surrogateescape") == b"\xff"

    @pytest.mark.parametrize(
        "body",
        [
            b"null",
            b'{"metadata": null}',
            b'{"metadata": {"name": null, "catalog_value": null}}',
        ],
    )
    def test_nulls_decode_as_empty(self, body: bytes):
        record = classify(body)
        assert record.text == ""
        assert record.filter_value == ""
        assert record.category is Category.UNKNOWN

    def test_null_name_with_value(self):
        record = classify(b'{"metadata": {"name": null, "catalog_value": "_st1=x"}}')
        assert record.text == ""
        assert record.category is Category.MERGER

    def test_token_needs_digits(self, make_body):
        record = classify(make_body("q", "_st=1&_stx=2"))
        assert record.category is Category.UNKNOWN

    def test_missing_metadata_is_empty(self):
        record = classify(b"{}")
        assert record.text == ""
        assert record.filter_value == ""
        assert record.category is Category.UNKNOWN


class TestDecodeErrors:
    def test_not_json(self):
        with pytest.raises(DecodeError):
            classify(b"<html>oops</html>")

    def test_wrong_shape(self):
        with pytest.raises(DecodeError):
            classify(b'{"metadata": {"name": 5}}')

    def test_bad_escape(self, make_body):
        with pytest.raises(DecodeError):
            classify(make_body("q", "preset=%zz"))


class TestParseParams:
    def test_plus_and_escapes(self):
        assert parse_params("a=b+c&d=%2F") == {"a": ["b c"], "d": ["/"]}

    def test_key_without_value(self):
        assert parse_params("flag&x=1") == {"flag": [""], "x": ["1"]}

    def test_empty_segments_skipped(self):
        assert parse_params("&&a=1&") == {"a": ["1"]}

    def test_latin1_escape_is_not_an_error(self):
        assert parse_params("a=%E9t%E9") == {"a": ["\udce9t\udce9"]}

    def test_escaped_semicolon(self):
        assert parse_params("a=1%3B2") == {"a": ["1;2"]}
