"""Tests for defensive parsing of store replies."""

import pytest

from storefront_analytics.coerce import from_json, to_counter_map, to_hash, to_int, to_str_list


class TestToInt:
    @pytest.mark.parametrize("value,expected", [
        (5, 5),
        ("12", 12),
        (b"7", 7),
        (" 3 ", 3),
        (4.9, 4),
        ("2.0", 2),
        (None, 0),
        ("", 0),
        ("abc", 0),
        ("12abc", 0),
        ("NaN", 0),
        (float("nan"), 0),
        ("inf", 0),
        (True, 0),
    ])
    def test_coercion(self, value, expected):
        assert to_int(value) == expected


class TestCounterMap:
    def test_dict_reply(self):
        assert to_counter_map({"/a": "2", "/b": 3}) == {"/a": 2, "/b": 3}

    def test_flat_list_reply(self):
        assert to_counter_map(["/a", "2", "/b", "1"]) == {"/a": 2, "/b": 1}

    def test_odd_length_list_drops_trailing_field(self):
        assert to_hash(["/a", "2", "/dangling"]) == {"/a": "2"}

    def test_skips_empty_keys_and_non_positive_counts(self):
        assert to_counter_map({"": "5", "/zero": "0", "/neg": "-1", "/junk": "x", "/ok": "1"}) == {"/ok": 1}

    def test_missing_or_wrong_type(self):
        assert to_counter_map(None) == {}
        assert to_counter_map("not a hash") == {}


class TestStrList:
    def test_list_drops_none(self):
        assert to_str_list(["a", None, 3]) == ["a", "3"]

    def test_scalar_wrapped(self):
        assert to_str_list("solo") == ["solo"]

    def test_none(self):
        assert to_str_list(None) == []


class TestFromJson:
    def test_valid(self):
        assert from_json('{"role": "admin"}') == {"role": "admin"}

    def test_invalid_returns_default(self):
        assert from_json("{nope", default={}) == {}
        assert from_json(None, default=[]) == []
