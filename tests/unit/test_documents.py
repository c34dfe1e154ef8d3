"""Tests for document path helpers."""

from datetime import datetime, timezone

import pytest

from staycheck.core.documents import (
    coerce_like,
    first_present,
    get_path,
    has_path,
    is_number,
    iter_leaves,
    parse_datetime,
    set_path,
    split_path,
)


class TestPaths:
    """Tests for dotted path access."""

    def test_split_path(self):
        assert split_path("images[0].url") == ["images", 0, "url"]
        assert split_path("pricing.total") == ["pricing", "total"]

    def test_get_path(self):
        doc = {"pricing": {"total": 10}, "images": [{"url": "a"}]}
        assert get_path(doc, "pricing.total") == 10
        assert get_path(doc, "images[0].url") == "a"
        assert get_path(doc, "images[3].url", "missing") == "missing"
        assert get_path(doc, "pricing.total.value") is None

    def test_has_path_ignores_null(self):
        doc = {"a": None, "b": 0}
        assert not has_path(doc, "a")
        assert has_path(doc, "b")

    def test_set_path_creates_intermediates(self):
        doc = {}
        set_path(doc, "pricing.total", 135)
        assert doc == {"pricing": {"total": 135}}

    def test_set_path_list_index(self):
        doc = {"images": ["a", "b"]}
        set_path(doc, "images[1]", "c")
        assert doc["images"] == ["a", "c"]

        with pytest.raises(KeyError):
            set_path(doc, "images[5]", "d")

    def test_iter_leaves(self):
        doc = {"contact": {"email": "x@y.z"}, "images": ["a.jpg"]}
        leaves = list(iter_leaves(doc))
        assert ("contact.email", "email", "x@y.z") in leaves
        assert ("images[0]", "images", "a.jpg") in leaves

    def test_first_present(self):
        doc = {"address": {"country": "Spain"}}
        assert first_present(doc, "country", "address.country") == ("address.country", "Spain")
        assert first_present(doc, "city") == (None, None)


class TestValues:
    """Tests for value coercion helpers."""

    def test_is_number_excludes_bool(self):
        assert is_number(1)
        assert is_number(2.5)
        assert not is_number(True)
        assert not is_number("3")

    def test_parse_datetime(self):
        assert parse_datetime("2024-06-15") == datetime(2024, 6, 15)
        assert parse_datetime("2024-06-15T10:00:00Z") == datetime(2024, 6, 15, 10, tzinfo=timezone.utc)
        assert parse_datetime("next week") is None
        assert parse_datetime(42) is None

    def test_coerce_like(self):
        assert coerce_like(150, "135.00") == 135
        assert isinstance(coerce_like(150, "135.00"), int)
        assert coerce_like(150.0, "135.50") == 135.5
        assert coerce_like("2024-01-01", "2024-02-01") == "2024-02-01"
        assert coerce_like(3, "moderate") == "moderate"
