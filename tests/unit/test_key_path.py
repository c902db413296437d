"""
Unit tests for key path helpers.

Tests cover:
- Coercion from dotted strings
- Resolution through mappings and lists
- Prefix matching
"""

from dynaglue.base.key_path import (
    describe_key_path,
    find_matching_path,
    get_path,
    is_subset_of_key_path,
    to_key_path,
)


class TestToKeyPath:
    """Tests for to_key_path()."""

    def test_dotted_string(self):
        """Dotted strings split on dots."""
        assert to_key_path("address.lines") == ("address", "lines")

    def test_empty_string(self):
        """The empty string is the empty path."""
        assert to_key_path("") == ()

    def test_sequence_kept(self):
        """Accessor sequences become tuples unchanged."""
        assert to_key_path(["tags", 0]) == ("tags", 0)

    def test_describe(self):
        """Paths render dotted."""
        assert describe_key_path(("tags", 0, "name")) == "tags.0.name"


class TestGetPath:
    """Tests for get_path()."""

    DOCUMENT = {
        "name": "Ann",
        "address": {"city": "Sydney", "lines": ["1 George St", "Level 2"]},
        "empty": None,
    }

    def test_top_level(self):
        """Top-level fields resolve."""
        assert get_path(self.DOCUMENT, ("name",)) == "Ann"

    def test_nested_mapping(self):
        """Nested mappings resolve."""
        assert get_path(self.DOCUMENT, ("address", "city")) == "Sydney"

    def test_list_index_int_and_digit_string(self):
        """Lists are indexed by ints and all-digit strings."""
        assert get_path(self.DOCUMENT, ("address", "lines", 1)) == "Level 2"
        assert get_path(self.DOCUMENT, ("address", "lines", "0")) == "1 George St"

    def test_missing_returns_default(self):
        """Missing steps yield the default."""
        sentinel = object()
        assert get_path(self.DOCUMENT, ("address", "postcode")) is None
        assert get_path(self.DOCUMENT, ("address", "lines", 5), sentinel) is sentinel
        assert get_path(self.DOCUMENT, ("name", "first"), sentinel) is sentinel

    def test_present_none_is_not_default(self):
        """A stored None is returned, not replaced by the default."""
        sentinel = object()
        assert get_path(self.DOCUMENT, ("empty",), sentinel) is None

    def test_strings_are_not_indexed(self):
        """Strings are scalars, not sequences."""
        assert get_path(self.DOCUMENT, ("name", 0)) is None


class TestPrefixMatching:
    """Tests for is_subset_of_key_path() and find_matching_path()."""

    def test_prefix(self):
        """A leading sub-path is a subset."""
        assert is_subset_of_key_path(("a", "b", "c"), ("a", "b"))

    def test_equal_paths(self):
        """A path is a subset of itself."""
        assert is_subset_of_key_path(("a", "b"), ("a", "b"))

    def test_longer_subset_is_not_prefix(self):
        """A longer path is never a subset."""
        assert not is_subset_of_key_path(("a",), ("a", "b"))

    def test_diverging_paths(self):
        """Paths that diverge are not subsets."""
        assert not is_subset_of_key_path(("a", "b"), ("a", "c"))

    def test_empty_path_is_prefix_of_everything(self):
        """The empty path matches any path."""
        assert is_subset_of_key_path(("a", "b"), ())
        assert is_subset_of_key_path((), ())

    def test_find_matching_path_returns_first_match(self):
        """The first declared prefix wins."""
        key_paths = [("profile", "email"), ("profile",), ("name",)]
        assert find_matching_path(key_paths, ("profile", "email", "domain")) == ("profile", "email")
        assert find_matching_path(key_paths, ("profile", "age")) == ("profile",)

    def test_find_matching_path_none(self):
        """No match yields None."""
        assert find_matching_path([("a",), ("b",)], ("c", "d")) is None
