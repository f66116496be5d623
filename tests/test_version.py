"""
Tests for semantic version parsing and ordering.
"""

import pytest

from bundlesync.cargo.version import SemVer
from bundlesync.exceptions import VersionError

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]


class TestSemVerParsing:
    """Test SemVer.from_string and SemVer.parse."""

    def test_plain_release(self):
        """Test parsing a release version."""
        version = SemVer.from_string("1.2.3")
        assert version is not None
        assert (version.major, version.minor, version.patch) == (1, 2, 3)
        assert not version.is_prerelease()

    def test_prerelease_with_build(self):
        """Test parsing a tagged prerelease with a numeric build."""
        version = SemVer.from_string("0.4.0-beta.7")
        assert version.prerelease == "beta"
        assert version.build == 7
        assert version.is_prerelease()

    def test_prerelease_without_build(self):
        """Test a prerelease tag without a build defaults to build 0."""
        version = SemVer.from_string("2.0.0-rc")
        assert version.prerelease == "rc"
        assert version.build == 0

    def test_tag_name_as_build(self):
        """Test a tag name used as build counts as that tag's rank."""
        assert SemVer.from_string("1.0.0-alpha.beta").build == 2
        assert SemVer.from_string("1.0.0-alpha.prealpha").build == 0

    @pytest.mark.parametrize(
        "text",
        ["", "1", "1.2", "1.2.3.4", "v1.2.3", "1.2.3-gamma", "1.2.3-beta.x", "a.b.c", "1.2.3-"],
    )
    def test_invalid_versions(self, text):
        """Test malformed strings are rejected."""
        assert SemVer.from_string(text) is None

    def test_too_long_version(self):
        """Test strings beyond the length limit are rejected."""
        assert SemVer.from_string("1.2." + "9" * 300) is None

    def test_non_string(self):
        """Test non-string input is rejected instead of raising."""
        assert SemVer.from_string(123) is None

    def test_parse_raises_version_error(self):
        """Test parse raises VersionError for invalid input."""
        with pytest.raises(VersionError) as exc_info:
            SemVer.parse("not-a-version")
        assert exc_info.value.value == "not-a-version"

    def test_str_round_trip(self):
        """Test str() renders the canonical form."""
        assert str(SemVer.parse("1.2.3")) == "1.2.3"
        assert str(SemVer.parse("1.2.3-rc.2")) == "1.2.3-rc.2"
        assert repr(SemVer.parse("1.2.3")) == "SemVer('1.2.3')"

    def test_unknown_tag_in_constructor(self):
        """Test the constructor rejects unknown prerelease tags."""
        with pytest.raises(VersionError):
            SemVer(1, 0, 0, "gamma", 1)


class TestSemVerOrdering:
    """Test the total order over versions."""

    def test_core_ordering(self):
        """Test major, minor and patch compare numerically."""
        assert SemVer.parse("0.1.2") < SemVer.parse("0.1.3")
        assert SemVer.parse("0.9.0") < SemVer.parse("0.10.0")
        assert SemVer.parse("1.0.0") > SemVer.parse("0.99.99")

    def test_prerelease_tag_ordering(self):
        """Test prealpha < alpha < beta < rc < release for the same core."""
        ordered = [
            SemVer.parse(v)
            for v in ["1.0.0-prealpha.3", "1.0.0-alpha.1", "1.0.0-beta", "1.0.0-rc.9", "1.0.0"]
        ]
        assert ordered == sorted(ordered)
        assert len(set(ordered)) == len(ordered)

    def test_builds_compare_numerically(self):
        """Test builds within a tag compare as numbers."""
        assert SemVer.parse("1.0.0-beta.2") < SemVer.parse("1.0.0-beta.10")

    def test_prerelease_of_next_version_is_greater(self):
        """Test a prerelease of a later core outranks an earlier release."""
        assert SemVer.parse("1.0.1-prealpha") > SemVer.parse("1.0.0")

    def test_comparison_helpers(self):
        """Test is_greater, is_lower and is_equal."""
        low, high = SemVer.parse("0.1.2"), SemVer.parse("0.1.3")
        assert high.is_greater(low)
        assert low.is_lower(high)
        assert low.is_equal(SemVer.parse("0.1.2"))
        assert not low.is_equal(high)

    def test_null_version(self):
        """Test the null version is 0.0.0 and lowest among releases."""
        assert str(SemVer.null()) == "0.0.0"
        assert SemVer.null() < SemVer.parse("0.0.1")

    def test_hashable(self):
        """Test equal versions hash equally."""
        assert {SemVer.parse("1.0.0-alpha.1"), SemVer.parse("1.0.0-alpha.1")} == {
            SemVer.parse("1.0.0-alpha.1")
        }
