"""Tests for package identity, version and range parsing."""

import pytest
import semantic_version

from depapply.errors import ArgumentInvalidError
from depapply.versioning import (
    DependencyBehavior,
    PackageIdentity,
    VersionRange,
    parse_identity_token,
    parse_version,
    parse_version_range,
    tokenize_rightmost_colon,
)


def v(text):
    return semantic_version.Version(text)


class TestParseVersion:
    """Version coercion."""

    def test_full_semver(self):
        assert parse_version("1.2.3") == v("1.2.3")

    def test_short_forms_are_coerced(self):
        assert parse_version("1.0") == v("1.0.0")
        assert parse_version("2") == v("2.0.0")

    def test_prerelease_sorts_before_release(self):
        assert parse_version("1.0.0-beta") < parse_version("1.0.0")

    def test_empty_is_rejected(self):
        with pytest.raises(ArgumentInvalidError):
            parse_version("  ")

    def test_revision_is_kept(self):
        version = parse_version("1.0.0.2")
        assert version.revision == 2
        assert str(version) == "1.0.0.2"
        assert str(PackageIdentity("X", "1.0.0.2")) == "X.1.0.0.2"

    def test_revision_orders_between_patches(self):
        ordered = sorted(parse_version(t) for t in ("1.0.1", "1.0.0.2", "1.0.0", "1.0.0.1"))
        assert [str(x) for x in ordered] == ["1.0.0", "1.0.0.1", "1.0.0.2", "1.0.1"]
        assert parse_version("1.0.0.1") != parse_version("1.0.0.2")

    def test_revision_prerelease(self):
        assert parse_version("1.0.0") < parse_version("1.0.0.1-beta") < parse_version("1.0.0.1")
        assert str(parse_version("1.0.0.1-beta")) == "1.0.0.1-beta"

    def test_zero_revision_is_normalized(self):
        assert parse_version("1.0.0.0") == parse_version("1.0.0")
        assert str(parse_version("1.0.0.0")) == "1.0.0"

    def test_build_metadata_ignored_for_equality(self):
        assert parse_version("1.0.0+abc") == parse_version("1.0.0")
        assert str(parse_version("1.0.0+abc")) == "1.0.0+abc"

    def test_garbage_is_rejected(self):
        with pytest.raises(ArgumentInvalidError):
            parse_version("not-a-version")


class TestPackageIdentity:
    """Identity equality and ordering."""

    def test_ids_compare_case_insensitively(self):
        assert PackageIdentity("Newtonsoft.Json", "6.0.5") == PackageIdentity("newtonsoft.json", "6.0.5")
        assert hash(PackageIdentity("A", "1.0.0")) == hash(PackageIdentity("a", "1.0.0"))

    def test_ordering_by_id_then_version(self):
        ids = [PackageIdentity("b", "1.0.0"), PackageIdentity("A", "2.0.0"), PackageIdentity("a", "1.0.0")]
        assert [str(i) for i in sorted(ids)] == ["a.1.0.0", "A.2.0.0", "b.1.0.0"]

    def test_str_renders_id_dot_version(self):
        assert str(PackageIdentity("Foo", "1.2.3")) == "Foo.1.2.3"

    def test_empty_id_is_rejected(self):
        with pytest.raises(ArgumentInvalidError):
            PackageIdentity("", "1.0.0")

    def test_missing_version_is_rejected(self):
        with pytest.raises(ArgumentInvalidError):
            PackageIdentity("A", None)


class TestTokenize:
    """``Id:Version`` token handling."""

    def test_rightmost_colon(self):
        assert tokenize_rightmost_colon("Newtonsoft.Json:6.0.5") == ("Newtonsoft.Json", "6.0.5")

    def test_space_separated(self):
        assert tokenize_rightmost_colon("Foo 1.0.0") == ("Foo", "1.0.0")

    def test_no_version(self):
        assert tokenize_rightmost_colon("Foo") == ("Foo", None)
        assert tokenize_rightmost_colon("Foo:") == ("Foo", None)

    def test_parse_identity_token(self):
        assert parse_identity_token("Foo:1.0") == PackageIdentity("Foo", "1.0.0")

    def test_parse_identity_token_requires_version(self):
        with pytest.raises(ArgumentInvalidError):
            parse_identity_token("Foo")

    def test_parse_identity_token_rejects_empty(self):
        with pytest.raises(ArgumentInvalidError):
            parse_identity_token("")


class TestParseVersionRange:
    """Interval, comparator and bare forms."""

    def test_none_and_star_accept_everything(self):
        for spec in (None, "", "*"):
            rng = parse_version_range(spec)
            assert rng == VersionRange.all()
            assert rng.satisfied_by(v("0.0.1"))

    def test_bare_version_means_minimum(self):
        rng = parse_version_range("1.0")
        assert rng.satisfied_by(v("1.0.0"))
        assert rng.satisfied_by(v("9.0.0"))
        assert not rng.satisfied_by(v("0.9.0"))

    def test_half_open_interval(self):
        rng = parse_version_range("[1.0,2.0)")
        assert rng.satisfied_by(v("1.0.0"))
        assert rng.satisfied_by(v("1.9.9"))
        assert not rng.satisfied_by(v("2.0.0"))

    def test_open_lower_bound(self):
        rng = parse_version_range("(,1.0]")
        assert rng.min_version is None
        assert rng.satisfied_by(v("0.1.0"))
        assert rng.satisfied_by(v("1.0.0"))
        assert not rng.satisfied_by(v("1.0.1"))

    def test_exclusive_lower_bound(self):
        rng = parse_version_range("(1.0,)")
        assert not rng.satisfied_by(v("1.0.0"))
        assert rng.satisfied_by(v("1.0.1"))

    def test_exact_interval(self):
        rng = parse_version_range("[1.2.3]")
        assert rng.is_exact
        assert rng.satisfied_by(v("1.2.3"))
        assert not rng.satisfied_by(v("1.2.4"))
        assert str(rng) == "[1.2.3]"

    def test_exact_range_with_revision(self):
        rng = VersionRange.exact("1.0.0.2")
        assert rng.satisfied_by(parse_version("1.0.0.2"))
        assert not rng.satisfied_by(parse_version("1.0.0.1"))
        assert str(rng) == "[1.0.0.2]"

    def test_interval_with_revisions(self):
        rng = parse_version_range("[1.0.0.1,1.0.0.3)")
        assert not rng.satisfied_by(parse_version("1.0.0"))
        assert rng.satisfied_by(parse_version("1.0.0.2"))
        assert not rng.satisfied_by(parse_version("1.0.0.3"))

    def test_comparators(self):
        rng = parse_version_range(">=1.0.0, <2.0.0")
        assert rng.satisfied_by(v("1.5.0"))
        assert not rng.satisfied_by(v("2.0.0"))
        assert rng == parse_version_range(">=1.0,<2.0")

    def test_comparator_exact(self):
        assert parse_version_range("==1.0.0").is_exact

    def test_min_greater_than_max_is_rejected(self):
        with pytest.raises(ArgumentInvalidError):
            parse_version_range("[2.0,1.0]")

    def test_single_value_exclusive_is_rejected(self):
        with pytest.raises(ArgumentInvalidError):
            parse_version_range("(1.0)")

    def test_empty_interval_is_rejected(self):
        with pytest.raises(ArgumentInvalidError):
            parse_version_range("[,]")

    def test_str_of_minimum_range(self):
        assert str(parse_version_range("1.0")) == ">= 1.0.0"
        assert str(parse_version_range("[1.0,2.0)")) == "[1.0.0, 2.0.0)"


class TestDependencyBehavior:
    """Behavior name parsing."""

    @pytest.mark.parametrize("text,expected", [
        ("lowest", DependencyBehavior.LOWEST),
        ("HighestPatch", DependencyBehavior.HIGHEST_PATCH),
        ("highest-minor", DependencyBehavior.HIGHEST_MINOR),
        ("HIGHEST", DependencyBehavior.HIGHEST),
        ("ignore", DependencyBehavior.IGNORE),
    ])
    def test_parse(self, text, expected):
        assert DependencyBehavior.parse(text) == expected

    def test_unknown(self):
        with pytest.raises(ArgumentInvalidError):
            DependencyBehavior.parse("newest")
