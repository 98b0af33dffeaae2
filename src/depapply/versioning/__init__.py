"""Versioning models and parsers."""

from .models import (
    DependencyBehavior,
    NuGetVersion,
    PackageDependency,
    PackageDependencyInfo,
    PackageIdentity,
    PackageReference,
    VersionRange,
    parse_version,
)
from .parser import parse_identity_token, parse_version_range, tokenize_rightmost_colon

__all__ = [
    "DependencyBehavior",
    "NuGetVersion",
    "PackageDependency",
    "PackageDependencyInfo",
    "PackageIdentity",
    "PackageReference",
    "VersionRange",
    "parse_version",
    "parse_identity_token",
    "parse_version_range",
    "tokenize_rightmost_colon",
]
