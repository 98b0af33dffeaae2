"""Data models for package identities, version ranges and dependency metadata."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import FrozenSet, Optional, Tuple

import semantic_version

from ..errors import ArgumentInvalidError


class DependencyBehavior(Enum):
    """Which satisfying version the resolver prefers when several exist."""
    LOWEST = "lowest"
    HIGHEST_PATCH = "highestpatch"
    HIGHEST_MINOR = "highestminor"
    HIGHEST = "highest"
    IGNORE = "ignore"

    @classmethod
    def parse(cls, value: str) -> "DependencyBehavior":
        """Parse a behavior name, accepting ``HighestPatch``/``highest-patch`` spellings."""
        key = str(value or "").strip().lower().replace("-", "").replace("_", "")
        for member in cls:
            if member.value == key:
                return member
        raise ArgumentInvalidError(f"Unknown dependency behavior: {value!r}")


_FOUR_PART_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)\.(\d+)([-+].*)?$")


def _semver(text: str) -> semantic_version.Version:
    try:
        return semantic_version.Version(text)
    except ValueError:
        return semantic_version.Version.coerce(text)


@total_ordering
class NuGetVersion:
    """Semantic version with NuGet's optional fourth (revision) number.

    Ordering is major, minor, patch, revision, then prerelease. Build
    metadata is kept for display but ignored by ordering and equality.
    """

    __slots__ = ("semver", "revision", "_key")

    def __init__(self, semver: semantic_version.Version, revision: int = 0):
        self.semver = semver
        self.revision = revision
        # A release sorts after every prerelease of the same numbers
        if semver.prerelease:
            pre = semantic_version.Version("0.0.0-" + ".".join(semver.prerelease))
        else:
            pre = semantic_version.Version("0.0.0")
        self._key = (semver.major, semver.minor, semver.patch, revision, pre)

    @property
    def major(self) -> int:
        return self.semver.major

    @property
    def minor(self) -> int:
        return self.semver.minor

    @property
    def patch(self) -> int:
        return self.semver.patch

    @property
    def prerelease(self) -> Tuple[str, ...]:
        return tuple(self.semver.prerelease)

    @property
    def build(self) -> Tuple[str, ...]:
        return tuple(self.semver.build)

    def __eq__(self, other):
        if isinstance(other, semantic_version.Version):
            other = NuGetVersion(other)
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other):
        if isinstance(other, semantic_version.Version):
            other = NuGetVersion(other)
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        return self._key < other._key

    def __hash__(self):
        return hash(self._key)

    def __str__(self):
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.revision:
            text += f".{self.revision}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def __repr__(self):
        return f"NuGetVersion('{self}')"


def parse_version(text) -> NuGetVersion:
    """Parse a version string.

    Short forms such as ``1.0`` become ``1.0.0``; a fourth number
    (``1.0.0.2``) is kept as the revision.
    """
    if isinstance(text, NuGetVersion):
        return text
    if isinstance(text, semantic_version.Version):
        return NuGetVersion(text)
    if text is None or not str(text).strip():
        raise ArgumentInvalidError("Version must not be empty")
    raw = str(text).strip()
    try:
        match = _FOUR_PART_RE.match(raw)
        if match:
            core = f"{match.group(1)}.{match.group(2)}.{match.group(3)}{match.group(5) or ''}"
            return NuGetVersion(_semver(core), int(match.group(4)))
        return NuGetVersion(_semver(raw))
    except ValueError as exc:
        raise ArgumentInvalidError(f"Invalid version: {raw!r}") from exc


@total_ordering
@dataclass(frozen=True, eq=False)
class PackageIdentity:
    """Unique (id, version) pair naming a package. Ids compare case-insensitively."""
    id: str
    version: NuGetVersion

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id.strip():
            raise ArgumentInvalidError("Package id must be a non-empty string")
        if self.version is None:
            raise ArgumentInvalidError(f"Package '{self.id}' has no version")
        if not isinstance(self.version, NuGetVersion):
            object.__setattr__(self, "version", parse_version(self.version))

    @property
    def key(self) -> str:
        """Normalized id used for lookups."""
        return self.id.lower()

    def _sort_key(self):
        return (self.key, self.version)

    def __eq__(self, other):
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self.key == other.key and self.version == other.version

    def __lt__(self, other):
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __hash__(self):
        return hash((self.key, self.version))

    def __str__(self):
        return f"{self.id}.{self.version}"


@dataclass(frozen=True)
class VersionRange:
    """Interval over versions; a missing bound is unbounded on that side."""
    min_version: Optional[NuGetVersion] = None
    include_min: bool = True
    max_version: Optional[NuGetVersion] = None
    include_max: bool = False

    def __post_init__(self):
        for name in ("min_version", "max_version"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, NuGetVersion):
                object.__setattr__(self, name, parse_version(value))

    @classmethod
    def all(cls) -> "VersionRange":
        """Range accepting every version."""
        return cls()

    @classmethod
    def exact(cls, version) -> "VersionRange":
        """Range accepting exactly ``version``."""
        ver = parse_version(version)
        return cls(min_version=ver, include_min=True, max_version=ver, include_max=True)

    def satisfied_by(self, version) -> bool:
        """Return True when ``version`` falls inside the interval."""
        version = parse_version(version)
        if self.min_version is not None:
            if version < self.min_version or (version == self.min_version and not self.include_min):
                return False
        if self.max_version is not None:
            if version > self.max_version or (version == self.max_version and not self.include_max):
                return False
        return True

    @property
    def is_exact(self) -> bool:
        return (
            self.min_version is not None
            and self.min_version == self.max_version
            and self.include_min
            and self.include_max
        )

    def __str__(self):
        if self.is_exact:
            return f"[{self.min_version}]"
        if self.max_version is None and self.include_min and self.min_version is not None:
            return f">= {self.min_version}"
        lower = "[" if self.include_min and self.min_version is not None else "("
        upper = "]" if self.include_max and self.max_version is not None else ")"
        low = str(self.min_version) if self.min_version is not None else ""
        high = str(self.max_version) if self.max_version is not None else ""
        return f"{lower}{low}, {high}{upper}"


@dataclass(frozen=True)
class PackageDependency:
    """A declared dependency on another package id."""
    id: str
    version_range: VersionRange = field(default_factory=VersionRange.all)

    @property
    def key(self) -> str:
        return self.id.lower()


@dataclass(frozen=True)
class PackageDependencyInfo:
    """Dependency metadata for one package version.

    An empty ``supported_frameworks`` set means the package is framework-agnostic.
    """
    identity: PackageIdentity
    dependencies: Tuple[PackageDependency, ...] = ()
    supported_frameworks: FrozenSet[str] = frozenset()


@dataclass
class PackageReference:
    """Manifest entry for an installed package."""
    identity: PackageIdentity
    target_framework: Optional[str] = None
    installed: bool = True
