"""Target framework parsing and most-compatible asset group selection.

Frameworks are written as short folder names (``net45``, ``netstandard2.0``,
``net6.0``, ``portable-net40+win8``) or as full names
(``.NETFramework,Version=v4.5``). ``any`` (or an empty tag) is the wildcard:
compatible with every target, and the least specific match.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple, TYPE_CHECKING

from ..common.logging_utils import extra_context, is_debug_enabled
from ..constants import Constants

if TYPE_CHECKING:
    from .assets import AssetGroup

logger = logging.getLogger(__name__)

_FULL_NAMES = {
    ".netframework": "net",
    ".netstandard": "netstandard",
    ".netcoreapp": "netcoreapp",
    ".netportable": "portable",
    "silverlight": "sl",
    "windowsphone": "wp",
    "windows": "win",
}

_SHORT_RE = re.compile(r'^([a-z]+)([0-9][0-9\.]*)?$')
_FULL_RE = re.compile(r'^([\.a-z]+)\s*,\s*version\s*=\s*v?([0-9\.]+)', re.IGNORECASE)

# (lowest .NET Framework version, highest netstandard version it implements)
_NETFRAMEWORK_NETSTANDARD = (
    ((4, 6, 1), (2, 0)),
    ((4, 6), (1, 3)),
    ((4, 5, 1), (1, 2)),
    ((4, 5), (1, 1)),
)

_TIER_SAME_FAMILY = 0
_TIER_NETSTANDARD = 1
_TIER_PORTABLE = 2
_TIER_ANY = 3


def _version_tuple(raw: Optional[str]) -> Tuple[int, ...]:
    if not raw:
        return ()
    if '.' in raw:
        return tuple(int(p) for p in raw.split('.') if p != '')
    # "45" -> (4, 5), "451" -> (4, 5, 1)
    return tuple(int(ch) for ch in raw)


def _pad(version: Tuple[int, ...], size: int = 4) -> Tuple[int, ...]:
    return tuple(version) + (0,) * (size - len(version))


@dataclass(frozen=True)
class Framework:
    """A parsed target framework."""
    family: str
    version: Tuple[int, ...] = ()
    profile: Tuple["Framework", ...] = ()

    @property
    def is_any(self) -> bool:
        return self.family == Constants.ANY_FRAMEWORK

    @property
    def short_name(self) -> str:
        if self.is_any:
            return Constants.ANY_FRAMEWORK
        if self.family == "portable":
            return "portable-" + "+".join(f.short_name for f in self.profile)
        if not self.version:
            return self.family
        if self.family == "net" and self.version[0] < 5:
            return "net" + "".join(str(p) for p in self.version)
        if len(self.version) == 1 and self.family not in ("netcoreapp", "netstandard"):
            return f"{self.family}{self.version[0]}"
        dotted = ".".join(str(p) for p in (self.version if len(self.version) > 1 else self.version + (0,)))
        family = "net" if self.family == "netcoreapp" and self.version[0] >= 5 else self.family
        return family + dotted

    def __str__(self):
        return self.short_name


ANY = Framework(Constants.ANY_FRAMEWORK)


def parse_framework(name: Optional[str]) -> Framework:
    """Parse a short or full framework name. Unknown shapes become their own family."""
    if name is None:
        return ANY
    if isinstance(name, Framework):
        return name
    raw = str(name).strip().lower()
    if not raw or raw in (Constants.ANY_FRAMEWORK, "agnostic"):
        return ANY
    m = _FULL_RE.match(raw)
    if m:
        family = _FULL_NAMES.get(m.group(1), m.group(1).lstrip('.'))
        version = _version_tuple(m.group(2))
        if family == "net" and version and version[0] >= 5:
            family = "netcoreapp"
        return Framework(family, version)
    if raw.startswith("portable-"):
        members = tuple(parse_framework(part) for part in raw[len("portable-"):].split('+') if part)
        return Framework("portable", (), members)
    m = _SHORT_RE.match(raw)
    if not m:
        return Framework(raw)
    family, digits = m.group(1), m.group(2)
    version = _version_tuple(digits)
    if family == "net" and digits and '.' in digits and version[0] >= 5:
        # net5.0 and later continue the netcoreapp line
        family = "netcoreapp"
    return Framework(family, version)


def _netstandard_ceiling(target: Framework) -> Optional[Tuple[int, ...]]:
    """Highest netstandard version ``target`` implements, or None."""
    if target.family == "netstandard":
        return target.version
    if target.family == "netcoreapp":
        return (2, 1) if _pad(target.version) >= _pad((3, 0)) else (2, 0)
    if target.family == "net":
        for floor, ceiling in _NETFRAMEWORK_NETSTANDARD:
            if _pad(target.version) >= _pad(floor):
                return ceiling
    return None


def compatibility_distance(target, candidate) -> Optional[Tuple[int, Tuple[int, ...]]]:
    """Return a sort key for ``candidate`` relative to ``target``, or None if incompatible.

    Smaller keys are more specific matches.
    """
    target = parse_framework(target)
    candidate = parse_framework(candidate)
    if candidate.is_any:
        return (_TIER_ANY, ())
    if target.is_any:
        # A framework-agnostic project only accepts framework-agnostic assets
        return None
    if target.family == "portable":
        if candidate == target:
            return (_TIER_SAME_FAMILY, ())
        if target.profile and all(compatibility_distance(m, candidate) is not None for m in target.profile):
            return (_TIER_PORTABLE, ())
        return None
    if candidate.family == "portable":
        keys = [compatibility_distance(target, m) for m in candidate.profile]
        keys = [k for k in keys if k is not None]
        if not keys:
            return None
        return (_TIER_PORTABLE, min(keys)[1])
    negated = tuple(-p for p in _pad(candidate.version))
    if candidate.family == target.family:
        if _pad(candidate.version) <= _pad(target.version):
            return (_TIER_SAME_FAMILY, negated)
        return None
    if candidate.family == "netstandard":
        ceiling = _netstandard_ceiling(target)
        if ceiling is not None and _pad(candidate.version) <= _pad(ceiling):
            return (_TIER_NETSTANDARD, negated)
    return None


def is_compatible(target, supported_frameworks: Iterable[str]) -> bool:
    """True when a package supporting ``supported_frameworks`` can be used by ``target``.

    An empty set means the package is framework-agnostic.
    """
    frameworks = list(supported_frameworks or ())
    if not frameworks:
        return True
    return any(compatibility_distance(target, fw) is not None for fw in frameworks)


class SelectionStatus(Enum):
    """Outcome of a most-compatible group lookup."""
    NO_GROUPS = "no_groups"
    INCOMPATIBLE = "incompatible"
    SELECTED = "selected"


@dataclass(frozen=True)
class SelectionResult:
    """Selected group plus the reason when nothing was selected."""
    status: SelectionStatus
    group: Optional["AssetGroup"] = None

    @property
    def is_valid(self) -> bool:
        """True when a group was selected and it has at least one item."""
        return self.group is not None and bool(self.group.items)

    @property
    def items(self) -> Tuple[str, ...]:
        return self.group.items if self.group is not None else ()


def get_most_compatible_group(target, groups: Sequence["AssetGroup"]) -> SelectionResult:
    """Pick the most specific group compatible with ``target``.

    Ties break by declaration order. ``NO_GROUPS`` means the category is
    absent from the package; ``INCOMPATIBLE`` means groups exist but none fit.
    """
    if not groups:
        return SelectionResult(SelectionStatus.NO_GROUPS)
    best = None
    best_key = None
    for index, group in enumerate(groups):
        distance = compatibility_distance(target, group.target_framework)
        if distance is None:
            continue
        key = (distance, index)
        if best_key is None or key < best_key:
            best, best_key = group, key
    if is_debug_enabled(logger):
        logger.debug("Selected asset group", extra=extra_context(
            event="decision", component="frameworks", action="get_most_compatible_group",
            target=str(parse_framework(target)),
            outcome=best.target_framework if best is not None else "none",
            count=len(groups),
        ))
    if best is None:
        return SelectionResult(SelectionStatus.INCOMPATIBLE)
    return SelectionResult(SelectionStatus.SELECTED, best)
