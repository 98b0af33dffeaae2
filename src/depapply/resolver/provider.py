"""resolvelib provider over a discovered PackageDependencyInfo universe.

Each ``find_matches`` call narrows an id's domain to the versions satisfying
every range currently known for that id, minus versions already rejected,
ordered by the dependency behavior. resolvelib pins one candidate at a time
and backtracks when a pin leaves another id with an empty domain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from resolvelib import AbstractProvider, BaseReporter

from ..common.logging_utils import extra_context, is_debug_enabled
from ..content.frameworks import is_compatible
from ..errors import check_cancelled
from ..versioning.models import (
    DependencyBehavior,
    PackageDependencyInfo,
    PackageIdentity,
    VersionRange,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Requirement:
    """A range on one package id, with the package that declared it.

    ``requirer`` is None for requests made by the caller. ``soft`` marks the
    open-ended requirement that keeps an installed package in the solution.
    """
    id: str
    version_range: VersionRange
    requirer: Optional[PackageIdentity] = None
    soft: bool = False

    @property
    def key(self) -> str:
        return self.id.lower()


def order_candidates(
    infos: Sequence[PackageDependencyInfo],
    behavior: DependencyBehavior,
    installed: Optional[PackageIdentity] = None,
) -> List[PackageDependencyInfo]:
    """Order satisfying candidates, most preferred first."""
    ascending = sorted(infos, key=lambda i: i.identity)
    if not ascending:
        return []

    if behavior in (DependencyBehavior.HIGHEST_PATCH, DependencyBehavior.HIGHEST_MINOR):
        baseline = installed.version if installed is not None else ascending[0].identity.version

        def _within(version) -> bool:
            if version < baseline or version.major != baseline.major:
                return False
            return behavior == DependencyBehavior.HIGHEST_MINOR or version.minor == baseline.minor

        bounded = [i for i in ascending if _within(i.identity.version)]
        rest = [i for i in ascending if not _within(i.identity.version)]
        return list(reversed(bounded)) + rest

    ordered = list(reversed(ascending)) if behavior == DependencyBehavior.HIGHEST else ascending
    if installed is not None:
        # Keep what is installed unless a range rules it out
        preferred = [i for i in ordered if i.identity == installed]
        ordered = preferred + [i for i in ordered if i.identity != installed]
    return ordered


class DependencyInfoProvider(AbstractProvider):
    """Answers resolvelib's questions from an in-memory metadata universe."""

    def __init__(
        self,
        available: Iterable[PackageDependencyInfo],
        installed: Mapping[str, PackageIdentity],
        behavior: DependencyBehavior,
        target_framework: str,
    ):
        self._behavior = behavior
        self._installed = dict(installed)
        self._domains: Dict[str, List[PackageDependencyInfo]] = {}
        seen = set()
        for info in available:
            if info.identity in seen:
                continue
            seen.add(info.identity)
            if not is_compatible(target_framework, info.supported_frameworks):
                continue
            self._domains.setdefault(info.identity.key, []).append(info)
        for key, identity in self._installed.items():
            # An installed version is always a candidate for its own id
            domain = self._domains.setdefault(key, [])
            if all(info.identity != identity for info in domain):
                domain.append(PackageDependencyInfo(identity))

    def identify(self, requirement_or_candidate):
        if isinstance(requirement_or_candidate, PackageDependencyInfo):
            return requirement_or_candidate.identity.key
        return requirement_or_candidate.key

    def get_preference(self, identifier, resolutions, candidates, information, backtrack_causes):
        pinned = any(
            info.requirement.version_range.is_exact and not info.requirement.soft
            for info in information[identifier]
        )
        return (not pinned, sum(1 for _ in candidates[identifier]), identifier)

    def find_matches(self, identifier, requirements, incompatibilities):
        reqs = list(requirements[identifier])
        rejected = {c.identity for c in incompatibilities[identifier]}
        matching = [
            info for info in self._domains.get(identifier, [])
            if info.identity not in rejected
            and all(r.version_range.satisfied_by(info.identity.version) for r in reqs)
        ]
        return order_candidates(matching, self._behavior, self._installed.get(identifier))

    def is_satisfied_by(self, requirement, candidate):
        return requirement.version_range.satisfied_by(candidate.identity.version)

    def get_dependencies(self, candidate):
        if self._behavior == DependencyBehavior.IGNORE:
            return []
        deps = sorted(candidate.dependencies, key=lambda d: (d.key, str(d.version_range)))
        return [Requirement(d.id, d.version_range, candidate.identity) for d in deps]


class ResolutionReporter(BaseReporter):
    """Checks for cancellation between rounds and traces pins and rejections."""

    def __init__(self, cancel_event=None):
        self._cancel_event = cancel_event

    def starting_round(self, index):
        check_cancelled(self._cancel_event, f"resolve round {index}")

    def pinning(self, candidate):
        if is_debug_enabled(logger):
            logger.debug("Pinning candidate", extra=extra_context(
                event="decision", component="resolver", action="pin",
                package_id=candidate.identity.id, target=str(candidate.identity.version),
            ))

    def rejecting_candidate(self, criterion, candidate):
        if is_debug_enabled(logger):
            logger.debug("Rejecting candidate", extra=extra_context(
                event="decision", component="resolver", action="reject",
                package_id=candidate.identity.id, target=str(candidate.identity.version),
            ))
