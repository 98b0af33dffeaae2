"""Dependency graph resolution: one consistent version per package id."""

from __future__ import annotations

import heapq
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set

from resolvelib import ResolutionImpossible, ResolutionTooDeep, Resolver

from ..common.logging_utils import Timer, extra_context, is_debug_enabled
from ..constants import Constants
from ..errors import ArgumentInvalidError, Conflicts, UnsatisfiableDependencyError
from ..versioning.models import (
    DependencyBehavior,
    PackageDependencyInfo,
    PackageIdentity,
    PackageReference,
    VersionRange,
)
from .provider import DependencyInfoProvider, Requirement, ResolutionReporter

logger = logging.getLogger(__name__)


def _conflicts_from_causes(causes) -> Conflicts:
    """Group resolvelib causes by dependency id, dropping duplicates.

    The open-ended requirements that keep installed packages in the solution
    are only reported when nothing else names that id.
    """
    grouped: Dict[str, List] = {}
    display: Dict[str, str] = {}
    for info in causes:
        req = info.requirement
        display.setdefault(req.key, req.id)
        requirer = info.parent.identity if info.parent is not None else None
        entry = (requirer, req.version_range, req.soft)
        if entry not in grouped.setdefault(req.key, []):
            grouped[req.key].append(entry)
    conflicts: Conflicts = {}
    for key, entries in grouped.items():
        hard = [e for e in entries if not e[2]] or entries
        conflicts[display[key]] = [(requirer, rng) for requirer, rng, _ in hard]
    return conflicts


def topological_order(mapping: Dict[str, PackageDependencyInfo]) -> List[PackageIdentity]:
    """Dependencies before dependents; ties and cycles broken by identity order."""
    dependents: Dict[str, Set[str]] = {key: set() for key in mapping}
    pending: Dict[str, Set[str]] = {key: set() for key in mapping}
    for key, info in mapping.items():
        for dep in info.dependencies:
            if dep.key in mapping and dep.key != key:
                pending[key].add(dep.key)
                dependents[dep.key].add(key)

    ready = [mapping[k].identity for k, deps in pending.items() if not deps]
    heapq.heapify(ready)
    ordered: List[PackageIdentity] = []
    done: Set[str] = set()
    while len(done) < len(mapping):
        if not ready:
            # Cycle: release its smallest member
            ready = [min(mapping[k].identity for k in mapping if k not in done)]
        identity = heapq.heappop(ready)
        if identity.key in done:
            continue
        done.add(identity.key)
        ordered.append(identity)
        for dependent in sorted(dependents[identity.key]):
            pending[dependent].discard(identity.key)
            if not pending[dependent] and dependent not in done:
                heapq.heappush(ready, mapping[dependent].identity)
    return ordered


class DependencyGraphResolver:
    """Computes the set of packages to have installed for a request.

    Args:
        behavior: which satisfying version is preferred when several exist.
        max_rounds: resolvelib round limit before giving up.
    """

    def __init__(self, behavior: DependencyBehavior = DependencyBehavior.LOWEST,
                 max_rounds: Optional[int] = None):
        self.behavior = behavior
        self.max_rounds = max_rounds or Constants.RESOLVER_MAX_ROUNDS

    def resolve(
        self,
        targets: Sequence[PackageIdentity],
        available: Iterable[PackageDependencyInfo],
        installed: Iterable[PackageReference] = (),
        target_framework: str = Constants.DEFAULT_TARGET_FRAMEWORK,
        cancel_event=None,
    ) -> List[PackageIdentity]:
        """Return the packages to have installed, dependencies first.

        Raises:
            ArgumentInvalidError: no targets, or a target is None.
            UnsatisfiableDependencyError: no consistent assignment exists.
            OperationCancelledError: ``cancel_event`` was set between rounds.
        """
        if not targets:
            raise ArgumentInvalidError("At least one target package is required")
        if any(t is None for t in targets):
            raise ArgumentInvalidError("Target packages must not be None")

        installed_map: Dict[str, PackageIdentity] = {}
        for ref in installed:
            installed_map.setdefault(ref.identity.key, ref.identity)

        requirements: List[Requirement] = []
        target_keys = set()
        for target in sorted(set(targets)):
            target_keys.add(target.key)
            requirements.append(Requirement(target.id, VersionRange.exact(target.version)))
        for key in sorted(installed_map):
            if key not in target_keys:
                identity = installed_map[key]
                requirements.append(Requirement(identity.id, VersionRange.all(), soft=True))

        provider = DependencyInfoProvider(available, installed_map, self.behavior, target_framework)
        resolver = Resolver(provider, ResolutionReporter(cancel_event))
        with Timer() as t:
            try:
                result = resolver.resolve(requirements, max_rounds=self.max_rounds)
            except ResolutionImpossible as exc:
                error = UnsatisfiableDependencyError(_conflicts_from_causes(exc.causes))
                logger.warning("Dependency resolution failed: %s", error)
                raise error from exc
            except ResolutionTooDeep as exc:
                raise UnsatisfiableDependencyError(
                    {}, f"Dependency resolution gave up after {self.max_rounds} rounds"
                ) from exc

        ordered = topological_order(result.mapping)
        if is_debug_enabled(logger):
            logger.debug("Resolved dependency graph", extra=extra_context(
                event="function_exit", component="resolver", action="resolve",
                outcome="success", count=len(ordered), duration_ms=t.duration_ms(),
            ))
        return ordered
