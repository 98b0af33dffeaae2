"""Metadata discovery: where the resolver's universe of package versions comes from."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Sequence

import yaml

from ..common.logging_utils import extra_context, is_debug_enabled
from ..content.assets import ZipPackageReader
from ..content.frameworks import is_compatible, parse_framework
from ..errors import ArgumentInvalidError
from ..versioning.models import (
    PackageDependency,
    PackageDependencyInfo,
    PackageIdentity,
)
from ..versioning.parser import parse_version_range

logger = logging.getLogger(__name__)


class MetadataProvider(ABC):
    """Async source of dependency metadata for package versions."""

    @abstractmethod
    async def resolve_package(self, identity: PackageIdentity, framework: str) -> Optional[PackageDependencyInfo]:
        """Metadata for exactly ``identity``, or None when unknown."""

    @abstractmethod
    async def get_versions(self, package_id: str, framework: str) -> List[PackageDependencyInfo]:
        """Every known version of ``package_id`` usable from ``framework``."""


def _info_from_mapping(entry: Dict[str, Any]) -> PackageDependencyInfo:
    if not isinstance(entry, dict):
        raise ArgumentInvalidError(f"Package entry must be a mapping, got {type(entry).__name__}")
    pkg_id = str(entry.get("id") or "").strip()
    version = entry.get("version")
    if not pkg_id or version is None:
        raise ArgumentInvalidError(f"Package entry needs an id and a version: {entry!r}")
    deps = []
    for dep in entry.get("dependencies") or []:
        if isinstance(dep, str):
            dep_id, _, spec = dep.partition(" ")
            deps.append(PackageDependency(dep_id.strip(), parse_version_range(spec.strip() or None)))
        else:
            deps.append(PackageDependency(str(dep["id"]).strip(), parse_version_range(dep.get("version"))))
    frameworks = frozenset(parse_framework(fw).short_name for fw in entry.get("frameworks") or [])
    return PackageDependencyInfo(
        identity=PackageIdentity(pkg_id, str(version)),
        dependencies=tuple(deps),
        supported_frameworks=frameworks,
    )


class LocalMetadataProvider(MetadataProvider):
    """In-memory universe, usually loaded from a YAML or JSON document.

    Document shape::

        packages:
          - id: A
            version: 1.0.0
            frameworks: [net45]
            dependencies:
              - {id: B, version: "[1.0,2.0)"}
    """

    def __init__(self, infos: Iterable[PackageDependencyInfo] = ()):
        self._by_key: Dict[str, Dict[PackageIdentity, PackageDependencyInfo]] = {}
        for info in infos:
            self.add(info)

    def add(self, info: PackageDependencyInfo) -> None:
        self._by_key.setdefault(info.identity.key, {}).setdefault(info.identity, info)

    @classmethod
    def from_document(cls, data: Any) -> "LocalMetadataProvider":
        if isinstance(data, dict):
            data = data.get("packages", [])
        if not isinstance(data, list):
            raise ArgumentInvalidError("Metadata document must hold a 'packages' list")
        return cls(_info_from_mapping(entry) for entry in data)

    @classmethod
    def from_file(cls, path: str) -> "LocalMetadataProvider":
        """Load a universe from ``.yaml``/``.yml`` or ``.json``."""
        with open(path, "r", encoding="utf-8") as fh:
            try:
                if path.lower().endswith(".json"):
                    data = json.load(fh)
                else:
                    data = yaml.safe_load(fh)
            except (yaml.YAMLError, json.JSONDecodeError) as exc:
                raise ArgumentInvalidError(f"Invalid metadata file {path}: {exc}") from exc
        provider = cls.from_document(data or {})
        logger.info("Loaded %d package versions from %s", len(provider.all_infos()), path)
        return provider

    def all_infos(self) -> List[PackageDependencyInfo]:
        return [info for versions in self._by_key.values() for info in versions.values()]

    async def resolve_package(self, identity, framework):
        info = self._by_key.get(identity.key, {}).get(identity)
        if info is None or not is_compatible(framework, info.supported_frameworks):
            return None
        return info

    async def get_versions(self, package_id, framework):
        versions = self._by_key.get(package_id.lower(), {})
        return sorted(
            (i for i in versions.values() if is_compatible(framework, i.supported_frameworks)),
            key=lambda i: i.identity,
        )


class FolderPackageSource(MetadataProvider):
    """Local feed: a directory of ``.nupkg`` files, read through ZipPackageReader.

    Dependency metadata is built per target framework, so only the
    dependency group that framework would use is reported.
    """

    def __init__(self, root: str):
        self.root = root
        self._paths: Dict[PackageIdentity, str] = {}
        self._infos: Dict[str, Dict[PackageIdentity, PackageDependencyInfo]] = {}
        self._scanned = False

    def _scan(self) -> None:
        if self._scanned:
            return
        self._scanned = True
        if not os.path.isdir(self.root):
            logger.warning("Package source %s does not exist", self.root)
            return
        for name in sorted(os.listdir(self.root)):
            if not name.lower().endswith(".nupkg"):
                continue
            path = os.path.join(self.root, name)
            try:
                reader = ZipPackageReader(path)
            except ArgumentInvalidError as exc:
                logger.warning("Skipping unreadable package %s: %s", path, exc)
                continue
            try:
                self._paths[reader.identity] = path
            finally:
                reader.close()

    def _infos_for(self, framework: str) -> Dict[PackageIdentity, PackageDependencyInfo]:
        self._scan()
        infos = self._infos.get(framework)
        if infos is None:
            infos = {}
            for identity, path in self._paths.items():
                reader = ZipPackageReader(path)
                try:
                    infos[identity] = reader.to_dependency_info(framework)
                finally:
                    reader.close()
            self._infos[framework] = infos
        return infos

    def find_path(self, identity: PackageIdentity) -> Optional[str]:
        """Archive path for ``identity``, or None."""
        self._scan()
        return self._paths.get(identity)

    def open_reader(self, identity: PackageIdentity) -> ZipPackageReader:
        """Reader over the archive for ``identity``."""
        path = self.find_path(identity)
        if path is None:
            raise ArgumentInvalidError(f"Package '{identity}' not found in {self.root}")
        return ZipPackageReader(path)

    async def resolve_package(self, identity, framework):
        infos = await asyncio.to_thread(self._infos_for, framework)
        info = infos.get(identity)
        if info is None or not is_compatible(framework, info.supported_frameworks):
            return None
        return info

    async def get_versions(self, package_id, framework):
        infos = await asyncio.to_thread(self._infos_for, framework)
        return sorted(
            (i for ident, i in infos.items()
             if ident.key == package_id.lower() and is_compatible(framework, i.supported_frameworks)),
            key=lambda i: i.identity,
        )


async def gather_dependency_infos(
    provider: MetadataProvider,
    targets: Sequence[PackageIdentity],
    framework: str,
    installed: Iterable[PackageIdentity] = (),
) -> List[PackageDependencyInfo]:
    """Collect every version reachable from ``targets`` and ``installed``.

    Targets and installed packages are fetched by exact identity; declared
    dependencies by id, across all versions the provider knows. Each identity
    appears once in the result.
    """
    collected: Dict[PackageIdentity, PackageDependencyInfo] = {}
    visited_ids = set()
    queue: deque = deque()

    for identity in list(targets) + list(installed):
        info = await provider.resolve_package(identity, framework)
        if info is None:
            logger.warning("No metadata for %s (%s)", identity, framework)
            continue
        collected.setdefault(info.identity, info)
        queue.append(info)

    while queue:
        info = queue.popleft()
        for dep in info.dependencies:
            if dep.key in visited_ids:
                continue
            visited_ids.add(dep.key)
            for candidate in await provider.get_versions(dep.id, framework):
                if candidate.identity not in collected:
                    collected[candidate.identity] = candidate
                    queue.append(candidate)

    if is_debug_enabled(logger):
        logger.debug("Gathered dependency metadata", extra=extra_context(
            event="function_exit", component="metadata", action="gather",
            outcome="success", count=len(collected),
        ))
    return sorted(collected.values(), key=lambda i: i.identity)
