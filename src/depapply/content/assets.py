"""Package content access: framework-tagged asset groups per category.

The archive format is an implementation detail of ``ZipPackageReader``; the
rest of the code only sees ``PackageReader``.
"""

from __future__ import annotations

import io
import logging
import os
import posixpath
import xml.etree.ElementTree as ET
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Dict, List, Optional, Tuple, Union

from ..constants import Constants, PackageFolders
from ..errors import ArgumentInvalidError
from ..versioning.models import PackageDependency, PackageDependencyInfo, PackageIdentity
from ..versioning.parser import parse_version_range
from .frameworks import get_most_compatible_group, parse_framework

logger = logging.getLogger(__name__)

_KNOWN_FAMILIES = {
    "net", "netstandard", "netcoreapp", "portable", "sl", "wp", "win", "uap", "netcore", "any",
}
_ARCHIVE_NOISE = ("_rels/", "package/", "[content_types].xml")


class AssetCategory(Enum):
    """Kinds of asset groups a package can carry."""
    LIB = "lib"
    REFERENCE = "reference"
    FRAMEWORK_REFERENCE = "framework_reference"
    CONTENT = "content"
    BUILD = "build"
    TOOL = "tool"


@dataclass(frozen=True)
class AssetGroup:
    """Items of one category targeting one framework, in package order."""
    target_framework: str
    items: Tuple[str, ...] = ()


def is_framework_folder(name: str) -> bool:
    """True when a folder name is a recognizable framework tag."""
    fw = parse_framework(name)
    if fw.is_any:
        return name.strip().lower() in ("", Constants.ANY_FRAMEWORK)
    return fw.family in _KNOWN_FAMILIES


def normalize_item_path(path: str) -> str:
    """Use forward slashes for package item paths."""
    return path.replace("\\", "/").lstrip("/")


def group_items(paths, folder: str) -> List[AssetGroup]:
    """Group item paths under ``folder`` by their framework sub-folder.

    ``lib/net45/a.dll`` belongs to ``net45``; ``lib/a.dll`` to ``any``.
    Groups keep first-appearance order, items keep package order.
    """
    groups: Dict[str, List[str]] = {}
    prefix = folder + "/"
    for raw in paths:
        path = normalize_item_path(raw)
        if not path.lower().startswith(prefix) or path.endswith("/"):
            continue
        parts = path.split("/")
        framework = Constants.ANY_FRAMEWORK
        if len(parts) > 2 and is_framework_folder(parts[1]):
            framework = parse_framework(parts[1]).short_name
        groups.setdefault(framework, []).append(path)
    return [AssetGroup(fw, tuple(items)) for fw, items in groups.items()]


def get_group_relative_path(path: str, folder: str) -> str:
    """Strip ``<folder>/`` and an optional framework segment from an item path."""
    parts = normalize_item_path(path).split("/")
    if parts and parts[0].lower() == folder:
        parts = parts[1:]
    if len(parts) > 1 and is_framework_folder(parts[0]):
        parts = parts[1:]
    return "/".join(parts)


class PackageReader(ABC):
    """Item-listing view over one package's contents."""

    @property
    @abstractmethod
    def identity(self) -> PackageIdentity:
        """Identity declared by the package."""

    @abstractmethod
    def list_items(self) -> List[str]:
        """All item paths, forward-slash separated, in package order."""

    @abstractmethod
    def read_item(self, path: str) -> bytes:
        """Bytes of one item."""

    @abstractmethod
    def get_item_groups(self, category: AssetCategory) -> List[AssetGroup]:
        """Framework-tagged groups for ``category``."""

    @abstractmethod
    def save(self, path: str) -> None:
        """Write the package archive to ``path``."""

    @abstractmethod
    def get_dependency_groups(self) -> List[Tuple[str, Tuple[PackageDependency, ...]]]:
        """Declared dependencies as (framework, dependencies) pairs."""

    def get_dependencies(self, framework=None) -> List[PackageDependency]:
        """Declared dependencies, for ``framework`` when given, otherwise all of them."""
        groups = self.get_dependency_groups()
        if framework is None:
            seen = []
            for _, deps in groups:
                seen.extend(d for d in deps if d not in seen)
            return seen
        candidates = [AssetGroup(fw, tuple(d.id for d in deps)) for fw, deps in groups]
        selected = get_most_compatible_group(framework, candidates)
        for candidate, (_, deps) in zip(candidates, groups):
            if candidate is selected.group:
                return list(deps)
        return []

    def close(self) -> None:
        """Release underlying resources."""

    def to_dependency_info(self, framework=None) -> PackageDependencyInfo:
        """Dependency metadata derived from the package itself.

        With ``framework`` only the most compatible dependency group is used;
        without it every group is merged.
        """
        frameworks = {
            g.target_framework
            for g in self.get_item_groups(AssetCategory.LIB)
            if g.target_framework != Constants.ANY_FRAMEWORK
        }
        frameworks.update(fw for fw, _ in self.get_dependency_groups() if fw != Constants.ANY_FRAMEWORK)
        return PackageDependencyInfo(
            identity=self.identity,
            dependencies=tuple(self.get_dependencies(framework)),
            supported_frameworks=frozenset(frameworks),
        )


def _strip_namespaces(root: ET.Element) -> ET.Element:
    # Remove namespace for easier parsing
    for elem in root.iter():
        if '}' in elem.tag:
            elem.tag = elem.tag.split('}')[1]
    return root


class ZipPackageReader(PackageReader):
    """Reads a ``.nupkg`` archive (zip with a ``.nuspec`` manifest at its root)."""

    def __init__(self, source: Union[str, os.PathLike, BinaryIO]):
        if isinstance(source, (str, os.PathLike)):
            with open(source, "rb") as fh:
                data = fh.read()
            stream: BinaryIO = io.BytesIO(data)
        else:
            if source is None:
                raise ArgumentInvalidError("Package stream must not be None")
            if not source.seekable():
                raise ArgumentInvalidError("Package stream should be seekable")
            source.seek(0)
            stream = source
        self._stream = stream
        try:
            self._zip = zipfile.ZipFile(stream)
        except zipfile.BadZipFile as exc:
            raise ArgumentInvalidError(f"Not a package archive: {exc}") from exc
        self._items = [
            n for n in self._zip.namelist()
            if not n.endswith("/") and not n.lower().startswith(_ARCHIVE_NOISE)
        ]
        self._nuspec = self._load_nuspec()
        self._identity = self._read_identity()

    def _load_nuspec(self) -> ET.Element:
        names = [n for n in self._items if "/" not in n and n.lower().endswith(Constants.NUSPEC_EXTENSION)]
        if not names:
            raise ArgumentInvalidError("Package archive has no .nuspec manifest")
        try:
            return _strip_namespaces(ET.fromstring(self._zip.read(names[0])))
        except ET.ParseError as exc:
            raise ArgumentInvalidError(f"Invalid .nuspec manifest: {exc}") from exc

    def _read_identity(self) -> PackageIdentity:
        pkg_id = (self._nuspec.findtext("./metadata/id") or "").strip()
        version = (self._nuspec.findtext("./metadata/version") or "").strip()
        if not pkg_id or not version:
            raise ArgumentInvalidError("Package .nuspec must declare an id and a version")
        return PackageIdentity(pkg_id, version)

    @property
    def identity(self) -> PackageIdentity:
        return self._identity

    def list_items(self) -> List[str]:
        return [normalize_item_path(n) for n in self._items if not n.lower().endswith(Constants.NUSPEC_EXTENSION)]

    def read_item(self, path: str) -> bytes:
        wanted = normalize_item_path(path)
        for name in self._items:
            if normalize_item_path(name) == wanted:
                return self._zip.read(name)
        raise KeyError(path)

    def _declared_references(self) -> Optional[set]:
        refs = self._nuspec.findall("./metadata/references//reference")
        if not refs:
            return None
        return {(r.get("file") or "").lower() for r in refs if r.get("file")}

    def _framework_reference_groups(self) -> List[AssetGroup]:
        groups: Dict[str, List[str]] = {}
        for elem in self._nuspec.findall("./metadata/frameworkAssemblies/frameworkAssembly"):
            name = (elem.get("assemblyName") or "").strip()
            if not name:
                continue
            targets = [t for t in (elem.get("targetFramework") or "").split(",") if t.strip()]
            for target in targets or [Constants.ANY_FRAMEWORK]:
                groups.setdefault(parse_framework(target).short_name, []).append(name)
        return [AssetGroup(fw, tuple(names)) for fw, names in groups.items()]

    def get_item_groups(self, category: AssetCategory) -> List[AssetGroup]:
        items = self.list_items()
        if category == AssetCategory.LIB:
            return group_items(items, PackageFolders.LIB.value)
        if category == AssetCategory.REFERENCE:
            declared = self._declared_references()
            groups = group_items(items, PackageFolders.LIB.value)
            if declared is None:
                return groups
            return [
                AssetGroup(g.target_framework, tuple(p for p in g.items if posixpath.basename(p).lower() in declared))
                for g in groups
            ]
        if category == AssetCategory.FRAMEWORK_REFERENCE:
            return self._framework_reference_groups()
        if category == AssetCategory.CONTENT:
            return group_items(items, PackageFolders.CONTENT.value)
        if category == AssetCategory.BUILD:
            stems = {self.identity.id.lower() + ext for ext in (Constants.PROPS_EXTENSION, ".targets")}
            return [
                AssetGroup(g.target_framework, tuple(p for p in g.items if posixpath.basename(p).lower() in stems))
                for g in group_items(items, PackageFolders.BUILD.value)
            ]
        if category == AssetCategory.TOOL:
            return group_items(items, PackageFolders.TOOLS.value)
        raise ArgumentInvalidError(f"Unknown asset category: {category!r}")

    def get_dependency_groups(self) -> List[Tuple[str, Tuple[PackageDependency, ...]]]:
        deps_elem = self._nuspec.find("./metadata/dependencies")
        if deps_elem is None:
            return []

        def _read(parent: ET.Element) -> Tuple[PackageDependency, ...]:
            return tuple(
                PackageDependency(d.get("id").strip(), parse_version_range(d.get("version")))
                for d in parent.findall("dependency")
                if (d.get("id") or "").strip()
            )

        groups = deps_elem.findall("group")
        if not groups:
            return [(Constants.ANY_FRAMEWORK, _read(deps_elem))]
        return [(parse_framework(g.get("targetFramework")).short_name, _read(g)) for g in groups]

    def save(self, path: str) -> None:
        self._stream.seek(0)
        with open(path, "wb") as fh:
            fh.write(self._stream.read())

    def close(self) -> None:
        self._zip.close()
