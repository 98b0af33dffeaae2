"""Persisted record of installed packages (``packages.config``).

The document is an ordered list of ``<package id version targetFramework/>``
entries. No two entries share an id.
"""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from typing import List, Optional

from ..constants import Constants
from ..errors import ArgumentInvalidError
from ..versioning.models import PackageIdentity, PackageReference

logger = logging.getLogger(__name__)


class PackagesManifest:
    """Ordered set of (identity, framework) entries backed by an XML file."""

    def __init__(self, folder: str, file_name: str = Constants.MANIFEST_FILE):
        self.folder = folder
        self.file_name = file_name
        self._entries: Optional[List[PackageReference]] = None

    @property
    def full_path(self) -> str:
        return os.path.join(self.folder, self.file_name)

    def _load(self) -> List[PackageReference]:
        if self._entries is not None:
            return self._entries
        entries: List[PackageReference] = []
        if os.path.isfile(self.full_path):
            try:
                root = ET.parse(self.full_path).getroot()
            except ET.ParseError as exc:
                raise ArgumentInvalidError(f"Couldn't parse {self.full_path}: {exc}") from exc
            for elem in root.iter():
                if '}' in elem.tag:
                    elem.tag = elem.tag.split('}')[1]
            for package in root.findall("./package"):
                pkg_id = package.get("id")
                version = package.get("version")
                if not pkg_id or not version:
                    logger.warning("Ignoring incomplete entry in %s", self.full_path)
                    continue
                entries.append(PackageReference(
                    identity=PackageIdentity(pkg_id, version),
                    target_framework=package.get("targetFramework"),
                ))
        self._entries = entries
        return entries

    def _save(self) -> None:
        entries = self._load()
        if not entries:
            if os.path.isfile(self.full_path):
                os.remove(self.full_path)
            return
        root = ET.Element("packages")
        for ref in entries:
            attrs = {"id": ref.identity.id, "version": str(ref.identity.version)}
            if ref.target_framework:
                attrs["targetFramework"] = ref.target_framework
            ET.SubElement(root, "package", attrs)
        ET.indent(root, space="  ")
        os.makedirs(self.folder, exist_ok=True)
        ET.ElementTree(root).write(self.full_path, encoding="utf-8", xml_declaration=True)

    def get_installed(self) -> List[PackageReference]:
        """Installed entries in manifest order."""
        return list(self._load())

    def find(self, package_id: str) -> Optional[PackageReference]:
        key = package_id.lower()
        return next((r for r in self._load() if r.identity.key == key), None)

    def is_installed(self, identity: PackageIdentity) -> bool:
        """True when exactly ``identity`` (id and version) is recorded."""
        ref = self.find(identity.id)
        return ref is not None and ref.identity == identity

    def get(self, identity: PackageIdentity) -> Optional[PackageReference]:
        ref = self.find(identity.id)
        return ref if ref is not None and ref.identity == identity else None

    def add(self, reference: PackageReference) -> None:
        """Record ``reference``; an entry with the same id is replaced in place."""
        entries = self._load()
        for index, existing in enumerate(entries):
            if existing.identity.key == reference.identity.key:
                logger.info("Replacing %s with %s in %s", existing.identity, reference.identity, self.file_name)
                entries[index] = reference
                break
        else:
            entries.append(reference)
        self._save()

    def remove(self, identity: PackageIdentity) -> bool:
        """Drop the entry for ``identity``; returns False when it was not recorded."""
        entries = self._load()
        for index, existing in enumerate(entries):
            if existing.identity == identity:
                del entries[index]
                self._save()
                return True
        return False

    def __len__(self) -> int:
        return len(self._load())
