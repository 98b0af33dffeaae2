"""Folder holding one extracted copy of every installed package."""

from __future__ import annotations

import logging
import os
import shutil

from ..content.assets import PackageReader, ZipPackageReader
from ..versioning.models import PackageIdentity

logger = logging.getLogger(__name__)


class PackagesFolder:
    """``<root>/<Id>.<Version>/`` per package, with the archive and its extracted items."""

    def __init__(self, root: str):
        self.root = root

    def get_installed_path(self, identity: PackageIdentity) -> str:
        return os.path.join(self.root, f"{identity.id}.{identity.version}")

    def get_package_file_path(self, identity: PackageIdentity) -> str:
        return os.path.join(self.get_installed_path(identity), f"{identity.id}.{identity.version}.nupkg")

    def package_exists(self, identity: PackageIdentity) -> bool:
        return os.path.isfile(self.get_package_file_path(identity))

    def install_package(self, reader: PackageReader) -> str:
        """Extract ``reader`` (idempotent); returns the install path."""
        identity = reader.identity
        install_path = self.get_installed_path(identity)
        if self.package_exists(identity):
            logger.debug("Package %s already extracted to %s", identity, install_path)
            return install_path
        os.makedirs(install_path, exist_ok=True)
        for item in reader.list_items():
            target = os.path.normpath(os.path.join(install_path, *item.split("/")))
            if not target.startswith(os.path.normpath(install_path) + os.sep):
                logger.warning("Skipping item outside the package folder: %s", item)
                continue
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as fh:
                fh.write(reader.read_item(item))
        reader.save(self.get_package_file_path(identity))
        logger.info("Added package '%s' to folder '%s'", identity, self.root)
        return install_path

    def open_reader(self, identity: PackageIdentity) -> ZipPackageReader:
        return ZipPackageReader(self.get_package_file_path(identity))

    def uninstall_package(self, identity: PackageIdentity) -> bool:
        install_path = self.get_installed_path(identity)
        if not os.path.isdir(install_path):
            return False
        shutil.rmtree(install_path)
        logger.info("Removed package '%s' from folder '%s'", identity, self.root)
        return True
