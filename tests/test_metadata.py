"""Tests for metadata providers and universe gathering."""

import asyncio
import json

import pytest

from depapply.errors import ArgumentInvalidError
from depapply.resolver import (
    DependencyGraphResolver,
    FolderPackageSource,
    LocalMetadataProvider,
    gather_dependency_infos,
)
from depapply.versioning import PackageIdentity

from helpers import write_nupkg

UNIVERSE_YAML = """
packages:
  - id: App
    version: 1.0.0
    dependencies:
      - {id: Lib, version: "[1.0,2.0)"}
  - id: Lib
    version: 1.0.0
    frameworks: [net40]
  - id: Lib
    version: 1.5.0
    frameworks: [net46]
    dependencies:
      - "Util >=1.0"
  - id: Util
    version: 1.0.0
  - id: Unrelated
    version: 9.0.0
"""


@pytest.fixture
def universe_file(tmp_path):
    path = tmp_path / "universe.yaml"
    path.write_text(UNIVERSE_YAML)
    return str(path)


class TestLocalMetadataProvider:
    """YAML/JSON universe documents."""

    def test_from_yaml(self, universe_file):
        provider = LocalMetadataProvider.from_file(universe_file)
        assert len(provider.all_infos()) == 5

    def test_from_json(self, tmp_path):
        path = tmp_path / "universe.json"
        path.write_text(json.dumps({"packages": [{"id": "A", "version": "1.0"}]}))
        provider = LocalMetadataProvider.from_file(str(path))
        assert provider.all_infos()[0].identity == PackageIdentity("A", "1.0.0")

    def test_bare_list_document(self):
        provider = LocalMetadataProvider.from_document([{"id": "A", "version": "1.0.0"}])
        assert len(provider.all_infos()) == 1

    def test_entry_without_version(self):
        with pytest.raises(ArgumentInvalidError):
            LocalMetadataProvider.from_document({"packages": [{"id": "A"}]})

    def test_versions_filtered_by_framework(self, universe_file):
        provider = LocalMetadataProvider.from_file(universe_file)
        versions = asyncio.run(provider.get_versions("lib", "net45"))
        assert [str(i.identity) for i in versions] == ["Lib.1.0.0"]
        versions = asyncio.run(provider.get_versions("Lib", "net461"))
        assert [str(i.identity) for i in versions] == ["Lib.1.0.0", "Lib.1.5.0"]

    def test_resolve_package_unknown(self, universe_file):
        provider = LocalMetadataProvider.from_file(universe_file)
        assert asyncio.run(provider.resolve_package(PackageIdentity("Nope", "1.0.0"), "net45")) is None


class TestGatherDependencyInfos:
    """Reachability walk over a provider."""

    def test_collects_reachable_versions_only(self, universe_file):
        provider = LocalMetadataProvider.from_file(universe_file)
        infos = asyncio.run(gather_dependency_infos(provider, [PackageIdentity("App", "1.0.0")], "net461"))
        assert [str(i.identity) for i in infos] == ["App.1.0.0", "Lib.1.0.0", "Lib.1.5.0", "Util.1.0.0"]

    def test_includes_installed(self, universe_file):
        provider = LocalMetadataProvider.from_file(universe_file)
        infos = asyncio.run(gather_dependency_infos(
            provider, [PackageIdentity("App", "1.0.0")], "net45", [PackageIdentity("Unrelated", "9.0.0")]
        ))
        assert PackageIdentity("Unrelated", "9.0.0") in [i.identity for i in infos]

    def test_feeds_the_resolver(self, universe_file):
        provider = LocalMetadataProvider.from_file(universe_file)
        target = PackageIdentity("App", "1.0.0")
        infos = asyncio.run(gather_dependency_infos(provider, [target], "net45"))
        result = DependencyGraphResolver().resolve([target], infos, [], "net45")
        assert [str(i) for i in result] == ["Lib.1.0.0", "App.1.0.0"]


class TestFolderPackageSource:
    """A directory of .nupkg files as a package source."""

    def test_scans_packages(self, tmp_path):
        write_nupkg(tmp_path, "A", "1.0.0", {"lib/net40/A.dll": b"1"}, dependencies=[("B", "1.0")])
        write_nupkg(tmp_path, "B", "1.0.0")
        write_nupkg(tmp_path, "B", "2.0.0")
        (tmp_path / "broken.nupkg").write_bytes(b"not a zip")
        source = FolderPackageSource(str(tmp_path))
        infos = asyncio.run(gather_dependency_infos(source, [PackageIdentity("A", "1.0.0")], "net45"))
        assert [str(i.identity) for i in infos] == ["A.1.0.0", "B.1.0.0", "B.2.0.0"]

    def test_open_reader(self, tmp_path):
        write_nupkg(tmp_path, "A", "1.0.0")
        source = FolderPackageSource(str(tmp_path))
        reader = source.open_reader(PackageIdentity("A", "1.0.0"))
        assert reader.identity.id == "A"
        reader.close()

    def test_open_reader_missing(self, tmp_path):
        with pytest.raises(ArgumentInvalidError):
            FolderPackageSource(str(tmp_path)).open_reader(PackageIdentity("A", "1.0.0"))

    def test_missing_directory(self, tmp_path):
        source = FolderPackageSource(str(tmp_path / "nope"))
        assert asyncio.run(source.get_versions("A", "net45")) == []

    def test_dependency_group_follows_framework(self, tmp_path):
        write_nupkg(tmp_path, "A", "1.0.0", dependencies={
            "net45": [("B", "1.0.0")],
            "netstandard2.0": [("C", "1.0.0")],
        })
        write_nupkg(tmp_path, "B", "1.0.0")
        write_nupkg(tmp_path, "C", "1.0.0")
        source = FolderPackageSource(str(tmp_path))
        target = PackageIdentity("A", "1.0.0")

        infos = asyncio.run(gather_dependency_infos(source, [target], "net45"))
        assert [str(i.identity) for i in infos] == ["A.1.0.0", "B.1.0.0"]
        result = DependencyGraphResolver().resolve([target], infos, [], "net45")
        assert [str(i) for i in result] == ["B.1.0.0", "A.1.0.0"]

        infos = asyncio.run(gather_dependency_infos(source, [target], "netstandard2.0"))
        assert [str(i.identity) for i in infos] == ["A.1.0.0", "C.1.0.0"]

    def test_revision_versions_in_feed(self, tmp_path):
        write_nupkg(tmp_path, "A", "1.0.0", dependencies=[("X", "1.0.0.1")])
        write_nupkg(tmp_path, "X", "1.0.0.1")
        write_nupkg(tmp_path, "X", "1.0.0.2")
        source = FolderPackageSource(str(tmp_path))
        infos = asyncio.run(gather_dependency_infos(source, [PackageIdentity("A", "1.0.0")], "net45"))
        assert [str(i.identity) for i in infos] == ["A.1.0.0", "X.1.0.0.1", "X.1.0.0.2"]
