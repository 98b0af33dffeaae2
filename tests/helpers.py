"""Shared test helpers: package archives built on disk and an in-memory project."""

import io
import zipfile
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
from xml.sax.saxutils import quoteattr

from depapply.errors import ScriptExecutionError
from depapply.projects.base import ImportLocation, ProjectSystem

NUSPEC_NS = "http://schemas.microsoft.com/packaging/2010/07/nuspec.xsd"

Dependencies = Union[Sequence[Tuple[str, str]], Dict[str, Sequence[Tuple[str, str]]]]


def _dependency_xml(deps: Sequence[Tuple[str, str]]) -> str:
    return "".join(f"<dependency id={quoteattr(d)} version={quoteattr(v)} />" for d, v in deps)


def nuspec_xml(
    pkg_id: str,
    version: str,
    dependencies: Optional[Dependencies] = None,
    framework_assemblies: Iterable[Tuple[str, str]] = (),
    references: Iterable[str] = (),
) -> str:
    """Render a minimal .nuspec document."""
    parts = [f"<id>{pkg_id}</id>", f"<version>{version}</version>"]
    if dependencies is not None:
        if isinstance(dependencies, dict):
            groups = "".join(
                f"<group targetFramework={quoteattr(fw)}>{_dependency_xml(deps)}</group>"
                for fw, deps in dependencies.items()
            )
            parts.append(f"<dependencies>{groups}</dependencies>")
        else:
            parts.append(f"<dependencies>{_dependency_xml(dependencies)}</dependencies>")
    assemblies = list(framework_assemblies)
    if assemblies:
        body = "".join(
            f"<frameworkAssembly assemblyName={quoteattr(name)} targetFramework={quoteattr(fw)} />"
            for name, fw in assemblies
        )
        parts.append(f"<frameworkAssemblies>{body}</frameworkAssemblies>")
    refs = list(references)
    if refs:
        parts.append("<references>" + "".join(f"<reference file={quoteattr(r)} />" for r in refs) + "</references>")
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f'<package xmlns="{NUSPEC_NS}"><metadata>{"".join(parts)}</metadata></package>'
    )


def nupkg_bytes(pkg_id: str, version: str, files: Optional[Dict[str, Union[str, bytes]]] = None, **nuspec) -> bytes:
    """Build a package archive in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr(f"{pkg_id}.nuspec", nuspec_xml(pkg_id, version, **nuspec))
        zf.writestr("[Content_Types].xml", "<Types />")
        zf.writestr("_rels/.rels", "<Relationships />")
        for path, data in (files or {}).items():
            zf.writestr(path, data.encode("utf-8") if isinstance(data, str) else data)
    return buffer.getvalue()


def write_nupkg(directory, pkg_id: str, version: str, files=None, **nuspec) -> str:
    """Write ``<Id>.<Version>.nupkg`` into ``directory`` and return its path."""
    path = directory / f"{pkg_id}.{version}.nupkg"
    path.write_bytes(nupkg_bytes(pkg_id, version, files, **nuspec))
    return str(path)


class FakeProject(ProjectSystem):
    """In-memory project that records every mutation in order."""

    def __init__(self, target_framework: str = "net45", name: str = "App",
                 properties: Optional[Dict[str, str]] = None,
                 script_results: Optional[Dict[str, bool]] = None):
        self._target_framework = target_framework
        self._name = name
        self._properties = properties or {"rootnamespace": "App.Root"}
        self.references: Dict[str, str] = {}
        self.framework_references: List[str] = []
        self.imports: List[Tuple[str, ImportLocation]] = []
        self.files: Dict[str, bytes] = {}
        self.items: List[str] = []
        self.calls: List[Tuple[str, str]] = []
        self.scripts: List[str] = []
        self.script_results = script_results or {}
        self.binding_redirects = 0

    @property
    def project_name(self):
        return self._name

    @property
    def target_framework(self):
        return self._target_framework

    @property
    def properties(self):
        return dict(self._properties)

    @staticmethod
    def _name_of(path: str) -> str:
        return path.replace("\\", "/").rsplit("/", 1)[-1]

    async def add_reference(self, reference_path):
        self.calls.append(("add_reference", self._name_of(reference_path)))
        self.references[self._name_of(reference_path).lower()] = reference_path

    async def remove_reference(self, name):
        self.calls.append(("remove_reference", name))
        self.references.pop(name.lower(), None)

    async def reference_exists(self, name):
        return name.lower() in self.references or name in self.framework_references

    async def add_framework_reference(self, name):
        self.calls.append(("add_framework_reference", name))
        self.framework_references.append(name)

    async def add_import(self, target_path, location):
        self.calls.append(("add_import", self._name_of(target_path)))
        self.imports.append((target_path, location))

    async def remove_import(self, target_path):
        self.calls.append(("remove_import", self._name_of(target_path)))
        self.imports = [(p, loc) for p, loc in self.imports if p != target_path]

    async def add_file(self, path, data):
        self.calls.append(("add_file", path))
        self.files[path] = data
        if path not in self.items:
            self.items.append(path)

    async def add_existing_file(self, path):
        self.calls.append(("add_existing_file", path))
        if path not in self.items:
            self.items.append(path)

    async def remove_file(self, path):
        self.calls.append(("remove_file", path))
        self.files.pop(path, None)
        if path in self.items:
            self.items.remove(path)

    async def file_exists(self, path):
        return path in self.files

    async def read_file(self, path):
        return self.files.get(path)

    async def execute_script(self, install_path, script_path, reader, throw_on_failure):
        self.calls.append(("execute_script", script_path))
        self.scripts.append(script_path)
        ok = self.script_results.get(self._name_of(script_path), True)
        if not ok and throw_on_failure:
            raise ScriptExecutionError(script_path, 1)
        return ok

    async def add_binding_redirects(self):
        self.binding_redirects += 1

    def snapshot(self):
        """Copy of all observable project state."""
        return (
            dict(self.references),
            list(self.framework_references),
            list(self.imports),
            dict(self.files),
            list(self.items),
        )
