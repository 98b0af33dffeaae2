"""Project adapter over a plain directory with an XML project file.

The project file (``project.xml`` by default) records what the pipeline adds:

    <project name="App" targetFramework="net45">
      <import project="packages/A.1.0.0/build/A.props" location="top" />
      <reference include="Foo" hintPath="packages/Foo.1.0.0/lib/net45/Foo.dll" />
      <frameworkReference include="System.Web" />
      <item include="web.config" />
      <import project="packages/A.1.0.0/build/A.targets" location="bottom" />
    </project>

Imports placed at the top precede every other element; bottom imports follow
them.
"""

from __future__ import annotations

import asyncio
import logging
import os
import posixpath
import xml.etree.ElementTree as ET
from typing import Dict, Optional

from ..common.logging_utils import Timer, extra_context, is_debug_enabled
from ..constants import Constants, PackageFolders
from ..errors import ArgumentInvalidError, ScriptExecutionError
from .base import ImportLocation, ProjectSystem

logger = logging.getLogger(__name__)


def _reference_name(path_or_name: str) -> str:
    name = posixpath.basename(path_or_name.replace("\\", "/"))
    stem, ext = posixpath.splitext(name)
    return stem if ext.lower() in Constants.ASSEMBLY_REFERENCE_EXTENSIONS else name


class FolderProjectSystem(ProjectSystem):
    """A directory on disk acting as the target project."""

    def __init__(
        self,
        root: str,
        target_framework: str = Constants.DEFAULT_TARGET_FRAMEWORK,
        name: Optional[str] = None,
        properties: Optional[Dict[str, str]] = None,
        project_file: str = Constants.PROJECT_FILE,
    ):
        if not root:
            raise ArgumentInvalidError("Project root must not be empty")
        self.root = os.path.abspath(root)
        self._target_framework = target_framework
        self._name = name or os.path.basename(self.root.rstrip(os.sep)) or "project"
        self._properties = {
            "rootnamespace": self._name,
            "defaultnamespace": self._name,
            "assemblyname": self._name,
        }
        self._properties.update({k.lower(): v for k, v in (properties or {}).items()})
        self.project_file = os.path.join(self.root, project_file)
        self._document: Optional[ET.Element] = None

    @property
    def project_name(self) -> str:
        return self._name

    @property
    def unique_name(self) -> str:
        return self.project_file

    @property
    def target_framework(self) -> str:
        return self._target_framework

    @property
    def properties(self) -> Dict[str, str]:
        return dict(self._properties)

    # Project document

    def _load(self) -> ET.Element:
        if self._document is not None:
            return self._document
        if os.path.isfile(self.project_file):
            try:
                self._document = ET.parse(self.project_file).getroot()
            except ET.ParseError as exc:
                raise ArgumentInvalidError(f"Couldn't parse {self.project_file}: {exc}") from exc
        else:
            self._document = ET.Element("project", {
                "name": self._name, "targetFramework": self._target_framework,
            })
        return self._document

    def _save(self) -> None:
        root = self._load()
        ET.indent(root, space="  ")
        os.makedirs(self.root, exist_ok=True)
        ET.ElementTree(root).write(self.project_file, encoding="utf-8", xml_declaration=True)

    def _find(self, tag: str, attr: str, value: str) -> Optional[ET.Element]:
        wanted = value.lower()
        for elem in self._load().findall(tag):
            if (elem.get(attr) or "").lower() == wanted:
                return elem
        return None

    def _relative(self, path: str) -> str:
        if os.path.isabs(path):
            try:
                path = os.path.relpath(path, self.root)
            except ValueError:
                return path.replace("\\", "/")
        return path.replace("\\", "/")

    def _full_path(self, path: str) -> str:
        relative = path.replace("\\", "/").lstrip("/")
        full = os.path.normpath(os.path.join(self.root, *relative.split("/")))
        if full != self.root and not full.startswith(self.root + os.sep):
            raise ArgumentInvalidError(f"Path escapes the project folder: {path}")
        return full

    def list_references(self):
        """Names of assembly references, in project order."""
        return [e.get("include") for e in self._load().findall("reference")]

    def list_framework_references(self):
        return [e.get("include") for e in self._load().findall("frameworkReference")]

    def list_imports(self):
        """Imported build files as (path, location) pairs, in project order."""
        return [(e.get("project"), e.get("location")) for e in self._load().findall("import")]

    def list_items(self):
        return [e.get("include") for e in self._load().findall("item")]

    # References

    async def add_reference(self, reference_path: str) -> None:
        name = _reference_name(reference_path)
        existing = self._find("reference", "include", name)
        if existing is not None:
            self._load().remove(existing)
        ET.SubElement(self._load(), "reference", {"include": name, "hintPath": self._relative(reference_path)})
        self._save()
        logger.info("Added reference '%s' to project '%s'", name, self._name)

    async def remove_reference(self, name: str) -> None:
        existing = self._find("reference", "include", _reference_name(name))
        if existing is None:
            logger.debug("Reference '%s' not found in project '%s'", name, self._name)
            return
        self._load().remove(existing)
        self._save()
        logger.info("Removed reference '%s' from project '%s'", name, self._name)

    async def reference_exists(self, name: str) -> bool:
        return (
            self._find("reference", "include", _reference_name(name)) is not None
            or self._find("frameworkReference", "include", name) is not None
        )

    async def add_framework_reference(self, name: str) -> None:
        if self._find("frameworkReference", "include", name) is not None:
            return
        ET.SubElement(self._load(), "frameworkReference", {"include": name})
        self._save()
        logger.info("Added framework reference '%s' to project '%s'", name, self._name)

    # Build imports

    async def add_import(self, target_path: str, location: ImportLocation) -> None:
        relative = self._relative(target_path)
        if self._find("import", "project", relative) is not None:
            return
        root = self._load()
        element = ET.Element("import", {"project": relative, "location": location.value})
        if location == ImportLocation.TOP:
            tops = sum(1 for e in root if e.tag == "import" and e.get("location") == ImportLocation.TOP.value)
            root.insert(tops, element)
        else:
            root.append(element)
        self._save()

    async def remove_import(self, target_path: str) -> None:
        existing = self._find("import", "project", self._relative(target_path))
        if existing is not None:
            self._load().remove(existing)
            self._save()

    # Files

    def _include(self, path: str) -> bool:
        relative = path.replace("\\", "/").lstrip("/")
        if self._find("item", "include", relative) is not None:
            return False
        ET.SubElement(self._load(), "item", {"include": relative})
        return True

    async def add_file(self, path: str, data: bytes) -> None:
        full = self._full_path(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "wb") as fh:
            fh.write(data)
        self._include(path)
        self._save()
        logger.debug("Wrote '%s' in project '%s'", path, self._name)

    async def add_existing_file(self, path: str) -> None:
        if self._include(path):
            self._save()

    async def remove_file(self, path: str) -> None:
        full = self._full_path(path)
        if os.path.isfile(full):
            os.remove(full)
            logger.debug("Removed '%s' from project '%s'", path, self._name)
            self._prune_empty_dirs(os.path.dirname(full))
        existing = self._find("item", "include", path.replace("\\", "/").lstrip("/"))
        if existing is not None:
            self._load().remove(existing)
            self._save()

    def _prune_empty_dirs(self, directory: str) -> None:
        while directory.startswith(self.root + os.sep) and os.path.isdir(directory) and not os.listdir(directory):
            os.rmdir(directory)
            directory = os.path.dirname(directory)

    async def file_exists(self, path: str) -> bool:
        return os.path.isfile(self._full_path(path))

    async def read_file(self, path: str) -> Optional[bytes]:
        full = self._full_path(path)
        if not os.path.isfile(full):
            return None
        with open(full, "rb") as fh:
            return fh.read()

    # Scripts

    async def execute_script(self, install_path, script_path, reader, throw_on_failure) -> bool:
        """Run ``script_path`` with ``Constants.SCRIPT_INTERPRETER``.

        The script receives the install path, the tools path, the package
        identity and the project file as positional arguments.
        """
        full_script = os.path.join(install_path, *script_path.replace("\\", "/").split("/"))
        tools_path = os.path.join(install_path, PackageFolders.TOOLS.value)
        cmd = list(Constants.SCRIPT_INTERPRETER) + [
            full_script, install_path, tools_path, str(reader.identity), self.project_file,
        ]
        returncode: Optional[int] = None
        output = ""
        with Timer() as t:
            try:
                process = await asyncio.create_subprocess_exec(
                    *cmd,
                    cwd=self.root,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                )
                try:
                    stdout, _ = await asyncio.wait_for(process.communicate(), timeout=Constants.SCRIPT_TIMEOUT_SEC)
                except asyncio.TimeoutError:
                    process.kill()
                    await process.wait()
                    output = f"timed out after {Constants.SCRIPT_TIMEOUT_SEC}s"
                else:
                    returncode = process.returncode
                    output = stdout.decode("utf-8", errors="replace") if stdout else ""
            except OSError as exc:
                output = str(exc)

        if is_debug_enabled(logger):
            logger.debug("Script process exited", extra=extra_context(
                event="script", component="project", action="execute_script", target=script_path,
                outcome="success" if returncode == 0 else "failure", duration_ms=t.duration_ms(),
            ))
        if returncode == 0:
            if output.strip():
                logger.info("%s", output.strip())
            return True

        logger.error("Script '%s' failed: %s", script_path, output.strip() or f"exit code {returncode}")
        if throw_on_failure:
            raise ScriptExecutionError(script_path, returncode, output)
        return False

    async def add_binding_redirects(self) -> None:
        # Folder projects have no runtime configuration to redirect
        logger.debug("Binding redirects requested for project '%s'; nothing to do", self._name)
