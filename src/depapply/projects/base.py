"""Capability surface a project must expose to have packages applied to it.

Callers must serialize install/uninstall calls against one project; nothing
here is locked.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..content.assets import PackageReader


class ImportLocation(Enum):
    """Where a build import is placed in the project file."""
    TOP = "top"
    BOTTOM = "bottom"


class ProjectSystem(ABC):
    """Project adapter consumed by the installation pipeline.

    Paths passed to file operations are project-relative and use forward
    slashes. Reference names are file names (``Foo.dll``).
    """

    @property
    @abstractmethod
    def project_name(self) -> str:
        """Display name of the project."""

    @property
    def unique_name(self) -> str:
        """Stable identity string for the project."""
        return self.project_name

    @property
    @abstractmethod
    def target_framework(self) -> str:
        """Short name of the framework the project targets."""

    @property
    def properties(self) -> Dict[str, str]:
        """Project properties used to expand templated content (``$rootnamespace$``)."""
        return {}

    @abstractmethod
    async def add_reference(self, reference_path: str) -> None:
        """Reference the assembly at ``reference_path``."""

    @abstractmethod
    async def remove_reference(self, name: str) -> None:
        """Drop the reference named ``name``."""

    @abstractmethod
    async def reference_exists(self, name: str) -> bool:
        """True when a reference or framework reference named ``name`` exists."""

    @abstractmethod
    async def add_framework_reference(self, name: str) -> None:
        """Reference a framework assembly by name."""

    @abstractmethod
    async def add_import(self, target_path: str, location: ImportLocation) -> None:
        """Import a build file at ``location``."""

    @abstractmethod
    async def remove_import(self, target_path: str) -> None:
        """Remove a build import."""

    @abstractmethod
    async def add_file(self, path: str, data: bytes) -> None:
        """Create or overwrite a project file and include it in the project."""

    @abstractmethod
    async def add_existing_file(self, path: str) -> None:
        """Include an already present file in the project."""

    @abstractmethod
    async def remove_file(self, path: str) -> None:
        """Delete a project file and drop it from the project."""

    @abstractmethod
    async def file_exists(self, path: str) -> bool:
        """True when ``path`` exists in the project."""

    @abstractmethod
    async def read_file(self, path: str) -> Optional[bytes]:
        """File contents, or None if the file does not exist."""

    @abstractmethod
    async def execute_script(
        self,
        install_path: str,
        script_path: str,
        reader: "PackageReader",
        throw_on_failure: bool,
    ) -> bool:
        """Run a packaged script; return False (or raise when ``throw_on_failure``) on failure."""

    async def add_binding_redirects(self) -> None:
        """Generate assembly binding redirects. Projects without redirects ignore this."""
        return None
