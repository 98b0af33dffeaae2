"""Project adapters."""

from .base import ImportLocation, ProjectSystem
from .folder import FolderProjectSystem

__all__ = ["ImportLocation", "ProjectSystem", "FolderProjectSystem"]
