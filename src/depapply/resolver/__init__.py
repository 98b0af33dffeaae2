"""Dependency resolution over a discovered metadata universe."""

from .metadata import FolderPackageSource, LocalMetadataProvider, MetadataProvider, gather_dependency_infos
from .provider import DependencyInfoProvider, Requirement, order_candidates
from .resolver import DependencyGraphResolver, topological_order

__all__ = [
    "FolderPackageSource",
    "LocalMetadataProvider",
    "MetadataProvider",
    "gather_dependency_infos",
    "DependencyInfoProvider",
    "Requirement",
    "order_candidates",
    "DependencyGraphResolver",
    "topological_order",
]
