"""Package content: asset groups, framework selection and content transforms."""

from .assets import AssetCategory, AssetGroup, PackageReader, ZipPackageReader
from .frameworks import (
    Framework,
    SelectionResult,
    SelectionStatus,
    get_most_compatible_group,
    is_compatible,
    parse_framework,
)
from .transforms import ContentTransformEngine, TransformExtensionPair, compare_package_items

__all__ = [
    "AssetCategory",
    "AssetGroup",
    "PackageReader",
    "ZipPackageReader",
    "Framework",
    "SelectionResult",
    "SelectionStatus",
    "get_most_compatible_group",
    "is_compatible",
    "parse_framework",
    "ContentTransformEngine",
    "TransformExtensionPair",
    "compare_package_items",
]
