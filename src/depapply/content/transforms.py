"""Content file transforms applied while adding or removing package content.

Three transformer variants are dispatched by file extension pair:

- ``.transform``: XML fragment merged into (and later removed from) a target file
- ``.pp``: token templating into a new file
- ``.install.xdt`` / ``.uninstall.xdt``: declarative XML document transforms

Everything else in a content group is copied as-is.
"""

from __future__ import annotations

import copy
import functools
import logging
import re
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from ..common.logging_utils import extra_context, is_debug_enabled
from ..constants import Constants, PackageFolders
from .assets import AssetGroup, PackageReader, get_group_relative_path

if TYPE_CHECKING:
    from ..projects.base import ProjectSystem

logger = logging.getLogger(__name__)

XDT_NAMESPACE = "http://schemas.microsoft.com/XML-Document-Transform"
_XDT_TRANSFORM = f"{{{XDT_NAMESPACE}}}Transform"
_XDT_LOCATOR = f"{{{XDT_NAMESPACE}}}Locator"
_VERB_RE = re.compile(r'^\s*(\w+)\s*(?:\((.*)\))?\s*$')
_TOKEN_RE = re.compile(r'\$(\w+)\$')


@dataclass(frozen=True)
class TransformExtensionPair:
    """Suffixes identifying the install-time and uninstall-time transform files."""
    install_extension: str
    uninstall_extension: str


def compare_package_items(x: str, y: str) -> int:
    """Order content items so a file precedes files it is a prefix of.

    ``web.config`` sorts before ``web.config.transform``; unrelated paths are
    ordered by descending ordinal comparison.
    """
    if x.lower() == y.lower():
        return 0
    if x.lower().startswith(y.lower()):
        return 1
    if y.lower().startswith(x.lower()):
        return -1
    return (y > x) - (y < x)


def sort_package_items(items: Sequence[str]) -> List[str]:
    """Items in processing order (see ``compare_package_items``)."""
    return sorted(items, key=functools.cmp_to_key(compare_package_items))


# --------------------------------------------------------------------------- XML helpers

def parse_xml(data: bytes) -> ET.Element:
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
    return ET.fromstring(data, parser=parser)


def serialize_xml(root: ET.Element, declaration: bool = True) -> bytes:
    body = ET.tostring(root, encoding="unicode")
    if declaration:
        body = '<?xml version="1.0" encoding="utf-8"?>\n' + body
    return body.encode("utf-8")


def _has_declaration(data: Optional[bytes]) -> bool:
    return bool(data) and data.lstrip().startswith(b"<?xml")


def _is_element(node: ET.Element) -> bool:
    return isinstance(node.tag, str)


def _has_conflict(a: ET.Element, b: ET.Element) -> bool:
    """True when an attribute present on both elements has different values."""
    return any(key in b.attrib and b.attrib[key] != value for key, value in a.attrib.items())


def _find_element(parent: ET.Element, wanted: ET.Element) -> Optional[ET.Element]:
    """Best same-tag child of ``parent`` for ``wanted``: most shared attribute values, no conflicts."""
    best, best_score = None, -1
    for child in parent:
        if not _is_element(child) or child.tag != wanted.tag or _has_conflict(child, wanted):
            continue
        score = sum(1 for k, v in wanted.attrib.items() if child.attrib.get(k) == v)
        if score > best_score:
            best, best_score = child, score
    return best


NodeAction = Callable[[ET.Element, ET.Element], None]


def _insert_first(parent: ET.Element, element: ET.Element) -> None:
    parent.insert(0, element)


def merge_elements(target: ET.Element, source: ET.Element,
                   node_actions: Optional[Dict[str, NodeAction]] = None) -> ET.Element:
    """Merge ``source`` into ``target`` in place and return ``target``.

    ``node_actions`` decide where new top-level children named by key are placed.
    """
    for key, value in source.attrib.items():
        target.attrib.setdefault(key, value)
    for child in source:
        if not _is_element(child):
            continue
        match = _find_element(target, child)
        if match is not None:
            merge_elements(match, child)
            continue
        new_child = copy.deepcopy(child)
        action = (node_actions or {}).get(child.tag)
        if action is not None:
            action(target, new_child)
        else:
            target.append(new_child)
    return target


def except_elements(target: ET.Element, source: ET.Element) -> ET.Element:
    """Remove from ``target`` every node of ``source``; return ``target``.

    An element is dropped once all of its children are gone and it carries no
    attribute ``source`` did not put there.
    """
    for child in list(source):
        if not _is_element(child):
            continue
        match = _find_element(target, child)
        if match is None:
            continue
        except_elements(match, child)
        leftover_children = any(_is_element(c) for c in match)
        extra_attrs = any(k not in child.attrib for k in match.attrib)
        if not leftover_children and not extra_attrs and not (match.text or "").strip():
            target.remove(match)
    return target


# --------------------------------------------------------------------------- transformers

class PackageFileTransformer(ABC):
    """Applies one transform file to a project file, and reverts it."""

    @abstractmethod
    async def transform_file(self, source: bytes, target_path: str, project: "ProjectSystem") -> None:
        """Apply ``source`` to ``target_path`` at install time."""

    @abstractmethod
    async def revert_file(self, source: bytes, target_path: str, other_sources: Sequence[bytes],
                          project: "ProjectSystem") -> None:
        """Undo ``source`` at uninstall time; ``other_sources`` are the same file from other installed packages."""


class XmlMergeTransformer(PackageFileTransformer):
    """Direct merge of an XML fragment into a target XML file."""

    def __init__(self, node_actions: Optional[Dict[str, NodeAction]] = None):
        self._node_actions = node_actions or {}

    async def transform_file(self, source, target_path, project):
        fragment = parse_xml(source)
        existing = await project.read_file(target_path)
        if existing is None:
            await project.add_file(target_path, serialize_xml(fragment))
            return
        document = parse_xml(existing)
        merge_elements(document, fragment, self._node_actions)
        await project.add_file(target_path, serialize_xml(document, _has_declaration(existing)))

    async def revert_file(self, source, target_path, other_sources, project):
        existing = await project.read_file(target_path)
        if existing is None:
            return
        fragment = parse_xml(source)
        merged_others = ET.Element(fragment.tag)
        for other in other_sources:
            merge_elements(merged_others, parse_xml(other), self._node_actions)
        # Nodes other installed packages also contributed must stay
        fragment = except_elements(fragment, merged_others)
        document = parse_xml(existing)
        except_elements(document, fragment)
        await project.add_file(target_path, serialize_xml(document, _has_declaration(existing)))


class Preprocessor(PackageFileTransformer):
    """Expands ``$token$`` placeholders from project properties into a new file."""

    @staticmethod
    def process(source: bytes, properties: Dict[str, str]) -> bytes:
        lookup = {k.lower(): v for k, v in properties.items()}

        def _replace(m):
            value = lookup.get(m.group(1).lower())
            return m.group(0) if value is None else str(value)

        return _TOKEN_RE.sub(_replace, source.decode("utf-8-sig")).encode("utf-8")

    async def transform_file(self, source, target_path, project):
        if await project.file_exists(target_path):
            logger.warning("'%s' already exists. Skipping...", target_path)
            return
        await project.add_file(target_path, self.process(source, project.properties))

    async def revert_file(self, source, target_path, other_sources, project):
        existing = await project.read_file(target_path)
        if existing is None:
            return
        if existing != self.process(source, project.properties):
            logger.warning("Skipping '%s' because it was modified.", target_path)
            return
        await project.remove_file(target_path)


def _parse_verb(value: str) -> Tuple[str, List[str]]:
    m = _VERB_RE.match(value or "")
    if not m:
        raise ValueError(f"Invalid xdt:Transform value: {value!r}")
    args = [a.strip() for a in (m.group(2) or "").split(",") if a.strip()]
    return m.group(1), args


def _clean_xdt(element: ET.Element) -> ET.Element:
    cleaned = copy.deepcopy(element)
    for node in cleaned.iter():
        for key in [k for k in node.attrib if k.startswith(f"{{{XDT_NAMESPACE}}}")]:
            del node.attrib[key]
    return cleaned


def _locate(parent: ET.Element, spec: ET.Element) -> List[ET.Element]:
    """Children of ``parent`` matching ``spec`` by tag and its xdt:Locator."""
    keys: List[str] = []
    locator = spec.get(_XDT_LOCATOR)
    if locator:
        name, keys = _parse_verb(locator)
        if name != "Match":
            raise ValueError(f"Unsupported xdt:Locator: {locator!r}")
    return [
        child for child in parent
        if _is_element(child) and child.tag == spec.tag
        and all(child.get(k) == spec.get(k) for k in keys)
    ]


def apply_xdt(target: ET.Element, transform: ET.Element) -> None:
    """Apply the children of a transform element to ``target`` recursively."""
    for spec in list(transform):
        if not _is_element(spec):
            continue
        verb_value = spec.get(_XDT_TRANSFORM)
        matches = _locate(target, spec)
        if verb_value is None:
            for match in matches:
                apply_xdt(match, spec)
            continue
        verb, args = _parse_verb(verb_value)
        if verb == "Insert":
            target.append(_clean_xdt(spec))
        elif verb == "InsertIfMissing":
            if not matches:
                target.append(_clean_xdt(spec))
        elif verb == "Remove":
            if matches:
                target.remove(matches[0])
        elif verb == "RemoveAll":
            for match in matches:
                target.remove(match)
        elif verb == "SetAttributes":
            names = args or [k for k in spec.attrib if not k.startswith(f"{{{XDT_NAMESPACE}}}")]
            for match in matches:
                for name in names:
                    if name in spec.attrib:
                        match.set(name, spec.attrib[name])
        elif verb == "Replace":
            for match in matches:
                index = list(target).index(match)
                target.remove(match)
                target.insert(index, _clean_xdt(spec))
        else:
            raise ValueError(f"Unsupported xdt:Transform verb: {verb!r}")


class XdtTransformer(PackageFileTransformer):
    """Declarative transform: ``.install.xdt`` at install, ``.uninstall.xdt`` at uninstall."""

    async def _apply(self, source: bytes, target_path: str, project) -> None:
        existing = await project.read_file(target_path)
        if existing is None:
            logger.info("Skipping transform of '%s': file does not exist in the project.", target_path)
            return
        document = parse_xml(existing)
        transform = parse_xml(source)
        if transform.tag == document.tag:
            apply_xdt(document, transform)
        await project.add_file(target_path, serialize_xml(document, _has_declaration(existing)))

    async def transform_file(self, source, target_path, project):
        await self._apply(source, target_path, project)

    async def revert_file(self, source, target_path, other_sources, project):
        await self._apply(source, target_path, project)


FILE_TRANSFORMERS: Dict[TransformExtensionPair, PackageFileTransformer] = {
    TransformExtensionPair(".transform", ".transform"): XmlMergeTransformer(
        {Constants.CONFIG_SECTIONS_ELEMENT: _insert_first}
    ),
    TransformExtensionPair(".pp", ".pp"): Preprocessor(),
    TransformExtensionPair(".install.xdt", ".uninstall.xdt"): XdtTransformer(),
}


# --------------------------------------------------------------------------- engine

class ContentTransformEngine:
    """Adds and removes a content group's files, routing transform files to their transformer."""

    def __init__(self, transformers: Optional[Dict[TransformExtensionPair, PackageFileTransformer]] = None):
        self._transformers = transformers if transformers is not None else FILE_TRANSFORMERS

    def _match(self, path: str, uninstall: bool) -> Tuple[Optional[PackageFileTransformer], Optional[str]]:
        lower = path.lower()
        for pair, transformer in self._transformers.items():
            suffix = pair.uninstall_extension if uninstall else pair.install_extension
            if lower.endswith(suffix):
                return transformer, path[: -len(suffix)]
        return None, None

    def _is_transform_item(self, path: str) -> bool:
        lower = path.lower()
        return any(
            lower.endswith(pair.install_extension) or lower.endswith(pair.uninstall_extension)
            for pair in self._transformers
        )

    @staticmethod
    def _relative(item: str) -> str:
        return get_group_relative_path(item, PackageFolders.CONTENT.value)

    async def add_files(self, project: "ProjectSystem", reader: PackageReader, group: AssetGroup) -> int:
        """Apply ``group`` to ``project``; returns the number of items processed."""
        processed = 0
        for item in sort_package_items(group.items):
            relative = self._relative(item)
            if not relative or relative.endswith(Constants.PACKAGE_EMPTY_FILE_NAME):
                continue
            transformer, target = self._match(relative, uninstall=False)
            if transformer is not None:
                await transformer.transform_file(reader.read_item(item), target, project)
            elif self._is_transform_item(relative):
                # uninstall-only transform files are not copied into the project
                continue
            elif await project.file_exists(relative):
                logger.warning("'%s' already exists. Skipping...", relative)
                continue
            else:
                await project.add_file(relative, reader.read_item(item))
            processed += 1
            if is_debug_enabled(logger):
                logger.debug("Added content item", extra=extra_context(
                    event="content_add", component="transforms", action="add_files",
                    target=relative, package_id=reader.identity.id,
                ))
        return processed

    async def delete_files(
        self,
        project: "ProjectSystem",
        reader: PackageReader,
        group: AssetGroup,
        others: Sequence[Tuple[PackageReader, AssetGroup]] = (),
    ) -> int:
        """Reverse ``group`` in ``project``; ``others`` are content groups of packages that stay installed."""
        other_items: Dict[str, List[Tuple[PackageReader, str]]] = {}
        for other_reader, other_group in others:
            for other_item in other_group.items:
                other_items.setdefault(self._relative(other_item).lower(), []).append((other_reader, other_item))

        processed = 0
        for item in sort_package_items(group.items):
            relative = self._relative(item)
            if not relative or relative.endswith(Constants.PACKAGE_EMPTY_FILE_NAME):
                continue
            transformer, target = self._match(relative, uninstall=True)
            if transformer is not None:
                other_sources = [r.read_item(i) for r, i in other_items.get(relative.lower(), [])]
                await transformer.revert_file(reader.read_item(item), target, other_sources, project)
            elif self._is_transform_item(relative):
                continue
            elif relative.lower() in other_items:
                logger.info("'%s' is used by another installed package. Skipping...", relative)
                continue
            else:
                existing = await project.read_file(relative)
                if existing is None:
                    continue
                if existing != reader.read_item(item):
                    logger.warning("Skipping '%s' because it was modified.", relative)
                    continue
                await project.remove_file(relative)
            processed += 1
        return processed
