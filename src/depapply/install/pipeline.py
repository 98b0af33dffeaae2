"""Per-package install/uninstall pipeline.

Install: pre-check, select content, validity gate, notify installing,
apply content (references, framework references, content files, build
imports), record in the manifest, notify installed, run init/install scripts.

Uninstall: pre-check, select content, notify uninstalling, remove content,
remove from the manifest, notify uninstalled, run the uninstall script, then
delete the extracted package folder.

Nothing is rolled back. A failure leaves the sub-steps that already ran in
place and the manifest untouched for that package; running the same call
again is the way to catch up.
"""

from __future__ import annotations

import asyncio
import logging
import os
import posixpath
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from ..common.logging_utils import Timer, extra_context, is_debug_enabled
from ..constants import Constants
from ..content.assets import AssetCategory, AssetGroup, PackageReader
from ..content.frameworks import SelectionResult, SelectionStatus, get_most_compatible_group
from ..content.transforms import ContentTransformEngine
from ..errors import ArgumentInvalidError, IncompatiblePackageError, check_cancelled
from ..projects.base import ImportLocation, ProjectSystem
from ..versioning.models import PackageIdentity, PackageReference
from .events import NotificationChannel, PackageEvent, PackageEventArgs, PackageEventDispatcher
from .folder import PackagesFolder
from .hooks import HookKind, ScriptHookRunner
from .manifest import PackagesManifest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineOptions:
    """Switches the project context honors for every operation."""
    binding_redirects_disabled: bool = False
    skip_assembly_references: bool = False

    @classmethod
    def from_constants(cls) -> "PipelineOptions":
        return cls(
            binding_redirects_disabled=bool(Constants.BINDING_REDIRECTS_DISABLED),
            skip_assembly_references=bool(Constants.SKIP_ASSEMBLY_REFERENCES),
        )


@dataclass
class CompatibleContent:
    """Most compatible group per category for one framework."""
    lib: SelectionResult
    reference: SelectionResult
    framework_reference: SelectionResult
    content: SelectionResult
    build: SelectionResult
    tool: SelectionResult
    tool_groups: List[AssetGroup] = field(default_factory=list)

    @property
    def has_compatible_project_level_content(self) -> bool:
        return any(s.is_valid for s in (self.lib, self.framework_reference, self.content, self.build))

    @property
    def has_project_level_content(self) -> bool:
        return any(
            s.status != SelectionStatus.NO_GROUPS
            for s in (self.lib, self.framework_reference, self.content, self.build)
        )


def select_content(reader: PackageReader, framework: str) -> CompatibleContent:
    """Run the framework selector over every asset category of ``reader``."""
    def _pick(category: AssetCategory) -> SelectionResult:
        return get_most_compatible_group(framework, reader.get_item_groups(category))

    return CompatibleContent(
        lib=_pick(AssetCategory.LIB),
        reference=_pick(AssetCategory.REFERENCE),
        framework_reference=_pick(AssetCategory.FRAMEWORK_REFERENCE),
        content=_pick(AssetCategory.CONTENT),
        build=_pick(AssetCategory.BUILD),
        tool=_pick(AssetCategory.TOOL),
        tool_groups=reader.get_item_groups(AssetCategory.TOOL),
    )


def is_assembly_reference(path: str) -> bool:
    """Assembly references live under ``lib/`` and are ``.dll``/``.exe``/``.winmd`` (not satellites)."""
    normalized = path.replace("\\", "/")
    if not normalized.lower().startswith("lib/"):
        return False
    file_name = posixpath.basename(normalized)
    if file_name == Constants.PACKAGE_EMPTY_FILE_NAME:
        return True
    lower = normalized.lower()
    if lower.endswith(Constants.RESOURCE_ASSEMBLY_EXTENSION):
        return False
    return posixpath.splitext(lower)[1] in Constants.ASSEMBLY_REFERENCE_EXTENSIONS


def _reference_items(selection: SelectionResult) -> List[str]:
    return [
        item for item in selection.items
        if is_assembly_reference(item) and posixpath.basename(item) != Constants.PACKAGE_EMPTY_FILE_NAME
    ]


class PackageInstallationPipeline:
    """Applies and removes single packages against one project."""

    def __init__(
        self,
        project: ProjectSystem,
        manifest: PackagesManifest,
        packages_folder: PackagesFolder,
        options: Optional[PipelineOptions] = None,
        channel: Optional[NotificationChannel] = None,
        transform_engine: Optional[ContentTransformEngine] = None,
        hook_runner: Optional[ScriptHookRunner] = None,
    ):
        if project is None:
            raise ArgumentInvalidError("project must not be None")
        self.project = project
        self.manifest = manifest
        self.packages_folder = packages_folder
        self.options = options or PipelineOptions()
        self._events = PackageEventDispatcher(channel)
        self._transforms = transform_engine or ContentTransformEngine()
        self._hooks = hook_runner or ScriptHookRunner()
        # ids whose init script already ran during this operation
        self._init_executed: Set[str] = set()

    @property
    def observers(self):
        """Per-instance observer list: callables taking (PackageEvent, PackageEventArgs)."""
        return self._events.observers

    def _event_args(self, identity: PackageIdentity) -> PackageEventArgs:
        return PackageEventArgs(
            identity=identity,
            install_path=self.packages_folder.get_installed_path(identity),
            project_name=self.project.project_name,
        )

    def _check_validity(self, identity: PackageIdentity, reader: PackageReader,
                        content: CompatibleContent, framework: str) -> None:
        only_tools = only_dependencies = False
        if not content.has_project_level_content:
            # No project-level content at all: legacy solution-level packages
            # that only carry tools, or meta packages that only carry dependencies
            only_tools = content.tool.is_valid
            if not only_tools:
                only_dependencies = bool(reader.get_dependencies())

        if not content.has_compatible_project_level_content and not only_tools and not only_dependencies:
            raise IncompatiblePackageError(identity, framework)

        if content.has_compatible_project_level_content:
            logger.debug("Installing %s into %s targeting %s", identity, self.project.project_name, framework)
        elif only_tools:
            logger.info("Added package '%s' which only has a tools group to '%s'.",
                        identity, self.project.project_name)
        else:
            logger.info("Added package '%s' which only has dependencies to '%s'.",
                        identity, self.project.project_name)

    async def install_package(self, identity: PackageIdentity, reader: PackageReader,
                              cancel_event: Optional[asyncio.Event] = None) -> bool:
        """Install one package. Returns False when it is already installed.

        Raises:
            ArgumentInvalidError: missing identity/reader or mismatched package.
            IncompatiblePackageError: nothing in the package fits the project.
            ScriptExecutionError: the init or install script failed.
            OperationCancelledError: ``cancel_event`` was set between stages.
        """
        if identity is None:
            raise ArgumentInvalidError("identity must not be None")
        if reader is None:
            raise ArgumentInvalidError("reader must not be None")
        if reader.identity != identity:
            raise ArgumentInvalidError(f"Package content is '{reader.identity}', expected '{identity}'")

        # Stage 1: already installed
        if self.manifest.is_installed(identity):
            logger.warning("Package '%s' already exists in project '%s'", identity, self.project.project_name)
            return False

        with Timer() as t:
            check_cancelled(cancel_event, "select_content")
            framework = self.project.target_framework
            content = await asyncio.to_thread(select_content, reader, framework)

            self._check_validity(identity, reader, content, framework)

            check_cancelled(cancel_event, "extract")
            install_path = await asyncio.to_thread(self.packages_folder.install_package, reader)
            event_args = self._event_args(identity)
            self._events.fire(PackageEvent.INSTALLING, event_args)

            check_cancelled(cancel_event, "apply_content")
            await self._apply_content(identity, reader, content, install_path)

            check_cancelled(cancel_event, "record_manifest")
            self.manifest.add(PackageReference(identity, framework))
            await self.project.add_existing_file(self.manifest.file_name)

            check_cancelled(cancel_event, "notify_installed")
            self._events.fire(PackageEvent.INSTALLED, event_args)
            self._events.fire(PackageEvent.REFERENCE_ADDED, event_args)

            check_cancelled(cancel_event, "scripts")
            await self._run_install_scripts(identity, reader, content, install_path)

        if is_debug_enabled(logger):
            logger.debug("Package installed", extra=extra_context(
                event="install", component="pipeline", action="install_package",
                outcome="success", target=self.project.unique_name, package_id=identity.id,
                duration_ms=t.duration_ms(),
            ))
        return True

    async def _apply_content(self, identity: PackageIdentity, reader: PackageReader,
                             content: CompatibleContent, install_path: str) -> None:
        if content.reference.is_valid and not self.options.skip_assembly_references:
            for item in _reference_items(content.reference):
                name = posixpath.basename(item)
                if await self.project.reference_exists(name):
                    await self.project.remove_reference(name)
                await self.project.add_reference(os.path.join(install_path, *item.split("/")))

        if content.framework_reference.is_valid:
            for name in content.framework_reference.items:
                if not await self.project.reference_exists(name):
                    await self.project.add_framework_reference(name)

        if content.content.is_valid:
            await self._transforms.add_files(self.project, reader, content.content.group)

        if content.build.is_valid:
            for item in content.build.items:
                full_path = os.path.join(install_path, *item.split("/"))
                location = (ImportLocation.TOP if full_path.lower().endswith(Constants.PROPS_EXTENSION)
                            else ImportLocation.BOTTOM)
                await self.project.add_import(full_path, location)

    async def _run_install_scripts(self, identity: PackageIdentity, reader: PackageReader,
                                   content: CompatibleContent, install_path: str) -> None:
        if identity.key not in self._init_executed:
            init_script = self._hooks.find_script(HookKind.INIT, content.tool_groups)
            if init_script:
                self._init_executed.add(identity.key)
                await self._hooks.run(HookKind.INIT, install_path, init_script, reader, self.project,
                                      throw_on_failure=True)
        install_script = self._hooks.find_script(HookKind.INSTALL, content.tool_groups, content.tool)
        if install_script:
            await self._hooks.run(HookKind.INSTALL, install_path, install_script, reader, self.project,
                                  throw_on_failure=True)

    def _other_content_groups(self, identity: PackageIdentity) -> List[Tuple[PackageReader, AssetGroup]]:
        others = []
        for ref in self.manifest.get_installed():
            if ref.identity == identity or not self.packages_folder.package_exists(ref.identity):
                continue
            other_reader = self.packages_folder.open_reader(ref.identity)
            selected = get_most_compatible_group(
                ref.target_framework or self.project.target_framework,
                other_reader.get_item_groups(AssetCategory.CONTENT),
            )
            if selected.is_valid:
                others.append((other_reader, selected.group))
            else:
                other_reader.close()
        return others

    async def uninstall_package(self, identity: PackageIdentity,
                                cancel_event: Optional[asyncio.Event] = None) -> bool:
        """Uninstall one package. Returns False when it is not installed.

        The uninstall script runs last and its failure is only logged.
        """
        if identity is None:
            raise ArgumentInvalidError("identity must not be None")

        reference = self.manifest.get(identity)
        if reference is None:
            logger.warning("Package '%s' does not exist in project '%s'", identity, self.project.project_name)
            return False

        # The framework the package was installed for wins over the current one
        framework = reference.target_framework or self.project.target_framework
        install_path = self.packages_folder.get_installed_path(identity)
        event_args = self._event_args(identity)

        check_cancelled(cancel_event, "select_content")
        reader = await asyncio.to_thread(self.packages_folder.open_reader, identity)
        try:
            content = await asyncio.to_thread(select_content, reader, framework)

            check_cancelled(cancel_event, "notify_uninstalling")
            self._events.fire(PackageEvent.UNINSTALLING, event_args)

            check_cancelled(cancel_event, "remove_content")
            await self._remove_content(identity, reader, content, install_path)

            self.manifest.remove(identity)
            if len(self.manifest) == 0:
                await self.project.remove_file(self.manifest.file_name)
            else:
                await self.project.add_existing_file(self.manifest.file_name)

            check_cancelled(cancel_event, "notify_uninstalled")
            self._events.fire(PackageEvent.REFERENCE_REMOVED, event_args)
            self._events.fire(PackageEvent.UNINSTALLED, event_args)

            check_cancelled(cancel_event, "scripts")
            uninstall_script = self._hooks.find_script(HookKind.UNINSTALL, content.tool_groups, content.tool)
            if uninstall_script:
                await self._hooks.run(HookKind.UNINSTALL, install_path, uninstall_script, reader,
                                      self.project, throw_on_failure=False)
        finally:
            reader.close()

        await asyncio.to_thread(self.packages_folder.uninstall_package, identity)
        return True

    async def _remove_content(self, identity: PackageIdentity, reader: PackageReader,
                              content: CompatibleContent, install_path: str) -> None:
        if content.reference.is_valid and not self.options.skip_assembly_references:
            for item in _reference_items(content.reference):
                await self.project.remove_reference(posixpath.basename(item))

        # Framework references are never removed

        if content.content.is_valid:
            others = self._other_content_groups(identity)
            try:
                await self._transforms.delete_files(self.project, reader, content.content.group, others)
            finally:
                for other_reader, _ in others:
                    other_reader.close()

        if content.build.is_valid:
            for item in content.build.items:
                await self.project.remove_import(os.path.join(install_path, *item.split("/")))

    async def post_process(self) -> None:
        """Run once after a batch of operations: binding redirects unless disabled."""
        if not self.options.binding_redirects_disabled:
            await self.project.add_binding_redirects()

    def reset_operation(self) -> None:
        """Start a new operation: init scripts may run again."""
        self._init_executed.clear()
