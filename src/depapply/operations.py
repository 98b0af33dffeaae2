"""Turn a resolved package set into the install/uninstall steps for a project, and run them."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence

from .common.logging_utils import Timer, extra_context, is_debug_enabled
from .errors import ArgumentInvalidError, check_cancelled
from .resolver.metadata import FolderPackageSource, gather_dependency_infos
from .resolver.resolver import DependencyGraphResolver
from .versioning.models import DependencyBehavior, PackageIdentity, PackageReference

if TYPE_CHECKING:
    from .install.pipeline import PackageInstallationPipeline

logger = logging.getLogger(__name__)


@dataclass
class OperationPlan:
    """Ordered steps: every uninstall runs before any install."""
    uninstall: List[PackageIdentity] = field(default_factory=list)
    install: List[PackageIdentity] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.uninstall or self.install)


def plan_operations(resolved: Sequence[PackageIdentity], installed: Iterable[PackageReference]) -> OperationPlan:
    """Diff ``resolved`` (dependencies first) against what is installed.

    A package whose version changes is uninstalled and installed again.
    Uninstalls run in reverse dependency order, installs in resolved order.
    Installed packages missing from ``resolved`` are left alone.
    """
    current: Dict[str, PackageIdentity] = {ref.identity.key: ref.identity for ref in installed}
    plan = OperationPlan()
    for identity in resolved:
        existing = current.get(identity.key)
        if existing == identity:
            continue
        if existing is not None:
            plan.uninstall.append(existing)
        plan.install.append(identity)
    plan.uninstall.reverse()
    return plan


async def execute_plan(pipeline: "PackageInstallationPipeline", plan: OperationPlan,
                       source: FolderPackageSource, cancel_event=None) -> None:
    """Run ``plan`` through ``pipeline`` as one operation.

    Package content for installs is read from ``source``. Binding
    redirects are generated once, after the last step.
    """
    pipeline.reset_operation()
    for identity in plan.uninstall:
        check_cancelled(cancel_event, "uninstall")
        await pipeline.uninstall_package(identity, cancel_event)
    for identity in plan.install:
        check_cancelled(cancel_event, "install")
        reader = await asyncio.to_thread(source.open_reader, identity)
        try:
            await pipeline.install_package(identity, reader, cancel_event)
        finally:
            reader.close()
    await pipeline.post_process()


async def install_packages(
    pipeline: "PackageInstallationPipeline",
    source: FolderPackageSource,
    targets: Sequence[PackageIdentity],
    behavior: DependencyBehavior = DependencyBehavior.LOWEST,
    max_rounds: Optional[int] = None,
    cancel_event=None,
) -> OperationPlan:
    """Install ``targets`` and their dependencies into the pipeline's project.

    Gathers metadata from ``source`` for the project's framework, resolves
    against what the manifest already holds, then applies the resulting
    plan. Returns the plan that ran.

    Raises:
        ArgumentInvalidError: no targets.
        UnsatisfiableDependencyError: the request cannot be resolved.
    """
    if not targets:
        raise ArgumentInvalidError("At least one target package is required")
    framework = pipeline.project.target_framework
    installed = pipeline.manifest.get_installed()

    with Timer() as t:
        available = await gather_dependency_infos(source, targets, framework, [r.identity for r in installed])
        resolver = DependencyGraphResolver(behavior, max_rounds)
        resolved = await asyncio.to_thread(resolver.resolve, targets, available, installed, framework, cancel_event)
        plan = plan_operations(resolved, installed)
        if plan:
            logger.info("Applying %d uninstall(s) and %d install(s) to %s",
                        len(plan.uninstall), len(plan.install), pipeline.project.unique_name)
            await execute_plan(pipeline, plan, source, cancel_event)
        else:
            logger.info("Nothing to do for %s", pipeline.project.unique_name)

    if is_debug_enabled(logger):
        logger.debug("Install operation finished", extra=extra_context(
            event="function_exit", component="operations", action="install_packages",
            outcome="success", count=len(plan.install), duration_ms=t.duration_ms(),
        ))
    return plan
