"""Command-line entry point: resolve, install and uninstall sub-commands."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Any

from .args import parse_args
from .common.logging_utils import configure_logging, extra_context, is_debug_enabled
from .config import apply_cli_overrides, apply_config_overrides, load_config
from .constants import Constants, ExitCodes
from .content.assets import ZipPackageReader
from .errors import (
    ArgumentInvalidError,
    DepApplyError,
    IncompatiblePackageError,
    ScriptExecutionError,
    UnsatisfiableDependencyError,
    format_requirers,
)
from .install.events import PackageEvent, PackageEventArgs, init_channel, teardown_channel
from .install.folder import PackagesFolder
from .install.manifest import PackagesManifest
from .install.pipeline import PackageInstallationPipeline, PipelineOptions
from .operations import install_packages, plan_operations
from .projects.folder import FolderProjectSystem
from .resolver.metadata import FolderPackageSource, LocalMetadataProvider, gather_dependency_infos
from .resolver.resolver import DependencyGraphResolver
from .versioning.models import DependencyBehavior, PackageReference
from .versioning.parser import parse_identity_token

logger = logging.getLogger(__name__)


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments."""
    # Honor CLI --loglevel
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()

    configure_logging()

    # Add file handler if --logfile specified
    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        )
        file_handler.setFormatter(formatter)
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def _log_event(event: PackageEvent, args: PackageEventArgs) -> None:
    logger.info("%s: %s (%s)", event.value, args.identity, args.project_name)


def _load_provider(path: str):
    if os.path.isdir(path):
        return FolderPackageSource(path)
    return LocalMetadataProvider.from_file(path)


def run_resolve(args) -> int:
    """Resolve the requested packages and print the install list, dependencies first."""
    framework = Constants.DEFAULT_TARGET_FRAMEWORK
    behavior = DependencyBehavior.parse(Constants.DEFAULT_DEPENDENCY_BEHAVIOR)
    targets = [parse_identity_token(t) for t in args.TARGETS]
    installed = [PackageReference(parse_identity_token(t), framework) for t in args.INSTALLED]

    provider = _load_provider(args.METADATA)
    available = asyncio.run(
        gather_dependency_infos(provider, targets, framework, [r.identity for r in installed])
    )
    resolved = DependencyGraphResolver(behavior).resolve(targets, available, installed, framework)

    for identity in resolved:
        sys.stdout.write(f"{identity.id} {identity.version}\n")
    plan = plan_operations(resolved, installed)
    if installed and plan:
        for identity in plan.uninstall:
            sys.stdout.write(f"- {identity}\n")
        for identity in plan.install:
            sys.stdout.write(f"+ {identity}\n")
    return ExitCodes.SUCCESS.value


def _pipeline_for(project_dir: str, channel) -> PackageInstallationPipeline:
    project = FolderProjectSystem(project_dir, Constants.DEFAULT_TARGET_FRAMEWORK,
                                  project_file=Constants.PROJECT_FILE)
    pipeline = PackageInstallationPipeline(
        project,
        PackagesManifest(project.root, Constants.MANIFEST_FILE),
        PackagesFolder(os.path.join(project.root, Constants.PACKAGES_DIRECTORY)),
        options=PipelineOptions.from_constants(),
        channel=channel,
    )
    return pipeline


async def _install(pipeline: PackageInstallationPipeline, package_file: str) -> bool:
    reader = ZipPackageReader(package_file)
    try:
        changed = await pipeline.install_package(reader.identity, reader)
    finally:
        reader.close()
    await pipeline.post_process()
    return changed


async def _uninstall(pipeline: PackageInstallationPipeline, token: str) -> bool:
    changed = await pipeline.uninstall_package(parse_identity_token(token))
    await pipeline.post_process()
    return changed


def run_install(args) -> int:
    """Install into a folder project: one package file as is, or requested packages resolved from a feed."""
    if args.PACKAGE_FILE and (args.SOURCE or args.TARGETS):
        raise ArgumentInvalidError("--file cannot be combined with --source/--package")
    if not args.PACKAGE_FILE and not (args.SOURCE and args.TARGETS):
        raise ArgumentInvalidError("install needs --file, or --source with at least one --package")

    channel = init_channel()
    channel.subscribe(_log_event)
    try:
        pipeline = _pipeline_for(args.PROJECT, channel)
        if args.PACKAGE_FILE:
            asyncio.run(_install(pipeline, args.PACKAGE_FILE))
        else:
            targets = [parse_identity_token(t) for t in args.TARGETS]
            behavior = DependencyBehavior.parse(Constants.DEFAULT_DEPENDENCY_BEHAVIOR)
            plan = asyncio.run(install_packages(
                pipeline, FolderPackageSource(args.SOURCE), targets, behavior, Constants.RESOLVER_MAX_ROUNDS,
            ))
            for identity in plan.uninstall:
                sys.stdout.write(f"- {identity}\n")
            for identity in plan.install:
                sys.stdout.write(f"+ {identity}\n")
    finally:
        teardown_channel()
    return ExitCodes.SUCCESS.value


def run_uninstall(args) -> int:
    """Uninstall one package from a folder project."""
    channel = init_channel()
    channel.subscribe(_log_event)
    try:
        pipeline = _pipeline_for(args.PROJECT, channel)
        asyncio.run(_uninstall(pipeline, args.PACKAGE))
    finally:
        teardown_channel()
    return ExitCodes.SUCCESS.value


_COMMANDS = {
    "resolve": run_resolve,
    "install": run_install,
    "uninstall": run_uninstall,
}


def main(argv=None) -> None:
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND)
        )

    try:
        apply_config_overrides(load_config(getattr(args, "CONFIG", None)))
        apply_cli_overrides(args)
        code = _COMMANDS[args.COMMAND](args)
    except UnsatisfiableDependencyError as exc:
        logger.error("%s", exc)
        if exc.requirers:
            logger.error("Conflicting requirers: %s", format_requirers(exc.requirers))
        code = ExitCodes.RESOLUTION_ERROR.value
    except (IncompatiblePackageError, ScriptExecutionError) as exc:
        logger.error("%s", exc)
        code = ExitCodes.INSTALL_ERROR.value
    except ArgumentInvalidError as exc:
        logger.error("%s", exc)
        code = ExitCodes.ARGUMENT_ERROR.value
    except OSError as exc:
        logger.error("File error: %s", exc)
        code = ExitCodes.FILE_ERROR.value
    except DepApplyError as exc:
        logger.error("%s", exc)
        code = ExitCodes.INSTALL_ERROR.value

    sys.exit(code)


if __name__ == "__main__":
    main()
