"""Installation pipeline and its collaborators."""

from .events import (
    NotificationChannel,
    PackageEvent,
    PackageEventArgs,
    get_channel,
    init_channel,
    teardown_channel,
)
from .folder import PackagesFolder
from .hooks import HookKind, ScriptHookRunner
from .manifest import PackagesManifest
from .pipeline import PackageInstallationPipeline, PipelineOptions, is_assembly_reference, select_content

__all__ = [
    "NotificationChannel",
    "PackageEvent",
    "PackageEventArgs",
    "get_channel",
    "init_channel",
    "teardown_channel",
    "PackagesFolder",
    "HookKind",
    "ScriptHookRunner",
    "PackagesManifest",
    "PackageInstallationPipeline",
    "PipelineOptions",
    "is_assembly_reference",
    "select_content",
]
