"""Locating and running packaged lifecycle scripts (init, install, uninstall)."""

from __future__ import annotations

import logging
import posixpath
from enum import Enum
from typing import Optional, Sequence, TYPE_CHECKING

from ..common.logging_utils import Timer, extra_context, is_debug_enabled
from ..constants import Constants, PackageFolders
from ..content.assets import AssetGroup, PackageReader
from ..content.frameworks import SelectionResult
from ..errors import ScriptExecutionError

if TYPE_CHECKING:
    from ..projects.base import ProjectSystem

logger = logging.getLogger(__name__)


class HookKind(Enum):
    """Lifecycle hooks a package may ship."""
    INIT = "init"
    INSTALL = "install"
    UNINSTALL = "uninstall"

    @property
    def script_name(self) -> str:
        return {
            HookKind.INIT: Constants.SCRIPT_INIT,
            HookKind.INSTALL: Constants.SCRIPT_INSTALL,
            HookKind.UNINSTALL: Constants.SCRIPT_UNINSTALL,
        }[self]


class ScriptHookRunner:
    """Finds at most one script per hook kind and runs it through the project."""

    def find_script(
        self,
        kind: HookKind,
        tool_groups: Sequence[AssetGroup],
        selected: Optional[SelectionResult] = None,
    ) -> Optional[str]:
        """Relative path of the script for ``kind``, or None.

        ``init`` is looked up in the framework-agnostic tool group under
        ``tools/init.ps1``; ``install``/``uninstall`` in the selected tool group
        by file name.
        """
        if kind == HookKind.INIT:
            any_group = next(
                (g for g in tool_groups if g.target_framework == Constants.ANY_FRAMEWORK), None
            )
            if any_group is None:
                return None
            prefix = f"{PackageFolders.TOOLS.value}/{kind.script_name}".lower()
            return next((p for p in any_group.items if p.lower().startswith(prefix)), None)

        if selected is None or not selected.is_valid:
            return None
        name = kind.script_name.lower()
        return next(
            (p for p in selected.items if posixpath.basename(p.replace("\\", "/")).lower() == name),
            None,
        )

    async def run(
        self,
        kind: HookKind,
        install_path: str,
        script_path: str,
        reader: PackageReader,
        project: "ProjectSystem",
        throw_on_failure: bool,
    ) -> bool:
        """Execute one script.

        Raises:
            ScriptExecutionError: when the script fails and ``throw_on_failure`` is set.
        """
        logger.info("Executing script file '%s' for package '%s'.", script_path, reader.identity)
        with Timer() as t:
            try:
                ok = await project.execute_script(install_path, script_path, reader, throw_on_failure)
            except ScriptExecutionError:
                if throw_on_failure:
                    raise
                logger.warning("Script '%s' failed; continuing.", script_path, exc_info=True)
                ok = False
        if is_debug_enabled(logger):
            logger.debug("Script finished", extra=extra_context(
                event="script", component="hooks", action=kind.value, target=script_path,
                outcome="success" if ok else "failure", duration_ms=t.duration_ms(),
                package_id=reader.identity.id,
            ))
        if not ok and throw_on_failure:
            raise ScriptExecutionError(script_path)
        return ok
