"""Exception types raised by the resolver and the installation pipeline."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .versioning.models import PackageIdentity, VersionRange


class DepApplyError(Exception):
    """Base class for all depapply errors."""


class ArgumentInvalidError(DepApplyError, ValueError):
    """A malformed identity, range or stream was passed in; nothing was changed."""


class IncompatiblePackageError(DepApplyError):
    """The package has nothing usable for the active target framework."""

    def __init__(self, identity: "PackageIdentity", framework: str):
        self.identity = identity
        self.framework = framework
        super().__init__(
            f"Could not install package '{identity}'. The project targets '{framework}', "
            "but the package does not contain any assembly references, content files, "
            "build files or tools compatible with that framework."
        )


Requirer = Optional["PackageIdentity"]
Conflicts = Dict[str, List[Tuple[Requirer, "VersionRange"]]]


class UnsatisfiableDependencyError(DepApplyError):
    """No consistent version assignment exists.

    ``conflicts`` maps each dependency id to the ``(requirer, range)`` pairs
    that cannot be satisfied together. A ``None`` requirer is a direct target.
    """

    def __init__(self, conflicts: Conflicts, message: Optional[str] = None):
        self.conflicts = conflicts
        super().__init__(message or self._describe(conflicts))

    @property
    def requirers(self) -> List[Requirer]:
        """All requirers named in the conflict, in report order."""
        seen: List[Requirer] = []
        for pairs in self.conflicts.values():
            for requirer, _ in pairs:
                if requirer not in seen:
                    seen.append(requirer)
        return seen

    @staticmethod
    def _describe(conflicts: Conflicts) -> str:
        parts = []
        for dep_id, pairs in conflicts.items():
            reqs = ", ".join(
                f"{requirer if requirer is not None else '<target>'} requires {dep_id} {rng}"
                for requirer, rng in pairs
            )
            parts.append(f"Unable to resolve '{dep_id}': {reqs}")
        return "; ".join(parts) or "Unable to resolve dependencies"


class ScriptExecutionError(DepApplyError):
    """A packaged lifecycle script failed."""

    def __init__(self, script: str, returncode: Optional[int] = None, output: str = ""):
        self.script = script
        self.returncode = returncode
        self.output = output
        detail = f" (exit code {returncode})" if returncode is not None else ""
        super().__init__(f"Script '{script}' failed{detail}")


class OperationCancelledError(DepApplyError):
    """A cancellation signal was observed between stages."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"Operation cancelled before stage '{stage}'")


def check_cancelled(cancel_event, stage: str) -> None:
    """Raise OperationCancelledError when ``cancel_event`` is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(stage)


def format_requirers(requirers: Sequence[Requirer]) -> str:
    """Comma-separated requirer list for messages."""
    return ", ".join(str(r) if r is not None else "<target>" for r in requirers)
