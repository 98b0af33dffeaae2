"""Runtime configuration: YAML/JSON config files and CLI overrides onto Constants.

Precedence, lowest to highest: ``Constants`` defaults, the config file
(``-c/--config`` or ``DEPAPPLY_CONFIG``), then CLI flags.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

import yaml

from .constants import Constants
from .errors import ArgumentInvalidError

logger = logging.getLogger(__name__)

# config key -> (Constants attribute, type)
_CONFIG_KEYS = {
    "dependency_behavior": ("DEFAULT_DEPENDENCY_BEHAVIOR", str),
    "target_framework": ("DEFAULT_TARGET_FRAMEWORK", str),
    "resolver_max_rounds": ("RESOLVER_MAX_ROUNDS", int),
    "binding_redirects_disabled": ("BINDING_REDIRECTS_DISABLED", bool),
    "skip_assembly_references": ("SKIP_ASSEMBLY_REFERENCES", bool),
    "manifest_file": ("MANIFEST_FILE", str),
    "packages_directory": ("PACKAGES_DIRECTORY", str),
    "project_file": ("PROJECT_FILE", str),
    "script_interpreter": ("SCRIPT_INTERPRETER", list),
    "script_timeout_sec": ("SCRIPT_TIMEOUT_SEC", int),
}


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Read a YAML (``.yml``/``.yaml``) or JSON config file.

    ``path`` defaults to ``$DEPAPPLY_CONFIG``; with neither set an empty dict
    is returned. A top-level ``depapply`` section is unwrapped when present.

    Raises:
        FileNotFoundError: the file does not exist.
        ArgumentInvalidError: the file does not parse to a mapping.
    """
    path = path or os.environ.get(Constants.ENV_CONFIG)
    if not path:
        return {}
    with open(path, "r", encoding="utf-8") as f:
        try:
            if path.lower().endswith(".json"):
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ArgumentInvalidError(f"Invalid config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ArgumentInvalidError(f"Config file {path} must contain a mapping")
    logger.info("Loaded config from: %s", path)
    return data.get("depapply", data)


def _coerce(value: Any, kind: type) -> Any:
    if kind is bool:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if kind is list:
        if isinstance(value, str):
            return value.split()
        return [str(v) for v in value]
    return kind(value)


def apply_config_overrides(cfg: Dict[str, Any]) -> None:
    """Push known config keys onto ``Constants``; unknown keys are logged and ignored."""
    for key, value in (cfg or {}).items():
        target = _CONFIG_KEYS.get(str(key).lower())
        if target is None:
            logger.warning("Ignoring unknown config key: %s", key)
            continue
        attr, kind = target
        try:
            setattr(Constants, attr, _coerce(value, kind))
        except (TypeError, ValueError) as exc:
            raise ArgumentInvalidError(f"Invalid value for config key '{key}': {value!r}") from exc


def apply_cli_overrides(args) -> None:
    """Apply CLI flags to ``Constants`` (highest precedence)."""
    if getattr(args, "BEHAVIOR", None):
        Constants.DEFAULT_DEPENDENCY_BEHAVIOR = args.BEHAVIOR
    if getattr(args, "FRAMEWORK", None):
        Constants.DEFAULT_TARGET_FRAMEWORK = args.FRAMEWORK
    if getattr(args, "NO_BINDING_REDIRECTS", False):
        Constants.BINDING_REDIRECTS_DISABLED = True
    if getattr(args, "SKIP_ASSEMBLY_REFERENCES", False):
        Constants.SKIP_ASSEMBLY_REFERENCES = True
    if getattr(args, "MAX_ROUNDS", None) is not None:
        Constants.RESOLVER_MAX_ROUNDS = int(args.MAX_ROUNDS)
