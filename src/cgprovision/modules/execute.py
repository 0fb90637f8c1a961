"""Invoking module executables: the ``info`` query and action runs."""
from __future__ import annotations

import json
import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from cgprovision.constants import Constants
from cgprovision.common.errors import DecodeError, InvalidVersion, ModuleExecError
from cgprovision.versioning import Version, parse_version

logger = logging.getLogger(__name__)


class Action(Enum):
    """Actions a module executable understands."""

    INFO = "info"
    CREATE = "create"
    UPDATE = "update"
    RUN_CLIENT = "run_client"
    RUN_SERVER = "run_server"
    BUILD = "build"


@dataclass
class ModuleInfo:
    """Capabilities reported by ``<module> info``."""

    actions: List[str]
    library_versions: Dict[str, List[Version]]
    project_types: List[str]
    version: Optional[Version] = None
    extra: Dict[str, Any] = field(default_factory=dict)


def _require(data: Dict[str, Any], key: str, kind: type, path: str) -> Any:
    if key not in data or data[key] is None:
        raise DecodeError(f"invalid info response from '{path}': missing '{key}' field")
    if not isinstance(data[key], kind):
        raise DecodeError(f"invalid info response from '{path}': malformed '{key}' field")
    return data[key]


def parse_module_info(raw: bytes, path: str = "<module>") -> ModuleInfo:
    """Decode the JSON document printed by ``<module> info``."""
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"decode info response from '{path}': {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"invalid info response from '{path}': expected an object")

    actions = _require(data, "actions", list, path)
    raw_libraries = _require(data, "library_versions", dict, path)
    project_types = _require(data, "project_types", list, path)

    library_versions: Dict[str, List[Version]] = {}
    try:
        for project_type, versions in raw_libraries.items():
            if not isinstance(versions, list):
                raise DecodeError(
                    f"invalid info response from '{path}': library versions of '{project_type}' must be a list"
                )
            library_versions[project_type] = [parse_version(v) for v in versions]
        version = parse_version(data["version"]) if data.get("version") else None
    except InvalidVersion as exc:
        raise DecodeError(f"invalid info response from '{path}': {exc}") from exc

    extra = {k: v for k, v in data.items() if k not in ("actions", "library_versions", "project_types", "version")}
    return ModuleInfo(
        actions=[str(a) for a in actions],
        library_versions=library_versions,
        project_types=[str(p) for p in project_types],
        version=version,
        extra=extra,
    )


def exec_info(path: str) -> ModuleInfo:
    """Run ``<path> info`` and decode its capability report.

    Raises:
        ModuleExecError: the executable could not be started or failed.
        DecodeError: the output is not a valid info document.
    """
    logger.debug("Querying module info from %s", path)
    try:
        completed = subprocess.run(
            [path, Action.INFO.value],
            stdout=subprocess.PIPE,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise ModuleExecError(f"execute module '{path}': {exc}") from exc
    return parse_module_info(completed.stdout, path)


def run_action(path: str, action: Action, payload: Optional[Dict[str, Any]] = None) -> None:
    """Run ``<path> <action>`` with inherited stdio.

    A payload is written to a temporary JSON file whose name is passed in
    the CG_MODULE_ACTION_DATA_FILE environment variable. The file is
    removed once the module exits.
    """
    env = os.environ.copy()
    data_file: Optional[str] = None
    if payload is not None:
        with tempfile.NamedTemporaryFile(
            "w",
            prefix="codegame-module-action-data-",
            suffix=".json",
            delete=False,
            encoding="utf-8",
        ) as handle:
            json.dump(payload, handle)
            data_file = handle.name
        env[Constants.ENV_ACTION_DATA_FILE] = data_file

    try:
        logger.debug("Running module %s %s", path, action.value)
        try:
            completed = subprocess.run([path, action.value], env=env, check=False)
        except OSError as exc:
            raise ModuleExecError(f"execute module '{path}': {exc}") from exc
        if completed.returncode != 0:
            raise ModuleExecError(
                f"module '{path}' action '{action.value}' exited with status {completed.returncode}"
            )
    finally:
        if data_file is not None:
            try:
                os.remove(data_file)
            except FileNotFoundError:
                pass
