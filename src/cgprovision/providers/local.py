"""Local provider: executables that already exist on disk."""
from __future__ import annotations

import logging
from typing import BinaryIO, Callable, Dict, List, MutableMapping, Optional

from cgprovision.constants import ProviderNames
from cgprovision.common.errors import ModuleExecError, ProviderContractError
from cgprovision.versioning import ProjectType, Version
from .base import Provider, ProviderVars

logger = logging.getLogger(__name__)


def _default_exec_info(path: str):
    # Imported late: the modules package imports the provider registry.
    from cgprovision.modules.execute import exec_info  # pylint: disable=import-outside-toplevel

    return exec_info(path)


class LocalProvider(Provider):
    """Pre-registered executables, configured by ``path`` and/or ``paths``.

    Their versions are whatever the executables report, so exact-version
    lookup is the identity and nothing is ever downloaded.
    """

    name = ProviderNames.LOCAL.value

    def __init__(self, exec_info: Optional[Callable] = None):
        self.exec_info = exec_info or _default_exec_info

    def validate_vars(self, provider_vars: ProviderVars) -> List[str]:
        errors: List[str] = []
        has_path = "path" in provider_vars
        has_paths = "paths" in provider_vars
        if not has_path and not has_paths:
            errors.append("missing 'path' or 'paths' field")
        if has_path and not isinstance(provider_vars["path"], str):
            errors.append("value of 'path' field must be a string")
        if has_paths:
            paths = provider_vars["paths"]
            if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
                errors.append("value of 'paths' field must be a string list")
        return errors

    def find_exact_version(self, provider_vars: ProviderVars, version: Version) -> Version:
        return version

    def download_binary(
        self,
        target: BinaryIO,
        provider_vars: ProviderVars,
        version: Version,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        raise ProviderContractError("local modules cannot be downloaded")

    def configured_paths(self, provider_vars: ProviderVars) -> List[str]:
        paths: List[str] = []
        if "path" in provider_vars:
            paths.append(provider_vars["path"])
        paths.extend(provider_vars.get("paths") or [])
        return paths

    def load_executables(
        self,
        provider_vars: ProviderVars,
        lib_to_mod: Dict[ProjectType, MutableMapping[str, str]],
        installed: MutableMapping[str, str],
    ) -> None:
        """Query every configured executable and register what it supports.

        Each executable gets a synthetic module version ("0", "1", ...) that
        is mapped from every library version it reports. Library versions
        already claimed by an earlier executable are left untouched.

        Raises:
            ModuleExecError: an executable could not be queried.
        """
        for path in self.configured_paths(provider_vars):
            try:
                info = self.exec_info(path)
            except ModuleExecError as exc:
                raise ModuleExecError(f"failed to receive module version of '{path}': {exc}") from exc

            module_id = str(len(installed))
            for project_type in ProjectType:
                reported = info.library_versions.get(project_type.value)
                if not reported:
                    continue
                table = lib_to_mod.setdefault(project_type, {})
                for library_version in reported:
                    table.setdefault(str(library_version), module_id)
            installed[module_id] = path
            logger.debug("Registered local module %s as %s", path, module_id)
