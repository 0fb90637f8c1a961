"""A language module and its compatibility chain.

Resolution walks two tables per project type: protocol version -> library
version, then library version -> module version. Client and server
artifacts version independently, so each has its own pair of tables.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Mapping, MutableMapping, Optional, Tuple

from cgprovision.common.errors import (
    NoCompatibleModuleBuild,
    NoCompatibleVersion,
    UnsupportedProjectType,
    UnsupportedProtocolVersion,
)
from cgprovision.install import Installer
from cgprovision.providers import Provider, ProviderVars
from cgprovision.versioning import (
    ProjectType,
    Resolution,
    Version,
    find_compatible_entry,
    latest_in_map,
)

logger = logging.getLogger(__name__)

VersionTables = Dict[ProjectType, Mapping[str, str]]


class Module:
    """One entry of the module registry, ready to resolve and install."""

    def __init__(
        self,
        lang: str,
        display_name: str,
        provider: Provider,
        provider_vars: ProviderVars,
        installer: Installer,
        protocol_to_library: Optional[VersionTables] = None,
        library_to_module: Optional[VersionTables] = None,
        installed: Optional[MutableMapping[str, str]] = None,
    ):
        self.lang = lang
        self.display_name = display_name
        self.provider = provider
        self.provider_vars = provider_vars
        self.installer = installer
        self.protocol_to_library: VersionTables = dict(protocol_to_library or {})
        self.library_to_module: VersionTables = dict(library_to_module or {})
        self.installed: MutableMapping[str, str] = installed if installed is not None else {}
        self._lock = threading.Lock()

    def supports(self, project_type: ProjectType) -> bool:
        return bool(self.library_to_module.get(project_type))

    def _table(self, tables: VersionTables, project_type: ProjectType) -> Mapping[str, str]:
        table = tables.get(project_type)
        if table is None:
            raise UnsupportedProjectType(
                f"the {self.lang} module does not support {project_type.value} projects"
            )
        return table

    def find_library_entry(self, project_type: ProjectType, protocol_version: Version) -> Tuple[Version, Version]:
        """Return (matched protocol key, library version) for ``protocol_version``."""
        table = self._table(self.protocol_to_library, project_type)
        try:
            return find_compatible_entry(protocol_version, table, f"{self.lang} {project_type.value}")
        except NoCompatibleVersion as exc:
            raise UnsupportedProtocolVersion(
                f"the {self.lang} {project_type.value} module does not support protocol version "
                f"{protocol_version} (supported: {', '.join(exc.available) or 'none'})"
            ) from exc

    def find_library_version(self, project_type: ProjectType, protocol_version: Version) -> Version:
        return self.find_library_entry(project_type, protocol_version)[1]

    def find_compatible_module_version(self, project_type: ProjectType, library_version: Version) -> Version:
        table = self._table(self.library_to_module, project_type)
        try:
            return find_compatible_entry(library_version, table, f"{self.lang} {project_type.value}")[1]
        except NoCompatibleVersion as exc:
            raise NoCompatibleModuleBuild(
                library_version, exc.available, f"{self.lang} {project_type.value} library"
            ) from exc

    def find_latest_module_version(self, project_type: ProjectType) -> Version:
        """Module version for the newest library, without any protocol filter."""
        table = self._table(self.library_to_module, project_type)
        return latest_in_map(table, f"{self.lang} {project_type.value}")

    def resolve(self, project_type: ProjectType, protocol_version: Optional[Version] = None) -> Resolution:
        """Walk the chain for ``protocol_version``, or pick the latest build without one."""
        if protocol_version is None:
            module_version = self.find_latest_module_version(project_type)
            return Resolution(project_type, None, None, module_version)

        library_version = self.find_library_version(project_type, protocol_version)
        module_version = self.find_compatible_module_version(project_type, library_version)
        logger.debug(
            "Resolved %s %s: protocol %s -> library %s -> module %s",
            self.lang,
            project_type.value,
            protocol_version,
            library_version,
            module_version,
        )
        return Resolution(project_type, protocol_version, library_version, module_version)

    def install(self, module_version: Version, progress: Optional[Callable[[int, int], None]] = None) -> Path:
        """Return the executable for ``module_version``, downloading it if needed."""
        exact = self.provider.find_exact_version(self.provider_vars, module_version)
        key = str(exact)
        with self._lock:
            known = self.installed.get(key)
        if known is not None:
            return Path(known)
        path = self.installer.install(self.lang, self.provider, self.provider_vars, exact, progress)
        with self._lock:
            self.installed[key] = str(path)
        return path
