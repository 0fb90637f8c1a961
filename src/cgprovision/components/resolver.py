"""Shared support tools (``cge-parser``, ``cg-debug``) published by the CodeGame project.

Every component repository carries a ``versions.json`` on its main branch
mapping a supported CodeGame/CGE version to the component release that
supports it.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

from cgprovision.constants import Constants
from cgprovision.common.errors import DecodeError, InvalidVersion, ProvisionError, VersionNotFound
from cgprovision.common.http_client import HttpClient
from cgprovision.install import Installer
from cgprovision.overrides import OverrideTable
from cgprovision.providers import GitHubProvider
from cgprovision.versioning import Version, compare, is_compatible, parse_version

logger = logging.getLogger(__name__)

CGE_PARSER = "cge-parser"
CG_DEBUG = "cg-debug"


class ComponentResolver:
    """Resolve, pin-check and install components."""

    def __init__(
        self,
        http: HttpClient,
        overrides: OverrideTable,
        installer: Installer,
        owner: str = Constants.COMPONENT_OWNER,
        provider: Optional[GitHubProvider] = None,
    ):
        self.http = http
        self.overrides = overrides
        self.installer = installer
        self.owner = owner
        self.provider = provider if provider is not None else GitHubProvider(http)

    def versions_url(self, name: str) -> str:
        return Constants.COMPONENT_VERSIONS_URL.format(
            raw=Constants.GITHUB_RAW_BASE, owner=self.owner, name=name
        )

    def find_latest_supported(self, name: str, version: Version) -> Tuple[Version, Version]:
        """Return (component version, supported version) for the newest release able to serve ``version``.

        Raises:
            VersionNotFound: no release supports ``version``.
        """
        data: Any = self.http.fetch_json(self.versions_url(name), max_age=Constants.VERSIONS_CACHE_MAX_AGE)
        if not isinstance(data, dict):
            raise DecodeError(f"version map of component '{name}' is not an object")

        supported: Optional[Version] = None
        component: Optional[Version] = None
        for raw_supported, raw_component in data.items():
            try:
                candidate = parse_version(str(raw_supported))
                candidate_component = parse_version(str(raw_component))
            except InvalidVersion as exc:
                logger.warning("Invalid version in version map for component '%s': %s", name, exc)
                continue
            if is_compatible(candidate, version) and compare(supported, candidate) == 1:
                supported, component = candidate, candidate_component
        if supported is None or component is None:
            raise VersionNotFound(
                f"no release of {name} supports version {version} (available: {', '.join(sorted(map(str, data)))})"
            )
        return component, supported

    def install(
        self,
        name: str,
        component_version: Version,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> Path:
        """Install the release tagged for ``component_version``."""
        provider_vars = {"owner": self.owner, "repository": name}
        exact = self.provider.find_exact_version(provider_vars, component_version)
        return self.installer.install(name, self.provider, provider_vars, exact, progress)

    def component(
        self,
        name: str,
        version: Version,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> Path:
        """Return an executable of ``name`` that supports ``version``.

        An exact pin is used without consulting the network. Otherwise a
        compatible pin wins unless upstream supports a strictly newer
        version, and it is also the fallback when upstream cannot be
        reached or has nothing compatible.
        """
        match = self.overrides.find(name, version)
        if match is not None and match.exact:
            logger.debug("Using exact override for %s %s: %s", name, version, match.path)
            return Path(match.path)

        try:
            component_version, supported = self.find_latest_supported(name, version)
        except ProvisionError as exc:
            if match is not None:
                logger.info("Using override for %s after resolution failed: %s", name, exc)
                return Path(match.path)
            raise
        if match is not None and match.preferred_over(supported):
            logger.debug("Override %s for %s is at least as new as %s", match.version, name, supported)
            return Path(match.path)

        return self.install(name, component_version, progress)

    def cge_parser(self, cge_version: Version, progress: Optional[Callable[[int, int], None]] = None) -> Path:
        return self.component(CGE_PARSER, cge_version, progress)

    def cg_debug(self, cg_version: Version, progress: Optional[Callable[[int, int], None]] = None) -> Path:
        return self.component(CG_DEBUG, cg_version, progress)
