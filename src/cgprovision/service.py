"""Provisioning facade owning all shared, lazily populated state.

One ``ProvisioningService`` holds the HTTP client, the TLS probe, the
override table, the installers and the module registry, and passes them to
the layers that need them.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import requests

from cgprovision.common.http_cache import HttpCache
from cgprovision.common.http_client import HttpClient, TLSProbe, base_url
from cgprovision.components import ComponentResolver
from cgprovision.install import Installer
from cgprovision.modules import AvailableLanguage, ModuleRegistry
from cgprovision.overrides import OverrideTable
from cgprovision.providers import GitHubProvider, Provider, get_provider
from cgprovision.settings import Settings
from cgprovision.versioning import ProjectType, Resolution, Version, parse_version

logger = logging.getLogger(__name__)

VersionLike = Union[str, Version]


def _as_version(version: VersionLike) -> Version:
    return version if isinstance(version, Version) else parse_version(version)


class ProvisioningService:
    """Entry point for resolving components and modules to executables."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.http = HttpClient(HttpCache(settings.http_cache_dir), session)
        self.tls = TLSProbe()
        self.overrides = OverrideTable(settings.overrides_file)
        self.github = GitHubProvider(self.http, token=settings.github_token)
        self.components = ComponentResolver(
            self.http,
            self.overrides,
            Installer(settings.components_dir),
            owner=settings.component_owner,
            provider=self.github,
        )
        self.modules = ModuleRegistry(
            settings.modules_file,
            self.http,
            Installer(settings.modules_dir),
            self.overrides,
            provider_factory=self._provider,
        )

    def _provider(self, name: str, http: HttpClient) -> Provider:
        if name == self.github.name:
            return self.github
        return get_provider(name, http)

    def component(
        self,
        name: str,
        version: VersionLike,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> Path:
        """Return the path of component ``name`` supporting ``version``."""
        return self.components.component(name, _as_version(version), progress)

    def module(
        self,
        lang: str,
        project_type: Union[str, ProjectType],
        protocol_version: Optional[VersionLike] = None,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> Tuple[Resolution, Path]:
        """Resolve and install the ``lang`` module; latest build when no version is given."""
        project_type = ProjectType(project_type)
        requested = _as_version(protocol_version) if protocol_version is not None else None
        return self.modules.module_path(lang, project_type, requested, progress)

    def available_languages(self) -> Dict[str, AvailableLanguage]:
        return self.modules.available_languages()

    def base_url(self, protocol: str, trimmed_url: str) -> str:
        return base_url(protocol, trimmed_url, self.tls)

    def prefetch_components(
        self,
        wanted: Sequence[Tuple[str, VersionLike]],
        max_workers: Optional[int] = None,
    ) -> List[Union[Path, Exception]]:
        """Install several components concurrently.

        Results keep the order of ``wanted``; a failed entry holds its
        exception instead of a path.
        """
        if not wanted:
            return []
        workers = max(1, min(max_workers or self.settings.max_concurrency, len(wanted)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.component, name, version) for name, version in wanted]
        results: List[Union[Path, Exception]] = []
        for (name, version), future in zip(wanted, futures):
            exc = future.exception()
            if exc is not None:
                logger.warning("Failed to prefetch %s %s: %s", name, version, exc)
                results.append(exc)
            else:
                results.append(future.result())
        return results
