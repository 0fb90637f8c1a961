"""Registry of language modules, loaded from ``lang_modules.json``.

Each entry names a display name, a binary source and two compatibility
tables. A table is given inline as ``{"client": ..., "server": ...}`` or as
a string referencing a local file or an http(s) URL holding that object;
the inner ``client``/``server`` maps may be references as well.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

from cgprovision.constants import Constants, ProviderNames
from cgprovision.common.config_files import load_document, parse_document
from cgprovision.common.errors import ConfigError, DecodeError, ProvisionError
from cgprovision.common.http_client import HttpClient
from cgprovision.install import Installer
from cgprovision.overrides import OverrideTable
from cgprovision.providers import Provider, get_provider
from cgprovision.providers.local import LocalProvider
from cgprovision.versioning import ProjectType, Resolution, Version
from .module import Module, VersionTables

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailableLanguage:
    display_name: str
    supports_client: bool
    supports_server: bool


def _is_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


class ModuleRegistry:
    """Loads module definitions once and hands out memoized ``Module`` objects."""

    def __init__(
        self,
        config_path: Union[str, Path],
        http: HttpClient,
        installer: Installer,
        overrides: OverrideTable,
        provider_factory: Callable[[str, HttpClient], Provider] = get_provider,
    ):
        self.config_path = Path(config_path)
        self.http = http
        self.installer = installer
        self.overrides = overrides
        self.provider_factory = provider_factory
        self._raw: Optional[Dict[str, Any]] = None
        self._raw_lock = threading.Lock()
        self._modules: Dict[str, Module] = {}
        self._modules_lock = threading.Lock()

    def raw_modules(self) -> Dict[str, Any]:
        """Return the decoded registry file, reading it on first use only."""
        with self._raw_lock:
            if self._raw is None:
                try:
                    data = load_document(self.config_path)
                except OSError as exc:
                    raise ConfigError(f"open language modules config file: {exc}") from exc
                except DecodeError as exc:
                    raise ConfigError(f"decode language modules config file: {exc}") from exc
                if not isinstance(data, dict):
                    raise ConfigError(f"{self.config_path}: expected an object of language modules")
                self._raw = data
            return self._raw

    def _resolve_reference(self, value: Any, what: str) -> Any:
        """Return ``value`` itself, or the document a string reference points to."""
        if not isinstance(value, str):
            return value
        if _is_url(value):
            body = self.http.fetch_file(value, max_age=Constants.VERSIONS_CACHE_MAX_AGE)
            text = body.read().decode("utf-8", errors="replace")
            return parse_document(text, value, json_only=True)
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = self.config_path.parent / path
        try:
            return load_document(path)
        except OSError as exc:
            raise ConfigError(f"load {what} from {path}: {exc}") from exc

    def load_version_tables(self, value: Any, what: str) -> VersionTables:
        """Decode one ``{client, server}`` table set, following references."""
        tables: VersionTables = {}
        document = self._resolve_reference(value, what)
        if document is None:
            return tables
        if not isinstance(document, dict):
            raise ConfigError(f"{what}: expected an object with 'client' and/or 'server'")
        for project_type in ProjectType:
            inner = document.get(project_type.value)
            if inner is None:
                continue
            table = self._resolve_reference(inner, f"{what}.{project_type.value}")
            if not isinstance(table, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in table.items()
            ):
                raise ConfigError(f"{what}.{project_type.value}: expected a map of version strings")
            tables[project_type] = dict(table)
        return tables

    def load_module(self, lang: str) -> Module:
        """Return the module for ``lang``, building it on first request.

        Raises:
            ConfigError: the language is unknown or its entry is invalid.
        """
        with self._modules_lock:
            if lang in self._modules:
                return self._modules[lang]
            module = self._build_module(lang)
            self._modules[lang] = module
            return module

    def _build_module(self, lang: str) -> Module:
        raw = self.raw_modules().get(lang)
        if raw is None:
            raise ConfigError(f"no module available for lang '{lang}'")
        if not isinstance(raw, dict):
            raise ConfigError(f"module '{lang}': expected an object")

        source = raw.get("source")
        if not isinstance(source, dict):
            raise ConfigError(f"module '{lang}': missing 'source' field")
        if "provider" not in source:
            raise ConfigError(f"module '{lang}': missing 'source.provider' field")
        provider_name = source["provider"]
        if not isinstance(provider_name, str):
            raise ConfigError(f"module '{lang}': value of 'source.provider' field must be a string")

        provider = self.provider_factory(provider_name, self.http)
        provider_vars = {k: v for k, v in source.items() if k != "provider"}
        errors = provider.validate_vars(provider_vars)
        if errors:
            raise ConfigError(f"module '{lang}': invalid module source: {', '.join(errors)}")

        library_to_module: VersionTables = {}
        if provider.name != ProviderNames.LOCAL.value:
            library_to_module = self.load_version_tables(
                raw.get("library_to_module_versions"), f"{lang}.library_to_module_versions"
            )
        protocol_to_library = self.load_version_tables(
            raw.get("codegame_to_library_versions"), f"{lang}.codegame_to_library_versions"
        )

        installed: Dict[str, str] = {}
        if isinstance(provider, LocalProvider):
            provider.load_executables(provider_vars, library_to_module, installed)
        else:
            installed = {v: str(p) for v, p in self.installer.installed_binaries(lang).items()}

        logger.debug("Loaded %s module from %s provider", lang, provider.name)
        return Module(
            lang=lang,
            display_name=str(raw.get("display_name") or lang),
            provider=provider,
            provider_vars=provider_vars,
            installer=self.installer,
            protocol_to_library=protocol_to_library,
            library_to_module=library_to_module,
            installed=installed,
        )

    def available_languages(self) -> Dict[str, AvailableLanguage]:
        """Map language name -> capabilities; broken entries are logged and left out."""
        try:
            names = list(self.raw_modules())
        except ConfigError as exc:
            logger.error("Failed to load available languages: %s", exc)
            return {}
        languages: Dict[str, AvailableLanguage] = {}
        for lang in names:
            try:
                module = self.load_module(lang)
            except ProvisionError as exc:
                logger.error("Failed to load supported project types of %s module: %s", lang, exc)
                continue
            languages[lang] = AvailableLanguage(
                display_name=module.display_name,
                supports_client=module.supports(ProjectType.CLIENT),
                supports_server=module.supports(ProjectType.SERVER),
            )
        return languages

    def module_path(
        self,
        lang: str,
        project_type: ProjectType,
        protocol_version: Optional[Version] = None,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> Tuple[Resolution, Path]:
        """Resolve and install the module executable for a project.

        Pins in the overrides table are keyed by language and protocol
        version and follow the same precedence as component pins.
        """
        if protocol_version is None:
            module = self.load_module(lang)
            resolution = module.resolve(project_type)
            return resolution, module.install(resolution.module_version, progress)

        match = self.overrides.find(lang, protocol_version)
        if match is not None and match.exact:
            logger.debug("Using exact override for %s %s: %s", lang, protocol_version, match.path)
            return self._override_resolution(project_type, protocol_version, match.path), Path(match.path)

        try:
            module = self.load_module(lang)
            supported, library_version = module.find_library_entry(project_type, protocol_version)
            module_version = module.find_compatible_module_version(project_type, library_version)
        except ProvisionError as exc:
            if match is None:
                raise
            logger.info("Using override for %s after resolution failed: %s", lang, exc)
            return self._override_resolution(project_type, protocol_version, match.path), Path(match.path)

        if match is not None and match.preferred_over(supported):
            logger.debug("Override %s for %s is at least as new as %s", match.version, lang, supported)
            return self._override_resolution(project_type, protocol_version, match.path), Path(match.path)

        resolution = Resolution(project_type, protocol_version, library_version, module_version)
        return resolution, module.install(module_version, progress)

    @staticmethod
    def _override_resolution(project_type: ProjectType, protocol_version: Version, path: str) -> Resolution:
        return Resolution(project_type, protocol_version, None, None, override_path=path)
