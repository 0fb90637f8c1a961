"""Binary sources for modules and components."""

from typing import Dict, Type

from cgprovision.common.errors import ConfigError
from cgprovision.common.http_client import HttpClient
from .base import Provider, ProviderVars
from .github import GitHubProvider
from .local import LocalProvider

PROVIDERS: Dict[str, Type[Provider]] = {
    GitHubProvider.name: GitHubProvider,
    LocalProvider.name: LocalProvider,
}


def get_provider(name: str, http: HttpClient) -> Provider:
    """Instantiate the provider registered under ``name``."""
    try:
        provider_cls = PROVIDERS[name]
    except KeyError as exc:
        raise ConfigError(f"unknown module provider: {name}") from exc
    if provider_cls is GitHubProvider:
        return GitHubProvider(http)
    return provider_cls()


__all__ = [
    "PROVIDERS",
    "Provider",
    "ProviderVars",
    "GitHubProvider",
    "LocalProvider",
    "get_provider",
]
