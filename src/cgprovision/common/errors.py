"""Exception types raised by the provisioning layers.

Each layer raises its own subclass of ProvisionError so callers can tell a
resolution failure apart from a network failure or a broken configuration.
"""
from __future__ import annotations

from typing import Iterable, Optional


class ProvisionError(Exception):
    """Base exception for all provisioning operations."""


class InvalidVersion(ProvisionError, ValueError):
    """Raised when a version string is malformed."""


class NoCompatibleVersion(ProvisionError):
    """Raised when no entry of a compatibility map satisfies a request."""

    def __init__(
        self,
        requested: Optional[object] = None,
        available: Optional[Iterable[str]] = None,
        name: Optional[str] = None,
    ):
        self.requested = requested
        self.available = sorted(available) if available is not None else []
        self.name = name
        subject = f" for {name}" if name else ""
        message = f"no compatible version found{subject}"
        if requested is not None:
            message += f" (requested {requested}"
            if self.available:
                message += f", available: {', '.join(self.available)}"
            message += ")"
        super().__init__(message)


class NoCompatibleModuleBuild(NoCompatibleVersion):
    """Raised when a library version has no matching module build."""


class VersionNotFound(ProvisionError):
    """Raised when a source has no artifact for an exact version."""


class UnsupportedProjectType(ProvisionError):
    """Raised when a module does not support client or server projects."""


class UnsupportedProtocolVersion(ProvisionError):
    """Raised when a module cannot serve the requested protocol version."""


class ConfigError(ProvisionError):
    """Raised when a configuration file or provider section is invalid."""


class FetchError(ProvisionError):
    """Raised when a remote resource cannot be retrieved."""


class NetworkError(FetchError):
    """Raised when the network is unavailable and nothing is cached."""


class HttpStatusError(FetchError):
    """Raised when the server answers with a failure status."""

    def __init__(self, url: str, status: int):
        self.url = url
        self.status = status
        super().__init__(f"http status {status} for {url}")


class DecodeError(ProvisionError):
    """Raised when a configuration or response payload cannot be decoded."""


class DownloadError(ProvisionError):
    """Raised when an artifact was fetched but could not be unpacked."""


class FileNotFoundInArchive(DownloadError):
    """Raised when the expected entry is missing from a release archive."""


class ProviderContractError(ProvisionError):
    """Raised when a provider is asked to do something it cannot do."""


class ModuleExecError(ProvisionError):
    """Raised when a module binary fails to run."""
