"""Provider interface shared by all binary sources."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Callable, List, Mapping, Optional

from cgprovision.versioning import Version

ProviderVars = Mapping[str, Any]


def require_string(provider_vars: ProviderVars, field: str, errors: List[str]) -> None:
    """Append a message to ``errors`` unless ``field`` holds a string."""
    if field not in provider_vars:
        errors.append(f"missing '{field}' field")
    elif not isinstance(provider_vars[field], str):
        errors.append(f"value of '{field}' field must be a string")


class Provider(ABC):
    """A source of executables for one artifact.

    Providers never raise on invalid variables themselves; callers run
    ``validate_vars`` first and refuse to use a provider that reported
    problems.
    """

    name: str = ""

    @abstractmethod
    def validate_vars(self, provider_vars: ProviderVars) -> List[str]:
        """Return one message per missing or malformed variable."""

    @abstractmethod
    def find_exact_version(self, provider_vars: ProviderVars, version: Version) -> Version:
        """Return the exact artifact version serving ``version``."""

    @abstractmethod
    def download_binary(
        self,
        target: BinaryIO,
        provider_vars: ProviderVars,
        version: Version,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        """Write the executable for the exact ``version`` into ``target``."""
