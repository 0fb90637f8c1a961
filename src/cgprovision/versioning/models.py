"""Data models for versioning and compatibility resolution."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class ProjectType(Enum):
    """Kinds of projects a module can generate; each versions independently."""
    CLIENT = "client"
    SERVER = "server"


@dataclass(frozen=True)
class Version:
    """Dotted numeric version with one to three components.

    Only the parsed components are stored, so ``str()`` keeps the original
    precision ("1.2" stays "1.2"). Ordering helpers live in ``parser``.
    """
    parts: Tuple[int, ...]

    @property
    def major(self) -> int:
        return self.parts[0]

    @property
    def minor(self) -> Optional[int]:
        return self.parts[1] if len(self.parts) > 1 else None

    @property
    def patch(self) -> Optional[int]:
        return self.parts[2] if len(self.parts) > 2 else None

    def padded(self) -> Tuple[int, int, int]:
        """Components padded with zeros to exactly three positions."""
        return tuple((list(self.parts) + [0, 0, 0])[:3])  # type: ignore[return-value]

    def dashed(self) -> str:
        """Filesystem-safe form used for cache file names ("1.2.3" -> "1-2-3")."""
        return str(self).replace(".", "-")

    def __str__(self) -> str:
        return ".".join(str(p) for p in self.parts)


@dataclass
class Resolution:
    """Outcome of walking the compatibility chain for one request."""
    project_type: ProjectType
    protocol_version: Optional[Version]
    library_version: Optional[Version]
    module_version: Optional[Version]
    override_path: Optional[str] = None

    @property
    def overridden(self) -> bool:
        """True when a pinned executable was chosen instead of a provider build."""
        return self.override_path is not None
