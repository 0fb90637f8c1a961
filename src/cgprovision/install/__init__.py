"""Installation cache for downloaded executables."""

from .installer import Installer

__all__ = ["Installer"]
