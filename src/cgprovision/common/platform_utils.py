"""Platform naming used by release assets ("<name>-<os>-<arch>.tar.gz")."""
from __future__ import annotations

import platform
import sys

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "armv6l": "arm",
}

TAR_GZ = "tar.gz"
ZIP = "zip"


def os_name() -> str:
    """Return the operating system as named in release assets."""
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "darwin"
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def arch_name() -> str:
    """Return the CPU architecture as named in release assets."""
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)


def is_windows() -> bool:
    return os_name() == "windows"


def archive_format() -> str:
    """Release archives are zip files on Windows and tarballs elsewhere."""
    return ZIP if is_windows() else TAR_GZ


def executable_name(name: str) -> str:
    return f"{name}.exe" if is_windows() else name


def asset_name(artifact: str) -> str:
    return f"{artifact}-{os_name()}-{arch_name()}.{archive_format()}"
