"""Version algebra: parsing, ordering and compatibility-map lookups."""

from .models import ProjectType, Resolution, Version
from .parser import compare, is_compatible, parse_version
from .maps import find_compatible_entry, find_compatible_in_map, latest_in_map

__all__ = [
    "ProjectType",
    "Resolution",
    "Version",
    "compare",
    "is_compatible",
    "parse_version",
    "find_compatible_entry",
    "find_compatible_in_map",
    "latest_in_map",
]
