"""User-pinned executables that take part in version resolution.

``overrides.json`` maps an artifact name to ``{supported version: path}``.
A pin is used directly when it matches the requested version exactly, and
otherwise only until upstream ships a strictly newer supported version.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from cgprovision.common.config_files import load_document
from cgprovision.common.errors import DecodeError, InvalidVersion
from cgprovision.versioning import Version, compare, is_compatible, parse_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideMatch:
    """The best pinned executable for one request."""
    version: Version
    path: str
    exact: bool

    def preferred_over(self, supported: Version) -> bool:
        """True unless ``supported`` is strictly newer than the pinned version."""
        return compare(self.version, supported) < 1


class OverrideTable:
    """Lazily loaded, thread-safe view of the overrides file."""

    def __init__(self, path: Union[str, Path, None]):
        self.path = Path(path) if path is not None else None
        self._entries: Optional[Dict[str, Dict[str, str]]] = None
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Dict[str, str]]:
        if self.path is None or not self.path.is_file():
            return {}
        try:
            data = load_document(self.path)
        except (OSError, DecodeError) as exc:
            logger.warning("Ignoring invalid overrides file %s: %s", self.path, exc)
            return {}
        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring invalid overrides file %s: expected an object", self.path)
            return {}

        entries: Dict[str, Dict[str, str]] = {}
        for name, pins in data.items():
            if not isinstance(pins, dict):
                logger.warning("Ignoring overrides for '%s': expected an object", name)
                continue
            entries[str(name)] = {
                str(version): path for version, path in pins.items() if isinstance(path, str)
            }
        logger.debug("Loaded overrides for %d artifacts from %s", len(entries), self.path)
        return entries

    def entries(self) -> Dict[str, Dict[str, str]]:
        """Return the whole table, reading the file on first use only."""
        with self._lock:
            if self._entries is None:
                self._entries = self._load()
            return self._entries

    def find(self, name: str, requested: Version) -> Optional[OverrideMatch]:
        """Return the newest pin of ``name`` able to serve ``requested``.

        None means that no compatible pin is configured; it is not an error.
        """
        best: Optional[Version] = None
        best_path = ""
        for raw_version, path in self.entries().get(name, {}).items():
            try:
                version = parse_version(raw_version)
            except InvalidVersion:
                logger.warning("Invalid version '%s' in overrides for '%s'", raw_version, name)
                continue
            if not is_compatible(version, requested):
                continue
            if compare(requested, version) == 0:
                return OverrideMatch(version, path, exact=True)
            if compare(best, version) == 1:
                best, best_path = version, path
        if best is None:
            return None
        return OverrideMatch(best, best_path, exact=False)
