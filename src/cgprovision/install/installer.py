"""Atomic installation of downloaded executables into a per-name cache."""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from cgprovision.constants import Constants
from cgprovision.common.errors import DownloadError, InvalidVersion
from cgprovision.common.logging_utils import extra_context, is_debug_enabled, Timer
from cgprovision.common.platform_utils import is_windows
from cgprovision.providers.base import Provider, ProviderVars
from cgprovision.versioning import Version, parse_version

logger = logging.getLogger(__name__)


class Installer:
    """Cache of executables laid out as ``<root>/<name>/<major-minor-patch>``.

    A file at its final path is always complete: downloads land in a
    ``.temp`` file next to it and are renamed into place afterwards.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def binary_dir(self, name: str) -> Path:
        return self.root / name

    def binary_path(self, name: str, version: Version) -> Path:
        file_name = version.dashed()
        if is_windows():
            file_name += ".exe"
        return self.binary_dir(name) / file_name

    def installed_binaries(self, name: str) -> Dict[str, Path]:
        """Map dotted version -> path for every complete binary of ``name``."""
        directory = self.binary_dir(name)
        binaries: Dict[str, Path] = {}
        try:
            entries = list(directory.iterdir())
        except OSError:
            return binaries
        for entry in entries:
            if not entry.is_file() or entry.name.endswith(Constants.TEMP_SUFFIX):
                continue
            stem = entry.name[: -len(".exe")] if entry.name.endswith(".exe") else entry.name
            try:
                version = parse_version(stem.replace("-", "."))
            except InvalidVersion:
                logger.debug("Ignoring unexpected file %s in %s", entry.name, directory)
                continue
            binaries[str(version)] = entry
        return binaries

    def install(
        self,
        name: str,
        provider: Provider,
        provider_vars: ProviderVars,
        version: Version,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> Path:
        """Return the cached executable for ``name`` at ``version``, downloading it once.

        Args:
            name: Artifact name; also the cache sub-directory.
            provider: Source used when the binary is not cached yet.
            provider_vars: Provider configuration.
            version: Exact artifact version.
            progress: Optional download progress callback.

        Returns:
            Path: location of the executable.

        Raises:
            DownloadError: the cache directory or file could not be written.
        """
        final_path = self.binary_path(name, version)
        if final_path.exists():
            if is_debug_enabled(logger):
                logger.debug(
                    "Install cache hit",
                    extra=extra_context(event="cache_hit", component="installer", target=str(final_path)),
                )
            return final_path

        directory = final_path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                prefix=f"{version.dashed()}.",
                suffix=Constants.TEMP_SUFFIX,
                dir=directory,
            )
        except OSError as exc:
            raise DownloadError(f"failed to create binary file for {name} {version}: {exc}") from exc

        temp_path = Path(temp_name)
        logger.info("Installing %s %s", name, version)
        try:
            with Timer() as t:
                with os.fdopen(fd, "wb") as target:
                    provider.download_binary(target, provider_vars, version, progress)
            os.chmod(temp_path, 0o755)
            self._promote(temp_path, final_path)
        except BaseException:
            _remove_quietly(temp_path)
            raise

        if is_debug_enabled(logger):
            logger.debug(
                "Installed binary",
                extra=extra_context(
                    event="install",
                    component="installer",
                    outcome="success",
                    duration_ms=t.duration_ms(),
                    target=str(final_path),
                ),
            )
        return final_path

    @staticmethod
    def _promote(temp_path: Path, final_path: Path) -> None:
        try:
            os.replace(temp_path, final_path)
        except OSError as exc:
            # Another installer won the race; the content is identical.
            if final_path.exists():
                logger.debug("Concurrent install of %s detected: %s", final_path, exc)
                _remove_quietly(temp_path)
                return
            raise DownloadError(f"failed to move binary into place at {final_path}: {exc}") from exc


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove temporary file %s: %s", path, exc)
