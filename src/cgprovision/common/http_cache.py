"""On-disk cache for HTTP response bodies and their ETags.

Bodies live under ``<root>/`` and ETag sidecars under ``<root>/etag/``,
both named by the percent-escaped request URL. Bodies are written to a
``.part`` file and promoted with ``os.replace`` once complete, so a reader
never sees a half-written cache entry.
"""
from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import BinaryIO, Optional, Union
from urllib.parse import quote

from cgprovision.constants import Constants

logger = logging.getLogger(__name__)


def escape_url(url: str) -> str:
    """Return a single path segment identifying ``url``."""
    return quote(url, safe="")


class CacheWriter:
    """Write side of one cache entry; commits on ``commit()``, else discards."""

    def __init__(self, final_path: Path):
        self.final_path = final_path
        self.part_path = final_path.with_name(final_path.name + Constants.PARTIAL_SUFFIX)
        self._file: Optional[BinaryIO] = open(self.part_path, "wb")

    @property
    def closed(self) -> bool:
        return self._file is None

    def write(self, data: bytes) -> None:
        if self._file is None:
            raise ValueError("cache writer is closed")
        self._file.write(data)

    def commit(self) -> None:
        """Close the partial file and promote it to the final path."""
        if self._file is None:
            return
        self._file.close()
        self._file = None
        os.replace(self.part_path, self.final_path)

    def discard(self) -> None:
        """Close and delete the partial file."""
        if self._file is not None:
            try:
                self._file.close()
            except OSError:
                pass
            self._file = None
        try:
            self.part_path.unlink()
        except FileNotFoundError:
            pass


class HttpCache:
    """File-backed cache keyed by escaped URL, with ETag sidecars."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.etag_dir = self.root / Constants.ETAG_SUBDIR

    def body_path(self, url: str) -> Path:
        return self.root / escape_url(url)

    def etag_path(self, url: str) -> Path:
        return self.etag_dir / escape_url(url)

    def has_body(self, url: str) -> bool:
        return self.body_path(url).is_file()

    def is_fresh(self, url: str, max_age: float) -> bool:
        """Return True if a cached body exists and is at most ``max_age`` seconds old."""
        if max_age <= 0:
            return False
        try:
            mtime = self.body_path(url).stat().st_mtime
        except OSError:
            return False
        return time.time() - mtime <= max_age

    def open_body(self, url: str) -> Optional[BinaryIO]:
        try:
            return open(self.body_path(url), "rb")
        except OSError:
            return None

    def touch(self, url: str) -> None:
        """Mark a revalidated body as fresh again."""
        try:
            os.utime(self.body_path(url), None)
        except OSError as exc:
            logger.debug("Could not refresh cache entry for %s: %s", url, exc)

    def open_writer(self, url: str) -> CacheWriter:
        self.root.mkdir(parents=True, exist_ok=True)
        return CacheWriter(self.body_path(url))

    def load_etag(self, url: str) -> Optional[str]:
        try:
            etag = self.etag_path(url).read_text(encoding="utf-8").strip()
        except OSError:
            return None
        return etag or None

    def save_etag(self, url: str, etag: Optional[str]) -> bool:
        """Persist ``etag``; returns False when there is none or it cannot be written."""
        if not etag:
            return False
        try:
            self.etag_dir.mkdir(parents=True, exist_ok=True)
            self.etag_path(url).write_text(etag, encoding="utf-8")
        except OSError as exc:
            logger.debug("Could not store etag for %s: %s", url, exc)
            return False
        return True

    def discard_etag(self, url: str) -> None:
        try:
            self.etag_path(url).unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.debug("Could not remove etag for %s: %s", url, exc)
