"""Single-entry extraction from release archives (tar.gz and zip)."""
from __future__ import annotations

import io
import posixpath
import shutil
import tarfile
import zipfile
from typing import BinaryIO

from cgprovision.common.errors import DownloadError, FileNotFoundInArchive
from cgprovision.common.platform_utils import TAR_GZ, ZIP


def _extract_tar_gz(source: BinaryIO, entry_name: str, target: BinaryIO) -> None:
    with tarfile.open(fileobj=source, mode="r|gz") as archive:
        for member in archive:
            if member.isfile() and posixpath.basename(member.name) == entry_name:
                extracted = archive.extractfile(member)
                if extracted is None:
                    break
                shutil.copyfileobj(extracted, target)
                return
    raise FileNotFoundInArchive(f"'{entry_name}' not found in archive")


def _extract_zip(source: BinaryIO, entry_name: str, target: BinaryIO) -> None:
    if not source.seekable():
        source = io.BytesIO(source.read())
    with zipfile.ZipFile(source) as archive:
        for info in archive.infolist():
            if not info.is_dir() and posixpath.basename(info.filename) == entry_name:
                with archive.open(info) as extracted:
                    shutil.copyfileobj(extracted, target)
                return
    raise FileNotFoundInArchive(f"'{entry_name}' not found in archive")


def extract_entry(source: BinaryIO, archive_format: str, entry_name: str, target: BinaryIO) -> None:
    """Copy the file named ``entry_name`` out of ``source`` into ``target``.

    Only the base name of archive members is compared, so the entry may sit
    in a sub-directory of the archive.

    Raises:
        FileNotFoundInArchive: the archive has no such file.
        DownloadError: the archive is corrupt or the format is unknown.
    """
    try:
        if archive_format == TAR_GZ:
            _extract_tar_gz(source, entry_name, target)
        elif archive_format == ZIP:
            _extract_zip(source, entry_name, target)
        else:
            raise DownloadError(f"unsupported archive format: {archive_format}")
    except (tarfile.TarError, zipfile.BadZipFile, EOFError) as exc:
        raise DownloadError(f"corrupt {archive_format} archive: {exc}") from exc
