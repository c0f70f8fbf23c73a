"""ZIP packaging of the selected workspace files."""

from __future__ import annotations

import io
import logging
import os
import tempfile
import zipfile
from collections.abc import Iterable
from pathlib import Path

from tqdm import tqdm

from kelvin_submit.errors import ArchiveError
from kelvin_submit.types import Archive, ProjectFile

logger = logging.getLogger(__name__)

# Fixed entry metadata so identical inputs give identical archives
ENTRY_DATE_TIME = (1980, 1, 1, 0, 0, 0)
ENTRY_MODE = 0o644
EMPTY_ARCHIVE_WARNING = "archive is empty: no files matched"


def _zip_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=ENTRY_DATE_TIME)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = (0o100000 | ENTRY_MODE) << 16
    return info


def _write_entries(zf: zipfile.ZipFile, files: Iterable[ProjectFile], show_progress: bool) -> int:
    seen: set[str] = set()
    for project_file in tqdm(files, desc="Compressing", unit="file", disable=not show_progress):
        if project_file.path in seen:
            raise ArchiveError(f"duplicate archive entry: {project_file.path}")
        seen.add(project_file.path)
        try:
            content = project_file.read()
        except OSError as e:
            raise ArchiveError(f"cannot read file {project_file.source}: {e}") from e
        try:
            zf.writestr(_zip_info(project_file.path), content)
        except (OSError, UnicodeEncodeError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            raise ArchiveError(f"cannot store {project_file.path} into ZIP archive: {e}") from e
    return len(seen)


def build_archive(
    files: Iterable[ProjectFile],
    *,
    temp_dir: Path | None = None,
    show_progress: bool = False,
) -> Archive:
    """Compress files into a ZIP archive.

    The archive is written to a temporary file which is removed before this
    function returns or raises, including on ``KeyboardInterrupt``.

    Args:
        files: Files to store; each becomes one entry named by its relative path.
        temp_dir: Directory for the temporary file (default: system temp dir).
        show_progress: Display a progress bar while compressing.

    Returns:
        The archive bytes together with the number of stored files.

    Raises:
        ArchiveError: If a file cannot be read or the archive cannot be written.
    """
    try:
        fd, tmp_name = tempfile.mkstemp(prefix="kelvin-submit-", suffix=".zip", dir=temp_dir)
    except OSError as e:
        raise ArchiveError(f"cannot create temporary archive file: {e}") from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w+b") as fh:
            with zipfile.ZipFile(fh, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                file_count = _write_entries(zf, files, show_progress)
            fh.seek(0)
            data = fh.read()
    except OSError as e:
        raise ArchiveError(f"cannot create ZIP archive: {e}") from e
    finally:
        tmp_path.unlink(missing_ok=True)

    warnings: list[str] = []
    if file_count == 0:
        logger.warning("No files matched, the archive is empty")
        warnings.append(EMPTY_ARCHIVE_WARNING)

    logger.info("Compressed %d file%s, total size: %dB", file_count, "" if file_count == 1 else "s", len(data))
    return Archive(data=data, file_count=file_count, warnings=warnings)


def read_archive(data: bytes) -> dict[str, bytes]:
    """Return the entries of a ZIP archive as a name -> content mapping.

    Raises:
        ArchiveError: If ``data`` is not a valid ZIP archive.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            return {name: zf.read(name) for name in zf.namelist()}
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"not a valid ZIP archive: {e}") from e
