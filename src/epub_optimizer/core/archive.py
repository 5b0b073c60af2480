"""Extract and repack EPUB containers."""

import logging
import os
import shutil
import tempfile
import time
import zipfile
from pathlib import Path

from epub_optimizer.errors import CompressionError, ExtractionError
from epub_optimizer.models.config import MIMETYPE

log = logging.getLogger(__name__)

MIMETYPE_NAME = "mimetype"


def extract_epub(archive_path: Path, dest_dir: Path) -> None:
    """Extract an EPUB into a fresh ``dest_dir``.

    Any existing content of ``dest_dir`` is removed first.

    Raises:
        ExtractionError: If the source is not a ZIP archive, an entry would
            land outside ``dest_dir``, or the directory cannot be prepared.
    """
    try:
        if dest_dir.exists():
            shutil.rmtree(dest_dir)
        dest_dir.mkdir(parents=True)
    except OSError as e:
        raise ExtractionError(f"Cannot prepare working directory {dest_dir}: {e}") from e

    root = dest_dir.resolve()
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for member in archive.infolist():
                target = (root / member.filename).resolve()
                if target != root and root not in target.parents:
                    raise ExtractionError(
                        f"Refusing to extract {member.filename!r} outside {dest_dir}"
                    )
            archive.extractall(root)
    except zipfile.BadZipFile as e:
        raise ExtractionError(f"Failed to extract EPUB: {archive_path} is not a ZIP archive") from e
    except OSError as e:
        raise ExtractionError(f"Failed to extract EPUB {archive_path}: {e}") from e

    log.debug("Extracted %s to %s", archive_path, dest_dir)


def compress_epub(dest_path: Path, source_dir: Path) -> bool:
    """Pack ``source_dir`` into an EPUB at ``dest_path``.

    Reading systems (Apple Books in particular) require ``mimetype`` to be
    the first entry, stored without compression and without an extra
    field, so the archive is written in two passes: ``mimetype`` alone,
    then every other file deflated. The result is written next to
    ``dest_path`` and moved into place once complete.

    Raises:
        CompressionError: On any I/O failure.
    """
    tmp_name: str | None = None
    try:
        mimetype_path = source_dir / MIMETYPE_NAME
        mimetype_path.write_text(MIMETYPE, encoding="ascii")

        dest_path.parent.mkdir(parents=True, exist_ok=True)
        if dest_path.exists():
            dest_path.unlink()

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{dest_path.name}.", suffix=".tmp", dir=dest_path.parent
        )
        with os.fdopen(fd, "wb") as fh:
            with zipfile.ZipFile(fh, "w") as archive:
                # Pass 1: mimetype, stored, first
                info = zipfile.ZipInfo(MIMETYPE_NAME, date_time=_mtime(mimetype_path))
                info.compress_type = zipfile.ZIP_STORED
                info.extra = b""
                archive.writestr(info, MIMETYPE.encode("ascii"))

                # Pass 2: everything else, compressed
                for file in _iter_files(source_dir):
                    arcname = file.relative_to(source_dir).as_posix()
                    if arcname == MIMETYPE_NAME:
                        continue
                    archive.write(
                        file,
                        arcname,
                        compress_type=zipfile.ZIP_DEFLATED,
                        compresslevel=9,
                    )
            fh.flush()
            os.fsync(fh.fileno())

        os.replace(tmp_name, dest_path)
        tmp_name = None
    except OSError as e:
        raise CompressionError(f"Failed to compress EPUB {dest_path}: {e}") from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)

    log.debug("Packed %s into %s", source_dir, dest_path)
    return True


def _iter_files(source_dir: Path) -> list[Path]:
    return sorted(p for p in source_dir.rglob("*") if p.is_file())


def _mtime(path: Path) -> tuple[int, int, int, int, int, int]:
    ts = time.localtime(path.stat().st_mtime)
    # ZIP timestamps cannot predate 1980
    if ts.tm_year < 1980:
        return (1980, 1, 1, 0, 0, 0)
    return ts[:6]
