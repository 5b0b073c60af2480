"""Small filesystem helpers shared by the stages."""

import os
from pathlib import Path


def format_file_size(size_bytes: float) -> str:
    """Format file size in human-readable form."""
    units = ["B", "KB", "MB", "GB"]
    size = float(size_bytes)
    unit = 0
    while abs(size) >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{size:.2f} {units[unit]}"


def temp_path_for(path: Path) -> Path:
    """Sibling path used to stage a rewrite of ``path``."""
    return path.with_name(f"{path.name}.tmp")


def replace_file(tmp_path: Path, path: Path) -> None:
    os.replace(tmp_path, path)


def write_if_smaller(path: Path, data: bytes) -> tuple[int, int] | None:
    """Replace ``path`` with ``data`` only if that makes it strictly smaller.

    Returns ``(before, after)`` sizes when the file was replaced.
    """
    before = path.stat().st_size
    if len(data) >= before:
        return None

    tmp_path = temp_path_for(path)
    try:
        tmp_path.write_bytes(data)
        replace_file(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)
    return before, len(data)


def keep_if_smaller(tmp_path: Path, path: Path) -> tuple[int, int] | None:
    """Move an already-written ``tmp_path`` over ``path`` if it is smaller.

    ``tmp_path`` is always gone afterwards.
    """
    try:
        before = path.stat().st_size
        after = tmp_path.stat().st_size
        if after >= before:
            return None
        replace_file(tmp_path, path)
        return before, after
    finally:
        tmp_path.unlink(missing_ok=True)
