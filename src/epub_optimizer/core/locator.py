"""Locate the package document, content root and navigation files."""

import logging
import posixpath
from pathlib import Path
from urllib.parse import unquote, urldefrag

from epub_optimizer.core.markup import load_xml
from epub_optimizer.errors import (
    ContainerNotFoundError,
    OPFFileMissingError,
    OPFReferenceMissingError,
    StructureError,
)
from epub_optimizer.models.epub import TocFiles

log = logging.getLogger(__name__)

OPF_MEDIA_TYPE = "application/oebps-package+xml"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"

# Checked in this order; the first existing directory wins
STANDARD_CONTENT_DIRS = ("OPS", "OEBPS")


def get_opf_path(epub_dir: Path) -> Path:
    """Path of the package document named by ``META-INF/container.xml``.

    Raises:
        ContainerNotFoundError: container.xml is missing.
        OPFReferenceMissingError: No rootfile ``full-path`` is declared.
        OPFFileMissingError: The declared file does not exist.
    """
    container_path = epub_dir / "META-INF" / "container.xml"
    if not container_path.is_file():
        raise ContainerNotFoundError(container_path)

    soup = load_xml(container_path)
    rootfiles = soup.find_all("rootfile")
    # Prefer the rootfile that declares the OPF media type
    rootfiles.sort(key=lambda r: r.get("media-type") != OPF_MEDIA_TYPE)

    full_path = next((r.get("full-path") for r in rootfiles if r.get("full-path")), None)
    if not full_path:
        raise OPFReferenceMissingError(f"No OPF path found in {container_path}")

    opf_path = epub_dir / unquote(full_path.strip())
    if not opf_path.is_file():
        raise OPFFileMissingError(opf_path)
    return opf_path


def get_content_dir(epub_dir: Path) -> str:
    """Name of the content root relative to ``epub_dir``.

    ``OPS`` wins over ``OEBPS`` when both exist. Otherwise the directory
    holding the OPF is used, and ``""`` means content lives at the root.
    """
    for name in STANDARD_CONTENT_DIRS:
        if (epub_dir / name).is_dir():
            return name

    try:
        opf_path = get_opf_path(epub_dir)
    except StructureError as e:
        log.debug("Content directory fallback failed: %s", e)
        return ""

    try:
        opf_dir = opf_path.parent.relative_to(epub_dir).as_posix()
    except ValueError:
        return ""
    return "" if opf_dir == "." else opf_dir


def get_content_path(epub_dir: Path) -> Path:
    content_dir = get_content_dir(epub_dir)
    return epub_dir / content_dir if content_dir else epub_dir


def resolve_href(base_dir: Path, href: str) -> Path:
    """Resolve a (possibly URL-encoded) relative reference to a path."""
    target, _ = urldefrag(href)
    return Path(posixpath.normpath((base_dir / unquote(target)).as_posix()))


def relative_href(from_dir: Path, target: Path) -> str:
    """Relative POSIX reference from ``from_dir`` to ``target``."""
    return Path(posixpath.relpath(target.as_posix(), from_dir.as_posix())).as_posix()


def get_toc_files(epub_dir: Path) -> TocFiles:
    """Find the EPUB3 navigation document and the EPUB2 NCX.

    A manifest entry that points at a missing file is treated as absent.

    Raises:
        StructureError: The package document cannot be located.
    """
    opf_path = get_opf_path(epub_dir)
    opf_dir = opf_path.parent
    soup = load_xml(opf_path)

    nav: Path | None = None
    ncx: Path | None = None
    for item in soup.find_all("item"):
        href = item.get("href")
        if not href:
            continue
        properties = (item.get("properties") or "").split()
        if nav is None and "nav" in properties:
            nav = _existing(resolve_href(opf_dir, href), "navigation document")
        elif ncx is None and item.get("media-type") == NCX_MEDIA_TYPE:
            ncx = _existing(resolve_href(opf_dir, href), "NCX")

    return TocFiles(nav=nav, ncx=ncx)


def find_asset_dir(content_path: Path, name: str) -> Path | None:
    """The ``images``/``fonts`` style subdirectory of the content root."""
    candidate = content_path / name
    return candidate if candidate.is_dir() else None


def _existing(path: Path, label: str) -> Path | None:
    if path.is_file():
        return path
    log.warning("Manifest lists a %s that does not exist: %s", label, path.name)
    return None
