"""Patch the package document and navigation files for the cover page.

All three updates are idempotent: running them on an already patched book
changes nothing.
"""

import logging
import posixpath
from pathlib import Path
from urllib.parse import unquote

from bs4 import BeautifulSoup, Tag

from epub_optimizer.core.locator import get_opf_path, get_toc_files, relative_href, resolve_href
from epub_optimizer.core.markup import load_document, load_xml, save_xml
from epub_optimizer.errors import StructureError
from epub_optimizer.models.config import OptimizerConfig
from epub_optimizer.models.report import StageReport

log = logging.getLogger(__name__)

COVER_ID = "cover"
COVER_IMAGE_ID = "cover-image"
COVER_IMAGE_PROPERTY = "cover-image"
COVER_DOCUMENT_NAME = "cover.xhtml"
COVER_NAVPOINT_ID = "navpoint-cover"


def update_cover_linear(epub_dir: Path) -> bool:
    """Mark the cover spine entry ``linear="yes"``. Returns True if changed."""
    opf_path = get_opf_path(epub_dir)
    soup = load_xml(opf_path)

    itemref = soup.find("itemref", attrs={"idref": COVER_ID})
    if itemref is None:
        log.warning("No cover itemref found in spine, leaving it as is")
        return False
    if itemref.get("linear") == "yes":
        log.debug("Cover itemref is already linear")
        return False

    itemref["linear"] = "yes"
    save_xml(opf_path, soup)
    log.info('Set linear="yes" on the cover itemref')
    return True


def add_cover_image_property(epub_dir: Path) -> bool:
    """Add the ``cover-image`` property to the cover image manifest item."""
    opf_path = get_opf_path(epub_dir)
    soup = load_xml(opf_path)

    item = soup.find("item", attrs={"id": COVER_IMAGE_ID})
    if item is None:
        log.warning("No manifest item with id %r found", COVER_IMAGE_ID)
        return False

    tokens = (item.get("properties") or "").split()
    if COVER_IMAGE_PROPERTY in tokens:
        log.debug("Cover image already has the cover-image property")
        return False

    item["properties"] = " ".join([*tokens, COVER_IMAGE_PROPERTY])
    save_xml(opf_path, soup)
    log.info("Added cover-image property to the cover image")
    return True


def find_cover_document(opf_path: Path) -> Path | None:
    """Cover page from the manifest: ``id="cover"``, else a ``cover.xhtml`` item."""
    soup = load_xml(opf_path)

    item = soup.find("item", attrs={"id": COVER_ID})
    if item is None or not item.get("href"):
        item = next(
            (
                i
                for i in soup.find_all("item")
                if i.get("href")
                and posixpath.basename(unquote(i["href"])).lower() == COVER_DOCUMENT_NAME
            ),
            None,
        )
    if item is None:
        return None
    return resolve_href(opf_path.parent, item["href"])


def _points_at(base_dir: Path, ref: str | None, target: Path) -> bool:
    return bool(ref) and resolve_href(base_dir, ref) == target


def _toc_nav(soup: BeautifulSoup) -> Tag | None:
    for nav in soup.find_all("nav"):
        if "toc" in (nav.get("epub:type") or "").split():
            return nav
    return None


def add_cover_to_nav(nav_path: Path, cover: Path, label: str) -> bool:
    """Prepend a cover entry to the EPUB3 navigation document's TOC list."""
    _, soup = load_document(nav_path)

    if any(_points_at(nav_path.parent, a.get("href"), cover) for a in soup.find_all("a")):
        log.debug("Navigation document already links to the cover")
        return False

    nav = _toc_nav(soup)
    ol = nav.find("ol") if nav is not None else None
    if ol is None:
        log.warning("No toc <nav> list found in %s", nav_path.name)
        return False

    li = soup.new_tag("li")
    link = soup.new_tag("a", attrs={"href": relative_href(nav_path.parent, cover)})
    link.string = label
    li.append(link)
    ol.insert(0, li)

    save_xml(nav_path, soup)
    log.info("Added cover entry to %s", nav_path.name)
    return True


def _play_order(nav_point: Tag) -> int:
    try:
        return int(nav_point.get("playOrder") or 1)
    except ValueError:
        return 1


def _unique_id(soup: BeautifulSoup, base: str) -> str:
    candidate, n = base, 1
    while soup.find(attrs={"id": candidate}) is not None:
        n += 1
        candidate = f"{base}-{n}"
    return candidate


def add_cover_to_ncx(ncx_path: Path, cover: Path, label: str) -> bool:
    """Prepend a cover navPoint to the NCX and shift every playOrder by one."""
    soup = load_xml(ncx_path)

    if any(_points_at(ncx_path.parent, c.get("src"), cover) for c in soup.find_all("content")):
        log.debug("NCX already links to the cover")
        return False

    nav_map = soup.find("navMap")
    if nav_map is None:
        log.warning("No navMap found in %s", ncx_path.name)
        return False

    for nav_point in soup.find_all("navPoint"):
        nav_point["playOrder"] = str(_play_order(nav_point) + 1)

    point = soup.new_tag(
        "navPoint", attrs={"id": _unique_id(soup, COVER_NAVPOINT_ID), "playOrder": "1"}
    )
    nav_label = soup.new_tag("navLabel")
    text = soup.new_tag("text")
    text.string = label
    nav_label.append(text)
    point.append(nav_label)
    point.append(soup.new_tag("content", attrs={"src": relative_href(ncx_path.parent, cover)}))

    first = nav_map.find("navPoint", recursive=False)
    if first is not None:
        first.insert_before(point)
    else:
        nav_map.append(point)

    save_xml(ncx_path, soup)
    log.info("Added cover navPoint to %s", ncx_path.name)
    return True


def add_cover_to_toc(epub_dir: Path, label: str) -> bool:
    """Make the cover page the first entry of every table of contents."""
    toc = get_toc_files(epub_dir)
    if not toc.found:
        log.info("No navigation document or NCX found, skipping cover TOC entry")
        return False

    cover = find_cover_document(get_opf_path(epub_dir))
    if cover is None:
        log.warning("No cover document found in the manifest")
        return False

    changed = False
    if toc.nav is not None:
        changed = add_cover_to_nav(toc.nav, cover, label) or changed
    if toc.ncx is not None:
        changed = add_cover_to_ncx(toc.ncx, cover, label) or changed
    return changed


def update_structure(epub_dir: Path, config: OptimizerConfig) -> StageReport:
    """Run the cover updates, recording each one that changed something."""
    report = StageReport(name="update-structure")

    try:
        get_opf_path(epub_dir)
    except StructureError as e:
        report.skipped_reason = str(e)
        log.warning("Skipping structure updates: %s", e)
        return report

    updates = (
        ("cover-linear", lambda: update_cover_linear(epub_dir)),
        ("cover-image-property", lambda: add_cover_image_property(epub_dir)),
        ("cover-toc-entry", lambda: add_cover_to_toc(epub_dir, config.cover_label())),
    )
    for name, update in updates:
        report.processed += 1
        try:
            if update():
                report.changed += 1
                report.notes.append(name)
            else:
                report.skipped += 1
        except Exception as e:
            report.fail("", name, e)
            log.warning("Structure update %s failed: %s", name, e)

    return report
