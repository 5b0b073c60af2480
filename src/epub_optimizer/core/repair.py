"""Repair malformed XHTML so it passes EPUB validation.

Content produced by word processors and older converters often has
unclosed elements, stray ``<meta>`` and ``<script>`` tags, loose text under
``<body>`` and HTML-only entities. Each document is parsed as XML when it
already is well formed, otherwise with the tolerant HTML parser, cleaned,
and written back as XML. A document that cannot be repaired is left as it
was.
"""

import logging
import re
from pathlib import Path

from bs4 import BeautifulSoup, NavigableString

from epub_optimizer.core.locator import get_content_path
from epub_optimizer.core.markup import (
    VOID_ELEMENTS,
    decode_xml_entities,
    is_well_formed,
    iter_markup_files,
    named_entities_to_numeric,
    parse_markup,
    parse_xml,
    read_markup,
    root_element,
    serialize,
)
from epub_optimizer.errors import RepairError
from epub_optimizer.models.config import OptimizerConfig
from epub_optimizer.models.report import StageReport

log = logging.getLogger(__name__)

# Raw text elements whose content must not be entity-decoded
RAW_TEXT_ELEMENTS = frozenset({"script", "style"})

_BR_END_TAG_RE = re.compile(r"</br\s*>", re.IGNORECASE)
_BR_TAG_RE = re.compile(r"<br(\s[^<>]*?)?\s*/?>", re.IGNORECASE)
_START_TAG_RE = re.compile(r"<[A-Za-z]")


def normalize_breaks(text: str) -> str:
    """Drop ``</br>`` and write every ``<br>`` self-closing."""
    text = _BR_END_TAG_RE.sub("", text)
    return _BR_TAG_RE.sub(lambda m: f"<br{(m.group(1) or '').rstrip()}/>", text)


def parse_document(text: str) -> BeautifulSoup:
    """Parse a content document, falling back to the tolerant parser."""
    prepared = named_entities_to_numeric(normalize_breaks(text))
    if is_well_formed(prepared):
        return parse_xml(prepared)
    # The HTML parser would invent <html> and <body> around bare text
    if not _START_TAG_RE.search(prepared):
        raise RepairError("No root element found")
    log.debug("Document is not well formed, parsing leniently")
    return parse_markup(prepared)


def remove_scripts(soup: BeautifulSoup) -> int:
    scripts = soup.find_all("script")
    for script in scripts:
        script.decompose()
    return len(scripts)


def remove_stray_meta(soup: BeautifulSoup) -> int:
    """Remove ``<meta>`` elements that are not direct children of ``<head>``."""
    removed = 0
    for meta in soup.find_all("meta"):
        if meta.parent is None or meta.parent.name != "head":
            meta.decompose()
            removed += 1
    return removed


def remove_stray_text(soup: BeautifulSoup) -> int:
    """Remove text sitting directly under ``<html>`` or ``<body>``.

    Whitespace under ``<body>`` is kept; everything under ``<html>`` goes.
    """
    removed = 0
    for name, keep_blank in (("html", False), ("body", True)):
        for element in soup.find_all(name):
            for node in list(element.children):
                if type(node) is not NavigableString:
                    continue
                if keep_blank and not node.strip():
                    continue
                if node.strip():
                    log.debug("Dropping stray text under <%s>: %.40r", name, str(node))
                node.extract()
                removed += 1
    return removed


def empty_void_elements(soup: BeautifulSoup) -> None:
    """Move anything nested in a void element out after it."""
    for tag in soup.find_all(True):
        if tag.name.lower() not in VOID_ELEMENTS or not tag.contents:
            continue
        for child in reversed(list(tag.contents)):
            tag.insert_after(child.extract())


def decode_entities(soup: BeautifulSoup) -> bool:
    """Decode leftover XML and numeric entity escapes in text and attribute values.

    Serialization re-escapes only the XML-reserved characters, so a
    double-escaped ``&amp;amp;`` ends up as ``&amp;``. Escapes HTML knows without a
    trailing semicolon (``&copy``) are text and stay as written.
    """
    changed = False
    for node in soup.find_all(string=True):
        if type(node) is not NavigableString:
            continue
        if node.parent is not None and node.parent.name in RAW_TEXT_ELEMENTS:
            continue
        decoded = decode_xml_entities(node)
        if decoded != node:
            node.replace_with(NavigableString(decoded))
            changed = True

    for tag in soup.find_all(True):
        for key, value in list(tag.attrs.items()):
            if not isinstance(value, str):
                continue
            decoded = decode_xml_entities(value)
            if decoded != value:
                tag[key] = decoded
                changed = True
    return changed


def repair_markup(text: str) -> str:
    """Return a well-formed XML rendition of ``text``.

    Raises:
        RepairError: If the result still is not well formed or lost the
            document element.
    """
    soup = parse_document(text)
    if root_element(soup) is None:
        raise RepairError("No root element found")

    remove_scripts(soup)
    remove_stray_meta(soup)
    remove_stray_text(soup)
    empty_void_elements(soup)
    decode_entities(soup)

    output = serialize(soup)
    if not is_well_formed(output):
        raise RepairError("Repaired document is still not well-formed XML")
    return output


def repair_file(path: Path) -> bool:
    """Repair one document in place. Returns True if it changed."""
    text = read_markup(path)
    if not text.strip():
        log.debug("Skipping empty document %s", path.name)
        return False

    repaired = repair_markup(text)
    if repaired == text:
        return False
    path.write_text(repaired, encoding="utf-8")
    return True


def repair_documents(epub_dir: Path, config: OptimizerConfig) -> StageReport:
    """Repair every content document under the content root."""
    report = StageReport(name="repair-markup")
    content_path = get_content_path(epub_dir)

    for path in iter_markup_files(content_path):
        report.processed += 1
        before = path.stat().st_size
        try:
            if repair_file(path):
                report.record_size(before, path.stat().st_size)
                log.info("Repaired %s", path.name)
        except Exception as e:
            report.fail(path.relative_to(epub_dir), "repair", e)
            log.warning("Could not repair %s, leaving it unchanged: %s", path.name, e)

    return report
