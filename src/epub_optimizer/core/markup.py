"""Parse and serialize (X)HTML and XML documents with BeautifulSoup.

Every stage that touches markup goes through these helpers so that
documents are always read the same tolerant way and written back as
well-formed XML.
"""

import re
import warnings
from html.entities import html5 as HTML5_ENTITIES
from pathlib import Path

from bs4 import (
    BeautifulSoup,
    ProcessingInstruction,
    Tag,
    UnicodeDammit,
    XMLParsedAsHTMLWarning,
)
from lxml import etree

from epub_optimizer.errors import RepairError

# EPUB content documents are XHTML; the HTML parser is only used to repair them
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>\n'

XHTML_NAMESPACE = "http://www.w3.org/1999/xhtml"

XML_PREDEFINED_ENTITIES = frozenset({"amp", "lt", "gt", "quot", "apos"})

VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img",
        "input", "link", "meta", "source", "track", "wbr",
    }
)

MARKUP_SUFFIXES = (".xhtml", ".html", ".htm")

_XML_DECL_RE = re.compile(r"^\ufeff?\s*<\?xml\s[^>]*\?>\s*", re.IGNORECASE)
_NAMED_ENTITY_RE = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")
_XML_ENTITY_RE = re.compile(r"&(?:(amp|lt|gt|quot|apos)|#([0-9]+)|#[xX]([0-9A-Fa-f]+));")
_EMPTY_ELEMENT_RE = re.compile(r"<([A-Za-z][\w:.-]*)(\s[^<>]*?)?\s*/>")

_XML_ENTITY_CHARS = {"amp": "&", "lt": "<", "gt": ">", "quot": '"', "apos": "'"}


def read_markup(path: Path) -> str:
    """Read a markup file as text, sniffing the encoding if it is not UTF-8."""
    data = path.read_bytes()
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        dammit = UnicodeDammit(data, is_html=path.suffix.lower() in MARKUP_SUFFIXES)
        if dammit.unicode_markup is None:
            raise
        return dammit.unicode_markup


def strip_xml_declaration(text: str) -> str:
    return _XML_DECL_RE.sub("", text, count=1)


def named_entities_to_numeric(text: str) -> str:
    """Replace HTML named entities XML does not predefine with numeric references.

    ``&nbsp;`` becomes ``&#160;``; ``&amp;`` and friends, and names HTML
    does not know, are left alone.
    """

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in XML_PREDEFINED_ENTITIES:
            return match.group(0)
        decoded = HTML5_ENTITIES.get(f"{name};")
        if decoded is None:
            return match.group(0)
        return "".join(f"&#{ord(ch)};" for ch in decoded)

    return _NAMED_ENTITY_RE.sub(replace, text)


def decode_xml_entities(text: str) -> str:
    """Decode the five XML entities and numeric character references.

    Only semicolon-terminated references are decoded, so ``&copy`` or
    ``&reg=2`` in text and URLs stay as written. References to code points
    XML cannot hold are left alone.
    """

    def replace(match: re.Match[str]) -> str:
        name, decimal, hexadecimal = match.groups()
        if name:
            return _XML_ENTITY_CHARS[name]
        codepoint = int(decimal, 10) if decimal else int(hexadecimal, 16)
        if codepoint == 0 or 0xD800 <= codepoint <= 0xDFFF or codepoint > 0x10FFFF:
            return match.group(0)
        return chr(codepoint)

    return _XML_ENTITY_RE.sub(replace, text)


def expand_empty_elements(text: str) -> str:
    """Write ``<a id="x"/>`` as ``<a id="x"></a>`` for non-void elements.

    HTML parsers ignore the self-closing slash on ordinary elements, which
    would make an empty anchor swallow the rest of its paragraph.
    """

    def replace(match: re.Match[str]) -> str:
        name, attrs = match.group(1), match.group(2) or ""
        if name.lower() in VOID_ELEMENTS:
            return match.group(0)
        return f"<{name}{attrs.rstrip()}></{name}>"

    return _EMPTY_ELEMENT_RE.sub(replace, text)


def is_well_formed(text: str) -> bool:
    """Check ``text`` against a strict XML parser."""
    parser = etree.XMLParser(resolve_entities=False, no_network=True, load_dtd=False)
    try:
        etree.fromstring(strip_xml_declaration(text), parser)
    except etree.XMLSyntaxError:
        return False
    return True


def parse_xml(text: str) -> BeautifulSoup:
    """Parse well-formed (or nearly so) XML, keeping case and prefixes."""
    return BeautifulSoup(strip_xml_declaration(text), "xml")


def parse_markup(text: str) -> BeautifulSoup:
    """Parse broken markup with the HTML5 parsing algorithm.

    Unclosed elements are closed the way a browser closes them, so the tree
    can always be serialized as XML. Inline SVG and MathML keep their mixed
    case names (``viewBox``, ``linearGradient``).
    """
    prepared = expand_empty_elements(strip_xml_declaration(text))
    return BeautifulSoup(prepared, "html5lib", multi_valued_attributes=None)


def root_element(soup: BeautifulSoup) -> Tag | None:
    return soup.find(True, recursive=False)


def is_xhtml(soup: BeautifulSoup) -> bool:
    root = root_element(soup)
    return root is not None and root.name.lower() == "html"


def mark_void_elements(soup: BeautifulSoup) -> None:
    """Serialize void elements as ``<br/>`` and everything else with an end tag.

    Elements in a foreign namespace (inline SVG, MathML) keep the parser's
    default for empty elements.
    """
    for tag in soup.find_all(True):
        if tag.namespace and tag.namespace != XHTML_NAMESPACE:
            continue
        tag.can_be_empty_element = tag.name.lower() in VOID_ELEMENTS


def serialize(soup: BeautifulSoup) -> str:
    """Serialize a tree as XML with a single UTF-8 declaration."""
    if is_xhtml(soup):
        mark_void_elements(soup)

    if soup.is_xml:
        return soup.decode(formatter="minimal")

    for node in list(soup.contents):
        if isinstance(node, ProcessingInstruction) and node.lower().startswith("xml "):
            node.extract()
    return XML_DECLARATION + soup.decode(formatter="minimal").lstrip()


def load_xml(path: Path) -> BeautifulSoup:
    return parse_xml(read_markup(path))


def load_document(path: Path) -> tuple[str, BeautifulSoup]:
    """Read a content document that must already be well formed.

    Returns the original text and its tree.

    Raises:
        RepairError: If the document is not well-formed XML.
    """
    text = read_markup(path)
    prepared = named_entities_to_numeric(text)
    if not is_well_formed(prepared):
        raise RepairError(f"{path.name} is not well-formed XML")
    return text, parse_xml(prepared)


def save_xml(path: Path, soup: BeautifulSoup) -> str:
    text = serialize(soup)
    path.write_text(text, encoding="utf-8")
    return text


def iter_markup_files(root: Path) -> list[Path]:
    """All content documents under ``root``, sorted."""
    return sorted(
        p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in MARKUP_SUFFIXES
    )
