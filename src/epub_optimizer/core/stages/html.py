"""Markup stages: entity decoding, HTML/CSS minification, lazy images."""

import logging
import re
from pathlib import Path

import rcssmin
import rjsmin
from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from epub_optimizer.core.locator import get_content_path
from epub_optimizer.core.markup import iter_markup_files, load_document, serialize
from epub_optimizer.core.repair import decode_entities
from epub_optimizer.core.utils import format_file_size, write_if_smaller
from epub_optimizer.models.config import HtmlOptions, OptimizerConfig
from epub_optimizer.models.report import StageReport

log = logging.getLogger(__name__)

# Whitespace inside these is significant
PRESERVE_WHITESPACE = frozenset({"pre", "textarea", "script", "style"})

# Elements next to which surrounding whitespace never renders
BLOCK_ELEMENTS = frozenset(
    {
        "address", "article", "aside", "base", "blockquote", "body", "caption",
        "col", "colgroup", "dd", "details", "div", "dl", "dt", "fieldset",
        "figcaption", "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5",
        "h6", "head", "header", "hgroup", "hr", "html", "legend", "li", "link",
        "main", "meta", "nav", "ol", "p", "section", "style", "script",
        "summary", "table", "tbody", "td", "tfoot", "th", "thead", "title",
        "tr", "ul",
    }
)

# Plain ASCII whitespace only; U+00A0 is content
_WHITESPACE_RE = re.compile(r"[ \t\n\r\f]+")


def decode_entities_stage(epub_dir: Path, config: OptimizerConfig) -> StageReport:
    """Canonicalize encoded characters in every content document."""
    report = StageReport(name="decode-entities")

    for path in iter_markup_files(get_content_path(epub_dir)):
        report.processed += 1
        try:
            text, soup = load_document(path)
            decode_entities(soup)
            output = serialize(soup)
            if output == text:
                continue
            before = path.stat().st_size
            path.write_text(output, encoding="utf-8")
            report.record_size(before, path.stat().st_size)
            log.debug("Decoded entities in %s", path.name)
        except Exception as e:
            report.fail(path.relative_to(epub_dir), "decode-entities", e)
            log.warning("Skipping entity decoding for %s: %s", path.name, e)

    return report


def _is_block(node: object) -> bool:
    return isinstance(node, Tag) and node.name.lower() in BLOCK_ELEMENTS


def _in_preserved(node: NavigableString) -> bool:
    return any(parent.name in PRESERVE_WHITESPACE for parent in node.parents)


def collapse_whitespace(soup: BeautifulSoup) -> None:
    """Collapse whitespace runs and drop whitespace between block elements."""
    for node in list(soup.find_all(string=True)):
        if type(node) is not NavigableString or _in_preserved(node):
            continue

        prev_sibling, next_sibling = node.previous_sibling, node.next_sibling
        at_start = prev_sibling is None and _is_block(node.parent)
        at_end = next_sibling is None and _is_block(node.parent)
        after_block = at_start or _is_block(prev_sibling)
        before_block = at_end or _is_block(next_sibling)

        collapsed = _WHITESPACE_RE.sub(" ", node)
        if not collapsed.strip(" "):
            if after_block and before_block:
                node.extract()
                continue
            collapsed = " "
        else:
            if after_block:
                collapsed = collapsed.lstrip(" ")
            if before_block:
                collapsed = collapsed.rstrip(" ")

        if collapsed != node:
            node.replace_with(NavigableString(collapsed))


def minify_document(soup: BeautifulSoup, options: HtmlOptions) -> None:
    if options.remove_comments:
        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()

    if options.minify_css:
        for style in soup.find_all("style"):
            css = style.get_text()
            if css.strip():
                style.string = rcssmin.cssmin(css)

    if options.minify_js:
        for script in soup.find_all("script"):
            code = script.get_text()
            if code.strip():
                script.string = rjsmin.jsmin(code)

    if options.collapse_whitespace:
        # Removed comments leave adjacent strings behind
        soup.smooth()
        collapse_whitespace(soup)


def minify_markup(epub_dir: Path, config: OptimizerConfig) -> StageReport:
    """Minify content documents and stylesheets under the content root."""
    report = StageReport(name="minify-markup")
    content_path = get_content_path(epub_dir)

    for path in iter_markup_files(content_path):
        report.processed += 1
        try:
            _, soup = load_document(path)
            minify_document(soup, config.html_options)
            sizes = write_if_smaller(path, serialize(soup).encode("utf-8"))
            if sizes:
                report.record_size(*sizes)
                log.debug("Minified %s", path.name)
        except Exception as e:
            report.fail(path.relative_to(epub_dir), "minify-html", e)
            log.warning("Skipping %s: %s", path.name, e)

    if config.html_options.minify_css:
        for path in sorted(content_path.rglob("*.css")):
            report.processed += 1
            try:
                css = path.read_text(encoding="utf-8")
                sizes = write_if_smaller(path, rcssmin.cssmin(css).encode("utf-8"))
                if sizes:
                    report.record_size(*sizes)
                    log.debug(
                        "Minified %s: %s → %s",
                        path.name,
                        format_file_size(sizes[0]),
                        format_file_size(sizes[1]),
                    )
            except Exception as e:
                report.fail(path.relative_to(epub_dir), "minify-css", e)
                log.warning("Skipping %s: %s", path.name, e)

    return report


def add_lazy_loading(epub_dir: Path, config: OptimizerConfig) -> StageReport:
    """Add ``loading="lazy"`` to every ``<img>`` that has no loading hint."""
    report = StageReport(name="lazy-images")

    for path in iter_markup_files(get_content_path(epub_dir)):
        report.processed += 1
        try:
            _, soup = load_document(path)
            images = [img for img in soup.find_all("img") if not img.get("loading")]
            if not images:
                continue
            for img in images:
                img["loading"] = "lazy"
            before = path.stat().st_size
            path.write_text(serialize(soup), encoding="utf-8")
            report.record_size(before, path.stat().st_size)
            log.debug('Added loading="lazy" to %d image(s) in %s', len(images), path.name)
        except Exception as e:
            report.fail(path.relative_to(epub_dir), "lazy-images", e)
            log.warning("Failed to add lazy loading to %s: %s", path.name, e)

    return report
