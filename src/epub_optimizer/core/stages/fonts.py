"""Font subsetting with fontTools."""

import logging
from pathlib import Path

from fontTools import subset
from fontTools.ttLib import TTFont

from epub_optimizer.core.locator import find_asset_dir, get_content_path
from epub_optimizer.core.markup import iter_markup_files, parse_markup, read_markup
from epub_optimizer.core.utils import format_file_size, keep_if_smaller, temp_path_for
from epub_optimizer.models.config import OptimizerConfig
from epub_optimizer.models.report import StageReport

log = logging.getLogger(__name__)

FONT_SUFFIXES = frozenset({".ttf", ".otf", ".woff", ".woff2"})

# Basic Latin through Latin Extended-B is always kept
LATIN_RANGE = range(0x20, 0x250)

# Reported when a font cannot be subset
ESTIMATED_REDUCTION = 0.6


def collect_characters(content_path: Path) -> set[str]:
    """Every character used in the body text of the content documents."""
    chars: set[str] = set()
    for path in iter_markup_files(content_path):
        try:
            soup = parse_markup(read_markup(path))
        except (OSError, UnicodeDecodeError) as e:
            log.warning("Could not read %s for font subsetting: %s", path.name, e)
            continue
        body = soup.find("body") or soup
        chars.update(body.get_text())

    for ch in list(chars):
        chars.update(ch.upper())
        chars.update(ch.lower())
    chars.update(chr(cp) for cp in LATIN_RANGE)
    return chars


def subset_font(path: Path, dest: Path, unicodes: set[int]) -> None:
    """Write a subset of ``path`` covering ``unicodes`` to ``dest``, same flavor."""
    options = subset.Options()
    options.layout_features = ["*"]
    options.name_IDs = ["*"]
    options.notdef_outline = True

    font = TTFont(path)
    try:
        options.flavor = font.flavor
        subsetter = subset.Subsetter(options=options)
        subsetter.populate(unicodes=unicodes)
        subsetter.subset(font)
        subset.save_font(font, dest, options)
    finally:
        font.close()


def subset_fonts(epub_dir: Path, config: OptimizerConfig) -> StageReport:
    """Subset embedded fonts to the characters the book actually uses."""
    report = StageReport(name="subset-fonts")
    content_path = get_content_path(epub_dir)

    fonts_dir = find_asset_dir(content_path, "fonts")
    if fonts_dir is None:
        report.skipped_reason = "no fonts directory"
        log.info("No fonts directory found, skipping font subsetting")
        return report

    font_files = sorted(p for p in fonts_dir.rglob("*") if p.is_file() and p.suffix.lower() in FONT_SUFFIXES)
    if not font_files:
        report.skipped_reason = "no font files"
        log.debug("No font files found")
        return report

    unicodes = {ord(ch) for ch in collect_characters(content_path)}
    log.info("Subsetting %d font(s) to %d characters", len(font_files), len(unicodes))

    for path in font_files:
        report.processed += 1
        tmp = temp_path_for(path)
        try:
            subset_font(path, tmp, unicodes)
        except Exception as e:
            report.skipped += 1
            size = path.stat().st_size
            estimated = round(size * ESTIMATED_REDUCTION)
            report.notes.append(f"{path.name}: subsetting unavailable ({e})")
            log.warning(
                "Font %s: could not subset (%s); could reduce from %s to ~%s",
                path.name,
                e,
                format_file_size(size),
                format_file_size(size - estimated),
            )
            tmp.unlink(missing_ok=True)
            continue

        try:
            sizes = keep_if_smaller(tmp, path)
        except OSError as e:
            report.fail(path.relative_to(epub_dir), "subset-font", e)
            log.warning("Failed to replace %s: %s", path.name, e)
            continue

        if sizes is None:
            report.skipped += 1
            log.debug("Keeping %s: subset is not smaller", path.name)
            continue
        report.record_size(*sizes)
        log.info(
            "Subset %s: %s → %s",
            path.name,
            format_file_size(sizes[0]),
            format_file_size(sizes[1]),
        )

    return report
