"""Raster image stages: PNG to JPEG conversion, downscaling, recompression.

Pixel work is done by Pillow; these functions only decide which images to
touch and keep the package's references consistent when a file is renamed.
"""

import logging
import posixpath
import re
from pathlib import Path
from urllib.parse import quote, urldefrag, urlparse

from PIL import Image

from epub_optimizer.core.locator import (
    find_asset_dir,
    get_content_path,
    get_opf_path,
    resolve_href,
)
from epub_optimizer.core.markup import (
    iter_markup_files,
    load_document,
    load_xml,
    read_markup,
    serialize,
)
from epub_optimizer.core.utils import format_file_size, keep_if_smaller, replace_file, temp_path_for
from epub_optimizer.errors import StructureError
from epub_optimizer.models.config import (
    MAX_IMAGE_DIMENSION,
    PNG_CONVERSION_MIN_BYTES,
    RECOMPRESS_MIN_BYTES,
    OptimizerConfig,
)
from epub_optimizer.models.report import StageReport

log = logging.getLogger(__name__)

DOWNSCALE_SUFFIXES = frozenset({".jpg", ".jpeg", ".png", ".webp", ".avif"})
RECOMPRESS_SUFFIXES = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif", ".avif"})

# Quality used when a downscaled image is re-encoded; final quality is
# applied by the recompression stage
INTERMEDIATE_QUALITY = 95

_CSS_URL_RE = re.compile(r"""url\(\s*(['"]?)([^'")]+)\1\s*\)""")


def _images_in(directory: Path, suffixes: frozenset[str]) -> list[Path]:
    return sorted(p for p in directory.rglob("*") if p.is_file() and p.suffix.lower() in suffixes)


def _is_external(ref: str) -> bool:
    parsed = urlparse(ref)
    return bool(parsed.scheme) or ref.startswith("/")


def _same_file(a: Path, b: Path) -> bool:
    return posixpath.normpath(a.as_posix()) == posixpath.normpath(b.as_posix())


def has_alpha(path: Path) -> bool:
    """Whether a PNG carries any transparency."""
    with Image.open(path) as img:
        if img.mode in ("RGBA", "LA", "PA", "RGBa", "La"):
            return True
        return "transparency" in img.info


# =============================================================================
# PNG → JPEG
# =============================================================================


def _swap_reference(ref: str, new_name: str) -> str:
    """Point ``ref`` at ``new_name`` in the same directory, keeping any fragment."""
    target, fragment = urldefrag(ref)
    directory = posixpath.dirname(target)
    new_target = posixpath.join(directory, quote(new_name)) if directory else quote(new_name)
    return f"{new_target}#{fragment}" if fragment else new_target


def _rewrite_markup(doc: Path, old: Path, new: Path) -> str | None:
    """Updated text of ``doc`` with image references moved, or None."""
    text = read_markup(doc)
    if old.name not in text and quote(old.name) not in text:
        return None

    _, soup = load_document(doc)
    changed = False
    for tag in soup.find_all(["img", "image"]):
        for attr in ("src", "href", "xlink:href"):
            ref = tag.get(attr)
            if not ref or _is_external(ref):
                continue
            if _same_file(resolve_href(doc.parent, ref), old):
                tag[attr] = _swap_reference(ref, new.name)
                changed = True
    return serialize(soup) if changed else None


def _rewrite_css(css_path: Path, old: Path, new: Path) -> str | None:
    text = css_path.read_text(encoding="utf-8")
    if old.name not in text and quote(old.name) not in text:
        return None

    def replace(match: re.Match[str]) -> str:
        quote_char, ref = match.group(1), match.group(2).strip()
        if _is_external(ref) or not _same_file(resolve_href(css_path.parent, ref), old):
            return match.group(0)
        return f"url({quote_char}{_swap_reference(ref, new.name)}{quote_char})"

    updated = _CSS_URL_RE.sub(replace, text)
    return updated if updated != text else None


def _rewrite_manifest(opf_path: Path, old: Path, new: Path) -> str | None:
    soup = load_xml(opf_path)
    changed = False
    for item in soup.find_all("item"):
        href = item.get("href")
        if href and _same_file(resolve_href(opf_path.parent, href), old):
            item["href"] = _swap_reference(href, new.name)
            item["media-type"] = "image/jpeg"
            changed = True
    return serialize(soup) if changed else None


def plan_reference_updates(
    content_path: Path, opf_path: Path, old: Path, new: Path
) -> dict[Path, str]:
    """Every file that must change when ``old`` is renamed to ``new``.

    Nothing is written; a document that references the image but cannot
    be parsed raises, so the rename is abandoned before any change.
    """
    updates: dict[Path, str] = {}
    for doc in iter_markup_files(content_path):
        text = _rewrite_markup(doc, old, new)
        if text is not None:
            updates[doc] = text
    for css_path in sorted(content_path.rglob("*.css")):
        text = _rewrite_css(css_path, old, new)
        if text is not None:
            updates[css_path] = text
    text = _rewrite_manifest(opf_path, old, new)
    if text is not None:
        updates[opf_path] = text
    return updates


def encode_jpeg(source: Path, dest: Path, quality: int) -> None:
    with Image.open(source) as img:
        img.convert("RGB").save(dest, format="JPEG", quality=quality, optimize=True, progressive=True)


def commit_conversion(jpeg_tmp: Path, jpeg: Path, updates: dict[Path, str]) -> None:
    """Move the JPEG and every rewritten referencing file into place.

    All rewrites are staged beside their targets first; nothing is replaced
    unless every staged write succeeded.
    """
    staged = {jpeg: jpeg_tmp}
    try:
        for path, text in updates.items():
            staged[path] = temp_path_for(path)
            staged[path].write_text(text, encoding="utf-8")
        for path, staged_path in staged.items():
            replace_file(staged_path, path)
    finally:
        for staged_path in staged.values():
            staged_path.unlink(missing_ok=True)


def convert_png_to_jpeg(epub_dir: Path, config: OptimizerConfig) -> StageReport:
    """Convert large opaque PNGs to JPEG and move every reference to them.

    A PNG is converted only when it is at least 200 KiB, has no
    transparency, and the JPEG comes out strictly smaller. Markup, CSS and
    manifest references are rewritten before the PNG is deleted.
    """
    report = StageReport(name="png-to-jpeg")
    content_path = get_content_path(epub_dir)

    images_dir = find_asset_dir(content_path, "images")
    if images_dir is None:
        report.skipped_reason = "no images directory"
        log.info("No images directory found, skipping PNG to JPEG conversion")
        return report

    png_files = _images_in(images_dir, frozenset({".png"}))
    if not png_files:
        report.skipped_reason = "no PNG files"
        log.debug("No PNG files found")
        return report

    try:
        opf_path = get_opf_path(epub_dir)
    except StructureError as e:
        report.skipped_reason = str(e)
        log.warning("Skipping PNG to JPEG conversion: %s", e)
        return report

    for png in png_files:
        report.processed += 1
        jpeg = png.with_suffix(".jpg")
        tmp = temp_path_for(jpeg)
        try:
            original_size = png.stat().st_size
            if original_size < PNG_CONVERSION_MIN_BYTES:
                report.skipped += 1
                log.debug("Skipping small PNG: %s (%s)", png.name, format_file_size(original_size))
                continue
            if has_alpha(png):
                report.skipped += 1
                log.info("Skipping PNG with transparency: %s", png.name)
                continue
            if jpeg.exists():
                report.skipped += 1
                log.warning("Skipping %s: %s already exists", png.name, jpeg.name)
                continue

            encode_jpeg(png, tmp, config.jpeg_quality)
            new_size = tmp.stat().st_size
            if new_size >= original_size:
                report.skipped += 1
                log.info("Keeping PNG %s: JPEG conversion would increase size", png.name)
                continue

            updates = plan_reference_updates(content_path, opf_path, png, jpeg)
            commit_conversion(tmp, jpeg, updates)
            png.unlink()

            report.record_size(original_size, new_size)
            log.info(
                "Converted %s: %s → %s (%d%% smaller), updated %d file(s)",
                png.name,
                format_file_size(original_size),
                format_file_size(new_size),
                round((original_size - new_size) / original_size * 100),
                len(updates),
            )
        except Exception as e:
            report.fail(png.relative_to(epub_dir), "png-to-jpeg", e)
            log.warning("Skipping conversion for %s: %s", png.name, e)
        finally:
            tmp.unlink(missing_ok=True)

    if report.changed:
        log.info(
            "Converted %d PNG file(s) to JPEG, saving %s",
            report.changed,
            format_file_size(report.bytes_saved),
        )
    return report


# =============================================================================
# Downscaling
# =============================================================================


def _save_options(fmt: str, quality: int) -> dict:
    if fmt == "JPEG":
        return {"quality": quality, "optimize": True, "progressive": True}
    if fmt == "PNG":
        return {"optimize": True}
    if fmt in ("WEBP", "AVIF"):
        return {"quality": quality}
    return {}


def downscale_image(path: Path, max_dim: int = MAX_IMAGE_DIMENSION) -> tuple[int, int] | None:
    """Shrink ``path`` in place to fit within ``max_dim`` on both sides.

    Returns the new ``(width, height)``, or None if it already fits.
    """
    with Image.open(path) as img:
        width, height = img.size
        if width <= max_dim and height <= max_dim:
            return None
        fmt = img.format
        info = {k: img.info[k] for k in ("icc_profile", "exif") if img.info.get(k)}
        resized = img.copy()

    resized.thumbnail((max_dim, max_dim), Image.Resampling.LANCZOS)
    if fmt == "JPEG" and resized.mode not in ("RGB", "L", "CMYK"):
        resized = resized.convert("RGB")

    tmp = temp_path_for(path)
    try:
        resized.save(tmp, format=fmt, **_save_options(fmt, INTERMEDIATE_QUALITY), **info)
        replace_file(tmp, path)
    finally:
        tmp.unlink(missing_ok=True)
    return resized.size


def downscale_images(epub_dir: Path, config: OptimizerConfig) -> StageReport:
    """Resize raster images larger than the fixed maximum dimension."""
    report = StageReport(name="downscale-images")

    images_dir = find_asset_dir(get_content_path(epub_dir), "images")
    if images_dir is None:
        report.skipped_reason = "no images directory"
        log.info("No images directory found, skipping image downscaling")
        return report

    for path in _images_in(images_dir, DOWNSCALE_SUFFIXES):
        report.processed += 1
        try:
            before = path.stat().st_size
            new_size = downscale_image(path, MAX_IMAGE_DIMENSION)
            if new_size is None:
                report.skipped += 1
                continue
            report.record_size(before, path.stat().st_size)
            log.info(
                "Downscaled %s to %dx%d, %s → %s",
                path.name,
                *new_size,
                format_file_size(before),
                format_file_size(path.stat().st_size),
            )
        except Exception as e:
            report.fail(path.relative_to(epub_dir), "downscale", e)
            log.warning("Failed to downscale %s: %s", path.name, e)

    return report


# =============================================================================
# Recompression
# =============================================================================


def png_palette_colors(png_quality: tuple[float, float]) -> int:
    """Palette size for lossy PNG quantization from the quality range."""
    return max(2, min(256, round(256 * png_quality[1])))


def encode_recompressed(path: Path, dest: Path, config: OptimizerConfig) -> bool:
    """Write a recompressed copy of ``path`` to ``dest``.

    Returns False when the format is passed through untouched.
    """
    with Image.open(path) as img:
        fmt = img.format
        if fmt == "GIF":
            return False

        if fmt == "JPEG":
            out = img if img.mode in ("RGB", "L", "CMYK") else img.convert("RGB")
            options = {"quality": config.jpeg_quality, "optimize": True, "progressive": True}
            if img.info.get("icc_profile"):
                options["icc_profile"] = img.info["icc_profile"]
            out.save(dest, format="JPEG", **options)
        elif fmt == "PNG":
            colors = png_palette_colors(config.png_quality)
            if img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info:
                out = img.convert("RGBA").quantize(colors=colors, method=Image.Quantize.FASTOCTREE)
            elif img.mode == "P":
                out = img
            else:
                out = img.convert("RGB").quantize(colors=colors)
            out.save(dest, format="PNG", optimize=True, compress_level=9)
        elif fmt == "WEBP":
            img.save(dest, format="WEBP", quality=config.jpeg_quality)
        elif fmt == "AVIF":
            img.save(dest, format="AVIF", quality=config.jpeg_quality)
        else:
            return False
    return True


def recompress_images(epub_dir: Path, config: OptimizerConfig) -> StageReport:
    """Re-encode images at the configured quality, keeping only smaller results."""
    report = StageReport(name="recompress-images")

    images_dir = find_asset_dir(get_content_path(epub_dir), "images")
    if images_dir is None:
        report.skipped_reason = "no images directory"
        log.info("No images directory found, skipping image recompression")
        return report

    for path in _images_in(images_dir, RECOMPRESS_SUFFIXES):
        report.processed += 1
        tmp = temp_path_for(path)
        try:
            size = path.stat().st_size
            if size < RECOMPRESS_MIN_BYTES:
                report.skipped += 1
                log.debug("Skipping small image: %s", path.name)
                continue
            if not encode_recompressed(path, tmp, config):
                report.skipped += 1
                log.debug("Passing through %s unchanged", path.name)
                continue

            sizes = keep_if_smaller(tmp, path)
            if sizes is None:
                report.skipped += 1
                log.debug("Keeping %s: re-encoding would not shrink it", path.name)
                continue

            before, after = sizes
            report.record_size(before, after)
            log.info("Optimized %s: %.1f%% smaller", path.name, (before - after) / before * 100)
        except Exception as e:
            report.fail(path.relative_to(epub_dir), "recompress", e)
            log.warning("Error processing %s: %s", path.name, e)
        finally:
            tmp.unlink(missing_ok=True)

    return report
