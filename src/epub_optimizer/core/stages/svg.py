"""SVG optimization with scour."""

import logging
from pathlib import Path

from scour import scour

from epub_optimizer.core.locator import find_asset_dir, get_content_path
from epub_optimizer.core.utils import format_file_size, write_if_smaller
from epub_optimizer.models.config import OptimizerConfig
from epub_optimizer.models.report import StageReport

log = logging.getLogger(__name__)

MAX_PASSES = 5


def scour_options():
    options = scour.sanitizeOptions()
    options.strip_comments = True
    options.remove_metadata = True
    options.remove_descriptive_elements = False
    options.indent_type = "none"
    options.newlines = False
    return options


def optimize_svg_text(svg: str, max_passes: int = MAX_PASSES) -> str:
    """Run scour repeatedly until the output stops shrinking."""
    options = scour_options()
    best = svg
    for _ in range(max_passes):
        result = scour.scourString(best, options)
        if len(result) >= len(best):
            break
        best = result
    return best


def optimize_svgs(epub_dir: Path, config: OptimizerConfig) -> StageReport:
    """Optimize every SVG in the images directory."""
    report = StageReport(name="optimize-svg")

    images_dir = find_asset_dir(get_content_path(epub_dir), "images")
    if images_dir is None:
        report.skipped_reason = "no images directory"
        log.info("No images directory found, skipping SVG optimization")
        return report

    svg_files = sorted(p for p in images_dir.rglob("*") if p.is_file() and p.suffix.lower() == ".svg")
    if not svg_files:
        report.skipped_reason = "no SVG files"
        log.debug("No SVG files found")
        return report

    for path in svg_files:
        report.processed += 1
        try:
            svg = path.read_text(encoding="utf-8")
            sizes = write_if_smaller(path, optimize_svg_text(svg).encode("utf-8"))
            if sizes is None:
                report.skipped += 1
                log.debug("Keeping %s: already optimal", path.name)
                continue
            report.record_size(*sizes)
            log.info(
                "Optimized %s: %s → %s",
                path.name,
                format_file_size(sizes[0]),
                format_file_size(sizes[1]),
            )
        except Exception as e:
            report.fail(path.relative_to(epub_dir), "optimize-svg", e)
            log.warning("Failed to optimize %s: %s", path.name, e)

    return report
