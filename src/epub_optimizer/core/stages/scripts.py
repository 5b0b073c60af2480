"""Standalone JavaScript minification."""

import logging
from pathlib import Path

import rjsmin

from epub_optimizer.core.utils import write_if_smaller
from epub_optimizer.models.config import OptimizerConfig
from epub_optimizer.models.report import StageReport

log = logging.getLogger(__name__)


def minify_javascript(epub_dir: Path, config: OptimizerConfig) -> StageReport:
    """Minify every ``.js`` file in the package."""
    report = StageReport(name="minify-js")

    js_files = sorted(p for p in epub_dir.rglob("*.js") if p.is_file())
    if not js_files:
        report.skipped_reason = "no JavaScript files"
        log.debug("No JavaScript files found")
        return report

    for path in js_files:
        report.processed += 1
        try:
            code = path.read_text(encoding="utf-8")
            if not code.strip():
                report.skipped += 1
                log.debug("Skipping empty file: %s", path.name)
                continue

            sizes = write_if_smaller(path, rjsmin.jsmin(code).encode("utf-8"))
            if sizes is None:
                report.skipped += 1
                log.debug("Skipping %s: already minimal", path.name)
                continue

            before, after = sizes
            report.record_size(before, after)
            log.info(
                "Minified %s: %d bytes → %d bytes (%d%% smaller)",
                path.name,
                before,
                after,
                round((before - after) / before * 100),
            )
        except Exception as e:
            report.fail(path.relative_to(epub_dir), "minify-js", e)
            log.warning("Skipping %s: %s", path.name, e)

    return report
