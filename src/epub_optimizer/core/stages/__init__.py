"""Content transform stages, in execution order."""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from epub_optimizer.core.stages.fonts import subset_fonts
from epub_optimizer.core.stages.html import (
    add_lazy_loading,
    decode_entities_stage,
    minify_markup,
)
from epub_optimizer.core.stages.images import (
    convert_png_to_jpeg,
    downscale_images,
    recompress_images,
)
from epub_optimizer.core.stages.scripts import minify_javascript
from epub_optimizer.core.stages.svg import optimize_svgs
from epub_optimizer.models.config import OptimizerConfig
from epub_optimizer.models.report import StageReport


@dataclass(frozen=True)
class TransformStage:
    """A content transform and its place in the pipeline."""

    name: str
    fn: Callable[[Path, OptimizerConfig], StageReport]
    description: str


CONTENT_STAGES: tuple[TransformStage, ...] = (
    TransformStage("decode-entities", decode_entities_stage, "Decoding character entities"),
    TransformStage("minify-markup", minify_markup, "Minifying HTML and CSS"),
    TransformStage("minify-js", minify_javascript, "Minifying JavaScript"),
    TransformStage("png-to-jpeg", convert_png_to_jpeg, "Converting large PNGs to JPEG"),
    TransformStage("optimize-svg", optimize_svgs, "Optimizing SVG files"),
    TransformStage("downscale-images", downscale_images, "Downscaling large images"),
    TransformStage("recompress-images", recompress_images, "Recompressing images"),
    TransformStage("lazy-images", add_lazy_loading, "Adding lazy loading to images"),
    TransformStage("subset-fonts", subset_fonts, "Subsetting fonts"),
)

__all__ = [
    "CONTENT_STAGES",
    "TransformStage",
    "add_lazy_loading",
    "convert_png_to_jpeg",
    "decode_entities_stage",
    "downscale_images",
    "minify_javascript",
    "minify_markup",
    "optimize_svgs",
    "recompress_images",
    "subset_fonts",
]
