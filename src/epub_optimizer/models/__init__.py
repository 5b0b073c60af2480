"""Data models."""

from epub_optimizer.models.config import (
    MAX_IMAGE_DIMENSION,
    MIMETYPE,
    PNG_CONVERSION_MIN_BYTES,
    RECOMPRESS_MIN_BYTES,
    HtmlOptions,
    OptimizerConfig,
    default_output_path,
    default_work_dir,
)
from epub_optimizer.models.epub import BookMetadata, TocFiles
from epub_optimizer.models.report import (
    FileFailure,
    PipelineResult,
    PipelineState,
    StageReport,
    ValidationResult,
)

__all__ = [
    # Configuration
    "HtmlOptions",
    "OptimizerConfig",
    "MAX_IMAGE_DIMENSION",
    "MIMETYPE",
    "PNG_CONVERSION_MIN_BYTES",
    "RECOMPRESS_MIN_BYTES",
    "default_output_path",
    "default_work_dir",
    # EPUB structure
    "BookMetadata",
    "TocFiles",
    # Results
    "FileFailure",
    "PipelineResult",
    "PipelineState",
    "StageReport",
    "ValidationResult",
]
