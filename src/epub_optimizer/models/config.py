"""Run configuration."""

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MIMETYPE = "application/epub+zip"

# Fixed bound for the downscale stage
MAX_IMAGE_DIMENSION = 1600

# PNGs smaller than this are usually icons or line art
PNG_CONVERSION_MIN_BYTES = 200 * 1024

RECOMPRESS_MIN_BYTES = 10 * 1024

DEFAULT_LABELS: dict[str, dict[str, str]] = {
    "en": {"cover": "Cover"},
    "fr": {"cover": "Couverture"},
    "de": {"cover": "Umschlag"},
    "es": {"cover": "Portada"},
    "it": {"cover": "Copertina"},
}


class HtmlOptions(BaseModel):
    """Markup minification switches."""

    model_config = ConfigDict(frozen=True)

    collapse_whitespace: bool = True
    remove_comments: bool = True
    minify_css: bool = True
    minify_js: bool = True


def default_work_dir(input_path: Path) -> Path:
    """Working directory derived from the input filename."""
    clean_stem = re.sub(r"[^\w\s-]", "", input_path.stem).strip()
    clean_stem = re.sub(r"[-\s]+", "_", clean_stem) or "epub"
    return input_path.parent / f"{clean_stem}_work"


def default_output_path(input_path: Path) -> Path:
    """Output EPUB placed beside the input."""
    return input_path.with_name(f"{input_path.stem}_optimized.epub")


class OptimizerConfig(BaseModel):
    """Settings for one optimization run.

    Built once from validated values and passed to every stage; frozen so
    no stage can change it mid-run.
    """

    model_config = ConfigDict(frozen=True)

    input_path: Path
    output_path: Path
    work_dir: Path | None = None
    clean: bool = False
    jpeg_quality: int = Field(default=70, ge=0, le=100)
    png_quality: tuple[float, float] = (0.6, 0.8)
    lang: str = "en"
    default_lang: str = "en"
    labels: dict[str, dict[str, str]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_LABELS.items()}
    )
    html_options: HtmlOptions = Field(default_factory=HtmlOptions)
    validate_output: bool = True
    epubcheck_jar: Path | None = None

    @field_validator("png_quality")
    @classmethod
    def _check_png_quality(cls, value: tuple[float, float]) -> tuple[float, float]:
        low, high = value
        if not (0 <= low <= 1 and 0 <= high <= 1):
            raise ValueError("PNG quality values must be between 0 and 1")
        if low > high:
            raise ValueError("PNG quality minimum must not exceed the maximum")
        return value

    @model_validator(mode="before")
    @classmethod
    def _fill_work_dir(cls, data: Any) -> Any:
        if (
            isinstance(data, dict)
            and data.get("work_dir") is None
            and data.get("input_path") is not None
        ):
            data = {**data, "work_dir": default_work_dir(Path(data["input_path"]))}
        return data

    @property
    def working_dir(self) -> Path:
        """Working directory, always set after validation."""
        assert self.work_dir is not None
        return self.work_dir

    def cover_label(self) -> str:
        """Localized label for the injected cover TOC entry."""
        for lang in (self.lang, self.default_lang):
            label = self.labels.get(lang, {}).get("cover")
            if label:
                return label
        return DEFAULT_LABELS["en"]["cover"]
