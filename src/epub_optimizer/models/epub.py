"""Data models for EPUB structure."""

from pathlib import Path

from pydantic import BaseModel, Field


class TocFiles(BaseModel):
    """Navigation files found through the package manifest."""

    nav: Path | None = None
    ncx: Path | None = None

    @property
    def found(self) -> bool:
        return self.nav is not None or self.ncx is not None


class BookMetadata(BaseModel):
    """Book-level metadata."""

    title: str
    authors: list[str] = Field(default_factory=list)
    language: str | None = None
    publisher: str | None = None
    identifier: str | None = None
    epub_version: str | None = None
    cover_image: str | None = None
    spine_length: int = 0
