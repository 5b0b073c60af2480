"""Tests for package metadata reading."""

from pathlib import Path

import pytest
from conftest import write_book, zip_book

from epub_optimizer.core.book_info import BookInfoReader

COVER_ITEM = '<item id="cover-image" href="images/cover.jpg" media-type="image/jpeg"/>'


def packaged(tmp_path: Path, old: str, new: str) -> Path:
    root = write_book(tmp_path / "src")
    opf = root / "OEBPS" / "content.opf"
    opf.write_text(opf.read_text().replace(old, new))
    return zip_book(root, tmp_path / "book.epub")


def test_metadata_fields(epub_file: Path):
    metadata = BookInfoReader(epub_file).metadata()

    assert metadata.title == "Test Book"
    assert metadata.authors == ["Jane Author"]
    assert metadata.language == "en"
    assert metadata.publisher == "Example Press"
    assert metadata.identifier == "urn:uuid:0f6c2d1e-7a51-4c3e-9b1f-2d7e8a6b4c10"
    assert metadata.epub_version == "3.0"
    assert metadata.spine_length == 2
    assert metadata.cover_image is None


@pytest.mark.parametrize(
    ("old", "new"),
    [
        (COVER_ITEM, COVER_ITEM.replace("/>", ' properties="cover-image"/>')),
        ("  </metadata>", '    <meta name="cover" content="cover-image"/>\n  </metadata>'),
    ],
    ids=["manifest-property", "meta-cover"],
)
def test_cover_image_is_found(tmp_path: Path, old: str, new: str):
    epub_path = packaged(tmp_path, old, new)

    assert BookInfoReader(epub_path).metadata().cover_image == "images/cover.jpg"
