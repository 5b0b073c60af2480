"""Tests for extracting and repacking EPUB containers."""

import zipfile
from pathlib import Path

import pytest

from epub_optimizer.core.archive import compress_epub, extract_epub
from epub_optimizer.errors import ExtractionError


def test_extract_then_compress_puts_stored_mimetype_first(epub_file: Path, tmp_path: Path):
    work = tmp_path / "work"
    extract_epub(epub_file, work)
    assert (work / "META-INF" / "container.xml").is_file()

    out = tmp_path / "out" / "book.epub"
    assert compress_epub(out, work) is True

    with zipfile.ZipFile(out) as archive:
        first = archive.infolist()[0]
        assert first.filename == "mimetype"
        assert first.compress_type == zipfile.ZIP_STORED
        assert first.extra == b""
        assert archive.read("mimetype") == b"application/epub+zip"

        others = archive.infolist()[1:]
        assert others
        assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in others)
        assert "mimetype" not in [info.filename for info in others]
        assert "OEBPS/content.opf" in archive.namelist()


def test_compress_rewrites_mimetype_without_newline(book_dir: Path, tmp_path: Path):
    (book_dir / "mimetype").write_text("wrong\n")
    out = tmp_path / "book.epub"

    compress_epub(out, book_dir)

    assert (book_dir / "mimetype").read_text() == "application/epub+zip"
    with zipfile.ZipFile(out) as archive:
        assert archive.read("mimetype") == b"application/epub+zip"


def test_compress_replaces_existing_output(book_dir: Path, tmp_path: Path):
    out = tmp_path / "book.epub"
    out.write_bytes(b"stale")

    compress_epub(out, book_dir)

    assert zipfile.is_zipfile(out)
    assert not list(tmp_path.glob("*.tmp"))


def test_extract_clears_existing_directory(epub_file: Path, tmp_path: Path):
    work = tmp_path / "work"
    work.mkdir()
    (work / "leftover.txt").write_text("old run")

    extract_epub(epub_file, work)

    assert not (work / "leftover.txt").exists()
    assert (work / "mimetype").is_file()


def test_extract_rejects_non_zip(tmp_path: Path):
    bogus = tmp_path / "bogus.epub"
    bogus.write_text("not a zip")

    with pytest.raises(ExtractionError):
        extract_epub(bogus, tmp_path / "work")


def test_extract_rejects_entries_outside_destination(tmp_path: Path):
    evil = tmp_path / "evil.epub"
    with zipfile.ZipFile(evil, "w") as archive:
        archive.writestr("mimetype", "application/epub+zip")
        archive.writestr("../escaped.txt", "gotcha")

    with pytest.raises(ExtractionError):
        extract_epub(evil, tmp_path / "work")
    assert not (tmp_path / "escaped.txt").exists()
