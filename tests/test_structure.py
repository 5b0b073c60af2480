"""Tests for the cover structure updates."""

from pathlib import Path

from bs4 import BeautifulSoup

from epub_optimizer.core.markup import is_well_formed, load_xml
from epub_optimizer.core.structure import (
    add_cover_image_property,
    add_cover_to_toc,
    find_cover_document,
    update_cover_linear,
    update_structure,
)
from epub_optimizer.models.config import OptimizerConfig


def opf_soup(content_path: Path) -> BeautifulSoup:
    return load_xml(content_path / "content.opf")


def test_cover_linear_is_set_once(book_dir: Path, content_path: Path):
    assert update_cover_linear(book_dir) is True
    itemref = opf_soup(content_path).find("itemref", attrs={"idref": "cover"})
    assert itemref["linear"] == "yes"

    text = (content_path / "content.opf").read_text()
    assert update_cover_linear(book_dir) is False
    assert (content_path / "content.opf").read_text() == text


def test_cover_linear_without_cover_itemref(book_dir: Path, content_path: Path):
    opf = content_path / "content.opf"
    opf.write_text(opf.read_text().replace('<itemref idref="cover" linear="no"/>', ""))

    assert update_cover_linear(book_dir) is False


def test_cover_image_property_keeps_other_tokens(book_dir: Path, content_path: Path):
    opf = content_path / "content.opf"
    opf.write_text(
        opf.read_text().replace(
            'href="images/cover.jpg" media-type="image/jpeg"',
            'href="images/cover.jpg" media-type="image/jpeg" properties="svg"',
        )
    )

    assert add_cover_image_property(book_dir) is True
    item = opf_soup(content_path).find("item", attrs={"id": "cover-image"})
    assert item["properties"].split() == ["svg", "cover-image"]

    assert add_cover_image_property(book_dir) is False


def test_find_cover_document_falls_back_to_file_name(book_dir: Path, content_path: Path):
    opf = content_path / "content.opf"
    opf.write_text(opf.read_text().replace('id="cover" href', 'id="titlepage" href'))

    assert find_cover_document(opf) == content_path / "cover.xhtml"


def test_cover_added_to_nav_and_ncx(book_dir: Path, content_path: Path):
    assert add_cover_to_toc(book_dir, "Cover") is True

    nav_text = (content_path / "nav.xhtml").read_text()
    assert is_well_formed(nav_text)
    nav = load_xml(content_path / "nav.xhtml")
    first = nav.find("nav").find("ol").find("li")
    assert first.a["href"] == "cover.xhtml"
    assert first.a.string == "Cover"

    ncx = load_xml(content_path / "toc.ncx")
    points = ncx.find_all("navPoint")
    assert [p["id"] for p in points] == ["navpoint-cover", "navpoint-1", "navpoint-2"]
    assert [p["playOrder"] for p in points] == ["1", "2", "3"]
    assert points[0].find("content")["src"] == "cover.xhtml"
    assert points[0].navLabel.find("text").string == "Cover"


def test_cover_toc_entry_is_idempotent(book_dir: Path, content_path: Path):
    add_cover_to_toc(book_dir, "Cover")
    nav = (content_path / "nav.xhtml").read_text()
    ncx = (content_path / "toc.ncx").read_text()

    assert add_cover_to_toc(book_dir, "Cover") is False
    assert (content_path / "nav.xhtml").read_text() == nav
    assert (content_path / "toc.ncx").read_text() == ncx


def test_missing_play_order_counts_as_one(book_dir: Path, content_path: Path):
    ncx_path = content_path / "toc.ncx"
    ncx_path.write_text(ncx_path.read_text().replace(' playOrder="2"', ""))

    add_cover_to_toc(book_dir, "Cover")

    points = load_xml(ncx_path).find_all("navPoint")
    assert [p["playOrder"] for p in points] == ["1", "2", "2"]


def test_cover_toc_skipped_without_toc_files(book_dir: Path, content_path: Path):
    opf = content_path / "content.opf"
    opf.write_text(
        opf.read_text()
        .replace(' properties="nav"', "")
        .replace("application/x-dtbncx+xml", "text/plain")
    )

    assert add_cover_to_toc(book_dir, "Cover") is False


def test_update_structure_uses_localized_label(book_dir: Path, content_path: Path, tmp_path: Path):
    config = OptimizerConfig(
        input_path=tmp_path / "in.epub", output_path=tmp_path / "out.epub", lang="fr"
    )

    report = update_structure(book_dir, config)

    assert report.changed == 3
    assert report.notes == ["cover-linear", "cover-image-property", "cover-toc-entry"]
    assert ">Couverture<" in (content_path / "nav.xhtml").read_text()

    again = update_structure(book_dir, config)
    assert again.changed == 0
    assert again.skipped == 3


def test_update_structure_without_package_document(tmp_path: Path, config: OptimizerConfig):
    report = update_structure(tmp_path, config)

    assert report.skipped_reason
    assert report.processed == 0
