"""Tests for SVG optimization and font subsetting."""

from pathlib import Path

from fontTools.fontBuilder import FontBuilder
from fontTools.pens.ttGlyphPen import TTGlyphPen
from fontTools.ttLib import TTFont

from epub_optimizer.core.markup import is_well_formed
from epub_optimizer.core.stages.fonts import collect_characters, subset_fonts
from epub_optimizer.core.stages.svg import optimize_svg_text, optimize_svgs
from epub_optimizer.models.config import OptimizerConfig

SVG = """<?xml version="1.0" encoding="UTF-8" standalone="no"?>
<!-- Created with a drawing program -->
<svg xmlns="http://www.w3.org/2000/svg" width="100" height="100" viewBox="0 0 100 100">
    <metadata>
        <description>Lots of editor metadata that nobody reads</description>
    </metadata>
    <g id="layer1">
        <rect x="10.000000" y="10.000000" width="80.000000" height="80.000000"
              style="fill:#ff0000;fill-opacity:1;stroke:none"/>
    </g>
</svg>
"""

# CJK glyphs that the test book never uses
UNUSED_CHARS = "".join(chr(cp) for cp in range(0x4E00, 0x4E00 + 300))


def build_font(path: Path, chars: str) -> None:
    glyph_names = [".notdef"] + [f"uni{ord(ch):04X}" for ch in chars]

    def square():
        pen = TTGlyphPen(None)
        pen.moveTo((0, 0))
        pen.lineTo((0, 500))
        pen.lineTo((500, 500))
        pen.lineTo((500, 0))
        pen.closePath()
        return pen.glyph()

    fb = FontBuilder(1000, isTTF=True)
    fb.setupGlyphOrder(glyph_names)
    fb.setupCharacterMap({ord(ch): f"uni{ord(ch):04X}" for ch in chars})
    fb.setupGlyf({name: square() for name in glyph_names})
    fb.setupHorizontalMetrics({name: (600, 0) for name in glyph_names})
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupNameTable({"familyName": "Test Sans", "styleName": "Regular"})
    fb.setupOS2()
    fb.setupPost()
    fb.save(str(path))


def test_optimize_svg_text_shrinks_and_stays_well_formed():
    result = optimize_svg_text(SVG)

    assert len(result) < len(SVG)
    assert "<!--" not in result
    assert "<metadata" not in result
    assert is_well_formed(result)


def test_optimize_svgs_only_writes_smaller(book_dir: Path, content_path: Path, config: OptimizerConfig):
    svg = content_path / "images" / "figure.svg"
    svg.write_text(SVG)

    report = optimize_svgs(book_dir, config)
    assert report.changed == 1
    optimized = svg.read_text()

    again = optimize_svgs(book_dir, config)
    assert again.changed == 0
    assert svg.read_text() == optimized


def test_optimize_svgs_without_svg_files(book_dir: Path, config: OptimizerConfig):
    assert optimize_svgs(book_dir, config).skipped_reason == "no SVG files"


def test_collect_characters_includes_case_variants_and_latin(content_path: Path):
    chars = collect_characters(content_path)

    assert "C" in chars and "c" in chars
    assert "é" in chars and "É" in chars
    assert "ɏ" in chars
    assert chr(0x4E00) not in chars


def test_subset_fonts_drops_unused_glyphs(book_dir: Path, content_path: Path, config: OptimizerConfig):
    fonts = content_path / "fonts"
    fonts.mkdir()
    font_path = fonts / "body.ttf"
    build_font(font_path, "ABCabc" + UNUSED_CHARS)
    before = font_path.stat().st_size

    report = subset_fonts(book_dir, config)

    assert report.changed == 1
    assert font_path.stat().st_size < before
    cmap = TTFont(font_path).getBestCmap()
    assert ord("A") in cmap
    assert 0x4E00 not in cmap


def test_unreadable_font_is_left_unchanged(book_dir: Path, content_path: Path, config: OptimizerConfig):
    fonts = content_path / "fonts"
    fonts.mkdir()
    broken = fonts / "broken.woff2"
    broken.write_bytes(b"wOF2 definitely not a font" * 50)
    before = broken.read_bytes()

    report = subset_fonts(book_dir, config)

    assert broken.read_bytes() == before
    assert report.skipped == 1
    assert not report.failures
    assert report.notes and "broken.woff2" in report.notes[0]
    assert not (fonts / "broken.woff2.tmp").exists()


def test_subset_fonts_without_fonts_directory(book_dir: Path, config: OptimizerConfig):
    assert subset_fonts(book_dir, config).skipped_reason == "no fonts directory"
