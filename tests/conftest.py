"""Shared fixtures: EPUB trees and archives built on the fly."""

import random
import zipfile
from pathlib import Path

import pytest
from PIL import Image

from epub_optimizer.models.config import OptimizerConfig

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{opf}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

OPF = """<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="bookid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="bookid">urn:uuid:0f6c2d1e-7a51-4c3e-9b1f-2d7e8a6b4c10</dc:identifier>
    <dc:title>Test Book</dc:title>
    <dc:creator>Jane Author</dc:creator>
    <dc:language>en</dc:language>
    <dc:publisher>Example Press</dc:publisher>
    <meta property="dcterms:modified">2024-01-01T00:00:00Z</meta>
  </metadata>
  <manifest>
    <item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>
    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>
    <item id="cover" href="cover.xhtml" media-type="application/xhtml+xml"/>
    <item id="cover-image" href="images/cover.jpg" media-type="image/jpeg"/>
    <item id="chapter1" href="chapter1.xhtml" media-type="application/xhtml+xml"/>
    <item id="css" href="styles/style.css" media-type="text/css"/>
{extra_items}  </manifest>
  <spine toc="ncx">
    <itemref idref="cover" linear="no"/>
    <itemref idref="chapter1"/>
  </spine>
</package>
"""

NAV = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head><title>Contents</title></head>
<body>
<nav epub:type="toc" id="toc"><ol><li><a href="chapter1.xhtml">Chapter 1</a></li><li><a href="chapter1.xhtml#s2">Section 2</a></li></ol></nav>
</body>
</html>
"""

NCX = """<?xml version="1.0" encoding="utf-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
<head><meta name="dtb:uid" content="urn:uuid:0f6c2d1e-7a51-4c3e-9b1f-2d7e8a6b4c10"/></head>
<docTitle><text>Test Book</text></docTitle>
<navMap>
<navPoint id="navpoint-1" playOrder="1"><navLabel><text>Chapter 1</text></navLabel><content src="chapter1.xhtml"/></navPoint>
<navPoint id="navpoint-2" playOrder="2"><navLabel><text>Section 2</text></navLabel><content src="chapter1.xhtml#s2"/></navPoint>
</navMap>
</ncx>
"""

COVER = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml">
<head><title>Cover</title></head>
<body><div><img src="images/cover.jpg" alt="Cover"/></div></body>
</html>
"""

CHAPTER = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml">
<head>
  <title>Chapter 1</title>
  <link rel="stylesheet" type="text/css" href="styles/style.css"/>
</head>
<body>
  <!-- chapter start -->
  <h1>Chapter   One</h1>
  <p>Caf&#233; &amp; friends,
     a   story.</p>
  <pre>  keep
    this  </pre>
  <h2 id="s2">Section 2</h2>
  <p>More text.</p>
</body>
</html>
"""

CSS = """/* main styles */
body {
    margin: 0;
    padding: 0;
}

p {
    text-indent: 1em;
}
"""


def noise_image(size: tuple[int, int], mode: str = "RGB", seed: int = 0) -> Image.Image:
    """Incompressible image content, so encoders cannot cheat."""
    channels = len(mode)
    data = random.Random(seed).randbytes(size[0] * size[1] * channels)
    return Image.frombytes(mode, size, data)


def zip_book(source_dir: Path, dest: Path) -> Path:
    """Pack a directory as an EPUB with ``mimetype`` first and stored."""
    with zipfile.ZipFile(dest, "w") as archive:
        archive.writestr(
            zipfile.ZipInfo("mimetype"), "application/epub+zip", compress_type=zipfile.ZIP_STORED
        )
        for path in sorted(source_dir.rglob("*")):
            arcname = path.relative_to(source_dir).as_posix()
            if path.is_file() and arcname != "mimetype":
                archive.write(path, arcname, compress_type=zipfile.ZIP_DEFLATED)
    return dest


def write_book(
    root: Path,
    content_dir: str = "OEBPS",
    extra_items: str = "",
    chapter: str = CHAPTER,
) -> Path:
    """Write a small EPUB3 book (with NCX) into ``root`` and return it."""
    content = root / content_dir if content_dir else root
    (root / "META-INF").mkdir(parents=True, exist_ok=True)
    (content / "images").mkdir(parents=True, exist_ok=True)
    (content / "styles").mkdir(parents=True, exist_ok=True)

    opf = f"{content_dir}/content.opf" if content_dir else "content.opf"
    (root / "mimetype").write_text("application/epub+zip", encoding="ascii")
    (root / "META-INF" / "container.xml").write_text(CONTAINER_XML.format(opf=opf), encoding="utf-8")
    (content / "content.opf").write_text(OPF.format(extra_items=extra_items), encoding="utf-8")
    (content / "nav.xhtml").write_text(NAV, encoding="utf-8")
    (content / "toc.ncx").write_text(NCX, encoding="utf-8")
    (content / "cover.xhtml").write_text(COVER, encoding="utf-8")
    (content / "chapter1.xhtml").write_text(chapter, encoding="utf-8")
    (content / "styles" / "style.css").write_text(CSS, encoding="utf-8")
    Image.new("RGB", (60, 90), (200, 30, 30)).save(content / "images" / "cover.jpg", quality=90)
    return root


@pytest.fixture
def book_dir(tmp_path: Path) -> Path:
    """An extracted book using the ``OEBPS`` layout."""
    return write_book(tmp_path / "book")


@pytest.fixture
def content_path(book_dir: Path) -> Path:
    return book_dir / "OEBPS"


@pytest.fixture
def epub_file(tmp_path: Path) -> Path:
    """A packaged book with a large opaque PNG worth converting."""
    root = write_book(
        tmp_path / "src",
        extra_items='    <item id="photo" href="images/photo.png" media-type="image/png"/>\n',
        chapter=CHAPTER.replace(
            "<p>More text.</p>", '<p>More text.</p>\n  <img src="images/photo.png" alt="Photo"/>'
        ),
    )
    noise_image((400, 400)).save(root / "OEBPS" / "images" / "photo.png")
    return zip_book(root, tmp_path / "Test Book.epub")


@pytest.fixture
def config(tmp_path: Path) -> OptimizerConfig:
    return OptimizerConfig(input_path=tmp_path / "in.epub", output_path=tmp_path / "out.epub")
