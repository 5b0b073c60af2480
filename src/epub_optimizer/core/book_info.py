"""Read package metadata for the info command using ebooklib."""

from pathlib import Path

import ebooklib
from ebooklib import epub

from epub_optimizer.models.epub import BookMetadata


class BookInfoReader:
    """Read descriptive metadata and cover details from an EPUB file."""

    def __init__(self, epub_path: Path):
        self.path = epub_path
        self.book = epub.read_epub(str(epub_path), options={"ignore_ncx": True})

    def _first(self, name: str) -> str | None:
        values = self.book.get_metadata("DC", name)
        return values[0][0] if values else None

    def cover_image(self) -> str | None:
        """Path of the cover image inside the package, if one is declared.

        EPUB 3 marks it with the ``cover-image`` manifest property; EPUB 2
        names its manifest id in ``<meta name="cover">``.
        """
        for item in self.book.get_items_of_type(ebooklib.ITEM_COVER):
            return item.get_name()
        opf_meta = self.book.metadata.get(epub.NAMESPACES["OPF"], {})
        for _, attrs in opf_meta.get("cover", []):
            item = self.book.get_item_with_id((attrs or {}).get("content"))
            if item is not None:
                return item.get_name()
        return None

    def metadata(self) -> BookMetadata:
        authors = self.book.get_metadata("DC", "creator")
        return BookMetadata(
            title=self._first("title") or "Unknown Title",
            authors=[a[0] for a in authors],
            language=self._first("language"),
            publisher=self._first("publisher"),
            identifier=self._first("identifier"),
            epub_version=self.book.version,
            cover_image=self.cover_image(),
            spine_length=len(self.book.spine),
        )
