"""Info command implementation."""

import tempfile
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from epub_optimizer.core.archive import extract_epub
from epub_optimizer.core.book_info import BookInfoReader
from epub_optimizer.core.locator import get_content_dir, get_opf_path, get_toc_files
from epub_optimizer.core.markup import iter_markup_files
from epub_optimizer.core.utils import format_file_size
from epub_optimizer.errors import StructureError

ASSET_GROUPS = {
    "Documents": (".xhtml", ".html", ".htm"),
    "Stylesheets": (".css",),
    "Scripts": (".js",),
    "Images": (".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".svg"),
    "Fonts": (".ttf", ".otf", ".woff", ".woff2"),
}


def summarize_assets(epub_dir: Path) -> list[tuple[str, int, int]]:
    """(group, file count, total bytes) for each asset group present."""
    files = [p for p in epub_dir.rglob("*") if p.is_file()]
    rows = []
    for group, suffixes in ASSET_GROUPS.items():
        matched = [p for p in files if p.suffix.lower() in suffixes]
        if matched:
            rows.append((group, len(matched), sum(p.stat().st_size for p in matched)))
    return rows


def execute_info(epub_path: Path, console: Console) -> None:
    """Show metadata, package layout and asset sizes of an EPUB."""
    metadata = BookInfoReader(epub_path).metadata()

    info_lines = [
        f"[bold]{escape(metadata.title)}[/]",
        "",
        f"[dim]Author(s):[/] {escape(', '.join(metadata.authors)) or 'Unknown'}",
        f"[dim]Language:[/] {metadata.language or 'Unknown'}",
        f"[dim]Publisher:[/] {escape(metadata.publisher or 'Unknown')}",
        f"[dim]Identifier:[/] {escape(metadata.identifier or 'Unknown')}",
        f"[dim]EPUB version:[/] {metadata.epub_version or 'Unknown'}",
        f"[dim]Cover image:[/] {escape(metadata.cover_image or 'none')}",
        f"[dim]Spine items:[/] {metadata.spine_length}",
        f"[dim]File size:[/] {format_file_size(epub_path.stat().st_size)}",
    ]

    with tempfile.TemporaryDirectory(prefix="epub-info-") as tmp:
        epub_dir = Path(tmp) / "book"
        extract_epub(epub_path, epub_dir)

        try:
            opf_path = get_opf_path(epub_dir)
            info_lines.append(f"[dim]Package document:[/] {opf_path.relative_to(epub_dir).as_posix()}")
            toc = get_toc_files(epub_dir)
            nav = toc.nav.relative_to(epub_dir).as_posix() if toc.nav else "none"
            ncx = toc.ncx.relative_to(epub_dir).as_posix() if toc.ncx else "none"
            info_lines.append(f"[dim]Navigation:[/] {nav}")
            info_lines.append(f"[dim]NCX:[/] {ncx}")
        except StructureError as e:
            info_lines.append(f"[yellow]⚠ {escape(str(e))}[/]")

        content_dir = get_content_dir(epub_dir)
        info_lines.append(f"[dim]Content directory:[/] {content_dir or '(root)'}")
        info_lines.append(
            f"[dim]Content documents:[/] {len(iter_markup_files(epub_dir / content_dir))}"
        )

        assets = summarize_assets(epub_dir)

    console.print()
    console.print(
        Panel(
            "\n".join(info_lines),
            title="Book Information",
            border_style="green",
        )
    )

    console.print()
    table = Table(title="Contents", show_header=True, header_style="bold cyan")
    table.add_column("Type", style="white")
    table.add_column("Files", justify="right", style="dim")
    table.add_column("Size", justify="right", style="green")
    for group, count, size in assets:
        table.add_row(group, str(count), format_file_size(size))
    console.print(table)
    console.print()
