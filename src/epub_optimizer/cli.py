"""Main CLI application."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import pydantic
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from epub_optimizer import __version__
from epub_optimizer.commands.info import execute_info
from epub_optimizer.commands.optimize import execute_optimize
from epub_optimizer.commands.validate import execute_validate
from epub_optimizer.errors import EpubOptimizerError
from epub_optimizer.models.config import OptimizerConfig, default_output_path

app = typer.Typer(
    name="epub-optimizer",
    help="Shrink EPUB files and repair their markup.",
    add_completion=False,
)

console = Console()

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("fontTools", "PIL")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Route log records through rich on the shared console."""
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def version_callback(value: bool) -> None:
    if value:
        console.print(f"epub-optimizer {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show the version and exit",
        ),
    ] = False,
) -> None:
    """Shrink EPUB files and repair their markup."""


@app.command()
def optimize(
    input_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the EPUB to optimize",
            exists=True,
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
    output: Annotated[
        Optional[Path],
        typer.Option(
            "--output",
            "-o",
            help="Output EPUB path (default: {book_name}_optimized.epub)",
        ),
    ] = None,
    work_dir: Annotated[
        Optional[Path],
        typer.Option(
            "--work-dir",
            "-w",
            help="Working directory (default: {book_name}_work/ beside the input)",
        ),
    ] = None,
    clean: Annotated[
        bool,
        typer.Option(
            "--clean",
            help="Remove the working directory when done",
        ),
    ] = False,
    jpg_quality: Annotated[
        int,
        typer.Option(
            "--jpg-quality",
            help="JPEG quality (0-100)",
            min=0,
            max=100,
        ),
    ] = 70,
    png_quality: Annotated[
        tuple[float, float],
        typer.Option(
            "--png-quality",
            help="PNG quality range MIN MAX (each 0-1)",
        ),
    ] = (0.6, 0.8),
    lang: Annotated[
        str,
        typer.Option(
            "--lang",
            "-l",
            help="Language for generated labels (en, fr, de, es, it)",
        ),
    ] = "en",
    epubcheck_jar: Annotated[
        Optional[Path],
        typer.Option(
            "--epubcheck-jar",
            help="Path to epubcheck.jar (default: epubcheck on PATH)",
        ),
    ] = None,
    no_validate: Annotated[
        bool,
        typer.Option(
            "--no-validate",
            help="Skip EPUBCheck validation",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show debug output",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Only show warnings and errors",
        ),
    ] = False,
) -> None:
    """Optimize an EPUB: repair markup, shrink assets and repack it."""
    setup_logging(verbose=verbose, quiet=quiet)

    try:
        config = OptimizerConfig(
            input_path=input_path,
            output_path=(output or default_output_path(input_path)).resolve(),
            work_dir=work_dir.resolve() if work_dir else None,
            clean=clean,
            jpeg_quality=jpg_quality,
            png_quality=png_quality,
            lang=lang,
            validate_output=not no_validate,
            epubcheck_jar=epubcheck_jar,
        )
    except pydantic.ValidationError as e:
        for error in e.errors():
            console.print(f"[red]Invalid option: {error['msg']}[/]")
        raise typer.Exit(1)

    try:
        exit_code = execute_optimize(config=config, quiet=quiet, console=console)
    except EpubOptimizerError as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if exit_code:
        raise typer.Exit(exit_code)


@app.command()
def info(
    input_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the EPUB file",
            exists=True,
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
) -> None:
    """Display book metadata, package layout and asset sizes."""
    setup_logging(quiet=True)

    try:
        execute_info(epub_path=input_path, console=console)
    except Exception as e:
        console.print(f"[red]Error reading file: {escape(str(e))}[/]")
        raise typer.Exit(1)


@app.command()
def validate(
    input_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the EPUB file",
            exists=True,
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
    epubcheck_jar: Annotated[
        Optional[Path],
        typer.Option(
            "--epubcheck-jar",
            help="Path to epubcheck.jar (default: epubcheck on PATH)",
        ),
    ] = None,
) -> None:
    """Check an EPUB with EPUBCheck."""
    setup_logging(quiet=True)

    try:
        exit_code = execute_validate(epub_path=input_path, jar_path=epubcheck_jar, console=console)
    except EpubOptimizerError as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if exit_code:
        raise typer.Exit(exit_code)


if __name__ == "__main__":
    app()
