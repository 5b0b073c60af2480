"""Validate command implementation."""

from pathlib import Path

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from epub_optimizer.core.validator import EpubCheckValidator


def execute_validate(
    epub_path: Path,
    jar_path: Path | None,
    console: Console,
) -> int:
    """Run EPUBCheck on an existing file. Returns the process exit code."""
    validator = EpubCheckValidator(jar_path=jar_path)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Validating {epub_path.name}...", total=None)
        result = validator.validate(epub_path)

    if not result.ran:
        console.print("[yellow]EPUBCheck is not available; install it or pass --epubcheck-jar[/]")
        return 0

    if result.output:
        console.print(result.output, markup=False, highlight=False)

    if result.passed:
        console.print(f"[green]✓ {epub_path.name} passed validation[/]")
        return 0

    console.print(f"[red]✗ {epub_path.name} failed validation (exit code {result.exit_code})[/]")
    return result.exit_code or 1
