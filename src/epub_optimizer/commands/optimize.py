"""Optimize command implementation."""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from epub_optimizer.core.pipeline import EpubPipeline
from epub_optimizer.core.stages import CONTENT_STAGES
from epub_optimizer.core.utils import format_file_size
from epub_optimizer.models.config import OptimizerConfig
from epub_optimizer.models.report import PipelineResult, PipelineState

STATE_DESCRIPTIONS = {
    PipelineState.EXTRACTING: "Extracting EPUB...",
    PipelineState.REPAIRING: "Repairing markup...",
    PipelineState.STRUCTURE_UPDATING: "Updating package structure...",
    PipelineState.REPACKAGING: "Creating optimized EPUB...",
    PipelineState.VALIDATING: "Validating with EPUBCheck...",
    PipelineState.CLEANING_UP: "Cleaning up...",
    PipelineState.DONE: "Done",
    PipelineState.FAILED: "Failed",
}

STAGE_DESCRIPTIONS = {stage.name: f"{stage.description}..." for stage in CONTENT_STAGES}


def describe_state(state: PipelineState, detail: str | None) -> str:
    if state == PipelineState.TRANSFORMING and detail:
        return STAGE_DESCRIPTIONS.get(detail, f"Running {detail}...")
    return STATE_DESCRIPTIONS.get(state, state.value)


def display_stage_table(result: PipelineResult, console: Console) -> None:
    """Show what each stage did."""
    table = Table(title="Stages", show_header=True, header_style="bold cyan")
    table.add_column("Stage", style="white")
    table.add_column("Files", justify="right", style="dim")
    table.add_column("Changed", justify="right", style="green")
    table.add_column("Saved", justify="right", style="green")
    table.add_column("Failures", justify="right")

    for report in result.reports:
        if report.skipped_reason:
            table.add_row(report.name, "[dim]skipped[/]", "", "", f"[dim]{report.skipped_reason}[/]")
            continue
        failures = f"[red]{len(report.failures)}[/]" if report.failures else "0"
        table.add_row(
            report.name,
            str(report.processed),
            str(report.changed),
            format_file_size(report.bytes_saved) if report.bytes_saved > 0 else "—",
            failures,
        )

    console.print(table)


def display_summary(result: PipelineResult, console: Console) -> None:
    """Show the size comparison and validation verdict."""
    lines = [
        f"[dim]Original:[/]  {format_file_size(result.original_size)}",
        f"[dim]Optimized:[/] {format_file_size(result.optimized_size)}",
        f"[dim]Reduction:[/] {result.reduction_percent:.2f}% "
        f"({format_file_size(result.bytes_saved)} saved)",
    ]

    validation = result.validation
    if validation is None:
        lines.append("[dim]Validation:[/] disabled")
    elif not validation.ran and validation.passed:
        lines.append("[yellow]Validation:[/] skipped (EPUBCheck not available)")
    elif validation.passed:
        lines.append("[green]Validation:[/] passed")
    else:
        lines.append(f"[red]Validation:[/] failed (exit code {validation.exit_code})")

    if result.work_dir_removed:
        lines.append("[dim]Working directory removed[/]")
    else:
        lines.append(f"[dim]Working directory:[/] {escape(result.work_dir)}")

    border = "green" if result.exit_code == 0 else "red"
    console.print(
        Panel(
            "\n".join(lines),
            title=f"[bold]{escape(result.output_path)}[/]",
            border_style=border,
        )
    )


def display_failures(result: PipelineResult, console: Console) -> None:
    if not result.failures:
        return
    console.print()
    console.print(f"[yellow]{len(result.failures)} file(s) could not be processed:[/]")
    for failure in result.failures:
        target = failure.path or "(stage)"
        console.print(
            f"  [yellow]⚠[/] {escape(target)} [dim]({failure.operation})[/]: {escape(failure.message)}"
        )


def execute_optimize(
    config: OptimizerConfig,
    quiet: bool,
    console: Console,
) -> int:
    """Execute the optimize command. Returns the process exit code."""
    if quiet:
        result = EpubPipeline(config).run()
    else:
        console.print(f"[bold]Optimizing[/] {escape(config.input_path.name)}")
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Starting...", total=None)

            def on_state(state: PipelineState, detail: str | None) -> None:
                progress.update(task, description=describe_state(state, detail))

            result = EpubPipeline(config, on_state=on_state).run()

    if not quiet:
        console.print()
        display_stage_table(result, console)
        display_failures(result, console)
        console.print()
        display_summary(result, console)

    validation = result.validation
    if validation is not None and not validation.passed and validation.output:
        console.print()
        console.print(validation.output, markup=False, highlight=False)

    return result.exit_code
