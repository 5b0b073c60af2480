"""Data models for stage and pipeline results."""

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class PipelineState(str, Enum):
    """Where a pipeline run currently is."""

    EXTRACTING = "extracting"
    REPAIRING = "repairing"
    TRANSFORMING = "transforming"
    STRUCTURE_UPDATING = "structure_updating"
    REPACKAGING = "repackaging"
    VALIDATING = "validating"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


class FileFailure(BaseModel):
    """A single file a stage could not process."""

    path: str
    operation: str
    message: str


class StageReport(BaseModel):
    """Outcome of one stage over the working directory."""

    name: str
    processed: int = 0
    changed: int = 0
    skipped: int = 0
    bytes_before: int = 0
    bytes_after: int = 0
    failures: list[FileFailure] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    skipped_reason: str | None = None

    @property
    def bytes_saved(self) -> int:
        return self.bytes_before - self.bytes_after

    def record_size(self, before: int, after: int) -> None:
        """Account for one changed file."""
        self.changed += 1
        self.bytes_before += before
        self.bytes_after += after

    def fail(self, path: Path | str, operation: str, error: BaseException) -> FileFailure:
        failure = FileFailure(path=str(path), operation=operation, message=str(error))
        self.failures.append(failure)
        return failure


class ValidationResult(BaseModel):
    """Verdict of the external conformance checker."""

    ran: bool
    passed: bool
    exit_code: int = 0
    command: list[str] = Field(default_factory=list)
    output: str = ""


class PipelineResult(BaseModel):
    """Complete record of one optimization run."""

    state: PipelineState = PipelineState.EXTRACTING
    input_path: str
    output_path: str
    work_dir: str
    work_dir_removed: bool = False
    started_at: datetime = Field(default_factory=datetime.now)
    original_size: int = 0
    optimized_size: int = 0
    reports: list[StageReport] = Field(default_factory=list)
    validation: ValidationResult | None = None
    error: str | None = None

    @property
    def bytes_saved(self) -> int:
        return self.original_size - self.optimized_size

    @property
    def reduction_percent(self) -> float:
        if self.original_size <= 0:
            return 0.0
        return self.bytes_saved / self.original_size * 100

    @property
    def failures(self) -> list[FileFailure]:
        return [f for report in self.reports for f in report.failures]

    @property
    def exit_code(self) -> int:
        """Process exit status for this run."""
        if self.state == PipelineState.FAILED:
            return 1
        if self.validation is not None and not self.validation.passed:
            return self.validation.exit_code or 1
        return 0
