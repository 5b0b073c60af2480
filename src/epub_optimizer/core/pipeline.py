"""Run every optimization stage over one EPUB, in order.

The pipeline owns the working directory: it extracts the book, hands the
directory to each stage, repacks it and optionally removes it. Only
extraction, packaging and bad paths stop a run; everything in between is
recorded in the stage reports and the run continues.
"""

import logging
import shutil
from pathlib import Path
from typing import Callable, Optional

from epub_optimizer.core.archive import compress_epub, extract_epub
from epub_optimizer.core.repair import repair_documents
from epub_optimizer.core.stages import CONTENT_STAGES
from epub_optimizer.core.structure import update_structure
from epub_optimizer.core.utils import format_file_size
from epub_optimizer.core.validator import EpubCheckValidator
from epub_optimizer.errors import (
    InputNotFoundError,
    OutputDirectoryError,
    ValidationError,
    WorkDirectoryError,
)
from epub_optimizer.models.config import OptimizerConfig
from epub_optimizer.models.report import (
    PipelineResult,
    PipelineState,
    StageReport,
    ValidationResult,
)

log = logging.getLogger(__name__)

StateCallback = Callable[[PipelineState, Optional[str]], None]
StageFn = Callable[[Path, OptimizerConfig], StageReport]


class EpubPipeline:
    """Optimize one EPUB according to an :class:`OptimizerConfig`."""

    def __init__(
        self,
        config: OptimizerConfig,
        on_state: StateCallback | None = None,
        validator: EpubCheckValidator | None = None,
    ):
        self.config = config
        self.on_state = on_state
        self.validator = validator or EpubCheckValidator(jar_path=config.epubcheck_jar)
        self.result = PipelineResult(
            input_path=str(config.input_path),
            output_path=str(config.output_path),
            work_dir=str(config.working_dir),
        )

    def _enter(self, state: PipelineState, detail: str | None = None) -> None:
        self.result.state = state
        log.debug("Pipeline state: %s%s", state.value, f" ({detail})" if detail else "")
        if self.on_state is not None:
            self.on_state(state, detail)

    def _check_paths(self) -> None:
        input_path = self.config.input_path
        if not input_path.is_file():
            raise InputNotFoundError(input_path)

        work_dir = self.config.working_dir.resolve()
        for path in (input_path, self.config.output_path):
            if work_dir == path.resolve() or work_dir in path.resolve().parents:
                raise WorkDirectoryError(f"Working directory {work_dir} must not contain {path}")

        output_dir = self.config.output_path.parent
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputDirectoryError(f"Cannot create output directory {output_dir}: {e}") from e

    def _run_stage(self, name: str, fn: StageFn) -> StageReport:
        """Run one non-fatal stage; an escaping error becomes a failed report."""
        try:
            report = fn(self.config.working_dir, self.config)
        except Exception as e:
            log.error("Stage %s failed: %s", name, e)
            report = StageReport(name=name)
            report.fail("", name, e)
        self.result.reports.append(report)
        return report

    def _validate(self, epub_path: Path) -> ValidationResult:
        try:
            return self.validator.validate(epub_path)
        except ValidationError as e:
            log.error("Validation could not complete: %s", e)
            return ValidationResult(ran=False, passed=False, exit_code=1, output=str(e))

    def _clean_up(self) -> None:
        work_dir = self.config.working_dir
        if not self.config.clean:
            log.info("Working directory kept at %s", work_dir)
            return
        try:
            shutil.rmtree(work_dir)
            self.result.work_dir_removed = True
            log.debug("Removed working directory %s", work_dir)
        except OSError as e:
            log.warning("Could not remove working directory %s: %s", work_dir, e)

    def run(self) -> PipelineResult:
        """Execute the whole run.

        Raises:
            InputNotFoundError: The input file does not exist.
            OutputDirectoryError: The output directory cannot be created.
            WorkDirectoryError: The working directory overlaps the input or output.
            ArchiveError: Extraction or packaging failed.
        """
        config = self.config
        work_dir = config.working_dir
        result = self.result

        try:
            self._check_paths()
            result.original_size = config.input_path.stat().st_size

            self._enter(PipelineState.EXTRACTING)
            extract_epub(config.input_path, work_dir)
            log.info("Extracted %s to %s", config.input_path.name, work_dir)

            self._enter(PipelineState.REPAIRING)
            self._run_stage("repair-markup", repair_documents)

            for stage in CONTENT_STAGES:
                self._enter(PipelineState.TRANSFORMING, stage.name)
                self._run_stage(stage.name, stage.fn)

            self._enter(PipelineState.STRUCTURE_UPDATING)
            self._run_stage("update-structure", update_structure)

            self._enter(PipelineState.REPACKAGING)
            compress_epub(config.output_path, work_dir)
            result.optimized_size = config.output_path.stat().st_size
            log.info(
                "Packaged %s: %s → %s",
                config.output_path.name,
                format_file_size(result.original_size),
                format_file_size(result.optimized_size),
            )

            if config.validate_output:
                self._enter(PipelineState.VALIDATING)
                result.validation = self._validate(config.output_path)

            self._enter(PipelineState.CLEANING_UP)
            self._clean_up()

            self._enter(PipelineState.DONE)
        except Exception as e:
            result.error = str(e)
            self._enter(PipelineState.FAILED)
            log.error("Optimization failed: %s", e)
            raise

        return result
