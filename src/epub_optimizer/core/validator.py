"""Run EPUBCheck against a packaged book."""

import logging
import shutil
import subprocess
from pathlib import Path

from epub_optimizer.errors import ValidationError
from epub_optimizer.models.report import ValidationResult

log = logging.getLogger(__name__)


class EpubCheckValidator:
    """Invoke EPUBCheck through ``java -jar`` or an ``epubcheck`` executable."""

    TIMEOUT_SECONDS = 600
    EXECUTABLE = "epubcheck"

    def __init__(
        self,
        jar_path: Path | None = None,
        java: str = "java",
        timeout: float = TIMEOUT_SECONDS,
    ):
        self.jar_path = jar_path
        self.java = java
        self.timeout = timeout

    def command(self) -> list[str] | None:
        """Command prefix to run, or None when no checker is available.

        Raises:
            ValidationError: A jar was configured but cannot be run.
        """
        if self.jar_path is not None:
            if not self.jar_path.is_file():
                raise ValidationError(f"EPUBCheck jar not found: {self.jar_path}")
            if shutil.which(self.java) is None:
                raise ValidationError(f"Java executable not found: {self.java}")
            return [self.java, "-jar", str(self.jar_path)]

        executable = shutil.which(self.EXECUTABLE)
        if executable is None:
            return None
        return [executable]

    def validate(self, epub_path: Path) -> ValidationResult:
        """Check ``epub_path``; a failing book is a result, not an exception.

        Raises:
            ValidationError: The checker could not be run to completion.
        """
        prefix = self.command()
        if prefix is None:
            log.warning("EPUBCheck not available, skipping validation")
            return ValidationResult(ran=False, passed=True)

        cmd = [*prefix, str(epub_path)]
        log.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise ValidationError(f"EPUBCheck timed out after {self.timeout}s")
        except OSError as e:
            raise ValidationError(f"Could not run EPUBCheck: {e}") from e

        output = "\n".join(part for part in (result.stdout, result.stderr) if part)
        passed = result.returncode == 0
        if passed:
            log.info("EPUBCheck passed")
        else:
            log.error("EPUBCheck reported errors (exit code %d)", result.returncode)
        return ValidationResult(
            ran=True,
            passed=passed,
            exit_code=result.returncode,
            command=cmd,
            output=output,
        )
