"""Exceptions raised while optimizing an EPUB."""

from pathlib import Path


class EpubOptimizerError(Exception):
    """Base class for every error this package raises."""


class InputNotFoundError(EpubOptimizerError):
    """The input EPUB does not exist."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Input file not found: {path}")


class OutputDirectoryError(EpubOptimizerError):
    """The output file's parent directory could not be created."""


class WorkDirectoryError(EpubOptimizerError):
    """The working directory would overlap the input or output file."""


class ArchiveError(EpubOptimizerError):
    """Reading or writing the ZIP container failed."""


class ExtractionError(ArchiveError):
    """The EPUB could not be extracted."""


class CompressionError(ArchiveError):
    """The working directory could not be packed into an EPUB."""


class StructureError(EpubOptimizerError):
    """A required structural file is missing or unusable."""


class ContainerNotFoundError(StructureError):
    """META-INF/container.xml is missing."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Container file not found: {path}")


class OPFReferenceMissingError(StructureError):
    """container.xml names no package document."""


class OPFFileMissingError(StructureError):
    """The package document named by container.xml does not exist."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"OPF file not found: {path}")


class ValidationError(EpubOptimizerError):
    """The validator could not be run to completion."""


class RepairError(EpubOptimizerError):
    """A document could not be turned into well-formed XML."""
