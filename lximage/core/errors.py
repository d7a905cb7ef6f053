"""Error taxonomy for the image-build pipeline.

Every error is fatal.  The pipeline controller marks the run failed and
re-raises; the CLI prints a one-line ``ERROR:`` message and exits 1.
"""

from __future__ import annotations


class ImageBuildError(RuntimeError):
    """Base class for every failure the pipeline reports to the operator."""


class InvalidInput(ImageBuildError):
    """Missing or malformed front-end options."""


class ArchivePrecondition(ImageBuildError):
    """The archive path is relative, missing, not a file, or unreadable."""


class UnsupportedArchiveFormat(ImageBuildError):
    """The archive's content signature matches no supported format."""


class ExtractionFailed(ImageBuildError):
    """Populating the dataset from the archive failed.

    Raised only after the dataset has been destroyed.
    """


class LinkerConfigFailed(ImageBuildError):
    """Generating a dynamic-linker configuration failed."""


class LayoutAdaptationFailed(ImageBuildError):
    """Creating the native subtree or writing the mount table failed."""


class ManifestGenerationFailed(ImageBuildError):
    """The manifest tool failed or produced no output."""


class DatasetOperationFailed(ImageBuildError):
    """A create, snapshot, send, or destroy call on the dataset failed."""


class CommandFailed(ImageBuildError):
    """An external command exited non-zero or could not be started.

    Stages catch this and re-raise the taxonomy error for their step.
    """

    def __init__(self, argv: list[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(
            f"{argv[0]} exited with status {returncode}{detail}"
        )
