"""Archive extraction port and the tar-backed default."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from lximage.core.commands import CommandRunner, SubprocessRunner
from lximage.core.errors import CommandFailed, ExtractionFailed
from lximage.models.build import ArchiveClassification

logger = logging.getLogger(__name__)


@runtime_checkable
class Extractor(Protocol):
    """Protocol for unpacking an archive into a directory."""

    def extract(
        self,
        archive: Path,
        destination: Path,
        classification: ArchiveClassification,
        strip_components: int,
    ) -> None:
        """Unpack *archive* under *destination*, blocking until done.

        Raises ``ExtractionFailed`` if the archive could not be unpacked.
        """
        ...


class TarExtractor:
    """Extracts with GNU tar, selecting the decompression flag by format.

    Parameters
    ----------
    runner:
        Command runner used to invoke tar.
    tar_bin:
        GNU tar executable (``--strip-components`` is required).
    """

    def __init__(self, runner: CommandRunner | None = None, tar_bin: str = "gtar") -> None:
        self._runner = runner or SubprocessRunner()
        self._tar_bin = tar_bin

    def build_argv(
        self,
        archive: Path,
        destination: Path,
        classification: ArchiveClassification,
        strip_components: int,
    ) -> list[str]:
        return [
            self._tar_bin,
            f"-x{classification.tar_flag}f",
            str(archive),
            "-C",
            str(destination),
            f"--strip-components={strip_components}",
        ]

    def extract(
        self,
        archive: Path,
        destination: Path,
        classification: ArchiveClassification,
        strip_components: int,
    ) -> None:
        argv = self.build_argv(archive, destination, classification, strip_components)
        logger.info("extracting %s into %s", archive, destination)
        try:
            self._runner.run(argv)
        except CommandFailed as exc:
            raise ExtractionFailed(f"failed to extract {archive}: {exc}") from exc
