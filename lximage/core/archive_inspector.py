"""Archive Inspector — validates the input archive and classifies its format.

Classification is by content signature, never by file extension:

======================  ===============================  =========
Format                  Signature                        tar flag
======================  ===============================  =========
gzip                    ``1f 8b`` at offset 0            ``z``
bzip2                   ``BZh`` at offset 0              ``j``
compress (``.Z``)       ``1f 9d`` at offset 0            ``Z``
POSIX / GNU tar         ``ustar`` at offset 257          (none)
======================  ===============================  =========

Alternatively an injected ``ContentDescriber`` (``file -b`` through the command
runner) supplies a description whose first word selects the format.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from lximage.core.commands import CommandRunner, SubprocessRunner
from lximage.core.errors import ArchivePrecondition, CommandFailed, UnsupportedArchiveFormat
from lximage.models.build import ArchiveClassification

logger = logging.getLogger(__name__)

_TAR_MAGIC_OFFSET = 257
_HEADER_BYTES = 512

_PREFIX_SIGNATURES: list[tuple[bytes, ArchiveClassification]] = [
    (b"\x1f\x8b", ArchiveClassification.GZIP),
    (b"BZh", ArchiveClassification.BZIP2),
    (b"\x1f\x9d", ArchiveClassification.COMPRESS),
]

# First word of `file -b` output for each format.
_DESCRIPTION_WORDS: dict[str, ArchiveClassification] = {
    "gzip": ArchiveClassification.GZIP,
    "bzip2": ArchiveClassification.BZIP2,
    "compress'd": ArchiveClassification.COMPRESS,
    "posix": ArchiveClassification.TAR,
    "tar": ArchiveClassification.TAR,
}


def check_archive_path(path: Path) -> Path:
    """Enforce the archive preconditions, in order.

    The relative-path check runs first and touches no filesystem state.
    Returns *path* unchanged when every check passes.
    """
    if not path.is_absolute():
        raise ArchivePrecondition(f"archive path must be absolute: {path}")
    if not path.exists():
        raise ArchivePrecondition(f"archive does not exist: {path}")
    if not path.is_file():
        raise ArchivePrecondition(f"archive is not a regular file: {path}")
    if not os.access(path, os.R_OK):
        raise ArchivePrecondition(f"archive is not readable: {path}")
    return path


def classify_description(description: str) -> ArchiveClassification:
    """Map a ``file -b`` style description to a classification."""
    words = description.strip().split()
    first = words[0].lower() if words else ""
    try:
        return _DESCRIPTION_WORDS[first]
    except KeyError:
        raise UnsupportedArchiveFormat(
            f"unsupported archive type: {description.strip() or 'empty description'}"
        ) from None


@runtime_checkable
class ContentDescriber(Protocol):
    """Protocol for describing a file's content type as text."""

    def describe(self, path: Path) -> str: ...


class FileCommandDescriber:
    """Describes content with ``file -b``."""

    def __init__(self, runner: CommandRunner | None = None, file_bin: str = "file") -> None:
        self._runner = runner or SubprocessRunner()
        self._file = file_bin

    def describe(self, path: Path) -> str:
        try:
            return self._runner.run([self._file, "-b", str(path)]).stdout.strip()
        except CommandFailed as exc:
            raise ArchivePrecondition(f"could not inspect {path}: {exc}") from exc


class ArchiveInspector:
    """Classifies an archive by its content.

    With a *describer* the classification comes from its description
    (``file -b`` output); otherwise the leading bytes are matched against
    the signature table above.
    """

    def __init__(self, describer: ContentDescriber | None = None) -> None:
        self._describer = describer

    def classify(self, path: Path) -> ArchiveClassification:
        if self._describer is not None:
            description = self._describer.describe(path)
            classification = classify_description(description)
            logger.info("archive %s classified as %s (%s)", path, classification.value, description)
            return classification
        return self._classify_signature(path)

    def _classify_signature(self, path: Path) -> ArchiveClassification:
        try:
            with open(path, "rb") as fh:
                header = fh.read(_HEADER_BYTES)
        except OSError as exc:
            raise ArchivePrecondition(f"archive is not readable: {path}: {exc}") from exc

        for signature, classification in _PREFIX_SIGNATURES:
            if header.startswith(signature):
                logger.info("archive %s classified as %s", path, classification.value)
                return classification

        magic = header[_TAR_MAGIC_OFFSET:_TAR_MAGIC_OFFSET + 5]
        if magic == b"ustar":
            logger.info("archive %s classified as tar", path)
            return ArchiveClassification.TAR

        raise UnsupportedArchiveFormat(
            f"unsupported archive type: {path} matches no gzip, bzip2, "
            "compress or tar signature"
        )
