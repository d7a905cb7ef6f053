"""Artifact Serializer — compresses a byte stream into the image file.

Output is staged under ``<target>.partial`` and renamed onto *target* only
after the source stream has closed cleanly, so an interrupted or failed
send never leaves a truncated image under its final name.
"""

from __future__ import annotations

import gzip
import logging
import os
import shutil
from collections.abc import Callable
from contextlib import AbstractContextManager
from pathlib import Path
from typing import BinaryIO

from lximage.core.errors import DatasetOperationFailed

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024

StreamOpener = Callable[[], AbstractContextManager[BinaryIO]]


def partial_path(target: Path) -> Path:
    return target.with_name(target.name + ".partial")


class ArtifactSerializer:
    """Gzip writer with write-then-rename semantics.

    Parameters
    ----------
    compression_level:
        gzip level, 1-9.  Defaults to maximum effort.
    """

    def __init__(self, compression_level: int = 9) -> None:
        self.compression_level = compression_level

    def write(self, open_stream: StreamOpener, target: Path) -> Path:
        """Drain the stream returned by *open_stream* into *target*.

        *open_stream* is called once and must return a context manager
        yielding a readable binary stream.  Errors raised when that context
        exits (for example a failed ``zfs send``) discard the staged file.
        """
        staging = partial_path(target)
        logger.info("writing %s (gzip level %d)", target, self.compression_level)
        try:
            with gzip.open(staging, "wb", compresslevel=self.compression_level) as sink:
                with open_stream() as source:
                    shutil.copyfileobj(source, sink, _CHUNK_SIZE)
        except OSError as exc:
            staging.unlink(missing_ok=True)
            raise DatasetOperationFailed(f"failed writing image {target}: {exc}") from exc
        except BaseException:
            staging.unlink(missing_ok=True)
            raise

        try:
            os.replace(staging, target)
        except OSError as exc:
            staging.unlink(missing_ok=True)
            raise DatasetOperationFailed(f"could not move image into place at {target}: {exc}") from exc

        logger.info("wrote %s (%d bytes)", target, target.stat().st_size)
        return target
