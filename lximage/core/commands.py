"""External command execution port.

Every host tool the pipeline drives (``zfs``, ``tar``, ``crle``,
``create-manifest``) goes through a ``CommandRunner``.  The default
``SubprocessRunner`` blocks until the command exits; tests substitute a
recording fake.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from typing import BinaryIO, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from lximage.core.errors import CommandFailed

logger = logging.getLogger(__name__)


class CommandResult(BaseModel):
    """Captured outcome of a completed command."""

    model_config = ConfigDict(frozen=True)

    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class CommandRunner(Protocol):
    """Protocol for running host commands synchronously."""

    def run(self, argv: list[str], *, check: bool = True) -> CommandResult:
        """Run *argv* to completion and capture its text output.

        Raises ``CommandFailed`` on a non-zero exit when *check* is set.
        """
        ...

    def stream(self, argv: list[str]) -> Iterator[BinaryIO]:
        """Context manager yielding the command's stdout as a byte stream.

        Raises ``CommandFailed`` on exit if the command did not succeed.
        """
        ...


# ---------------------------------------------------------------------------
# Default implementation
# ---------------------------------------------------------------------------


class SubprocessRunner:
    """Runs commands with :mod:`subprocess`."""

    def run(self, argv: list[str], *, check: bool = True) -> CommandResult:
        logger.debug("exec: %s", " ".join(argv))
        try:
            proc = subprocess.run(
                argv, capture_output=True, encoding="utf-8", errors="replace"
            )
        except OSError as exc:
            raise CommandFailed(argv, 127, str(exc)) from exc

        result = CommandResult(
            argv=list(argv),
            returncode=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
        )
        if check and not result.ok:
            raise CommandFailed(argv, proc.returncode, proc.stderr)
        return result

    @contextmanager
    def stream(self, argv: list[str]) -> Iterator[BinaryIO]:
        logger.debug("exec (stream): %s", " ".join(argv))
        # stderr goes to a spool file so a chatty child cannot fill the pipe
        # while we are draining stdout.
        with tempfile.TemporaryFile() as errfile:
            try:
                proc = subprocess.Popen(argv, stdout=subprocess.PIPE, stderr=errfile)
            except OSError as exc:
                raise CommandFailed(argv, 127, str(exc)) from exc

            assert proc.stdout is not None
            try:
                yield proc.stdout
            except BaseException:
                proc.kill()
                proc.wait()
                raise
            finally:
                proc.stdout.close()

            returncode = proc.wait()
            if returncode != 0:
                errfile.seek(0)
                stderr = errfile.read().decode("utf-8", errors="replace")
                raise CommandFailed(argv, returncode, stderr)
