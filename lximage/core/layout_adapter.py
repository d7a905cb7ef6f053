"""Layout Adapter — prepares an extracted root filesystem for the LX brand.

The LX runtime mounts the host's native toolset under ``/native``.  An
image therefore needs:

1. the ``native`` mount-point skeleton (``native/tmp`` is 1777),
2. runtime-linker configurations (32- and 64-bit) pointing the loader at
   ``/native`` library directories, generated by ``crle``,
3. a two-line ``/etc/fstab`` for the zfs-backed root and ``/proc``.

Steps run in that order.  A failure leaves whatever was already created;
cleanup of the dataset is the caller's job.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from lximage.core.commands import CommandRunner, SubprocessRunner
from lximage.core.errors import CommandFailed, LayoutAdaptationFailed, LinkerConfigFailed

logger = logging.getLogger(__name__)

NATIVE_DIRS: list[str] = [
    "native/dev",
    "native/etc/default",
    "native/etc/svc/volatile",
    "native/lib",
    "native/proc",
    "native/tmp",
    "native/usr",
    "native/var",
]

STICKY_TMP_MODE = 0o1777

FSTAB_CONTENT = (
    "none\t\t/\t\t\tzfs\tdefaults\t1 1\n"
    "proc\t\t/proc\t\t\tproc\tdefaults\t0 0\n"
)


class LinkerConfig(BaseModel):
    """One runtime-linker configuration to generate inside the image."""

    model_config = ConfigDict(frozen=True)

    relative_path: str
    library_paths: list[str]
    secure_paths: list[str]
    wide: bool  # 64-bit (crle -64)


LINKER_CONFIGS: list[LinkerConfig] = [
    LinkerConfig(
        relative_path="native/etc/ld.config",
        library_paths=["/native/lib", "/native/usr/lib"],
        secure_paths=["/native/lib/secure", "/native/usr/lib/secure"],
        wide=False,
    ),
    LinkerConfig(
        relative_path="native/etc/ld.config.64",
        library_paths=["/native/lib/64", "/native/usr/lib/64"],
        secure_paths=["/native/lib/secure/64", "/native/usr/lib/secure/64"],
        wide=True,
    ),
]


# ---------------------------------------------------------------------------
# Linker configuration port
# ---------------------------------------------------------------------------


@runtime_checkable
class LinkerConfigGenerator(Protocol):
    """Protocol for writing a runtime-linker configuration file."""

    def generate(
        self,
        output: Path,
        library_paths: list[str],
        secure_paths: list[str],
        wide: bool,
    ) -> None:
        """Write the configuration to *output*; raise ``LinkerConfigFailed`` on error."""
        ...


class CrleGenerator:
    """Generates linker configurations with ``crle(1)``."""

    def __init__(self, runner: CommandRunner | None = None, crle_bin: str = "crle") -> None:
        self._runner = runner or SubprocessRunner()
        self._crle = crle_bin

    def build_argv(
        self,
        output: Path,
        library_paths: list[str],
        secure_paths: list[str],
        wide: bool,
    ) -> list[str]:
        argv = [self._crle]
        if wide:
            argv.append("-64")
        argv += [
            "-c", str(output),
            "-l", ":".join(library_paths),
            "-s", ":".join(secure_paths),
        ]
        return argv

    def generate(
        self,
        output: Path,
        library_paths: list[str],
        secure_paths: list[str],
        wide: bool,
    ) -> None:
        argv = self.build_argv(output, library_paths, secure_paths, wide)
        try:
            self._runner.run(argv)
        except CommandFailed as exc:
            raise LinkerConfigFailed(f"crle could not write {output}: {exc}") from exc


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


def reject_symlinks(root: Path, relative: str) -> None:
    """Raise if any existing component of *relative* under *root* is a symlink.

    Links in an extracted archive point into the image's namespace; followed
    on the build host they would resolve outside the dataset.
    """
    path = root
    for part in Path(relative).parts:
        path = path / part
        if path.is_symlink():
            raise LayoutAdaptationFailed(f"refusing to follow symlink {path} from the archive")


class LayoutAdapter:
    """Applies the LX layout steps to an extracted root filesystem."""

    def __init__(self, linker: LinkerConfigGenerator) -> None:
        self._linker = linker

    def adapt(self, root: Path) -> None:
        self.create_native_dirs(root)
        self.generate_linker_configs(root)
        self.write_fstab(root)

    def create_native_dirs(self, root: Path) -> list[Path]:
        created: list[Path] = []
        try:
            for relative in NATIVE_DIRS:
                reject_symlinks(root, relative)
                path = root / relative
                path.mkdir(parents=True, exist_ok=True)
                created.append(path)
            os.chmod(root / "native/tmp", STICKY_TMP_MODE)
        except OSError as exc:
            raise LayoutAdaptationFailed(f"could not create native directories: {exc}") from exc
        logger.info("created %d native directories under %s", len(created), root)
        return created

    def generate_linker_configs(self, root: Path) -> None:
        for config in LINKER_CONFIGS:
            output = root / config.relative_path
            logger.info("generating %s", output)
            try:
                # crle writes through an existing link; replace it instead.
                output.unlink(missing_ok=True)
                self._linker.generate(
                    output, config.library_paths, config.secure_paths, config.wide
                )
            except LinkerConfigFailed:
                raise
            except (CommandFailed, OSError) as exc:
                raise LinkerConfigFailed(f"could not generate {output}: {exc}") from exc

    def write_fstab(self, root: Path) -> Path:
        fstab = root / "etc" / "fstab"
        reject_symlinks(root, "etc")
        try:
            fstab.parent.mkdir(parents=True, exist_ok=True)
            # Unlink first so a symlinked fstab is replaced, not followed.
            fstab.unlink(missing_ok=True)
            fstab.write_text(FSTAB_CONTENT)
        except OSError as exc:
            raise LayoutAdaptationFailed(f"could not write {fstab}: {exc}") from exc
        logger.info("wrote %s", fstab)
        return fstab
