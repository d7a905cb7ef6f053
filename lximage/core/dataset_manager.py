"""Dataset Lifecycle Manager — owns the ephemeral ZFS dataset of one build.

Lifecycle::

    create -> extract -> (layout mutations) -> snapshot_and_serialize
                  \\                                   |
                   +-- destroy on failure              +-- destroy always

``provisioned()`` wraps ``create`` in a scoped acquisition: any exception
escaping the block destroys the dataset unless the lease was disarmed.
"""

from __future__ import annotations

import functools
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Protocol, runtime_checkable

from lximage.core.commands import CommandRunner, SubprocessRunner
from lximage.core.errors import (
    CommandFailed,
    DatasetOperationFailed,
    ExtractionFailed,
    ImageBuildError,
)
from lximage.core.extractor import Extractor
from lximage.models.build import ArchiveClassification, BuildIdentity, EphemeralDataset

if TYPE_CHECKING:
    from lximage.core.serializer import ArtifactSerializer

logger = logging.getLogger(__name__)

DATASET_MODE = 0o700
SUBDIR_MODE = 0o755

# zfs list stderr for an absent dataset
_MISSING_DATASET = "dataset does not exist"


# ---------------------------------------------------------------------------
# Backend protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class DatasetBackend(Protocol):
    """Protocol for the underlying dataset/snapshot manager."""

    def exists(self, name: str) -> bool: ...

    def create(self, name: str) -> None: ...

    def mountpoint(self, name: str) -> Path: ...

    def snapshot(self, snapshot: str) -> None: ...

    def send(self, snapshot: str) -> Iterator[BinaryIO]:
        """Context manager yielding the snapshot's replication stream."""
        ...

    def destroy(self, name: str, recursive: bool = True) -> None: ...


class ZfsBackend:
    """Drives the ``zfs`` command.

    Every ``CommandFailed`` is re-raised as ``DatasetOperationFailed``.
    """

    def __init__(self, runner: CommandRunner | None = None, zfs_bin: str = "zfs") -> None:
        self._runner = runner or SubprocessRunner()
        self._zfs = zfs_bin

    def _zfs_call(self, *args: str) -> str:
        argv = [self._zfs, *args]
        try:
            return self._runner.run(argv).stdout
        except CommandFailed as exc:
            raise DatasetOperationFailed(f"zfs {args[0]} failed: {exc}") from exc

    def exists(self, name: str) -> bool:
        """True if *name* exists; only a "does not exist" answer means False."""
        try:
            result = self._runner.run(
                [self._zfs, "list", "-H", "-o", "name", name], check=False
            )
        except CommandFailed as exc:
            raise DatasetOperationFailed(f"zfs list failed: {exc}") from exc
        if result.ok:
            return True
        if _MISSING_DATASET in result.stderr:
            return False
        raise DatasetOperationFailed(
            f"zfs list failed: {CommandFailed(result.argv, result.returncode, result.stderr)}"
        )

    def create(self, name: str) -> None:
        self._zfs_call("create", name)

    def mountpoint(self, name: str) -> Path:
        value = self._zfs_call("get", "-H", "-o", "value", "mountpoint", name).strip()
        if not value.startswith("/"):
            raise DatasetOperationFailed(f"dataset {name} is not mounted (mountpoint={value!r})")
        return Path(value)

    def snapshot(self, snapshot: str) -> None:
        self._zfs_call("snapshot", snapshot)

    @contextmanager
    def send(self, snapshot: str) -> Iterator[BinaryIO]:
        try:
            with self._runner.stream([self._zfs, "send", snapshot]) as stream:
                yield stream
        except CommandFailed as exc:
            raise DatasetOperationFailed(f"zfs send failed: {exc}") from exc

    def destroy(self, name: str, recursive: bool = True) -> None:
        if recursive:
            self._zfs_call("destroy", "-r", name)
        else:
            self._zfs_call("destroy", name)


# ---------------------------------------------------------------------------
# Scoped ownership
# ---------------------------------------------------------------------------


class DatasetLease:
    """Handle on a provisioned dataset; armed until explicitly disarmed."""

    def __init__(self, dataset: EphemeralDataset) -> None:
        self.dataset = dataset
        self.armed = True

    def disarm(self) -> None:
        """Stop the enclosing ``provisioned()`` block from destroying the dataset."""
        self.armed = False


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class DatasetLifecycleManager:
    """Creates, populates, serializes and destroys the build dataset.

    Parameters
    ----------
    backend:
        Dataset/snapshot manager (``ZfsBackend`` in production).
    extractor:
        Archive extractor used by ``extract``.
    pool:
        Parent dataset under which build datasets are created.
    snapshot_name:
        Name of the snapshot taken before serialization.
    strip_components:
        Leading path components stripped from archive members.
    cleanup_on_failure:
        Destroy the dataset when any failure escapes ``provisioned()``.
        Extraction failures destroy it regardless.
    """

    def __init__(
        self,
        backend: DatasetBackend,
        extractor: Extractor,
        *,
        pool: str = "zones",
        snapshot_name: str = "final",
        strip_components: int = 2,
        cleanup_on_failure: bool = True,
    ) -> None:
        self._backend = backend
        self._extractor = extractor
        self._pool = pool
        self._snapshot_name = snapshot_name
        self._strip_components = strip_components
        self._cleanup_on_failure = cleanup_on_failure

    def dataset_name(self, identity: BuildIdentity) -> str:
        return f"{self._pool}/{identity.name}"

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, identity: BuildIdentity) -> EphemeralDataset:
        """Create the dataset and its ``root`` and ``cores`` directories.

        An existing dataset with the same name is a caller error; it is
        never reused or overwritten.
        """
        name = self.dataset_name(identity)
        if self._backend.exists(name):
            raise DatasetOperationFailed(
                f"dataset {name} already exists; destroy it or pick another image name"
            )

        logger.info("creating dataset %s", name)
        self._backend.create(name)
        try:
            dataset = EphemeralDataset(name=name, mountpoint=self._backend.mountpoint(name))
            os.chmod(dataset.mountpoint, DATASET_MODE)
            for subdir in (dataset.root_path, dataset.cores_path):
                subdir.mkdir(exist_ok=True)
                os.chmod(subdir, SUBDIR_MODE)
        except (OSError, ImageBuildError) as exc:
            if self._cleanup_on_failure:
                self._destroy_quietly(name)
            if isinstance(exc, ImageBuildError):
                raise
            raise DatasetOperationFailed(f"failed to prepare dataset {name}: {exc}") from exc
        return dataset

    @contextmanager
    def provisioned(self, identity: BuildIdentity) -> Iterator[DatasetLease]:
        """Create the dataset and destroy it if the block fails."""
        lease = DatasetLease(self.create(identity))
        try:
            yield lease
        except BaseException:
            if lease.armed and self._cleanup_on_failure:
                logger.warning("build failed; destroying dataset %s", lease.dataset.name)
                self._destroy_quietly(lease.dataset.name)
            elif lease.armed:
                logger.warning(
                    "build failed; dataset %s left in place (cleanup disabled)",
                    lease.dataset.name,
                )
            raise

    # ------------------------------------------------------------------
    # Populate
    # ------------------------------------------------------------------

    def extract(
        self,
        dataset: EphemeralDataset,
        archive: Path,
        classification: ArchiveClassification,
    ) -> None:
        """Unpack *archive* into the dataset root.

        On any failure the dataset is destroyed before ``ExtractionFailed``
        is raised.
        """
        try:
            self._extractor.extract(
                archive, dataset.root_path, classification, self._strip_components
            )
        except (ExtractionFailed, CommandFailed, OSError) as exc:
            logger.error("extraction into %s failed; destroying dataset", dataset.name)
            self._destroy_quietly(dataset.name)
            if isinstance(exc, ExtractionFailed):
                raise
            raise ExtractionFailed(f"failed to extract {archive}: {exc}") from exc

    # ------------------------------------------------------------------
    # Serialize + destroy
    # ------------------------------------------------------------------

    def snapshot_and_serialize(
        self,
        dataset: EphemeralDataset,
        serializer: ArtifactSerializer,
        target: Path,
    ) -> Path:
        """Snapshot the dataset, stream it into *target*, then destroy it.

        The dataset is destroyed whether or not serialization succeeded.
        """
        snapshot = f"{dataset.name}@{self._snapshot_name}"
        try:
            logger.info("snapshotting %s", snapshot)
            self._backend.snapshot(snapshot)
            serializer.write(functools.partial(self._backend.send, snapshot), target)
        except BaseException:
            self._destroy_quietly(dataset.name)
            raise
        self.destroy(dataset)
        return target

    def destroy(self, dataset: EphemeralDataset) -> None:
        """Recursively destroy the dataset; a missing dataset is a no-op."""
        if not self._backend.exists(dataset.name):
            logger.debug("dataset %s already gone", dataset.name)
            return
        logger.info("destroying dataset %s", dataset.name)
        self._backend.destroy(dataset.name, recursive=True)

    def _destroy_quietly(self, name: str) -> None:
        """Cleanup-path destroy: logs a failure instead of masking the original error."""
        try:
            if self._backend.exists(name):
                self._backend.destroy(name, recursive=True)
        except ImageBuildError as exc:
            logger.error("could not destroy dataset %s: %s", name, exc)
