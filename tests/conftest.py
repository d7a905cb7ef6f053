"""Shared test fixtures and in-memory collaborators for lximage."""

from __future__ import annotations

import bz2
import gzip
import io
import json
import shutil
import tarfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Any, BinaryIO

import pytest

from lximage.core.archive_inspector import ArchiveInspector
from lximage.core.commands import CommandResult
from lximage.core.dataset_manager import DatasetLifecycleManager
from lximage.core.errors import (
    CommandFailed,
    DatasetOperationFailed,
    ExtractionFailed,
    LinkerConfigFailed,
)
from lximage.core.layout_adapter import LayoutAdapter
from lximage.core.manifest_emitter import ManifestEmitter
from lximage.core.pipeline import ImageBuilder
from lximage.core.serializer import ArtifactSerializer
from lximage.models.build import ArchiveClassification, BuildRequest, ManifestParams

BUILD_DATE = date(2015, 3, 16)
BUILD_STAMP = "20150316"


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeRunner:
    """Records every argv; fails commands whose executable is in ``failing``."""

    def __init__(self, stdout: str = "", stream_data: bytes = b"") -> None:
        self.calls: list[list[str]] = []
        self.failing: dict[str, int] = {}
        self.stdout = stdout
        self.stream_data = stream_data
        self.stderr = ""

    def run(self, argv: list[str], *, check: bool = True) -> CommandResult:
        self.calls.append(list(argv))
        code = self.failing.get(argv[0], 0)
        if check and code:
            raise CommandFailed(argv, code, f"{argv[0]}: simulated failure")
        return CommandResult(
            argv=list(argv),
            returncode=code,
            stdout=self.stdout,
            stderr=self.stderr if code else "",
        )

    @contextmanager
    def stream(self, argv: list[str]) -> Iterator[BinaryIO]:
        self.calls.append(list(argv))
        yield io.BytesIO(self.stream_data)
        code = self.failing.get(argv[0], 0)
        if code:
            raise CommandFailed(argv, code, "stream failed")


class FakeBackend:
    """Dataset backend that maps datasets onto directories under *root*."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.datasets: dict[str, Path] = {}
        self.created: list[str] = []
        self.destroyed: list[str] = []
        self.snapshots: list[str] = []
        self.fail_send = False
        self.fail_snapshot = False

    def exists(self, name: str) -> bool:
        return name in self.datasets

    def create(self, name: str) -> None:
        if name in self.datasets:
            raise DatasetOperationFailed(f"{name} exists")
        mountpoint = self.root / name
        mountpoint.mkdir(parents=True)
        self.datasets[name] = mountpoint
        self.created.append(name)

    def mountpoint(self, name: str) -> Path:
        return self.datasets[name]

    def snapshot(self, snapshot: str) -> None:
        if self.fail_snapshot:
            raise DatasetOperationFailed("zfs snapshot failed")
        self.snapshots.append(snapshot)

    @contextmanager
    def send(self, snapshot: str) -> Iterator[BinaryIO]:
        yield io.BytesIO(f"zfs-send:{snapshot}".encode() * 64)
        if self.fail_send:
            raise DatasetOperationFailed("zfs send failed")

    def destroy(self, name: str, recursive: bool = True) -> None:
        shutil.rmtree(self.datasets.pop(name))
        self.destroyed.append(name)


class FakeExtractor:
    """Writes a marker file instead of running tar."""

    def __init__(self) -> None:
        self.calls: list[tuple[Path, Path, ArchiveClassification, int]] = []
        self.fail = False

    def extract(
        self,
        archive: Path,
        destination: Path,
        classification: ArchiveClassification,
        strip_components: int,
    ) -> None:
        self.calls.append((archive, destination, classification, strip_components))
        if self.fail:
            raise ExtractionFailed(f"failed to extract {archive}")
        (destination / "etc").mkdir(parents=True, exist_ok=True)
        (destination / "etc" / "hostname").write_text("lx\n")


class FakeLinker:
    """Writes placeholder linker configs; can fail on the 64-bit one."""

    def __init__(self) -> None:
        self.calls: list[tuple[Path, list[str], list[str], bool]] = []
        self.fail_wide = False

    def generate(
        self, output: Path, library_paths: list[str], secure_paths: list[str], wide: bool
    ) -> None:
        self.calls.append((output, library_paths, secure_paths, wide))
        if wide and self.fail_wide:
            raise LinkerConfigFailed("crle -64 failed")
        output.write_text("ld.config\n")


class FakeManifestTool:
    """Echoes the manifest parameters back as JSON."""

    def __init__(self) -> None:
        self.calls: list[ManifestParams] = []
        self.output: str | None = None

    def generate(self, params: ManifestParams) -> str:
        self.calls.append(params)
        if self.output is not None:
            return self.output
        return json.dumps(
            {
                "name": params.name,
                "version": params.version,
                "os": params.os,
                "homepage": params.homepage,
                "description": params.description,
                "files": [{"path": params.image_path.name}],
                "tags": {"kernel_version": params.kernel_version},
                "requirements": {"min_platform": {"7.0": params.min_platform}},
            }
        )


# ---------------------------------------------------------------------------
# Archive factories
# ---------------------------------------------------------------------------


def _tar_bytes() -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        data = b"lx-test\n"
        info = tarfile.TarInfo("./rootfs/./etc/hostname")
        info.size = len(data)
        tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[[str], Path]:
    """Factory fixture: write an archive of the given kind under tmp_path."""

    def _factory(kind: str, name: str | None = None) -> Path:
        payloads: dict[str, Callable[[], bytes]] = {
            "gzip": lambda: gzip.compress(_tar_bytes()),
            "bzip2": lambda: bz2.compress(_tar_bytes()),
            "compress": lambda: b"\x1f\x9d\x90" + b"\x00" * 64,
            "tar": _tar_bytes,
            "text": lambda: b"this is not an archive\n",
        }
        path = tmp_path / "archives" / (name or f"rootfs-{kind}.bin")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payloads[kind]())
        return path

    return _factory


@pytest.fixture
def gzip_archive(make_archive: Callable[[str], Path]) -> Path:
    return make_archive("gzip")


# ---------------------------------------------------------------------------
# Pipeline wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def backend(tmp_path: Path) -> FakeBackend:
    return FakeBackend(tmp_path / "pool")


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def linker() -> FakeLinker:
    return FakeLinker()


@pytest.fixture
def manifest_tool() -> FakeManifestTool:
    return FakeManifestTool()


@pytest.fixture
def datasets(backend: FakeBackend, extractor: FakeExtractor) -> DatasetLifecycleManager:
    return DatasetLifecycleManager(backend, extractor, pool="zones")


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def builder(
    datasets: DatasetLifecycleManager,
    linker: FakeLinker,
    manifest_tool: FakeManifestTool,
) -> ImageBuilder:
    """An ImageBuilder wired to fakes, with the build date pinned."""
    return ImageBuilder(
        datasets=datasets,
        inspector=ArchiveInspector(),
        layout=LayoutAdapter(linker),
        serializer=ArtifactSerializer(),
        manifests=ManifestEmitter(manifest_tool),
        clock=lambda: BUILD_DATE,
    )


@pytest.fixture
def make_request(output_dir: Path) -> Callable[..., BuildRequest]:
    """Factory fixture: a BuildRequest with the reference test values."""

    def _factory(archive: Path, **overrides: Any) -> BuildRequest:
        defaults: dict[str, Any] = {
            "archive_path": archive,
            "kernel_version": "3.13.0",
            "min_platform": "20150316T201553Z",
            "image_name": "lx-test",
            "description": "Test Image",
            "output_dir": output_dir,
        }
        defaults.update(overrides)
        return BuildRequest(**defaults)

    return _factory
