"""Tests for the manifest emitter and both manifest tools."""

from __future__ import annotations

import gzip
import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from conftest import FakeManifestTool, FakeRunner
from lximage.core.errors import ManifestGenerationFailed
from lximage.core.manifest_emitter import (
    BuiltinManifestTool,
    CreateManifestTool,
    ManifestEmitter,
)
from lximage.models.build import DEFAULT_HOMEPAGE, ManifestParams


@pytest.fixture
def image_file(tmp_path: Path) -> Path:
    path = tmp_path / "lx-test-20150316.zfs.gz"
    path.write_bytes(gzip.compress(b"stream"))
    return path


@pytest.fixture
def params(image_file: Path) -> ManifestParams:
    return ManifestParams(
        image_path=image_file,
        kernel_version="3.13.0",
        min_platform="20150316T201553Z",
        name="lx-test",
        os="linux",
        version="20150316",
        description="Test Image",
        homepage=DEFAULT_HOMEPAGE,
    )


class TestManifestEmitter:
    def test_writes_tool_output(self, params: ManifestParams, tmp_path: Path):
        tool = FakeManifestTool()
        target = tmp_path / "lx-test-20150316.json"
        ManifestEmitter(tool).emit(params, target)
        assert json.loads(target.read_text())["name"] == "lx-test"
        assert tool.calls == [params]

    def test_empty_output_rejected(self, params: ManifestParams, tmp_path: Path):
        tool = FakeManifestTool()
        tool.output = "  \n"
        target = tmp_path / "lx-test-20150316.json"
        with pytest.raises(ManifestGenerationFailed, match="no output"):
            ManifestEmitter(tool).emit(params, target)
        assert not target.exists()

    def test_tool_failure_leaves_no_manifest(self, params: ManifestParams, tmp_path: Path):
        runner = FakeRunner()
        runner.failing["create-manifest"] = 2
        target = tmp_path / "lx-test-20150316.json"
        with pytest.raises(ManifestGenerationFailed):
            ManifestEmitter(CreateManifestTool(runner)).emit(params, target)
        assert not target.exists()


class TestCreateManifestTool:
    def test_argv(self, params: ManifestParams, image_file: Path):
        runner = FakeRunner(stdout='{"name": "lx-test"}')
        output = CreateManifestTool(runner).generate(params)
        assert output == '{"name": "lx-test"}'
        assert runner.calls == [[
            "create-manifest",
            "-f", str(image_file),
            "-k", "3.13.0",
            "-m", "20150316T201553Z",
            "-n", "lx-test",
            "-o", "linux",
            "-v", "20150316",
            "-d", "Test Image",
            "-h", DEFAULT_HOMEPAGE,
        ]]


class TestBuiltinManifestTool:
    def test_renders_imgapi_manifest(self, params: ManifestParams, image_file: Path):
        clock = lambda: datetime(2015, 3, 16, 20, 15, 53, tzinfo=timezone.utc)  # noqa: E731
        manifest = json.loads(BuiltinManifestTool(clock=clock).generate(params))

        assert manifest["name"] == "lx-test"
        assert manifest["version"] == "20150316"
        assert manifest["type"] == "lx-dataset"
        assert manifest["os"] == "linux"
        assert manifest["homepage"] == DEFAULT_HOMEPAGE
        assert manifest["published_at"] == "2015-03-16T20:15:53Z"
        assert manifest["requirements"]["brand"] == "lx"
        assert manifest["requirements"]["min_platform"] == {"7.0": "20150316T201553Z"}
        assert manifest["tags"] == {"role": "os", "kernel_version": "3.13.0"}

        data = image_file.read_bytes()
        assert manifest["files"] == [
            {"sha1": hashlib.sha1(data).hexdigest(), "size": len(data), "compression": "gzip"}
        ]

    def test_missing_image_file(self, params: ManifestParams, tmp_path: Path):
        missing = params.model_copy(update={"image_path": tmp_path / "gone.zfs.gz"})
        with pytest.raises(ManifestGenerationFailed, match="cannot read image file"):
            BuiltinManifestTool().generate(missing)
