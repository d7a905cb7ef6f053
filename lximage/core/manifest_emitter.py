"""Manifest Emitter — produces the image's JSON manifest.

Two ``ManifestTool`` implementations:

* ``CreateManifestTool`` shells out to ``create-manifest``.
* ``BuiltinManifestTool`` renders the same IMGAPI v2 ``lx-dataset``
  manifest in-process, hashing the image file itself.

Either way the output is staged and renamed, so the manifest file only
appears once generation has succeeded.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from lximage.core.commands import CommandRunner, SubprocessRunner
from lximage.core.errors import CommandFailed, ManifestGenerationFailed
from lximage.models.build import ManifestParams

logger = logging.getLogger(__name__)

_NIL_OWNER = "00000000-0000-0000-0000-000000000000"


@runtime_checkable
class ManifestTool(Protocol):
    """Protocol for manifest generators: parameters in, JSON text out."""

    def generate(self, params: ManifestParams) -> str: ...


class CreateManifestTool:
    """Runs the external ``create-manifest`` tool and returns its stdout."""

    def __init__(self, runner: CommandRunner | None = None, tool: str = "create-manifest") -> None:
        self._runner = runner or SubprocessRunner()
        self._tool = tool

    def build_argv(self, params: ManifestParams) -> list[str]:
        return [
            self._tool,
            "-f", str(params.image_path),
            "-k", params.kernel_version,
            "-m", params.min_platform,
            "-n", params.name,
            "-o", params.os,
            "-v", params.version,
            "-d", params.description,
            "-h", params.homepage,
        ]

    def generate(self, params: ManifestParams) -> str:
        try:
            return self._runner.run(self.build_argv(params)).stdout
        except CommandFailed as exc:
            raise ManifestGenerationFailed(f"{self._tool} failed: {exc}") from exc


class BuiltinManifestTool:
    """Builds the manifest without an external tool."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def _file_digest(path: Path) -> tuple[str, int]:
        sha1 = hashlib.sha1()
        with open(path, "rb") as fh:
            for chunk in iter(lambda: fh.read(1024 * 1024), b""):
                sha1.update(chunk)
        return sha1.hexdigest(), path.stat().st_size

    def render(self, params: ManifestParams) -> dict[str, Any]:
        try:
            sha1, size = self._file_digest(params.image_path)
        except OSError as exc:
            raise ManifestGenerationFailed(
                f"cannot read image file {params.image_path}: {exc}"
            ) from exc

        published = self._clock().strftime("%Y-%m-%dT%H:%M:%SZ")
        return {
            "v": "2",
            "uuid": str(uuid.uuid4()),
            "owner": _NIL_OWNER,
            "name": params.name,
            "version": params.version,
            "state": "active",
            "disabled": False,
            "public": True,
            "published_at": published,
            "type": "lx-dataset",
            "os": params.os,
            "files": [
                {"sha1": sha1, "size": size, "compression": "gzip"},
            ],
            "description": params.description,
            "homepage": params.homepage,
            "requirements": {
                "networks": [{"name": "net0", "description": "public"}],
                "min_platform": {"7.0": params.min_platform},
                "brand": "lx",
            },
            "tags": {
                "role": "os",
                "kernel_version": params.kernel_version,
            },
        }

    def generate(self, params: ManifestParams) -> str:
        return json.dumps(self.render(params), indent=2) + "\n"


class ManifestEmitter:
    """Runs a ``ManifestTool`` and writes its output atomically."""

    def __init__(self, tool: ManifestTool) -> None:
        self._tool = tool

    def emit(self, params: ManifestParams, target: Path) -> Path:
        logger.info("generating manifest %s", target)
        output = self._tool.generate(params)
        if not output or not output.strip():
            raise ManifestGenerationFailed("manifest tool produced no output")

        staging = target.with_name(target.name + ".partial")
        try:
            staging.write_text(output)
            os.replace(staging, target)
        except OSError as exc:
            staging.unlink(missing_ok=True)
            raise ManifestGenerationFailed(f"could not write manifest {target}: {exc}") from exc
        return target
