"""Build request, identity, dataset and artifact models."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lximage.core.errors import InvalidInput
from lximage.models.stages import StageTransition

DEFAULT_HOMEPAGE = "https://docs.joyent.com/images/container-native-linux"

IMAGE_SUFFIX = ".zfs.gz"
MANIFEST_SUFFIX = ".json"


class ArchiveClassification(str, Enum):
    """Compression format of a root-filesystem archive."""

    GZIP = "gzip"
    BZIP2 = "bzip2"
    COMPRESS = "compress"
    TAR = "tar"

    @property
    def tar_flag(self) -> str:
        """The tar decompression flag for this format (empty for plain tar)."""
        return _TAR_FLAGS[self]


_TAR_FLAGS: dict[ArchiveClassification, str] = {
    ArchiveClassification.GZIP: "z",
    ArchiveClassification.BZIP2: "j",
    ArchiveClassification.COMPRESS: "Z",
    ArchiveClassification.TAR: "",
}


class BuildRequest(BaseModel):
    """Everything the operator supplies for one image build.

    Validated once at construction; downstream stages trust it.
    """

    model_config = ConfigDict(frozen=True)

    archive_path: Path
    kernel_version: str
    min_platform: str
    image_name: str
    description: str
    homepage: str = DEFAULT_HOMEPAGE
    output_dir: Path = Field(default_factory=Path.cwd)

    @field_validator(
        "kernel_version", "min_platform", "image_name", "description", "homepage"
    )
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("output_dir")
    @classmethod
    def _existing_directory(cls, value: Path) -> Path:
        if not value.is_dir():
            raise ValueError(f"output directory does not exist or is not a directory: {value}")
        return value

    @classmethod
    def from_options(cls, **options: Any) -> BuildRequest:
        """Build a request from raw front-end options.

        Missing or blank required values raise ``InvalidInput`` naming the
        first offending field.  ``None`` values are treated as omitted so
        optional fields fall back to their defaults.
        """
        supplied = {k: v for k, v in options.items() if v is not None}
        try:
            return cls(**supplied)
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or "request"
            if first["type"] == "missing":
                raise InvalidInput(f"missing required option: {field}") from exc
            raise InvalidInput(f"invalid {field}: {first['msg']}") from exc


class BuildIdentity(BaseModel):
    """Image name plus build date; names the dataset and both artifacts."""

    model_config = ConfigDict(frozen=True)

    image_name: str
    build_date: date

    @classmethod
    def for_today(
        cls, image_name: str, clock: Callable[[], date] | None = None
    ) -> BuildIdentity:
        today = clock() if clock else datetime.now().date()
        return cls(image_name=image_name, build_date=today)

    @property
    def version(self) -> str:
        return self.build_date.strftime("%Y%m%d")

    @property
    def name(self) -> str:
        return f"{self.image_name}-{self.version}"

    @property
    def image_filename(self) -> str:
        return f"{self.name}{IMAGE_SUFFIX}"

    @property
    def manifest_filename(self) -> str:
        return f"{self.name}{MANIFEST_SUFFIX}"

    def __str__(self) -> str:
        return self.name


class EphemeralDataset(BaseModel):
    """The transient ZFS dataset owned by one build run."""

    model_config = ConfigDict(frozen=True)

    name: str  # e.g. "zones/lx-test-20150316"
    mountpoint: Path

    @property
    def root_path(self) -> Path:
        return self.mountpoint / "root"

    @property
    def cores_path(self) -> Path:
        return self.mountpoint / "cores"


class ImageArtifacts(BaseModel):
    """The two files a successful build leaves behind."""

    model_config = ConfigDict(frozen=True)

    image_path: Path
    manifest_path: Path


class ManifestParams(BaseModel):
    """Parameters handed to the manifest tool."""

    model_config = ConfigDict(frozen=True)

    image_path: Path
    kernel_version: str
    min_platform: str
    name: str
    os: str
    version: str
    description: str
    homepage: str


class BuildReport(BaseModel):
    """Summary of a completed build run."""

    model_config = ConfigDict(frozen=True)

    identity: BuildIdentity
    classification: ArchiveClassification
    dataset_name: str
    artifacts: ImageArtifacts
    transitions: list[StageTransition] = []
