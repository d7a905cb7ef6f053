"""lximage data models — all Pydantic v2, all frozen (immutable)."""

from lximage.models.build import (
    DEFAULT_HOMEPAGE,
    ArchiveClassification,
    BuildIdentity,
    BuildReport,
    BuildRequest,
    EphemeralDataset,
    ImageArtifacts,
    ManifestParams,
)
from lximage.models.stages import (
    BUILD_SEQUENCE,
    VALID_TRANSITIONS,
    BuildState,
    StageTransition,
)

__all__ = [
    # build
    "DEFAULT_HOMEPAGE",
    "ArchiveClassification",
    "BuildIdentity",
    "BuildReport",
    "BuildRequest",
    "EphemeralDataset",
    "ImageArtifacts",
    "ManifestParams",
    # stages
    "BuildState",
    "StageTransition",
    "BUILD_SEQUENCE",
    "VALID_TRANSITIONS",
]
