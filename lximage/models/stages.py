"""Build state models — the linear image-build lifecycle."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BuildState(str, Enum):
    """States of a single image build run, in pipeline order."""

    STARTED = "started"
    DATASET_CREATED = "dataset_created"
    EXTRACTED = "extracted"
    LAYOUT_ADAPTED = "layout_adapted"
    SERIALIZED = "serialized"
    DATASET_DESTROYED = "dataset_destroyed"
    MANIFEST_EMITTED = "manifest_emitted"
    REPORTED = "reported"
    FAILED = "failed"


# Ordered happy path.  Every non-terminal state may also move to FAILED.
BUILD_SEQUENCE: list[BuildState] = [
    BuildState.STARTED,
    BuildState.DATASET_CREATED,
    BuildState.EXTRACTED,
    BuildState.LAYOUT_ADAPTED,
    BuildState.SERIALIZED,
    BuildState.DATASET_DESTROYED,
    BuildState.MANIFEST_EMITTED,
    BuildState.REPORTED,
]

# Terminal states (REPORTED, FAILED) have no outgoing transitions.
VALID_TRANSITIONS: dict[BuildState, set[BuildState]] = {
    current: {following, BuildState.FAILED}
    for current, following in zip(BUILD_SEQUENCE, BUILD_SEQUENCE[1:])
}
VALID_TRANSITIONS[BuildState.REPORTED] = set()
VALID_TRANSITIONS[BuildState.FAILED] = set()


class StageTransition(BaseModel):
    """Records a single state transition for the build report."""

    model_config = ConfigDict(frozen=True)

    build_name: str
    from_state: BuildState
    to_state: BuildState
    detail: str | None = None  # failure message when entering FAILED
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
