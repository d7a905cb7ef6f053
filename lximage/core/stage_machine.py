"""Deterministic build state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Strict pipeline order: no stage may be skipped or repeated
- FAILED and REPORTED are terminal
- Every transition recorded for the build report
"""

from __future__ import annotations

import logging

from lximage.models.stages import (
    VALID_TRANSITIONS,
    BuildState,
    StageTransition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class BuildStateMachine:
    """Tracks one build run through the linear pipeline.

    Parameters
    ----------
    build_name:
        The build identity (``<image>-<YYYYMMDD>``) recorded on each transition.
    """

    def __init__(self, build_name: str) -> None:
        self.build_name = build_name
        self._state = BuildState.STARTED
        self._history: list[StageTransition] = []

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> BuildState:
        return self._state

    @property
    def history(self) -> list[StageTransition]:
        """A copy of every transition recorded so far."""
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS[self._state]

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def advance(self, target_state: BuildState) -> StageTransition:
        """Move to *target_state*, which must directly follow the current state."""
        if target_state == BuildState.FAILED:
            raise InvalidTransitionError("use fail() to enter the failed state")
        return self._transition(target_state)

    def fail(self, detail: str) -> StageTransition:
        """Move to FAILED from any non-terminal state."""
        return self._transition(BuildState.FAILED, detail=detail)

    def _transition(
        self, target_state: BuildState, detail: str | None = None
    ) -> StageTransition:
        current = self._state
        allowed = VALID_TRANSITIONS.get(current, set())
        if target_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {self.build_name} from {current.value} to "
                f"{target_state.value}. Allowed: {sorted(s.value for s in allowed)}"
            )

        record = StageTransition(
            build_name=self.build_name,
            from_state=current,
            to_state=target_state,
            detail=detail,
        )
        self._history.append(record)
        self._state = target_state
        logger.debug("%s: %s -> %s", self.build_name, current.value, target_state.value)
        return record
