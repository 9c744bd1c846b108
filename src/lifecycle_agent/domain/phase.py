"""Phase classifier — derives the workflow phase from persisted conditions.

There is no stored phase field. The phase is recomputed on every reconcile
(including the first one after a crash) purely from the InProgress and
Completed conditions plus the typed :class:`InProgressStage` tag.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from .conditions import ConditionReason, ConditionType, find_status_condition

if TYPE_CHECKING:
    from .conditions import Condition

# Operator-facing text of the hand-off step. Objects written before the
# stage tag existed are still recognised through this exact message.
MSG_LAUNCHING_IMAGER = "Launching imager container"


class Phase(str, Enum):
    """Possible reconciler phases for a seed generation request."""

    INITIAL = "initial"
    GENERATING = "generating"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETED, Phase.FAILED)


class InProgressStage(str, Enum):
    """Typed progress tag persisted next to the InProgress message."""

    WAITING_FOR_STABLE = "WaitingForStable"
    GENERATING = "Generating"
    LAUNCHING_IMAGER = "LaunchingImager"
    FINALIZING = "Finalizing"


def classify_phase(
    in_progress: Condition | None,
    completed: Condition | None,
    stage: InProgressStage | None = None,
) -> Phase:
    """Map the two conditions to a phase; first matching rule wins.

    1. Neither condition present: INITIAL.
    2. Either reason is Failed: FAILED.
    3. Completed is True: COMPLETED.
    4. InProgress is True: INITIAL when its message is empty, FINALIZING
       when the imager was launched, GENERATING otherwise.
    5. Anything else: GENERATING.
    """
    if in_progress is None and completed is None:
        return Phase.INITIAL

    failed = ConditionReason.FAILED.value
    if (in_progress is not None and in_progress.reason == failed) or (
        completed is not None and completed.reason == failed
    ):
        return Phase.FAILED

    if completed is not None and completed.is_true:
        return Phase.COMPLETED

    if in_progress is not None and in_progress.is_true:
        if in_progress.message == "":
            return Phase.INITIAL
        if stage in (InProgressStage.LAUNCHING_IMAGER, InProgressStage.FINALIZING):
            return Phase.FINALIZING
        if stage is None and in_progress.message == MSG_LAUNCHING_IMAGER:
            return Phase.FINALIZING

    return Phase.GENERATING


def phase_from_conditions(
    conditions: list[Condition],
    stage: InProgressStage | None = None,
) -> Phase:
    """Convenience wrapper that looks both conditions up by type."""
    return classify_phase(
        find_status_condition(conditions, ConditionType.IN_PROGRESS),
        find_status_condition(conditions, ConditionType.COMPLETED),
        stage,
    )
