"""Status conditions — the only durable record of seed generation progress."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ConditionType(str, Enum):
    """The two condition types a request carries."""

    IN_PROGRESS = "SeedGenInProgress"
    COMPLETED = "SeedGenCompleted"


class ConditionReason(str, Enum):
    """Reason codes written by the agent."""

    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Condition(BaseModel):
    """A single named condition, serialised the way the cluster API stores it."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    observed_generation: int = 0
    last_transition_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_true(self) -> bool:
        return self.status == ConditionStatus.TRUE


def find_status_condition(
    conditions: list[Condition],
    condition_type: ConditionType | str,
) -> Condition | None:
    """Return the condition of the given type, or ``None``."""
    wanted = ConditionType(condition_type).value
    for condition in conditions:
        if condition.type == wanted:
            return condition
    return None


def set_status_condition(
    conditions: list[Condition],
    condition_type: ConditionType,
    reason: ConditionReason,
    status: ConditionStatus,
    message: str,
    generation: int,
) -> None:
    """Insert or update a condition in place.

    ``last_transition_time`` only moves when the boolean state changes, so
    repeated progress messages do not look like new transitions.
    """
    existing = find_status_condition(conditions, condition_type)
    if existing is None:
        conditions.append(
            Condition(
                type=condition_type.value,
                status=status,
                reason=reason.value,
                message=message,
                observed_generation=generation,
            )
        )
        return

    if existing.status != status:
        existing.status = status
        existing.last_transition_time = datetime.now(timezone.utc)
    existing.reason = reason.value
    existing.message = message
    existing.observed_generation = generation
