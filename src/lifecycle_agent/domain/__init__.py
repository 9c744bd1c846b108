"""Domain model: conditions, phase classification and typed cluster objects."""

from __future__ import annotations

from .conditions import (
    Condition,
    ConditionReason,
    ConditionStatus,
    ConditionType,
    find_status_condition,
    set_status_condition,
)
from .phase import (
    MSG_LAUNCHING_IMAGER,
    InProgressStage,
    Phase,
    classify_phase,
    phase_from_conditions,
)
from .resources import (
    SECRET_GVR,
    SEEDGEN_GVR,
    ObjectMeta,
    Secret,
    SeedGenerator,
    SeedGeneratorSpec,
    SeedGeneratorStatus,
)

__all__ = [
    "Condition",
    "ConditionReason",
    "ConditionStatus",
    "ConditionType",
    "find_status_condition",
    "set_status_condition",
    "MSG_LAUNCHING_IMAGER",
    "InProgressStage",
    "Phase",
    "classify_phase",
    "phase_from_conditions",
    "SECRET_GVR",
    "SEEDGEN_GVR",
    "ObjectMeta",
    "Secret",
    "SeedGenerator",
    "SeedGeneratorSpec",
    "SeedGeneratorStatus",
]
